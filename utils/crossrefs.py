# utils/crossrefs.py
import logging

logger = logging.getLogger(__name__)


def crossrefs_tag(language):
    return f"crossrefs_{language}"


class CrossRefIndex:
    """Per-language set of cross-reference doc ids, built lazily from the cache.

    Building scans the whole cached cross-reference dataset once; lookups
    afterwards are set membership. A download or clear for a language must
    call ``invalidate`` so the next lookup rebuilds from the cache.
    """

    def __init__(self, cache):
        self._cache = cache
        self._by_language = {}

    def get(self, language):
        doc_ids = self._by_language.get(language)
        if doc_ids is None:
            doc_ids = self._build(language)
            self._by_language[language] = doc_ids
        return doc_ids

    def has(self, language, doc_id):
        return doc_id in self.get(language)

    def invalidate(self, language):
        self._by_language.pop(language, None)

    def _build(self, language):
        entries = self._cache.get_core_dataset(crossrefs_tag(language)) or []
        doc_ids = frozenset(
            entry['doc_id'] for entry in entries
            if isinstance(entry, dict) and entry.get('doc_id')
        )
        logger.info(f"Built cross-reference index for {language}: {len(doc_ids)} entries")
        return doc_ids
