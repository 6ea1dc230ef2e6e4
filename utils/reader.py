# utils/reader.py
"""Offline-first reads used while browsing.

Chapters and audio URLs are served from the cache when present and
otherwise fetched and written back; chapters fetched this way are stored
as temporary entries (is_downloaded=False) that the temporary-cache sweep
may delete. A temporary entry never replaces a downloaded one.
"""
import asyncio
import logging

from schemas.results import Err, Ok, Result
from utils.crossrefs import crossrefs_tag

logger = logging.getLogger(__name__)


class ContentReader:
    def __init__(self, context):
        self._context = context

    async def load_chapter(self, book_id, chapter, language) -> Result:
        """Ok(rows), Ok(None) when the chapter does not exist, or Err."""
        cache = self._context.cache
        record = await asyncio.to_thread(cache.get_chapter, book_id, chapter, language)
        if record is not None and record.verses:
            return Ok(record.as_rows())

        result = await self._context.gateway.fetch_chapter_content(book_id, chapter, language)
        if isinstance(result, Err):
            logger.error(f"LoadChapter Error for {book_id}-{chapter}-{language}: {result}")
            return result

        rows = result.value or []
        if not rows:
            return Ok(None)
        written = await asyncio.to_thread(cache.save_temporary_chapter, book_id, chapter, language, rows)
        if not written:
            # A download may have stored the chapter meanwhile; prefer that record
            record = await asyncio.to_thread(cache.get_chapter, book_id, chapter, language)
            if record is not None and record.is_downloaded and record.verses:
                return Ok(record.as_rows())
        return Ok(rows)

    async def get_audio_url(self, book_id, chapter, language) -> Result:
        cache = self._context.cache
        cached = await asyncio.to_thread(cache.get_audio_url, book_id, chapter, language)
        if cached:
            return Ok(cached)

        result = await self._context.gateway.fetch_audio_url(book_id, chapter, language)
        if isinstance(result, Ok) and result.value:
            await asyncio.to_thread(cache.save_audio_url, book_id, chapter, language, result.value)
        return result

    async def chapter_cross_ref_ids(self, book_id, chapter, language):
        """Doc ids that have cross references.

        With downloaded cross references this is the whole per-language
        index (membership is all callers need); otherwise the chapter's ids
        are fetched from the network.
        """
        doc_ids = await asyncio.to_thread(self._context.crossrefs.get, language)
        if doc_ids:
            return doc_ids

        result = await self._context.gateway.fetch_chapter_cross_ref_ids(book_id, chapter)
        if isinstance(result, Err):
            logger.warning(f"Could not fetch cross-reference ids for {book_id} {chapter}: {result}")
            return frozenset()
        return frozenset(row['doc_id'] for row in result.value or [] if row.get('doc_id'))

    async def cross_ref_details(self, doc_id, language) -> Result:
        """Ok(related_refs) from the downloaded table, else from the network."""
        cached = await asyncio.to_thread(self._context.cache.get_core_dataset, crossrefs_tag(language))
        for entry in cached or []:
            if isinstance(entry, dict) and entry.get('doc_id') == doc_id and entry.get('related_refs'):
                return Ok(entry['related_refs'])

        result = await self._context.gateway.fetch_cross_ref_details(doc_id)
        if isinstance(result, Err):
            return result
        return Ok((result.value or {}).get('related_refs'))
