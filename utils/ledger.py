# utils/ledger.py
"""Durable record of which language/resource combinations are fully downloaded.

Resource ids look like ``am-bible``, ``am-commentary`` and ``en-ref``. An
entry is only ever set to True by the download manager after the whole
resource was fetched and saved; clearing a language resets its entries.
"""
import logging
from enum import Enum

logger = logging.getLogger(__name__)

RESOURCES_KEY = 'downloadedResources'
LANGUAGES_KEY = 'downloadedLanguages'


class ResourceKind(str, Enum):
    BIBLE = "bible"
    COMMENTARY = "commentary"
    REF = "ref"


def resource_id(language, kind):
    return f"{language}-{ResourceKind(kind).value}"


def parse_resource_id(value):
    """Split 'am-bible' into ('am', ResourceKind.BIBLE); None when malformed."""
    if not isinstance(value, str) or '-' not in value:
        return None
    language, _, kind = value.partition('-')
    try:
        return language, ResourceKind(kind)
    except ValueError:
        return None


class DownloadLedger:
    def __init__(self, settings):
        self._settings = settings

    def _resources(self):
        return dict(self._settings.get(RESOURCES_KEY) or {})

    def is_downloaded(self, resource):
        return self._resources().get(resource) is True

    def snapshot(self):
        return self._resources()

    def mark_downloaded(self, *resources):
        if not resources:
            return
        current = self._resources()
        for resource in resources:
            current[resource] = True
        self._persist(current)
        logger.info(f"Ledger: marked downloaded {', '.join(resources)}")

    def reset_language(self, language):
        current = self._resources()
        for kind in ResourceKind:
            current[resource_id(language, kind)] = False
        self._persist(current)
        logger.info(f"Ledger: reset all resources for {language}")

    def downloaded_languages(self):
        return list(self._settings.get(LANGUAGES_KEY) or [])

    def _persist(self, resources):
        self._settings.set(RESOURCES_KEY, resources)

        # A language counts as downloaded once all of its resource kinds are
        languages = sorted({
            parse_resource_id(resource)[0]
            for resource in resources
            if parse_resource_id(resource)
        })
        complete = [
            lang for lang in languages
            if all(resources.get(resource_id(lang, kind)) is True for kind in ResourceKind)
        ]
        self._settings.set(LANGUAGES_KEY, complete)
