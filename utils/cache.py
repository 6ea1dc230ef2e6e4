# utils/cache.py
"""Offline content cache.

A single key-value table holds chapter records, core datasets and audio
URLs. Reads degrade to a miss and writes to a failed result when the
engine misbehaves; nothing here raises past the public methods.
"""
import logging
import threading
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy import delete, not_, select
from sqlalchemy.exc import SQLAlchemyError

from database import create_cache_engine, create_session_factory, init_cache_schema, session_scope
from models import CacheEntry
from schemas.content_schemas import ChapterRecord, ClearResult, VerseEntry
from schemas.results import Err, ErrorKind, Ok, Result
from utils.merge import merge_book_payload

logger = logging.getLogger(__name__)

CORE_PREFIX = 'core-'
AUDIO_PREFIX = 'audio-'


def chapter_key(book_id, chapter, language):
    return f"{book_id}-{chapter}-{language}"


def core_key(tag):
    return f"{CORE_PREFIX}{tag}"


def audio_key(book_id, chapter, language):
    return f"{AUDIO_PREFIX}{book_id}-{chapter}-{language}"


def is_chapter_key(key):
    return not key.startswith(CORE_PREFIX) and not key.startswith(AUDIO_PREFIX)


def is_quota_error(exc):
    """True when SQLite reports the disk (or max_page_count) is exhausted."""
    orig = getattr(exc, 'orig', None) or exc
    if getattr(orig, 'sqlite_errorname', None) == 'SQLITE_FULL':
        return True
    return 'database or disk is full' in str(orig).lower()


def _is_downloaded(value):
    return isinstance(value, dict) and value.get('is_downloaded') is True


def _normalize_rows(rows) -> List[Dict[str, Any]]:
    return [VerseEntry.model_validate(row).model_dump(exclude_none=True) for row in rows]


class ContentCache:
    def __init__(self, session_factory):
        # session_factory is None when the database could not be opened;
        # every operation then behaves as a miss / failed write.
        self._session_factory = session_factory
        self._write_lock = threading.Lock()

    @classmethod
    def open(cls, db_path):
        try:
            engine = create_cache_engine(db_path)
            init_cache_schema(engine)
        except SQLAlchemyError as e:
            logger.error(f"[Cache] DB open error for {db_path}: {e}")
            return cls(None)
        logger.info(f"[Cache] Opened content cache at {db_path}")
        return cls(create_session_factory(engine))

    @property
    def available(self):
        return self._session_factory is not None

    # --- low level helpers ---

    def _get_value(self, key):
        if not self.available:
            return None
        try:
            with session_scope(self._session_factory) as db:
                entry = db.get(CacheEntry, key)
                return entry.value if entry is not None else None
        except (SQLAlchemyError, ValueError) as e:
            # ValueError covers a stored value that is no longer valid JSON
            logger.error(f"[Cache] Get error for key {key}: {e}")
            return None

    def _put_value(self, key, value) -> Result:
        if not self.available:
            return Err(ErrorKind.STORAGE_WRITE, "Cache database is not available")
        try:
            with self._write_lock, session_scope(self._session_factory) as db:
                db.merge(CacheEntry(key=key, value=value))
            return Ok(key)
        except SQLAlchemyError as e:
            return self._write_error(f"put on key {key}", e)

    def _write_error(self, what, exc) -> Err:
        kind = ErrorKind.QUOTA_EXCEEDED if is_quota_error(exc) else ErrorKind.STORAGE_WRITE
        logger.error(f"[Cache] Transaction error for {what} ({kind.value}): {exc}")
        return Err(kind, str(exc))

    # --- chapters ---

    def get_chapter(self, book_id, chapter, language) -> Optional[ChapterRecord]:
        key = chapter_key(book_id, chapter, language)
        value = self._get_value(key)
        if not isinstance(value, dict):
            return None
        try:
            return ChapterRecord(verses=value.get('data') or [], is_downloaded=bool(value.get('is_downloaded')))
        except ValidationError as e:
            logger.warning(f"[Cache] Ignoring unreadable chapter record {key}: {e}")
            return None

    def _chapter_rows(self, key, verses):
        if not verses or not isinstance(verses, list):
            logger.warning(f"[Cache] Not saving empty or invalid data for key {key}.")
            return None
        try:
            return _normalize_rows(verses)
        except ValidationError as e:
            logger.warning(f"[Cache] Not saving malformed verse rows for key {key}: {e}")
            return None

    def save_chapter(self, book_id, chapter, language, verses, is_downloaded=False) -> bool:
        key = chapter_key(book_id, chapter, language)
        rows = self._chapter_rows(key, verses)
        if rows is None:
            return False

        result = self._put_value(key, {'data': rows, 'is_downloaded': bool(is_downloaded)})
        return result.ok

    def save_temporary_chapter(self, book_id, chapter, language, verses) -> bool:
        """Store a read-through chapter unless a downloaded record already holds the key.

        The check and the write share one locked transaction, so a download
        that lands while the chapter was being fetched is never downgraded.
        Returns True only when the temporary record was written.
        """
        key = chapter_key(book_id, chapter, language)
        rows = self._chapter_rows(key, verses)
        if rows is None or not self.available:
            return False
        try:
            with self._write_lock, session_scope(self._session_factory) as db:
                existing = db.get(CacheEntry, key)
                if existing is not None and _is_downloaded(existing.value):
                    logger.info(f"[Cache] Keeping downloaded record for key {key}.")
                    return False
                db.merge(CacheEntry(key=key, value={'data': rows, 'is_downloaded': False}))
            return True
        except (SQLAlchemyError, ValueError) as e:
            self._write_error(f"temporary chapter {key}", e)
            return False

    def save_book_in_batch(self, book_id, language, verses=None, commentaries=None) -> Result:
        """Merge-save every chapter touched by verses or commentaries in one transaction.

        Returns Ok(chapters_written) or Err. Either every chapter of the book
        is written or none is.
        """
        if not verses and not commentaries:
            return Err(ErrorKind.VALIDATION, "No data provided to save.")
        try:
            verse_rows = _normalize_rows(verses or [])
            commentary_rows = _normalize_rows(commentaries or [])
        except (ValidationError, TypeError) as e:
            logger.warning(f"[Cache] Refusing malformed payload for book {book_id}: {e}")
            return Err(ErrorKind.VALIDATION, f"Malformed rows for book {book_id}")
        if not self.available:
            return Err(ErrorKind.STORAGE_WRITE, "Cache database is not available")

        chapter_nums = {row['chapter_num'] for row in verse_rows + commentary_rows}
        keys = {chapter_key(book_id, num, language): num for num in chapter_nums}

        try:
            with self._write_lock, session_scope(self._session_factory) as db:
                stored = db.execute(select(CacheEntry).where(CacheEntry.key.in_(list(keys)))).scalars()
                existing_by_chapter = {}
                for entry in stored:
                    if isinstance(entry.value, dict) and isinstance(entry.value.get('data'), list):
                        existing_by_chapter[keys[entry.key]] = entry.value['data']

                merged = merge_book_payload(existing_by_chapter, verse_rows, commentary_rows)
                for num, rows in merged.items():
                    db.merge(CacheEntry(
                        key=chapter_key(book_id, num, language),
                        value={'data': rows, 'is_downloaded': True},
                    ))
            return Ok(len(merged))
        except (SQLAlchemyError, ValueError) as e:
            return self._write_error(f"book {book_id} batch ({language})", e)

    # --- core datasets ---

    def write_core_dataset(self, tag, records) -> Result:
        """Replace a core dataset wholesale; Err carries the failure kind."""
        if not isinstance(records, list):
            logger.warning(f"[Cache] Not saving invalid core data for key {core_key(tag)}.")
            return Err(ErrorKind.VALIDATION, f"Core dataset {tag} must be a list")
        return self._put_value(core_key(tag), records)

    def save_core_dataset(self, tag, records) -> bool:
        return self.write_core_dataset(tag, records).ok

    def get_core_dataset(self, tag) -> Optional[list]:
        value = self._get_value(core_key(tag))
        return value if isinstance(value, list) else None

    # --- audio URLs ---

    def get_audio_url(self, book_id, chapter, language) -> Optional[str]:
        value = self._get_value(audio_key(book_id, chapter, language))
        return value if isinstance(value, str) and value.strip() else None

    def save_audio_url(self, book_id, chapter, language, audio_url) -> bool:
        key = audio_key(book_id, chapter, language)
        if not isinstance(audio_url, str) or not audio_url.strip():
            logger.warning(f"[Cache] Not saving empty or invalid audio URL for key {key}.")
            return False
        return self._put_value(key, audio_url).ok

    # --- sweeps ---

    def clear_downloaded_for_language(self, language) -> ClearResult:
        """Delete the language's cross-ref dataset and its downloaded chapters.

        Temporary (read-through) chapters and other languages are kept.
        """
        logger.info(f"[Cache] Clearing downloaded data for language: {language}")
        if not self.available:
            return ClearResult(success=False)
        cleared = 0
        try:
            with self._write_lock, session_scope(self._session_factory) as db:
                removed = db.execute(delete(CacheEntry).where(CacheEntry.key == core_key(f"crossrefs_{language}")))
                cleared += removed.rowcount or 0

                entries = db.execute(
                    select(CacheEntry).where(CacheEntry.key.endswith(f"-{language}", autoescape=True))
                ).scalars().all()
                for entry in entries:
                    if is_chapter_key(entry.key) and _is_downloaded(entry.value):
                        db.delete(entry)
                        cleared += 1
        except (SQLAlchemyError, ValueError) as e:
            logger.error(f"[Cache] Error during clear_downloaded_for_language for {language}: {e}")
            return ClearResult(success=False)

        logger.info(f"[Cache] Finished clearing downloaded data for {language}. Items deleted: {cleared}.")
        return ClearResult(success=True, cleared_count=cleared)

    def clear_temporary_cache(self) -> ClearResult:
        """Delete every chapter record that is not part of a download."""
        logger.info("[Cache] Clearing temporary chapter text cache...")
        if not self.available:
            return ClearResult(success=False)
        cleared = 0
        try:
            with self._write_lock, session_scope(self._session_factory) as db:
                entries = db.execute(
                    select(CacheEntry).where(
                        not_(CacheEntry.key.startswith(CORE_PREFIX, autoescape=True)),
                        not_(CacheEntry.key.startswith(AUDIO_PREFIX, autoescape=True)),
                    )
                ).scalars().all()
                for entry in entries:
                    if isinstance(entry.value, dict) and not entry.value.get('is_downloaded'):
                        db.delete(entry)
                        cleared += 1
        except (SQLAlchemyError, ValueError) as e:
            logger.error(f"[Cache] Error during clear_temporary_cache: {e}")
            return ClearResult(success=False)

        logger.info(f"[Cache] Finished clearing temporary cache. Items deleted: {cleared}.")
        return ClearResult(success=True, cleared_count=cleared)

    def count_downloaded(self, language) -> int:
        if not self.available:
            return 0
        try:
            with session_scope(self._session_factory) as db:
                entries = db.execute(
                    select(CacheEntry).where(CacheEntry.key.endswith(f"-{language}", autoescape=True))
                ).scalars().all()
                return sum(1 for entry in entries if is_chapter_key(entry.key) and _is_downloaded(entry.value))
        except (SQLAlchemyError, ValueError) as e:
            logger.error(f"[Cache] Error recounting downloaded chapters for {language}: {e}")
            return 0
