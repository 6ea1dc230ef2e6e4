# utils/download.py
"""Bulk download of content for offline use.

A run takes resource ids such as ``['am-bible', 'am-commentary', 'en-ref']``
and, language by language, downloads the cross-reference table and then
every book in small concurrent batches, merge-saving each book into the
content cache. The ledger is only updated for a resource when the run was
not cancelled and nothing targeting that resource failed.
"""
import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List

from schemas.content_schemas import ClearResult, DownloadProgress
from schemas.results import Err, ErrorKind
from utils.cancellation import CancellationToken
from utils.crossrefs import crossrefs_tag
from utils.ledger import ResourceKind, parse_resource_id, resource_id

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 3


class BookOutcome(str, Enum):
    DOWNLOADED = "downloaded"
    PARTIAL = "partial"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"
    FETCH_ERROR = "fetch_error"
    SAVE_ERROR = "save_error"


class DownloadStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FINISHED_WITH_ISSUES = "finished_with_issues"
    ALREADY_DOWNLOADED = "already_downloaded"
    NOTHING_SELECTED = "nothing_selected"
    BUSY = "busy"
    FAILED = "failed"


@dataclass
class DownloadSummary:
    status: DownloadStatus
    message: str
    failed_resources: List[str] = field(default_factory=list)
    chapters_saved: int = 0
    book_outcomes: Dict[str, BookOutcome] = field(default_factory=dict)


class _RunTracker:
    """Failure bookkeeping for one run."""

    def __init__(self):
        self.failed = set()
        self.quota_exhausted = False
        self.chapters_saved = 0
        self.book_outcomes = {}

    def fail(self, *resources):
        self.failed.update(resources)

    def any_failed(self, resources):
        return any(resource in self.failed for resource in resources)


def plan_tasks(resource_ids, languages):
    """Turn resource ids into {language: {ResourceKind, ...}} in language order.

    Ids that do not parse, or name a language outside ``languages``, are ignored.
    """
    requested = {}
    for value in resource_ids or ():
        parsed = parse_resource_id(value)
        if parsed is None or parsed[0] not in languages:
            logger.warning(f"[Download] Ignoring unknown resource id: {value!r}")
            continue
        language, kind = parsed
        requested.setdefault(language, set()).add(kind)

    return OrderedDict((lang, requested[lang]) for lang in languages if lang in requested)


class DownloadManager:
    def __init__(self, context, concurrency=None, on_progress=None):
        self._context = context
        self.concurrency = concurrency or getattr(context.config, 'DOWNLOAD_CONCURRENCY', DEFAULT_CONCURRENCY)
        self._on_progress = on_progress
        self._token = None
        self.progress = DownloadProgress()

    @property
    def is_downloading(self):
        return self._token is not None

    @property
    def languages(self):
        return tuple(getattr(self._context.config, 'LANGUAGES', ('am', 'en')))

    # --- progress ---

    def _notify(self):
        if self._on_progress:
            self._on_progress(self.progress.model_copy())

    def _set_progress(self, **fields):
        for name, value in fields.items():
            setattr(self.progress, name, value)
        self._notify()

    # --- public interface ---

    async def start(self, resource_ids) -> DownloadSummary:
        if self.is_downloading:
            return DownloadSummary(DownloadStatus.BUSY, "Download already in progress.")

        tasks = plan_tasks(resource_ids, self.languages)
        if not tasks:
            return DownloadSummary(DownloadStatus.NOTHING_SELECTED, "No resources selected.")

        planned = [resource_id(lang, kind) for lang, kinds in tasks.items() for kind in sorted(kinds)]
        token = CancellationToken()
        self._token = token
        tracker = _RunTracker()
        attempted = False

        try:
            logger.info(f"[Download] Starting run for {', '.join(planned)}")
            for language, kinds in tasks.items():
                if token.cancelled:
                    break
                if ResourceKind.REF in kinds:
                    attempted = await self._run_cross_refs(language, token, tracker) or attempted
                if ResourceKind.BIBLE in kinds or ResourceKind.COMMENTARY in kinds:
                    attempted = await self._run_books(language, kinds, token, tracker) or attempted

            return await self._summarize(tasks, token, tracker, attempted)
        except Exception:
            logger.exception("A critical error occurred during the download process")
            return DownloadSummary(DownloadStatus.FAILED, "Download failed due to a critical error.",
                                   failed_resources=sorted(tracker.failed))
        finally:
            self._token = None

    def cancel(self):
        """Ask the running download to stop at its next suspension point."""
        if self._token is not None and not self._token.cancelled:
            logger.info("[Download] Cancelling...")
            self._token.cancel()

    async def clear(self, language) -> ClearResult:
        """Delete everything downloaded for a language and forget it in the ledger."""
        if self.is_downloading:
            logger.warning(f"[Download] Refusing to clear {language} while a download is running")
            return ClearResult(success=False)

        result = await asyncio.to_thread(self._context.cache.clear_downloaded_for_language, language)
        self._context.ledger.reset_language(language)
        self._context.crossrefs.invalidate(language)
        return result

    # --- cross references ---

    async def _run_cross_refs(self, language, token, tracker):
        ref_id = resource_id(language, ResourceKind.REF)
        if self._context.ledger.is_downloaded(ref_id):
            logger.info(f"[Download] Skipping cross-references for {language} (Already downloaded)")
            return False

        self.progress = DownloadProgress(language=language, current_book_name="Cross-References")
        self._notify()

        if await self._download_and_process_cross_refs(language, token, tracker):
            self._context.ledger.mark_downloaded(ref_id)
        self._context.crossrefs.invalidate(language)
        return True

    async def _download_and_process_cross_refs(self, language, token, tracker):
        ref_id = resource_id(language, ResourceKind.REF)
        if token.cancelled:
            return False

        def on_page(page_number, total_fetched):
            self._set_progress(current_book_name=f"Downloading Cross-Refs (Page {page_number})...")

        result = await self._context.gateway.fetch_all_cross_references(token=token, on_progress=on_page)
        if isinstance(result, Err):
            if result.kind != ErrorKind.CANCELLED:
                logger.error(f"Download Error: Failed to fetch cross-references. {result}")
                tracker.fail(ref_id)
            return False

        crossrefs = result.value or []
        if not crossrefs:
            logger.info("No cross-references found to download.")
            return True

        self._set_progress(current_book_name=f"Saving {len(crossrefs)} Cross-Refs...")
        saved = await asyncio.to_thread(self._context.cache.write_core_dataset, crossrefs_tag(language), crossrefs)
        if isinstance(saved, Err):
            logger.error(f"Download Error: Failed to save cross-references to cache. {saved}")
            self._record_save_failure(saved, token, tracker, ref_id)
            return False
        return True

    # --- books ---

    def _selectable_books(self):
        books = [book for book in self._context.books.values() if (book.chapters or 0) > 0]
        return sorted(books, key=lambda book: book.order or 0)

    async def _run_books(self, language, kinds, token, tracker):
        ledger = self._context.ledger
        bible_id = resource_id(language, ResourceKind.BIBLE)
        commentary_id = resource_id(language, ResourceKind.COMMENTARY)

        include_verses = ResourceKind.BIBLE in kinds and not ledger.is_downloaded(bible_id)
        include_commentary = ResourceKind.COMMENTARY in kinds and not ledger.is_downloaded(commentary_id)
        if ResourceKind.BIBLE in kinds and not include_verses:
            logger.info(f"[Download] Skipping Verses for {language} (Already downloaded)")
        if ResourceKind.COMMENTARY in kinds and not include_commentary:
            logger.info(f"[Download] Skipping Commentary for {language} (Already downloaded)")
        if not include_verses and not include_commentary:
            return False

        targeted = [rid for rid, wanted in ((bible_id, include_verses), (commentary_id, include_commentary)) if wanted]
        books = self._selectable_books()
        if not books:
            logger.error(f"Download Error: Book list not loaded, cannot download {', '.join(targeted)}.")
            tracker.fail(*targeted)
            return True

        self.progress = DownloadProgress(
            language=language,
            current_book_name="Preparing Books...",
            total_chapters_overall=sum(book.chapters for book in books),
        )
        self._notify()

        for start in range(0, len(books), self.concurrency):
            if token.cancelled:
                break
            batch = books[start:start + self.concurrency]
            await self._run_batch(batch, language, token, tracker, include_verses, include_commentary)

        if not token.cancelled and not tracker.any_failed(targeted):
            ledger.mark_downloaded(*targeted)
        return True

    async def _run_batch(self, batch, language, token, tracker, include_verses, include_commentary):
        """Run one batch of books to completion; the first unexpected error is re-raised afterwards."""
        results = await asyncio.gather(*(
            self._download_and_process_book(book, language, token, tracker, include_verses, include_commentary)
            for book in batch
        ), return_exceptions=True)

        errors = []
        for book, result in zip(batch, results):
            if isinstance(result, BaseException):
                logger.error(f"Download Error: Unexpected failure for book {book.id} ({language}): {result!r}")
                errors.append(result)
        if errors:
            raise errors[0]

    async def _download_and_process_book(self, book, language, token, tracker,
                                         include_verses=True, include_commentary=True):
        outcome = await self._process_book(book, language, token, tracker, include_verses, include_commentary)
        tracker.book_outcomes[f"{language}:{book.id}"] = outcome
        return outcome

    async def _process_book(self, book, language, token, tracker, include_verses, include_commentary):
        targeted = []
        if include_verses:
            targeted.append(resource_id(language, ResourceKind.BIBLE))
        if include_commentary:
            targeted.append(resource_id(language, ResourceKind.COMMENTARY))
        chapters_in_book = book.chapters or 0

        self._set_progress(
            current_book_id=book.id,
            current_book_name=book.display_name(language),
            total_chapters_in_book=chapters_in_book,
            current_chapter=0,
        )
        if token.cancelled:
            return BookOutcome.CANCELLED

        # 1. Fetch only the payload kinds still missing for this language
        fetched = await self._context.gateway.fetch_all_verses_for_book(
            book.id,
            language,
            token=token,
            include_verses=include_verses,
            include_commentary=include_commentary,
        )
        if isinstance(fetched, Err):
            if fetched.kind == ErrorKind.CANCELLED:
                return BookOutcome.CANCELLED
            logger.error(f"Download Error: Failed to fetch data for book {book.id}. {fetched}")
            tracker.fail(*targeted)
            return BookOutcome.FETCH_ERROR

        content = fetched.value
        bible_id = resource_id(language, ResourceKind.BIBLE)
        verse_chapters = len({row.get('chapter_num') for row in content.verses if isinstance(row, dict)})
        if content.is_empty():
            logger.warning(f"Download Warning: No data returned for book {book.id} ({language}).")
            if include_verses and chapters_in_book > 0:
                tracker.fail(bible_id)
                return BookOutcome.PARTIAL
            return BookOutcome.SKIPPED

        # 2. Merge-save; a started write always runs to completion
        saved = await asyncio.to_thread(
            self._context.cache.save_book_in_batch, book.id, language, content.verses, content.commentaries
        )
        if isinstance(saved, Err):
            logger.error(f"Download Error: Failed to save book {book.id} to cache. {saved}")
            self._record_save_failure(saved, token, tracker, *targeted)
            return BookOutcome.SAVE_ERROR

        # 3. Progress
        written = saved.value
        tracker.chapters_saved += written
        self._set_progress(
            chapters_completed_overall=self.progress.chapters_completed_overall + written,
            current_chapter=chapters_in_book,
        )

        # Only chapters that arrived with verse rows count towards the bible resource
        if include_verses and verse_chapters < chapters_in_book:
            logger.warning(f"Book {book.id} saved with verse text for {verse_chapters}/{chapters_in_book} chapters.")
            tracker.fail(bible_id)
            return BookOutcome.PARTIAL
        return BookOutcome.DOWNLOADED

    def _record_save_failure(self, error, token, tracker, *resources):
        tracker.fail(*resources)
        if error.kind == ErrorKind.QUOTA_EXCEEDED:
            # Every further write would fail too; stop fetching
            logger.error("Download failed: Device storage is full.")
            tracker.quota_exhausted = True
            token.cancel()

    # --- finalizing ---

    async def _summarize(self, tasks, token, tracker, attempted):
        failed = sorted(tracker.failed)
        summary = dict(failed_resources=failed, chapters_saved=tracker.chapters_saved,
                       book_outcomes=dict(tracker.book_outcomes))

        if tracker.quota_exhausted:
            message = "Download stopped: device storage is full."
            logger.warning(message)
            return DownloadSummary(DownloadStatus.FINISHED_WITH_ISSUES, message, **summary)

        if token.cancelled:
            counts = await asyncio.gather(*(
                asyncio.to_thread(self._context.cache.count_downloaded, language) for language in tasks
            ))
            message = f"Download cancelled. {sum(counts)} chapters saved."
            logger.info(message)
            return DownloadSummary(DownloadStatus.CANCELLED, message, **summary)

        if failed:
            message = "Download finished with some issues. Check the log for details."
            logger.warning(f"{message} Failed resources: {', '.join(failed)}")
            return DownloadSummary(DownloadStatus.FINISHED_WITH_ISSUES, message, **summary)

        if not attempted:
            message = "Selected resources are already downloaded."
            logger.info(message)
            return DownloadSummary(DownloadStatus.ALREADY_DOWNLOADED, message, **summary)

        message = "Download complete."
        logger.info(f"{message} {tracker.chapters_saved} chapters saved.")
        return DownloadSummary(DownloadStatus.COMPLETED, message, **summary)
