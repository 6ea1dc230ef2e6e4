# utils/gateway.py
"""Async access to remote content.

Every request runs the (blocking) transport call in a worker thread and is
bounded by a timeout; a timeout is reported like any other transport
failure. Paginated fetches poll a CancellationToken before each page.
"""
import asyncio
import logging
from typing import Callable, Optional

from schemas.content_schemas import BookContent
from schemas.results import CANCELLED, Err, ErrorKind, Ok, Result
from utils.cancellation import CancellationToken
from utils.transport import PAGE_SIZE

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 7


def _cancelled(token):
    return token is not None and token.cancelled


class ContentGateway:
    def __init__(self, transport, page_size=PAGE_SIZE, timeout=DEFAULT_TIMEOUT_SECONDS):
        self._transport = transport
        self.page_size = page_size
        self.timeout = timeout

    async def _request(self, action, **params) -> Result:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._transport.call, action, params),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"[API] Request aborted ({action}): no answer within {self.timeout}s")
            return Err(ErrorKind.TRANSPORT, f"Request timed out after {self.timeout}s")

    def _has_more(self, page_data, *row_lists):
        if 'hasMore' in page_data:
            return bool(page_data['hasMore'])
        return any(len(rows) == self.page_size for rows in row_lists)

    # --- paginated downloads ---

    async def fetch_all_verses_for_book(self, book_id, language, token: Optional[CancellationToken] = None,
                                        include_verses=True, include_commentary=True) -> Result:
        """Fetch every verse and/or commentary row of a book, page by page.

        Returns Ok(BookContent) or Err. A cancelled fetch returns the CANCELLED
        error and drops whatever pages were already fetched.
        """
        verses, commentaries = [], []
        page = 0
        while True:
            if _cancelled(token):
                return CANCELLED

            result = await self._request(
                'fetch_book_full',
                bookId=book_id,
                language=language,
                page=page,
                includeVerses=include_verses,
                includeCommentary=include_commentary,
            )
            if isinstance(result, Err):
                return result

            page_data = result.value or {}
            page_verses = page_data.get('verses') or []
            page_commentaries = page_data.get('commentaries') or []
            verses.extend(page_verses)
            commentaries.extend(page_commentaries)

            if not self._has_more(page_data, page_verses, page_commentaries):
                break
            page += 1

        return Ok(BookContent(verses=verses, commentaries=commentaries))

    async def fetch_all_cross_references(self, token: Optional[CancellationToken] = None,
                                         on_progress: Optional[Callable] = None) -> Result:
        crossrefs = []
        page = 0
        while True:
            if _cancelled(token):
                return CANCELLED
            if on_progress:
                on_progress(page_number=page + 1, total_fetched=len(crossrefs))

            result = await self._request('fetch_cross_refs', page=page)
            if isinstance(result, Err):
                return result

            page_data = result.value or {}
            page_rows = page_data.get('crossrefs') or []
            crossrefs.extend(page_rows)

            if not self._has_more(page_data, page_rows):
                break
            page += 1

        return Ok(crossrefs)

    # --- single-shot lookups ---

    async def fetch_core_data(self) -> Result:
        return await self._request('fetch_core_data')

    async def fetch_verse_of_the_day(self, language='am') -> Result:
        return await self._request('fetch_votd', language=language)

    async def fetch_chapter_content(self, book_id, chapter, language) -> Result:
        return await self._request('fetch_chapter_content', bookId=book_id, chapter=chapter, language=language)

    async def fetch_verse_text(self, book_id, chapter, start_verse, end_verse=None, language='am') -> Result:
        return await self._request(
            'fetch_verse_text',
            bookId=book_id,
            chapter=chapter,
            startVerse=start_verse,
            endVerse=end_verse or start_verse,
            language=language,
        )

    async def fetch_audio_url(self, book_id, chapter, language) -> Result:
        """Ok(url) when a track exists, Ok(None) when it does not."""
        result = await self._request('get_audio_url', bookId=book_id, chapter=chapter, language=language)
        if isinstance(result, Err):
            return result
        url = (result.value or {}).get('audio_url')
        return Ok(url if isinstance(url, str) and url.strip() else None)

    async def fetch_chapter_cross_ref_ids(self, book_id, chapter) -> Result:
        return await self._request('fetch_chapter_refs', bookId=book_id, chapter=chapter)

    async def fetch_cross_ref_details(self, doc_id) -> Result:
        return await self._request('fetch_ref_details', docId=doc_id)

    async def search_verses(self, language, keyword) -> Result:
        return await self._request('search', language=language, keyword=keyword)

    async def fetch_book_details(self, book_id) -> Result:
        return await self._request('fetch_book_details', bookId=book_id)

    async def fetch_app_setting(self, setting_name) -> Result:
        return await self._request('fetch_setting', settingName=setting_name)
