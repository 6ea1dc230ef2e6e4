import pytest

from schemas.content_schemas import BookInfo
from schemas.results import Err, ErrorKind, Ok
from utils.cache import ContentCache
from utils.context import AppContext
from utils.crossrefs import CrossRefIndex
from utils.gateway import ContentGateway
from utils.ledger import DownloadLedger
from utils.settings import SettingsStore


class StubConfig:
    LANGUAGES = ('am', 'en')
    DOWNLOAD_CONCURRENCY = 3
    PAGE_SIZE = 1000
    FETCH_TIMEOUT_SECONDS = 7


def verse_rows(book_id, chapters, per_chapter=2):
    return [
        {
            'book_id': book_id,
            'chapter_num': chapter,
            'verse_num': verse,
            'verse_display_num': str(verse),
            'verse_text': f"{book_id} {chapter}:{verse}",
        }
        for chapter in range(1, chapters + 1)
        for verse in range(1, per_chapter + 1)
    ]


def commentary_rows(chapters, per_chapter=2):
    return [
        {'chapter_num': chapter, 'verse_num': verse, 'commentary_text': f"note {chapter}:{verse}"}
        for chapter in range(1, chapters + 1)
        for verse in range(1, per_chapter + 1)
    ]


def book(book_id, chapters, order):
    return BookInfo(id=book_id, chapters=chapters, order=order, name_en=book_id.title(), amharicName=f"am-{book_id}")


class FakeContentServer:
    """In-memory stand-in for the remote content tables, speaking the transport contract."""

    def __init__(self, verses=None, commentaries=None, crossrefs=None, page_size=1000):
        self.verses = verses or {}
        self.commentaries = commentaries or {}
        self.crossrefs = crossrefs or []
        self.page_size = page_size
        self.failing_books = set()
        self.fail_crossrefs = False
        self.on_call = None
        self.calls = []

    def call(self, action, params=None):
        params = dict(params or {})
        self.calls.append((action, params))
        if self.on_call:
            self.on_call(action, params)

        if action == 'fetch_book_full':
            if params['bookId'] in self.failing_books:
                return Err(ErrorKind.TRANSPORT, f"boom fetching {params['bookId']}")
            key = (params['bookId'], params['language'])
            start = params['page'] * self.page_size
            end = start + self.page_size
            verses = self.verses.get(key, [])[start:end] if params['includeVerses'] else []
            commentaries = self.commentaries.get(key, [])[start:end] if params['includeCommentary'] else []
            has_more = len(verses) == self.page_size or len(commentaries) == self.page_size
            return Ok({'verses': verses, 'commentaries': commentaries, 'hasMore': has_more})

        if action == 'fetch_cross_refs':
            if self.fail_crossrefs:
                return Err(ErrorKind.TRANSPORT, "cross refs unavailable")
            start = params['page'] * self.page_size
            rows = self.crossrefs[start:start + self.page_size]
            return Ok({'crossrefs': rows, 'hasMore': len(rows) == self.page_size})

        return Ok(None)

    def calls_for(self, action):
        return [params for name, params in self.calls if name == action]

    def fetched_books(self):
        return [params['bookId'] for params in self.calls_for('fetch_book_full')]


@pytest.fixture
def cache(tmp_path):
    return ContentCache.open(tmp_path / 'cache.db')


@pytest.fixture
def settings(tmp_path):
    return SettingsStore(tmp_path / 'settings.json')


@pytest.fixture
def make_context(tmp_path):
    def _make(transport, books=(), cache=None, page_size=1000, timeout=7):
        cache = cache or ContentCache.open(tmp_path / 'cache.db')
        settings = SettingsStore(tmp_path / 'settings.json')
        context = AppContext(
            config=StubConfig,
            cache=cache,
            gateway=ContentGateway(transport, page_size=page_size, timeout=timeout),
            settings=settings,
            ledger=DownloadLedger(settings),
            crossrefs=CrossRefIndex(cache),
        )
        context.books = {b.id: b for b in books}
        return context
    return _make
