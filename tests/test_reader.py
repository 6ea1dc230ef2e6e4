from schemas.results import Err, ErrorKind, Ok
from utils.reader import ContentReader
from conftest import verse_rows


class CannedTransport:
    def __init__(self, **answers):
        self.answers = answers
        self.on_call = None
        self.calls = []

    def call(self, action, params=None):
        self.calls.append((action, dict(params or {})))
        if self.on_call:
            self.on_call(action)
        return self.answers.get(action, Ok(None))


async def test_chapter_read_through_is_cached_as_temporary(make_context):
    rows = verse_rows('ruth', 1, per_chapter=3)
    transport = CannedTransport(fetch_chapter_content=Ok(rows))
    context = make_context(transport)
    reader = ContentReader(context)

    first = await reader.load_chapter('ruth', 1, 'en')
    second = await reader.load_chapter('ruth', 1, 'en')

    assert first == Ok(rows)
    assert second == Ok(rows)
    assert len(transport.calls) == 1
    assert context.cache.get_chapter('ruth', 1, 'en').is_downloaded is False


async def test_downloaded_chapter_needs_no_network(make_context):
    transport = CannedTransport()
    context = make_context(transport)
    context.cache.save_book_in_batch('ruth', 'am', verses=verse_rows('ruth', 1))

    result = await ContentReader(context).load_chapter('ruth', 1, 'am')

    assert [row['verse_num'] for row in result.value] == [1, 2]
    assert transport.calls == []


async def test_missing_chapter_is_not_cached(make_context):
    context = make_context(CannedTransport(fetch_chapter_content=Ok([])))

    result = await ContentReader(context).load_chapter('ruth', 9, 'en')

    assert result == Ok(None)
    assert context.cache.get_chapter('ruth', 9, 'en') is None


async def test_chapter_fetch_error_is_returned(make_context):
    failure = Err(ErrorKind.TRANSPORT, "offline")
    context = make_context(CannedTransport(fetch_chapter_content=failure))

    assert await ContentReader(context).load_chapter('ruth', 1, 'en') is failure


async def test_audio_url_read_through(make_context):
    url = 'https://cdn.example.org/ruth-1.mp3'
    transport = CannedTransport(get_audio_url=Ok({'audio_url': url}))
    reader = ContentReader(make_context(transport))

    assert await reader.get_audio_url('ruth', 1, 'am') == Ok(url)
    assert await reader.get_audio_url('ruth', 1, 'am') == Ok(url)
    assert len(transport.calls) == 1


async def test_missing_audio_is_not_cached(make_context):
    transport = CannedTransport()
    context = make_context(transport)

    assert await ContentReader(context).get_audio_url('ruth', 2, 'am') == Ok(None)
    assert context.cache.get_audio_url('ruth', 2, 'am') is None


async def test_cross_ref_ids_prefer_downloaded_index(make_context):
    transport = CannedTransport(fetch_chapter_refs=Ok([{'doc_id': 'ruth-1-4'}]))
    context = make_context(transport)
    reader = ContentReader(context)

    assert await reader.chapter_cross_ref_ids('ruth', 1, 'am') == frozenset({'ruth-1-4'})
    assert len(transport.calls) == 1

    context.cache.save_core_dataset('crossrefs_am', [{'doc_id': 'ruth-1-1'}])
    context.crossrefs.invalidate('am')

    assert await reader.chapter_cross_ref_ids('ruth', 1, 'am') == frozenset({'ruth-1-1'})
    assert len(transport.calls) == 1


async def test_cross_ref_details_offline_first(make_context):
    transport = CannedTransport(fetch_ref_details=Ok({'related_refs': ['matthew-1-5']}))
    context = make_context(transport)
    context.cache.save_core_dataset('crossrefs_en', [{'doc_id': 'ruth-4-13', 'related_refs': ['john-1-1']}])
    reader = ContentReader(context)

    assert await reader.cross_ref_details('ruth-4-13', 'en') == Ok(['john-1-1'])
    assert transport.calls == []

    assert await reader.cross_ref_details('ruth-4-21', 'en') == Ok(['matthew-1-5'])
    assert transport.calls == [('fetch_ref_details', {'docId': 'ruth-4-21'})]


async def test_download_landing_during_read_through_is_kept(make_context):
    transport = CannedTransport(fetch_chapter_content=Ok([{'chapter_num': 1, 'verse_num': 1, 'verse_text': 'net'}]))
    context = make_context(transport)

    def download_lands(action):
        context.cache.save_book_in_batch(
            'ruth', 'am',
            verses=[{'chapter_num': 1, 'verse_num': 1, 'verse_text': 'stored'}],
            commentaries=[{'chapter_num': 1, 'verse_num': 1, 'commentary_text': 'note'}],
        )

    transport.on_call = download_lands

    result = await ContentReader(context).load_chapter('ruth', 1, 'am')

    assert result.value[0]['commentary_text'] == 'note'
    record = context.cache.get_chapter('ruth', 1, 'am')
    assert record.is_downloaded is True
    assert context.cache.clear_temporary_cache().cleared_count == 0
    assert context.cache.get_chapter('ruth', 1, 'am') is not None
