import time

from schemas.results import Err, ErrorKind, Ok
from utils.cancellation import CancellationToken
from utils.gateway import ContentGateway
from conftest import FakeContentServer, verse_rows


class ScriptedTransport:
    """Returns the queued results in order and records every call."""

    def __init__(self, *results, on_call=None):
        self.results = list(results)
        self.on_call = on_call
        self.calls = []

    def call(self, action, params=None):
        self.calls.append((action, dict(params or {})))
        if self.on_call:
            self.on_call(len(self.calls))
        return self.results.pop(0)


async def test_book_fetch_reads_every_full_page_plus_one():
    rows = verse_rows('genesis', 7, per_chapter=1)
    server = FakeContentServer(verses={('genesis', 'am'): rows}, page_size=3)
    gateway = ContentGateway(server, page_size=3)

    result = await gateway.fetch_all_verses_for_book('genesis', 'am', include_commentary=False)

    assert isinstance(result, Ok)
    assert result.value.verses == rows
    assert [params['page'] for params in server.calls_for('fetch_book_full')] == [0, 1, 2]


async def test_has_more_falls_back_to_page_length():
    page = [{'chapter_num': 1, 'verse_num': n} for n in (1, 2)]
    transport = ScriptedTransport(Ok({'verses': page}), Ok({'verses': page[:1]}))
    gateway = ContentGateway(transport, page_size=2)

    result = await gateway.fetch_all_verses_for_book('ruth', 'en')

    assert len(result.value.verses) == 3
    assert len(transport.calls) == 2


async def test_cancel_between_pages_discards_partial_data():
    token = CancellationToken()
    page = [{'chapter_num': 1, 'verse_num': 1}]

    def cancel_after_second(call_count):
        if call_count == 2:
            token.cancel()

    transport = ScriptedTransport(*(Ok({'verses': page, 'hasMore': True}) for _ in range(5)),
                                  on_call=cancel_after_second)
    gateway = ContentGateway(transport, page_size=1)

    result = await gateway.fetch_all_verses_for_book('genesis', 'am', token=token)

    assert result == Err(ErrorKind.CANCELLED, "Cancelled")
    assert len(transport.calls) == 2


async def test_already_cancelled_token_makes_no_request():
    token = CancellationToken()
    token.cancel()
    transport = ScriptedTransport()

    result = await ContentGateway(transport).fetch_all_verses_for_book('genesis', 'am', token=token)

    assert result.kind == ErrorKind.CANCELLED
    assert transport.calls == []


async def test_page_error_aborts_fetch():
    page = [{'chapter_num': 1, 'verse_num': 1}]
    failure = Err(ErrorKind.TRANSPORT, "connection reset")
    transport = ScriptedTransport(Ok({'verses': page, 'hasMore': True}), failure)

    result = await ContentGateway(transport, page_size=1).fetch_all_verses_for_book('genesis', 'am')

    assert result is failure
    assert len(transport.calls) == 2


async def test_empty_answer_is_an_empty_book():
    transport = ScriptedTransport(Ok(None))

    result = await ContentGateway(transport).fetch_all_verses_for_book('genesis', 'am')

    assert isinstance(result, Ok)
    assert result.value.is_empty()


async def test_slow_transport_times_out():
    class SlowTransport:
        def call(self, action, params=None):
            time.sleep(0.5)
            return Ok({})

    gateway = ContentGateway(SlowTransport(), timeout=0.05)

    result = await gateway.fetch_core_data()

    assert result.kind == ErrorKind.TRANSPORT
    assert "timed out" in result.message


async def test_cross_reference_pages_report_progress():
    crossrefs = [{'doc_id': f'genesis-1-{n}', 'related_refs': []} for n in range(1, 6)]
    server = FakeContentServer(crossrefs=crossrefs, page_size=3)
    pages = []

    result = await ContentGateway(server, page_size=3).fetch_all_cross_references(
        on_progress=lambda page_number, total_fetched: pages.append((page_number, total_fetched)),
    )

    assert result.value == crossrefs
    assert pages == [(1, 0), (2, 3)]


async def test_audio_url_lookup():
    transport = ScriptedTransport(Ok({'audio_url': 'https://cdn.example.org/a.mp3'}), Ok({'audio_url': ' '}), Ok(None))
    gateway = ContentGateway(transport)

    assert await gateway.fetch_audio_url('genesis', 1, 'am') == Ok('https://cdn.example.org/a.mp3')
    assert await gateway.fetch_audio_url('genesis', 2, 'am') == Ok(None)
    assert await gateway.fetch_audio_url('genesis', 3, 'am') == Ok(None)
    assert transport.calls[0] == ('get_audio_url', {'bookId': 'genesis', 'chapter': 1, 'language': 'am'})


async def test_verse_text_range_defaults_to_single_verse():
    transport = ScriptedTransport(Ok([]))

    await ContentGateway(transport).fetch_verse_text('john', 3, 16, language='en')

    action, params = transport.calls[0]
    assert action == 'fetch_verse_text'
    assert params['startVerse'] == params['endVerse'] == 16
