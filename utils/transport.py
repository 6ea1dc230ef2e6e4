# utils/transport.py
"""Ways of reaching the remote content tables.

Both transports speak the same action vocabulary as the `orchestrator`
edge function: a call is an action name plus a parameter bag, and the
answer is Ok(data) or Err. ``OrchestratorTransport`` posts the request to
the edge function; ``DirectTransport`` runs the equivalent PostgREST
queries itself (and is what the orchestrator service uses server-side).
"""
import logging
import re

from postgrest.exceptions import APIError

from schemas.results import Err, ErrorKind, Ok

logger = logging.getLogger(__name__)

PAGE_SIZE = 1000
NOT_FOUND_CODE = 'PGRST116'

_LANGUAGE_RE = re.compile(r'^[a-z]{2,3}$')


def _error_message(error):
    if isinstance(error, dict):
        return error.get('message') or str(error)
    return str(error)


def _language(value):
    # The language code becomes part of a table name (verses_am, commentary_en)
    if not isinstance(value, str) or not _LANGUAGE_RE.match(value):
        raise ValueError(f"Unsupported language code: {value!r}")
    return value


def _first(response):
    return response.data[0] if response.data else None


class ContentTransport:
    """Executes one named remote action and returns Ok(data) or Err."""

    def call(self, action, params=None):
        raise NotImplementedError


class OrchestratorTransport(ContentTransport):
    def __init__(self, client, function_name='orchestrator'):
        self._client = client
        self._function_name = function_name

    def call(self, action, params=None):
        body = {'action': action, **(params or {})}
        try:
            payload = self._client.functions.invoke(
                self._function_name,
                invoke_options={'body': body, 'responseType': 'json'},
            )
        except Exception as e:
            logger.error(f"[API] Orchestrator Error ({action}): {e}")
            return Err(ErrorKind.TRANSPORT, str(e))

        if not isinstance(payload, dict):
            logger.error(f"[API] Unexpected orchestrator response for {action}: {type(payload).__name__}")
            return Err(ErrorKind.TRANSPORT, f"Unexpected orchestrator response for {action}")
        if payload.get('error'):
            return Err(ErrorKind.TRANSPORT, _error_message(payload['error']))
        return Ok(payload.get('data'))


class DirectTransport(ContentTransport):
    def __init__(self, client, page_size=PAGE_SIZE):
        self._client = client
        self._page_size = page_size
        self._handlers = {
            'fetch_core_data': self._fetch_core_data,
            'fetch_votd': self._fetch_votd,
            'fetch_chapter_content': self._fetch_chapter_content,
            'fetch_book_full': self._fetch_book_full,
            'fetch_cross_refs': self._fetch_cross_refs,
            'search': self._search,
            'get_audio_url': self._get_audio_url,
            'fetch_verse_text': self._fetch_verse_text,
            'fetch_chapter_refs': self._fetch_chapter_refs,
            'fetch_ref_details': self._fetch_ref_details,
            'fetch_setting': self._fetch_setting,
            'fetch_book_details': self._fetch_book_details,
        }

    @property
    def actions(self):
        return tuple(self._handlers)

    def supports(self, action):
        return action in self._handlers

    def call(self, action, params=None):
        handler = self._handlers.get(action)
        if handler is None:
            return Err(ErrorKind.VALIDATION, f"Invalid Action: {action}")

        try:
            return Ok(handler(params or {}))
        except APIError as e:
            if e.code == NOT_FOUND_CODE:
                return Ok(None)
            logger.error(f"[API] Query error ({action}): {e.message}")
            return Err(ErrorKind.TRANSPORT, e.message or str(e))
        except (KeyError, ValueError) as e:
            logger.warning(f"[API] Bad parameters for {action}: {e}")
            return Err(ErrorKind.VALIDATION, f"Bad parameters for {action}: {e}")
        except Exception as e:
            logger.error(f"[API] Request failed ({action}): {e}")
            return Err(ErrorKind.TRANSPORT, str(e))

    def _range(self, page):
        offset = int(page or 0) * self._page_size
        return offset, offset + self._page_size - 1

    # --- actions ---

    def _fetch_core_data(self, params):
        books = self._client.table('books') \
            .select('id, name, chapters, amharicName, testament, order, name_en') \
            .order('order') \
            .execute()
        themes = self._client.table('themes').select('name, bookIds').execute()
        aliases = self._client.table('book_aliases').select('alias, book_id').execute()
        return {'books': books.data, 'themes': themes.data, 'aliases': aliases.data}

    def _fetch_votd(self, params):
        language = _language(params.get('language') or 'am')
        votd = _first(self._client.table('daily_verses')
                      .select('*')
                      .order('verse_date', desc=True)
                      .limit(1)
                      .execute())
        if votd is None:
            return None

        text_row = _first(self._client.table(f'verses_{language}')
                          .select('verse_text')
                          .match({
                              'book_id': votd['book_id'],
                              'chapter_num': votd['chapter_num'],
                              'verse_num': votd['verse_num'],
                          })
                          .limit(1)
                          .execute())
        return {**votd, 'verse_text': text_row['verse_text'] if text_row else None}

    def _fetch_chapter_content(self, params):
        language = _language(params['language'])
        book_id, chapter = params['bookId'], params['chapter']

        verses = self._client.table(f'verses_{language}') \
            .select(f'book_id, chapter_num, verse_num, verse_display_num, verse_text, chapters_{language}(header_text)') \
            .eq('book_id', book_id) \
            .eq('chapter_num', chapter) \
            .order('verse_num') \
            .execute()
        commentary = self._client.table(f'commentary_{language}') \
            .select('verse_num, commentary_text') \
            .eq('book_id', book_id) \
            .eq('chapter_num', chapter) \
            .execute()

        commentary_by_verse = {row['verse_num']: row.get('commentary_text') for row in commentary.data or []}
        return [
            {**verse, 'commentary_text': commentary_by_verse.get(verse['verse_num'])}
            for verse in verses.data or []
        ]

    def _fetch_book_full(self, params):
        language = _language(params['language'])
        book_id = params['bookId']
        start, end = self._range(params.get('page'))

        verses, commentaries = [], []
        if params.get('includeVerses'):
            verses = self._client.table(f'verses_{language}') \
                .select('book_id, chapter_num, verse_num, verse_display_num, verse_text') \
                .eq('book_id', book_id) \
                .order('chapter_num') \
                .order('verse_num') \
                .range(start, end) \
                .execute().data or []
        if params.get('includeCommentary'):
            commentaries = self._client.table(f'commentary_{language}') \
                .select('chapter_num, verse_num, commentary_text') \
                .eq('book_id', book_id) \
                .order('chapter_num') \
                .order('verse_num') \
                .range(start, end) \
                .execute().data or []

        has_more = len(verses) == self._page_size or len(commentaries) == self._page_size
        return {'verses': verses, 'commentaries': commentaries, 'hasMore': has_more}

    def _fetch_cross_refs(self, params):
        start, end = self._range(params.get('page'))
        rows = self._client.table('cross_references') \
            .select('doc_id, related_refs') \
            .order('doc_id') \
            .range(start, end) \
            .execute().data or []
        return {'crossrefs': rows, 'hasMore': len(rows) == self._page_size}

    def _search(self, params):
        response = self._client.rpc('search_verses', {
            'language_code': _language(params['language']),
            'keyword_term': params['keyword'],
            'limit_count': 50,
            'offset_count': 0,
        }).execute()
        return response.data

    def _get_audio_url(self, params):
        return _first(self._client.table('audio_tracks')
                      .select('audio_url')
                      .eq('book_id', params['bookId'])
                      .eq('chapter_num', params['chapter'])
                      .eq('language', _language(params['language']))
                      .limit(1)
                      .execute())

    def _fetch_verse_text(self, params):
        query = self._client.table(f"verses_{_language(params['language'])}") \
            .select('verse_num, verse_text') \
            .eq('book_id', params['bookId']) \
            .eq('chapter_num', params['chapter']) \
            .gte('verse_num', params['startVerse'])
        if params.get('endVerse'):
            query = query.lte('verse_num', params['endVerse'])
        return query.order('verse_num').execute().data

    def _fetch_chapter_refs(self, params):
        pattern = f"{params['bookId']}-{params['chapter']}-%"
        return self._client.table('cross_references').select('doc_id').like('doc_id', pattern).execute().data

    def _fetch_ref_details(self, params):
        return _first(self._client.table('cross_references')
                      .select('related_refs')
                      .eq('doc_id', params['docId'])
                      .limit(1)
                      .execute())

    def _fetch_setting(self, params):
        return _first(self._client.table('app_settings')
                      .select('name, value')
                      .eq('name', params['settingName'])
                      .limit(1)
                      .execute())

    def _fetch_book_details(self, params):
        return _first(self._client.table('books')
                      .select('id, chapters')
                      .eq('id', params['bookId'])
                      .limit(1)
                      .execute())
