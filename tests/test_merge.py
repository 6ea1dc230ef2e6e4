from utils.merge import group_by_chapter, merge_book_payload, merge_chapter_verses


def test_commentary_overlay_keeps_verse_text():
    existing = [{'chapter_num': 1, 'verse_num': 1, 'verse_text': 'A'}]
    merged = merge_chapter_verses(existing, commentaries=[{'chapter_num': 1, 'verse_num': 1, 'commentary_text': 'C'}])

    assert merged == [{'chapter_num': 1, 'verse_num': 1, 'verse_text': 'A', 'commentary_text': 'C'}]


def test_verse_overlay_keeps_commentary():
    existing = [{'chapter_num': 2, 'verse_num': 4, 'commentary_text': 'C'}]
    merged = merge_chapter_verses(existing, verses=[{'chapter_num': 2, 'verse_num': 4, 'verse_text': 'new'}])

    assert merged[0]['verse_text'] == 'new'
    assert merged[0]['commentary_text'] == 'C'


def test_incoming_fields_win():
    existing = [{'chapter_num': 1, 'verse_num': 1, 'verse_text': 'old'}]
    merged = merge_chapter_verses(existing, verses=[{'chapter_num': 1, 'verse_num': 1, 'verse_text': 'fresh'}])

    assert merged[0]['verse_text'] == 'fresh'


def test_merge_is_idempotent():
    verses = [{'chapter_num': 1, 'verse_num': n, 'verse_text': f'v{n}'} for n in (1, 2)]
    commentaries = [{'chapter_num': 1, 'verse_num': 2, 'commentary_text': 'c2'}]

    once = merge_chapter_verses([], verses, commentaries)
    twice = merge_chapter_verses(once, verses, commentaries)

    assert twice == once


def test_rows_come_back_sorted_by_verse_number():
    existing = [{'chapter_num': 1, 'verse_num': 3, 'verse_text': 'c'}]
    verses = [
        {'chapter_num': 1, 'verse_num': 10, 'verse_text': 'j'},
        {'chapter_num': 1, 'verse_num': 1, 'verse_text': 'a'},
    ]

    merged = merge_chapter_verses(existing, verses)

    assert [row['verse_num'] for row in merged] == [1, 3, 10]


def test_group_by_chapter_keeps_first_seen_order():
    rows = [
        {'chapter_num': 2, 'verse_num': 1},
        {'chapter_num': 1, 'verse_num': 1},
        {'chapter_num': 2, 'verse_num': 2},
    ]

    grouped = group_by_chapter(rows)

    assert list(grouped) == [2, 1]
    assert len(grouped[2]) == 2


def test_book_payload_only_returns_touched_chapters():
    existing = {
        1: [{'chapter_num': 1, 'verse_num': 1, 'verse_text': 'keep'}],
        5: [{'chapter_num': 5, 'verse_num': 1, 'verse_text': 'untouched'}],
    }
    verses = [{'chapter_num': 1, 'verse_num': 2, 'verse_text': 'second'}]
    commentaries = [{'chapter_num': 3, 'verse_num': 1, 'commentary_text': 'only commentary'}]

    merged = merge_book_payload(existing, verses, commentaries)

    assert list(merged) == [1, 3]
    assert [row['verse_num'] for row in merged[1]] == [1, 2]
    assert merged[1][0]['verse_text'] == 'keep'
    assert merged[3] == [{'chapter_num': 3, 'verse_num': 1, 'commentary_text': 'only commentary'}]
