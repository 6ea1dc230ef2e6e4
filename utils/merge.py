# utils/merge.py
"""Verse-number keyed merging of cached chapter rows.

A chapter is stored as a list of verse rows. Verse text and commentary
arrive in separate payloads, so a save overlays the new rows onto what is
already stored instead of replacing the list:

    existing  [{verse_num: 1, verse_text: "A"}]
    incoming  commentary [{verse_num: 1, commentary_text: "C"}]
    result    [{verse_num: 1, verse_text: "A", commentary_text: "C"}]

Fields a payload does not carry are left untouched; fields it does carry
win. Applying the same payload twice gives the same result as applying it
once.
"""
from collections import OrderedDict
from typing import Any, Dict, Iterable, List


def group_by_chapter(rows: Iterable[Dict[str, Any]]) -> "OrderedDict[int, List[Dict[str, Any]]]":
    """Group rows by chapter_num, keeping first-seen chapter order."""
    grouped = OrderedDict()
    for row in rows or ():
        grouped.setdefault(row['chapter_num'], []).append(row)
    return grouped


def _overlay(by_verse, rows, chapter_num):
    for row in rows:
        verse_num = row['verse_num']
        merged = dict(by_verse.get(verse_num, {}))
        merged.update(row)
        merged['chapter_num'] = chapter_num
        merged['verse_num'] = verse_num
        by_verse[verse_num] = merged


def merge_chapter_verses(existing, verses=(), commentaries=()) -> List[Dict[str, Any]]:
    """Merge verse rows and then commentary rows into the existing rows of one chapter.

    All rows must belong to the same chapter; the chapter number is taken from
    the incoming rows, falling back to the existing ones.
    """
    existing = existing or []
    verses = list(verses or ())
    commentaries = list(commentaries or ())

    sample = (verses or commentaries or existing or [{}])[0]
    chapter_num = sample.get('chapter_num')

    by_verse: Dict[int, Dict[str, Any]] = {}
    for row in existing:
        by_verse[row['verse_num']] = dict(row)

    _overlay(by_verse, verses, chapter_num)
    _overlay(by_verse, commentaries, chapter_num)

    return [by_verse[num] for num in sorted(by_verse)]


def merge_book_payload(existing_by_chapter, verses=(), commentaries=()):
    """Merge a whole book's payload.

    Returns {chapter_num: merged rows} for every chapter touched by either
    list. Chapters only present in existing_by_chapter are not returned.
    """
    verses_by_chapter = group_by_chapter(verses)
    commentaries_by_chapter = group_by_chapter(commentaries)

    touched = list(verses_by_chapter)
    touched += [num for num in commentaries_by_chapter if num not in verses_by_chapter]

    merged = OrderedDict()
    for chapter_num in touched:
        merged[chapter_num] = merge_chapter_verses(
            existing_by_chapter.get(chapter_num),
            verses_by_chapter.get(chapter_num, ()),
            commentaries_by_chapter.get(chapter_num, ()),
        )
    return merged
