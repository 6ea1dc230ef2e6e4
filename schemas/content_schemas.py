from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional, Union


class VerseEntry(BaseModel):
    """A verse row as cached: text and commentary are both optional so a
    commentary-only row and a text-only row share the same shape."""
    model_config = ConfigDict(extra='allow')

    verse_num: int
    chapter_num: int
    verse_display_num: Optional[Union[int, str]] = None
    verse_text: Optional[str] = None
    commentary_text: Optional[str] = None


class ChapterRecord(BaseModel):
    verses: List[VerseEntry]
    is_downloaded: bool = False

    def as_rows(self) -> List[Dict[str, Any]]:
        return [verse.model_dump(exclude_none=True) for verse in self.verses]


class BookInfo(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    id: str
    chapters: Optional[int] = 0
    order: Optional[int] = 0
    name: Optional[str] = None
    name_en: Optional[str] = None
    amharic_name: Optional[str] = Field(default=None, alias='amharicName')
    testament: Optional[str] = None

    def display_name(self, language: str) -> str:
        if language == 'en':
            return self.name_en or self.name or self.id
        return self.amharic_name or self.name or self.id


class BookContent(BaseModel):
    """Everything fetched for one book: verse rows and commentary rows."""
    verses: List[Dict[str, Any]] = Field(default_factory=list)
    commentaries: List[Dict[str, Any]] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.verses and not self.commentaries


class DownloadProgress(BaseModel):
    language: Optional[str] = None
    current_book_id: Optional[str] = None
    current_book_name: str = ""
    current_chapter: int = 0
    total_chapters_in_book: int = 0
    total_chapters_overall: int = 0
    chapters_completed_overall: int = 0

    @property
    def percent(self) -> float:
        if self.total_chapters_overall <= 0:
            return 0.0
        return min(100.0, 100.0 * self.chapters_completed_overall / self.total_chapters_overall)


class ClearResult(BaseModel):
    success: bool
    cleared_count: int = 0
