from sqlalchemy import Column, String, JSON
from database import Base


class CacheEntry(Base):
    """One key-value record of the offline content cache.

    Keys follow three shapes:
      <bookId>-<chapter>-<lang>         chapter record {"data": [...], "is_downloaded": bool}
      core-<tag>                        core dataset (list of records)
      audio-<bookId>-<chapter>-<lang>   audio URL string
    """
    __tablename__ = 'cache_entries'

    key = Column(String, primary_key=True)
    value = Column(JSON, nullable=False)

    def __repr__(self):
        return f'<CacheEntry {self.key}>'
