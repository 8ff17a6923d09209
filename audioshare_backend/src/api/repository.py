"""
Persistence interface for stored audio file records.

Two interchangeable backends implement AudioFileRepository:
- SqlAudioFileRepository (src.api.repository_sql): one row per file via SQLAlchemy
- JsonSidecarRepository (src.api.repository_json): one `{id}.metadata.json` next to each payload

Backends raise ConflictError when a write would collide with an existing id or
filename, and NotFoundError for unknown ids. They never retry on their own.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import List, Optional, Tuple

from src.api.schemas import AudioFileRecord
from src.api.settings import Settings, get_settings

# API sort key -> record attribute
SORT_COLUMNS = {
    "filename": "filename",
    "title": "title",
    "artist": "artist",
    "album": "album",
    "size": "size_bytes",
    "uploadDate": "upload_date",
}
DEFAULT_SORT_COLUMN = "upload_date"

# Fields the archive search matches against (case-insensitive substring).
SEARCH_FIELDS = ("filename", "title", "artist", "album")


@dataclass(frozen=True)
class ArchiveQuery:
    page: int = 1
    page_size: int = 40
    search: Optional[str] = None
    sort_by: Optional[str] = None
    sort_order: Optional[str] = None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def search_term(self) -> Optional[str]:
        term = (self.search or "").strip()
        return term or None

    def resolve_sort(self) -> Tuple[str, bool]:
        """
        Return (record attribute, descending).

        An unrecognized column falls back to upload date, newest first, regardless
        of the requested direction.
        """
        column = SORT_COLUMNS.get(self.sort_by or "")
        if column is None:
            return DEFAULT_SORT_COLUMN, True
        return column, (self.sort_order or "").lower() != "asc"


class AudioFileRepository(abc.ABC):
    """create / get / list / delete for AudioFileRecord."""

    @abc.abstractmethod
    def create(self, record: AudioFileRecord) -> AudioFileRecord:
        """Persist a new record. Raises ConflictError on id or filename collision."""

    @abc.abstractmethod
    def get(self, file_id: str) -> AudioFileRecord:
        """Return the record for `file_id`. Raises NotFoundError."""

    @abc.abstractmethod
    def list(self, query: ArchiveQuery) -> Tuple[List[AudioFileRecord], int]:
        """Return (records on the requested page, total matching records)."""

    @abc.abstractmethod
    def delete(self, file_id: str) -> AudioFileRecord:
        """Remove and return the record for `file_id`. Raises NotFoundError."""


# PUBLIC_INTERFACE
def build_repository(settings: Settings) -> AudioFileRepository:
    """Return the repository backend selected by STORAGE_BACKEND."""
    if settings.storage_backend == "json":
        from src.api.repository_json import JsonSidecarRepository

        return JsonSidecarRepository(settings.audio_dir)

    from src.api.repository_sql import SqlAudioFileRepository

    return SqlAudioFileRepository()


# PUBLIC_INTERFACE
def repository_dep() -> AudioFileRepository:
    """FastAPI dependency returning the configured repository."""
    return build_repository(get_settings())
