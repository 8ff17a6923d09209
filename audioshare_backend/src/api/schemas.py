"""
Pydantic models (records and response shapes) for API endpoints.

Responses use camelCase field names; Python code uses the snake_case attributes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AudioFileRecord(_CamelModel):
    """Full metadata record of a stored audio file."""

    id: str = Field(..., description="Opaque hex identifier, also the storage key.")
    original_name: str = Field(..., description="Filename supplied by the client.")
    filename: str = Field(..., description="Unique display filename.")
    extension: str = Field(..., description="Lower-case extension without the dot.")
    mime_type: str = Field(..., description="Content type fixed at upload time.")
    size_bytes: int = Field(..., alias="size", description="Exact payload length in bytes.")
    stored_path: str = Field(..., description="Payload path relative to MEDIA_ROOT.")

    title: str = Field(..., description="Track title (falls back to the original filename).")
    artist: str = Field(..., description="Track artist (falls back to 'Unknown Artist').")
    album: Optional[str] = None
    album_artist: Optional[str] = None
    composer: Optional[str] = None
    genre: Optional[str] = None
    year: Optional[int] = None
    track_number: Optional[int] = None
    disc_number: Optional[int] = None

    duration: Optional[float] = Field(None, description="Duration in seconds.")
    bitrate: Optional[int] = Field(None, description="Bitrate in kbps.")
    sample_rate: Optional[int] = Field(None, description="Sample rate in Hz.")
    codec: Optional[str] = None

    album_art: Optional[str] = Field(None, description="Name of the extracted cover image, if any.")
    tags: Dict[str, Any] = Field(default_factory=dict, description="Raw tag values as extracted.")
    upload_date: datetime = Field(..., description="UTC creation timestamp.")


class AudioFileSummary(_CamelModel):
    """Row of the archive listing."""

    id: str
    filename: str
    title: str
    artist: str
    album: Optional[str] = None
    size_bytes: int = Field(..., alias="size")
    duration: Optional[float] = None
    mime_type: str
    album_art: Optional[str] = None
    upload_date: datetime

    @classmethod
    def from_record(cls, record: AudioFileRecord) -> "AudioFileSummary":
        return cls(
            id=record.id,
            filename=record.filename,
            title=record.title,
            artist=record.artist,
            album=record.album,
            size_bytes=record.size_bytes,
            duration=record.duration,
            mime_type=record.mime_type,
            album_art=record.album_art,
            upload_date=record.upload_date,
        )


class ArchivePage(_CamelModel):
    """One page of the archive listing plus what pagination controls need."""

    items: List[AudioFileSummary]
    total: int = Field(..., description="Number of records matching the search.")
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool


class ErrorResponse(BaseModel):
    error: str = Field(..., description="Human readable error message.")


class HealthResponse(BaseModel):
    status: str = Field("ok")
