"""
SQLAlchemy models for the relational storage backend.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import BIGINT, JSON, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class AudioFile(Base):
    """Stored audio payload plus its extracted tag metadata.

    `filename` is unique so two uploads deriving the same display name collide
    on insert instead of shadowing each other in the archive.
    """

    __tablename__ = "audio_files"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    original_name: Mapped[str] = mapped_column(Text, nullable=False)
    filename: Mapped[str] = mapped_column(String(512), nullable=False, unique=True, index=True)
    extension: Mapped[str] = mapped_column(String(16), nullable=False)
    mime_type: Mapped[str] = mapped_column(Text, nullable=False)
    size_bytes: Mapped[int] = mapped_column(BIGINT, nullable=False)
    stored_path: Mapped[str] = mapped_column(Text, nullable=False)

    title: Mapped[str] = mapped_column(Text, nullable=False)
    artist: Mapped[str] = mapped_column(Text, nullable=False)
    album: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    album_artist: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    composer: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    genre: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    track_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    disc_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    duration: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    bitrate: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    sample_rate: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    codec: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    album_art: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    upload_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
