"""
Relational backend for AudioFileRepository (SQLite by default, PostgreSQL via env).
"""

from __future__ import annotations

import logging
from datetime import timezone
from typing import List, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from src.api.db import get_db_session
from src.api.errors import ConflictError, InternalError, NotFoundError
from src.api.models import AudioFile
from src.api.repository import SEARCH_FIELDS, ArchiveQuery, AudioFileRepository
from src.api.schemas import AudioFileRecord

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id",
    "original_name",
    "filename",
    "extension",
    "mime_type",
    "size_bytes",
    "stored_path",
    "title",
    "artist",
    "album",
    "album_artist",
    "composer",
    "genre",
    "year",
    "track_number",
    "disc_number",
    "duration",
    "bitrate",
    "sample_rate",
    "codec",
    "album_art",
    "tags",
    "upload_date",
)


def _to_record(row: AudioFile) -> AudioFileRecord:
    values = {name: getattr(row, name) for name in _COLUMNS}
    # SQLite drops tzinfo on the way back; stored values are always UTC.
    if values["upload_date"].tzinfo is None:
        values["upload_date"] = values["upload_date"].replace(tzinfo=timezone.utc)
    values["tags"] = dict(values["tags"] or {})
    return AudioFileRecord.model_validate(values)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlAudioFileRepository(AudioFileRepository):
    """Stores one `audio_files` row per upload."""

    def create(self, record: AudioFileRecord) -> AudioFileRecord:
        row = AudioFile(**{name: getattr(record, name) for name in _COLUMNS})
        try:
            with get_db_session() as db:
                db.add(row)
                db.flush()
        except IntegrityError as exc:
            field = "id" if self._id_exists(record.id) else "filename"
            logger.info("audio_file_insert_conflict: id=%s filename=%s field=%s", record.id, record.filename, field)
            raise ConflictError(field) from exc
        except (RuntimeError, SQLAlchemyError) as exc:
            logger.exception("audio_file_insert_failed: id=%s", record.id)
            raise InternalError(
                f"Backend database error while saving audio metadata ({exc.__class__.__name__})."
            ) from exc
        return record

    def get(self, file_id: str) -> AudioFileRecord:
        try:
            with get_db_session() as db:
                row = db.get(AudioFile, file_id)
                if row is None:
                    raise NotFoundError("File not found.")
                return _to_record(row)
        except (RuntimeError, SQLAlchemyError) as exc:
            raise InternalError(
                f"Backend database error while loading audio metadata ({exc.__class__.__name__})."
            ) from exc

    def list(self, query: ArchiveQuery) -> Tuple[List[AudioFileRecord], int]:
        attribute, descending = query.resolve_sort()
        column = getattr(AudioFile, attribute)
        if attribute in ("filename", "title", "artist", "album"):
            column = func.lower(column)
        ordering = column.desc() if descending else column.asc()

        stmt = select(AudioFile)
        term = query.search_term
        if term:
            pattern = f"%{_escape_like(term)}%"
            stmt = stmt.where(
                or_(*(getattr(AudioFile, name).ilike(pattern, escape="\\") for name in SEARCH_FIELDS))
            )

        try:
            with get_db_session() as db:
                total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
                rows = (
                    db.execute(stmt.order_by(ordering, AudioFile.id).offset(query.offset).limit(query.page_size))
                    .scalars()
                    .all()
                )
                return [_to_record(r) for r in rows], int(total)
        except (RuntimeError, SQLAlchemyError) as exc:
            raise InternalError(
                f"Backend database error while listing audio files ({exc.__class__.__name__})."
            ) from exc

    def delete(self, file_id: str) -> AudioFileRecord:
        try:
            with get_db_session() as db:
                row = db.get(AudioFile, file_id)
                if row is None:
                    raise NotFoundError("File not found.")
                record = _to_record(row)
                db.delete(row)
                return record
        except (RuntimeError, SQLAlchemyError) as exc:
            raise InternalError(
                f"Backend database error while deleting audio metadata ({exc.__class__.__name__})."
            ) from exc

    @staticmethod
    def _id_exists(file_id: str) -> bool:
        try:
            with get_db_session() as db:
                return db.get(AudioFile, file_id) is not None
        except SQLAlchemyError:
            return False
