"""
On-disk layout helpers for payloads and album art under MEDIA_ROOT.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from src.api.errors import BadRequestError, NotFoundError
from src.api.repository import AudioFileRepository
from src.api.schemas import AudioFileRecord
from src.api.settings import Settings

logger = logging.getLogger(__name__)


def _within(root: Path, candidate: Path) -> bool:
    try:
        candidate.relative_to(root)
    except ValueError:
        return False
    return True


# PUBLIC_INTERFACE
def resolve_payload_path(settings: Settings, record: AudioFileRecord) -> Path:
    """
    Return the absolute payload path of a record.

    Stored paths are relative to MEDIA_ROOT; anything resolving outside it is
    treated as missing.
    """
    media_root = settings.media_root.resolve()
    candidate = (media_root / record.stored_path).resolve()
    if not _within(media_root, candidate):
        logger.warning("payload_path_outside_media_root: id=%s stored_path=%s", record.id, record.stored_path)
        raise NotFoundError("File missing on server.")
    return candidate


# PUBLIC_INTERFACE
def resolve_album_art_path(settings: Settings, name: str) -> Path:
    """Validate an album-art filename and return its absolute path."""
    if not name or "/" in name or "\\" in name or ".." in name:
        raise BadRequestError("Invalid filename.")
    art_dir = settings.album_art_dir.resolve()
    candidate = (art_dir / name).resolve()
    if not _within(art_dir, candidate):
        raise BadRequestError("Invalid filename.")
    return candidate


def remove_quietly(path: Optional[Path], reason: str) -> None:
    """Best-effort unlink; failures are logged, never raised."""
    if path is None:
        return
    try:
        path.unlink(missing_ok=True)
    except OSError:
        logger.exception("file_cleanup_failed: path=%s reason=%s", str(path), reason)


# PUBLIC_INTERFACE
def delete_stored_file(file_id: str, settings: Settings, repository: AudioFileRepository) -> AudioFileRecord:
    """
    Administrative delete: drop the record, then the payload and album art.

    The record goes first so readers stop seeing the file before its bytes vanish.
    """
    record = repository.delete(file_id)
    logger.info("audio_file_deleted: id=%s filename=%s", record.id, record.filename)

    try:
        remove_quietly(resolve_payload_path(settings, record), "delete")
    except NotFoundError:
        pass
    if record.album_art:
        try:
            remove_quietly(resolve_album_art_path(settings, record.album_art), "delete")
        except BadRequestError:
            logger.warning("album_art_name_invalid: id=%s album_art=%s", record.id, record.album_art)
    return record
