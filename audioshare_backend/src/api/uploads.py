"""
Upload pipeline: intake -> tag extraction -> payload placement -> record write.

Ordering guarantees:
- the content type is checked before any byte is written
- the payload sits under its final `audio/{id}.{ext}` path before the record is
  written, so a visible record always has complete bytes behind it
- a filename conflict changes only the display name; an id conflict moves the
  not-yet-visible payload to the new id before retrying
- every failed exit removes the payload and album art written by this request,
  and the intake file is removed on every exit
"""

from __future__ import annotations

import logging
import mimetypes
import os
import re
import secrets
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple

from fastapi import UploadFile

from src.api.errors import (
    AudioShareError,
    BadRequestError,
    ConflictError,
    InternalError,
    PayloadTooLargeError,
    UnsupportedMediaTypeError,
)
from src.api.repository import AudioFileRepository
from src.api.schemas import AudioFileRecord
from src.api.settings import Settings
from src.api.storage import remove_quietly
from src.api.tags import ExtractedTags, extract_tags, picture_extension

logger = logging.getLogger(__name__)

UPLOAD_MAX_ATTEMPTS = 3
UNKNOWN_ARTIST = "Unknown Artist"

_COPY_CHUNK_BYTES = 1024 * 1024
_EXTENSION_RE = re.compile(r"^[a-z0-9]{1,10}$")


def new_file_id() -> str:
    return secrets.token_hex(16)


def normalize_content_type(content_type: Optional[str]) -> str:
    """'Audio/MPEG; charset=binary' -> 'audio/mpeg'."""
    return (content_type or "").split(";", 1)[0].strip().lower()


def client_basename(filename: str) -> str:
    """Strip any client-side directory part (some browsers send C:\\fakepath\\x.mp3)."""
    return Path(filename.replace("\\", "/")).name.strip()


def sanitize_filename(name: str, fallback: str = "upload") -> str:
    # Word characters (any script), dot, dash, underscore; stem and suffix cleaned apart.
    path = Path(name.strip().replace("\\", "_").replace("/", "_"))
    stem = re.sub(r"[^\w.-]+", "_", path.stem).strip("._")
    suffix = re.sub(r"[^\w]+", "", path.suffix.lstrip("."))
    if not stem:
        return fallback
    return f"{stem}.{suffix}" if suffix else stem


def derive_extension(original_name: str, mime_type: str) -> str:
    suffix = Path(original_name).suffix.lstrip(".").lower()
    if _EXTENSION_RE.match(suffix):
        return suffix
    guessed = mimetypes.guess_extension(mime_type) or ""
    guessed = guessed.lstrip(".").lower()
    return guessed if _EXTENSION_RE.match(guessed) else "bin"


def disambiguate_filename(filename: str, now: datetime) -> str:
    """'song.mp3' -> 'song_20261019104512123456.mp3'."""
    path = Path(filename)
    return f"{path.stem}_{now.strftime('%Y%m%d%H%M%S%f')}{path.suffix}"


def _receive(upload: UploadFile, settings: Settings, intake: Path) -> int:
    """Copy the upload body into `intake`, enforcing the size bound. Returns the byte count."""
    declared = getattr(upload, "size", None)
    if declared is not None and declared > settings.max_upload_bytes:
        raise PayloadTooLargeError(f"File too large; limit is {settings.max_upload_bytes} bytes.")

    size = 0
    with intake.open("wb") as out:
        for chunk in iter(lambda: upload.file.read(_COPY_CHUNK_BYTES), b""):
            size += len(chunk)
            if size > settings.max_upload_bytes:
                raise PayloadTooLargeError(f"File too large; limit is {settings.max_upload_bytes} bytes.")
            out.write(chunk)
        out.flush()
        os.fsync(out.fileno())
    return size


def _store_album_art(tags: ExtractedTags, settings: Settings) -> Tuple[Optional[str], Optional[Path]]:
    """Write the embedded cover (JPEG/PNG only) as a side file. Best effort."""
    if tags.picture is None:
        return None, None
    mime, data = tags.picture
    extension = picture_extension(mime)
    if not extension or not data:
        return None, None

    name = f"{secrets.token_hex(16)}.{extension}"
    path = settings.album_art_dir / name
    try:
        path.write_bytes(data)
    except OSError:
        logger.exception("album_art_write_failed: path=%s", str(path))
        return None, None
    return name, path


def _place_payload(source: Path, settings: Settings, extension: str) -> Tuple[str, Path]:
    """
    Hard-link `source` to a fresh `audio/{id}.{ext}` path.

    Linking fails instead of overwriting when the id is already taken, in which
    case a new id is drawn.
    """
    for _ in range(UPLOAD_MAX_ATTEMPTS):
        file_id = new_file_id()
        target = settings.audio_dir / f"{file_id}.{extension}"
        try:
            os.link(source, target)
        except FileExistsError:
            logger.warning("payload_id_taken: id=%s", file_id)
            continue
        except OSError as exc:
            logger.exception("payload_write_failed: target=%s", str(target))
            raise InternalError("Failed to store file.") from exc
        return file_id, target
    raise InternalError("Could not allocate a storage id for the upload.")


def _append_index_line(settings: Settings, record: AudioFileRecord) -> None:
    line = f"{record.artist} - {record.title} - {record.filename} | {record.stored_path}\n"
    try:
        with settings.index_file.open("a", encoding="utf-8") as index:
            index.write(line)
    except OSError:
        logger.warning("index_append_failed: path=%s id=%s", str(settings.index_file), record.id, exc_info=True)


def _build_record(
    *,
    file_id: str,
    original_name: str,
    filename: str,
    extension: str,
    mime_type: str,
    size_bytes: int,
    tags: ExtractedTags,
    album_art: Optional[str],
    upload_date: datetime,
) -> AudioFileRecord:
    return AudioFileRecord(
        id=file_id,
        original_name=original_name,
        filename=filename,
        extension=extension,
        mime_type=mime_type,
        size_bytes=size_bytes,
        stored_path=f"audio/{file_id}.{extension}",
        title=tags.title or original_name,
        artist=tags.artist or UNKNOWN_ARTIST,
        album=tags.album,
        album_artist=tags.album_artist,
        composer=tags.composer,
        genre=tags.genre,
        year=tags.year,
        track_number=tags.track_number,
        disc_number=tags.disc_number,
        duration=tags.duration,
        bitrate=tags.bitrate,
        sample_rate=tags.sample_rate,
        codec=tags.codec,
        album_art=album_art,
        tags=tags.as_tag_bag(),
        upload_date=upload_date,
    )


def _write_record(
    intake: Path,
    *,
    original_name: str,
    mime_type: str,
    size_bytes: int,
    tags: ExtractedTags,
    album_art: Optional[str],
    settings: Settings,
    repository: AudioFileRepository,
) -> Tuple[AudioFileRecord, Path]:
    extension = derive_extension(original_name, mime_type)
    base_filename = sanitize_filename(original_name, fallback=f"upload.{extension}")
    filename = base_filename

    file_id, payload = _place_payload(intake, settings, extension)
    try:
        for attempt in range(1, UPLOAD_MAX_ATTEMPTS + 1):
            now = datetime.now(timezone.utc)
            record = _build_record(
                file_id=file_id,
                original_name=original_name,
                filename=filename,
                extension=extension,
                mime_type=mime_type,
                size_bytes=size_bytes,
                tags=tags,
                album_art=album_art,
                upload_date=now,
            )
            try:
                repository.create(record)
            except ConflictError as exc:
                logger.warning(
                    "upload_record_conflict: attempt=%s field=%s id=%s filename=%s",
                    attempt,
                    exc.field,
                    file_id,
                    filename,
                )
                if exc.field == "id":
                    old_payload = payload
                    file_id, payload = _place_payload(old_payload, settings, extension)
                    remove_quietly(old_payload, "id_conflict")
                else:
                    filename = disambiguate_filename(base_filename, now)
                continue
            return record, payload
        raise InternalError("Could not assign a unique name to the upload.")
    except Exception:
        remove_quietly(payload, "record_write_failed")
        raise


# PUBLIC_INTERFACE
def process_upload(
    upload: Optional[UploadFile],
    settings: Settings,
    repository: AudioFileRepository,
) -> AudioFileRecord:
    """
    Validate, store and record one uploaded audio file.

    Raises:
        BadRequestError: no file part, or an empty file.
        UnsupportedMediaTypeError: content type not in the allow-list.
        PayloadTooLargeError: body larger than the configured bound.
        InternalError: storage failure or record-write retries exhausted.
    """
    if upload is None or not upload.filename:
        raise BadRequestError("No file uploaded.")

    mime_type = normalize_content_type(upload.content_type)
    if mime_type not in settings.allowed_mime_types:
        raise UnsupportedMediaTypeError(f"Unsupported content type {mime_type or 'unknown'!r}; expected an audio file.")

    original_name = client_basename(upload.filename) or "upload"
    try:
        settings.ensure_directories()
        fd, intake_name = tempfile.mkstemp(prefix="upload-", suffix=".part", dir=settings.tmp_dir)
        os.close(fd)
    except OSError as exc:
        logger.exception("upload_intake_failed: tmp_dir=%s", str(settings.tmp_dir))
        raise InternalError("Failed to store file.") from exc
    intake = Path(intake_name)
    album_art_path: Optional[Path] = None
    try:
        size_bytes = _receive(upload, settings, intake)
        if size_bytes == 0:
            raise BadRequestError("Empty file.")

        tags = extract_tags(intake)
        album_art, album_art_path = _store_album_art(tags, settings)

        record, payload = _write_record(
            intake,
            original_name=original_name,
            mime_type=mime_type,
            size_bytes=size_bytes,
            tags=tags,
            album_art=album_art,
            settings=settings,
            repository=repository,
        )
    except AudioShareError:
        remove_quietly(album_art_path, "upload_failed")
        raise
    except OSError as exc:
        remove_quietly(album_art_path, "upload_failed")
        logger.exception("upload_storage_error: original_name=%s", original_name)
        raise InternalError("Failed to store file.") from exc
    finally:
        remove_quietly(intake, "intake")

    logger.info(
        "upload_stored: id=%s filename=%s size=%s mime=%s path=%s",
        record.id,
        record.filename,
        record.size_bytes,
        record.mime_type,
        str(payload),
    )
    _append_index_line(settings, record)
    return record
