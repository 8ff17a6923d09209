"""
File endpoints:
- POST /upload (multipart audio upload, field `file`)
- GET /files/{id} (metadata record)
- DELETE /files/{id} (administrative delete)
- GET /stream/{id} (payload, with HTTP Range support)
- GET /album-art/{name} (extracted cover images)
"""

from __future__ import annotations

import logging
import mimetypes
from typing import Optional

from fastapi import APIRouter, Depends, File, Request, Response, UploadFile
from starlette.responses import StreamingResponse

from src.api.errors import InternalError, NotFoundError
from src.api.repository import AudioFileRepository, repository_dep
from src.api.schemas import AudioFileRecord, ErrorResponse
from src.api.settings import Settings, get_settings
from src.api.storage import delete_stored_file, resolve_album_art_path, resolve_payload_path
from src.api.streaming import build_stream_response, iter_file_range
from src.api.uploads import process_upload

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Files"])

_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


@router.post(
    "/upload",
    response_model=AudioFileRecord,
    summary="Upload an audio file",
    description="Stores one audio file, extracts its tags and returns the metadata record.",
    operation_id="upload_audio",
    responses={
        400: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        415: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def upload_audio(
    file: Optional[UploadFile] = File(None, description="Audio file (multipart/form-data field `file`)."),
    settings: Settings = Depends(get_settings),
    repository: AudioFileRepository = Depends(repository_dep),
) -> AudioFileRecord:
    """Upload one audio file."""
    return process_upload(file, settings, repository)


@router.get(
    "/files/{file_id}",
    response_model=AudioFileRecord,
    summary="Get file metadata",
    operation_id="get_audio_file",
    responses=_ERRORS,
)
def get_audio_file(
    file_id: str,
    repository: AudioFileRepository = Depends(repository_dep),
) -> AudioFileRecord:
    """Return the stored metadata record for a file id."""
    return repository.get(file_id)


@router.delete(
    "/files/{file_id}",
    status_code=204,
    summary="Delete a stored file",
    description="Administrative removal of the record, payload and album art.",
    operation_id="delete_audio_file",
    responses=_ERRORS,
)
def delete_audio_file(
    file_id: str,
    settings: Settings = Depends(get_settings),
    repository: AudioFileRepository = Depends(repository_dep),
) -> Response:
    delete_stored_file(file_id, settings, repository)
    return Response(status_code=204)


@router.get(
    "/stream/{file_id}",
    summary="Stream an audio file",
    description="Streams the stored payload. Supports single HTTP Range requests for seeking.",
    operation_id="stream_audio",
    responses={
        200: {"content": {"audio/mpeg": {}}},
        206: {"content": {"audio/mpeg": {}}},
        404: {"model": ErrorResponse},
        416: {"description": "Range not satisfiable"},
    },
)
def stream_audio(
    file_id: str,
    request: Request,
    settings: Settings = Depends(get_settings),
    repository: AudioFileRepository = Depends(repository_dep),
) -> StreamingResponse:
    """Serve a stored payload by id, honoring the Range header."""
    record = repository.get(file_id)
    media_path = resolve_payload_path(settings, record)
    range_header = request.headers.get("range")

    try:
        file_size = media_path.stat().st_size
    except OSError as exc:
        logger.warning("stream_payload_missing: id=%s path=%s exc=%s", record.id, str(media_path), exc.__class__.__name__)
        raise NotFoundError("File missing on server.") from exc

    if file_size != record.size_bytes:
        logger.warning(
            "stream_size_mismatch: id=%s recorded=%s on_disk=%s", record.id, record.size_bytes, file_size
        )

    logger.info("stream_audio: id=%s path=%s size=%s range=%s", record.id, str(media_path), file_size, range_header)
    return build_stream_response(
        media_path,
        file_size,
        record.mime_type,
        range_header,
        chunk_cap=settings.stream_chunk_cap_bytes,
    )


@router.get(
    "/album-art/{name}",
    summary="Get album art",
    description="Serves a cover image extracted at upload time.",
    operation_id="get_album_art",
    responses={
        200: {"content": {"image/jpeg": {}, "image/png": {}}},
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def get_album_art(name: str, settings: Settings = Depends(get_settings)) -> StreamingResponse:
    path = resolve_album_art_path(settings, name)
    if not path.is_file():
        logger.info("album_art_not_found: path=%s", str(path))
        raise NotFoundError("Album art image not found.")
    try:
        size = path.stat().st_size
        # Fail before headers go out if the bytes cannot be read.
        with path.open("rb"):
            pass
    except FileNotFoundError as exc:
        logger.info("album_art_not_found: path=%s", str(path))
        raise NotFoundError("Album art image not found.") from exc
    except OSError as exc:
        logger.exception("album_art_read_failed: path=%s", str(path))
        raise InternalError("Could not retrieve album art.") from exc

    media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return StreamingResponse(
        iter_file_range(path, 0, size - 1),
        media_type=media_type,
        headers={"Content-Length": str(size)},
    )
