"""
FastAPI application entrypoint for the AudioShare backend.

Public API (no authentication):
- POST /upload
- GET /files/{id}, DELETE /files/{id}
- GET /stream/{id}
- GET /archive
- GET /album-art/{name}

CORS is enabled for local development (http://localhost:3000) and can be extended
via environment variables.
"""

from __future__ import annotations

import logging
import os as _os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.db import create_tables, dispose_engine
from src.api.errors import install_exception_handlers
from src.api.routes_archive import router as archive_router
from src.api.routes_files import router as files_router
from src.api.schemas import HealthResponse
from src.api.settings import get_settings

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "Files", "description": "Upload, look up, stream and delete audio files (public)."},
    {"name": "Archive", "description": "Paginated, searchable listing of stored files."},
    {"name": "Health", "description": "Service health and basic runtime info."},
]


def _configure_logging() -> None:
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    settings.ensure_directories()
    if settings.storage_backend == "sql":
        create_tables()
    logger.info(
        "startup: media_root=%s backend=%s max_upload_bytes=%s page_size=%s",
        str(settings.media_root),
        settings.storage_backend,
        settings.max_upload_bytes,
        settings.page_size,
    )
    yield
    dispose_engine()


_configure_logging()

app = FastAPI(
    title="AudioShare Backend API",
    description=(
        "Upload audio files, browse the archive and stream tracks.\n\n"
        "Authentication: none (public API)\n\n"
        "Streaming:\n"
        "- GET /stream/{id} supports single range requests for seeking."
    ),
    version="1.0.0",
    openapi_tags=openapi_tags,
    lifespan=lifespan,
)

# CORS: allow the browser front end + configurable origins via env.
# Note: credentials=true requires explicit origins (not '*') in browsers, so we include common local dev URLs.
# Add additional origins via CORS_ALLOW_ORIGINS or ALLOWED_ORIGINS, as comma-separated values.
cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

_allow_origins_raw = _os.getenv("CORS_ALLOW_ORIGINS") or _os.getenv("ALLOWED_ORIGINS", "")
cors_origins.extend(o.strip() for o in _allow_origins_raw.split(",") if o.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Range", "Accept-Ranges", "Content-Length"],
)

install_exception_handlers(app)
app.include_router(files_router)
app.include_router(archive_router)


@app.get(
    "/",
    response_model=HealthResponse,
    summary="Health check",
    description="Simple health check endpoint.",
    tags=["Health"],
)
def health_check() -> HealthResponse:
    """Return basic service health information."""
    return HealthResponse(status="ok")
