"""
Runtime configuration for the AudioShare backend.

All values come from environment variables so the same image runs in local dev,
tests and the preview runtime without code changes:

- MEDIA_ROOT: where payloads, sidecars, album art and the text index live
- MAX_UPLOAD_BYTES: upload size bound (default 300 MiB)
- ALLOWED_MIME_TYPES: comma-separated audio content types accepted by /upload
- PAGE_SIZE: archive listing page size
- STREAM_CHUNK_CAP_BYTES: cap for open-ended ranges ("bytes=N-"), 0 disables
- STORAGE_BACKEND: "sql" (default) or "json"
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import FrozenSet

from pydantic import BaseModel, ConfigDict, Field

# Anchor relative paths to the backend root (audioshare_backend/), not the process CWD.
BACKEND_ROOT = Path(__file__).resolve().parents[2]

MAX_UPLOAD_BYTES_DEFAULT = 300 * 1024 * 1024  # 300 MiB
PAGE_SIZE_DEFAULT = 40

DEFAULT_ALLOWED_MIME_TYPES = frozenset(
    {
        "audio/mpeg",
        "audio/mp3",
        "audio/wav",
        "audio/wave",
        "audio/x-wav",
        "audio/flac",
        "audio/x-flac",
        "audio/ogg",
        "audio/opus",
        "audio/aac",
        "audio/mp4",
        "audio/x-m4a",
        "audio/webm",
    }
)

STORAGE_BACKENDS = ("sql", "json")


class Settings(BaseModel):
    """Resolved configuration values."""

    model_config = ConfigDict(frozen=True)

    media_root: Path = Field(..., description="Absolute directory for stored media.")
    max_upload_bytes: int = Field(MAX_UPLOAD_BYTES_DEFAULT, gt=0)
    allowed_mime_types: FrozenSet[str] = Field(DEFAULT_ALLOWED_MIME_TYPES)
    page_size: int = Field(PAGE_SIZE_DEFAULT, gt=0)
    stream_chunk_cap_bytes: int = Field(0, ge=0, description="0 means open ranges run to EOF.")
    storage_backend: str = Field("sql")
    log_level: str = Field("INFO")

    @property
    def audio_dir(self) -> Path:
        return self.media_root / "audio"

    @property
    def album_art_dir(self) -> Path:
        return self.media_root / "album-art"

    @property
    def tmp_dir(self) -> Path:
        return self.media_root / "tmp"

    @property
    def index_file(self) -> Path:
        return self.media_root / "audio_files.txt"

    @property
    def default_database_url(self) -> str:
        return f"sqlite:///{self.media_root / 'audioshare.db'}"

    def ensure_directories(self) -> None:
        """Create the media layout if it does not exist yet."""
        for directory in (self.media_root, self.audio_dir, self.album_art_dir, self.tmp_dir):
            directory.mkdir(parents=True, exist_ok=True)


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _media_root() -> Path:
    """
    Return the absolute media directory.

    An absolute MEDIA_ROOT is used as-is; a relative or unset one resolves against
    the backend root so upload and stream agree regardless of the runtime CWD.
    """
    configured = os.getenv("MEDIA_ROOT", "media").strip() or "media"
    raw = Path(configured)
    root = raw if raw.is_absolute() else (BACKEND_ROOT / raw)
    return root.resolve()


def _allowed_mime_types() -> FrozenSet[str]:
    raw = os.getenv("ALLOWED_MIME_TYPES", "")
    configured = {t.strip().lower() for t in raw.split(",") if t.strip()}
    return frozenset(configured) if configured else DEFAULT_ALLOWED_MIME_TYPES


def _storage_backend() -> str:
    backend = os.getenv("STORAGE_BACKEND", "sql").strip().lower()
    if backend not in STORAGE_BACKENDS:
        raise RuntimeError(
            f"Unknown STORAGE_BACKEND {backend!r}; expected one of {', '.join(STORAGE_BACKENDS)}."
        )
    return backend


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process settings, read once from the environment."""
    page_size = _int_env("PAGE_SIZE", PAGE_SIZE_DEFAULT)
    max_upload = _int_env("MAX_UPLOAD_BYTES", MAX_UPLOAD_BYTES_DEFAULT)
    chunk_cap = _int_env("STREAM_CHUNK_CAP_BYTES", 0)
    return Settings(
        media_root=_media_root(),
        max_upload_bytes=max_upload if max_upload > 0 else MAX_UPLOAD_BYTES_DEFAULT,
        allowed_mime_types=_allowed_mime_types(),
        page_size=page_size if page_size > 0 else PAGE_SIZE_DEFAULT,
        stream_chunk_cap_bytes=max(chunk_cap, 0),
        storage_backend=_storage_backend(),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )
