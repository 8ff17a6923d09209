"""Shared fixtures for AudioShare backend tests."""

from __future__ import annotations

from contextlib import ExitStack
from pathlib import Path
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from mutagen.id3 import APIC, ID3, TALB, TIT2, TPE1, TRCK

from src.api.db import dispose_engine
from src.api.main import app
from src.api.settings import get_settings

_ENV_VARS = (
    "MEDIA_ROOT",
    "MAX_UPLOAD_BYTES",
    "ALLOWED_MIME_TYPES",
    "PAGE_SIZE",
    "STREAM_CHUNK_CAP_BYTES",
    "STORAGE_BACKEND",
    "DATABASE_URL",
    "POSTGRES_URL",
)

PNG_COVER = b"\x89PNG\r\n\x1a\n" + b"fake-cover-bytes"


@pytest.fixture
def media_root(tmp_path, monkeypatch):
    """Point MEDIA_ROOT at a fresh directory and reset cached settings/engine.

    Yields:
        The media root path.
    """
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    root = tmp_path / "media"
    monkeypatch.setenv("MEDIA_ROOT", str(root))
    get_settings.cache_clear()
    dispose_engine()
    yield root
    app.dependency_overrides.clear()
    dispose_engine()
    get_settings.cache_clear()


@pytest.fixture(params=["sql", "json"])
def backend(request, media_root, monkeypatch):
    """Run the test once per repository backend."""
    monkeypatch.setenv("STORAGE_BACKEND", request.param)
    get_settings.cache_clear()
    return request.param


@pytest.fixture
def client_factory(backend, monkeypatch):
    """Build a TestClient after applying extra environment settings."""
    with ExitStack() as stack:

        def _make(**env: str) -> TestClient:
            for name, value in env.items():
                monkeypatch.setenv(name, value)
            get_settings.cache_clear()
            dispose_engine()
            return stack.enter_context(TestClient(app))

        yield _make


@pytest.fixture
def client(client_factory):
    return client_factory()


def upload(
    client: TestClient,
    name: str = "a.mp3",
    content: bytes = b"hello",
    content_type: Optional[str] = "audio/mpeg",
):
    """POST one file to /upload."""
    part = (name, content, content_type) if content_type else (name, content)
    return client.post("/upload", files={"file": part})


def make_tagged_mp3(
    path: Path,
    *,
    title: str = "Blue Train",
    artist: str = "John Coltrane",
    album: str = "Blue Train",
    track: str = "1/5",
    cover: Optional[bytes] = PNG_COVER,
) -> bytes:
    """Write a file holding an ID3v2 tag followed by filler bytes; return its content."""
    path.write_bytes(b"\x00" * 256)
    tags = ID3()
    tags.add(TIT2(encoding=3, text=title))
    tags.add(TPE1(encoding=3, text=artist))
    tags.add(TALB(encoding=3, text=album))
    tags.add(TRCK(encoding=3, text=track))
    if cover is not None:
        tags.add(APIC(encoding=3, mime="image/png", type=3, desc="Cover", data=cover))
    tags.save(str(path))
    return path.read_bytes()


def files_in(directory: Path):
    if not directory.exists():
        return []
    return sorted(p.name for p in directory.iterdir())
