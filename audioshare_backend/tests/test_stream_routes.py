"""Tests for GET /stream/{id}."""

import pytest
from conftest import upload

CONTENT = bytes(range(256)) * 8  # 2048 bytes


@pytest.fixture
def stored(client):
    return upload(client, "track.mp3", CONTENT).json()


def test_full_body_without_range(client, stored):
    response = client.get(f"/stream/{stored['id']}")

    assert response.status_code == 200
    assert response.content == CONTENT
    assert response.headers["content-length"] == str(len(CONTENT))
    assert response.headers["content-type"] == "audio/mpeg"
    assert response.headers["accept-ranges"] == "bytes"
    assert "content-range" not in response.headers


def test_small_file_partial_scenario(client):
    file_id = upload(client, "a.mp3", b"hello", "audio/mpeg").json()["id"]

    response = client.get(f"/stream/{file_id}", headers={"Range": "bytes=1-3"})

    assert response.status_code == 206
    assert response.content == b"ell"
    assert response.headers["content-range"] == "bytes 1-3/5"
    assert response.headers["content-length"] == "3"


@pytest.mark.parametrize(
    ("start", "end"),
    [(0, 0), (0, 2047), (100, 199), (2047, 2047), (1000, 1999)],
)
def test_partial_ranges(client, stored, start, end):
    response = client.get(f"/stream/{stored['id']}", headers={"Range": f"bytes={start}-{end}"})

    assert response.status_code == 206
    assert response.content == CONTENT[start : end + 1]
    assert response.headers["content-range"] == f"bytes {start}-{end}/2048"
    assert response.headers["content-length"] == str(end - start + 1)
    assert response.headers["accept-ranges"] == "bytes"
    assert response.headers["content-type"] == "audio/mpeg"


def test_open_ended_range(client, stored):
    response = client.get(f"/stream/{stored['id']}", headers={"Range": "bytes=2000-"})

    assert response.status_code == 206
    assert response.content == CONTENT[2000:]
    assert response.headers["content-range"] == "bytes 2000-2047/2048"


def test_open_ended_range_with_chunk_cap(client_factory):
    client = client_factory(STREAM_CHUNK_CAP_BYTES="100")
    file_id = upload(client, "track.mp3", CONTENT).json()["id"]

    response = client.get(f"/stream/{file_id}", headers={"Range": "bytes=0-"})

    assert response.status_code == 206
    assert response.content == CONTENT[:100]
    assert response.headers["content-range"] == "bytes 0-99/2048"


@pytest.mark.parametrize("header", ["bytes=2048-", "bytes=5000-6000", "bytes=10-5"])
def test_unsatisfiable_range(client, stored, header):
    response = client.get(f"/stream/{stored['id']}", headers={"Range": header})

    assert response.status_code == 416
    assert response.headers["content-range"] == "bytes */2048"
    assert response.content == b""


def test_unparseable_range_serves_full_body(client, stored):
    response = client.get(f"/stream/{stored['id']}", headers={"Range": "bytes=0-1,5-6"})

    assert response.status_code == 200
    assert response.content == CONTENT


def test_stored_mime_type_is_echoed(client):
    file_id = upload(client, "a.flac", b"flac-bytes", "audio/flac").json()["id"]

    full = client.get(f"/stream/{file_id}")
    partial = client.get(f"/stream/{file_id}", headers={"Range": "bytes=0-3"})

    assert full.headers["content-type"] == "audio/flac"
    assert partial.headers["content-type"] == "audio/flac"


def test_unknown_id(client):
    response = client.get("/stream/" + "0" * 32)

    assert response.status_code == 404
    assert response.json() == {"error": "File not found."}


def test_missing_payload_is_not_found(client, stored, media_root):
    (media_root / stored["storedPath"]).unlink()

    response = client.get(f"/stream/{stored['id']}")

    assert response.status_code == 404
    assert response.json() == {"error": "File missing on server."}
