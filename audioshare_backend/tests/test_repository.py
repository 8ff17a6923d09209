"""Tests for the repository backends, run against both implementations."""

from datetime import datetime, timedelta, timezone

import pytest

from src.api.db import create_tables
from src.api.errors import ConflictError, NotFoundError
from src.api.repository import ArchiveQuery, build_repository
from src.api.schemas import AudioFileRecord
from src.api.settings import get_settings

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _record(file_id, filename, *, minutes=0, size=10, title=None, artist="Unknown Artist", album=None):
    return AudioFileRecord(
        id=file_id,
        original_name=filename,
        filename=filename,
        extension="mp3",
        mime_type="audio/mpeg",
        size_bytes=size,
        stored_path=f"audio/{file_id}.mp3",
        title=title or filename,
        artist=artist,
        album=album,
        tags={"title": title or filename},
        upload_date=BASE_TIME + timedelta(minutes=minutes),
    )


@pytest.fixture
def repository(backend):
    settings = get_settings()
    settings.ensure_directories()
    if backend == "sql":
        create_tables()
    return build_repository(settings)


def test_create_and_get_round_trip(repository):
    record = _record("a" * 32, "a.mp3", album="Blue")

    repository.create(record)

    assert repository.get(record.id) == record


def test_get_unknown_id(repository):
    with pytest.raises(NotFoundError):
        repository.get("f" * 32)


def test_get_malformed_id(repository):
    with pytest.raises(NotFoundError):
        repository.get("../../etc/passwd")


def test_filename_conflict(repository):
    repository.create(_record("a" * 32, "same.mp3"))

    with pytest.raises(ConflictError) as excinfo:
        repository.create(_record("b" * 32, "same.mp3"))

    assert excinfo.value.field == "filename"
    assert repository.get("a" * 32).filename == "same.mp3"


def test_id_conflict_never_overwrites(repository):
    repository.create(_record("a" * 32, "first.mp3"))

    with pytest.raises(ConflictError) as excinfo:
        repository.create(_record("a" * 32, "second.mp3"))

    assert excinfo.value.field == "id"
    assert repository.get("a" * 32).filename == "first.mp3"


def test_list_pages_and_counts(repository):
    for n in range(5):
        repository.create(_record(f"{n:032x}", f"{n}.mp3", minutes=n))

    records, total = repository.list(ArchiveQuery(page=2, page_size=2))

    assert total == 5
    assert [r.filename for r in records] == ["2.mp3", "1.mp3"]


def test_list_search_and_sort(repository):
    repository.create(_record("1" * 32, "x.mp3", artist="Nina Simone", size=3))
    repository.create(_record("2" * 32, "y.mp3", artist="nina simone", size=1))
    repository.create(_record("3" * 32, "z.mp3", artist="Other", size=2))

    records, total = repository.list(
        ArchiveQuery(search="NINA", sort_by="size", sort_order="asc", page_size=10)
    )

    assert total == 2
    assert [r.filename for r in records] == ["y.mp3", "x.mp3"]


def test_sort_ties_break_on_id(repository):
    repository.create(_record("b" * 32, "b.mp3", size=5))
    repository.create(_record("a" * 32, "a.mp3", size=5))

    records, _ = repository.list(ArchiveQuery(sort_by="size", sort_order="asc"))

    assert [r.id for r in records] == ["a" * 32, "b" * 32]


def test_delete(repository):
    repository.create(_record("a" * 32, "a.mp3"))

    deleted = repository.delete("a" * 32)

    assert deleted.filename == "a.mp3"
    with pytest.raises(NotFoundError):
        repository.get("a" * 32)
    with pytest.raises(NotFoundError):
        repository.delete("a" * 32)


@pytest.mark.parametrize(
    ("sort_by", "sort_order", "expected"),
    [
        ("size", "asc", ("size_bytes", False)),
        ("uploadDate", "asc", ("upload_date", False)),
        ("title", None, ("title", True)),
        ("title", "sideways", ("title", True)),
        ("bogus", "asc", ("upload_date", True)),
        (None, None, ("upload_date", True)),
    ],
)
def test_resolve_sort(sort_by, sort_order, expected):
    assert ArchiveQuery(sort_by=sort_by, sort_order=sort_order).resolve_sort() == expected
