"""Tests for mutagen-backed tag extraction."""

from mutagen.id3 import ID3, TDRC

from conftest import PNG_COVER, make_tagged_mp3

from src.api.tags import ExtractedTags, extract_tags, picture_extension


def test_extracts_id3_fields_and_cover(tmp_path):
    path = tmp_path / "song.mp3"
    make_tagged_mp3(path, title="Naima", artist="John Coltrane", album="Giant Steps", track="6/7")

    tags = extract_tags(path)

    assert tags.title == "Naima"
    assert tags.artist == "John Coltrane"
    assert tags.album == "Giant Steps"
    assert tags.track_number == 6
    assert tags.picture == ("image/png", PNG_COVER)


def test_tag_bag_is_json_safe(tmp_path):
    path = tmp_path / "song.mp3"
    make_tagged_mp3(path)

    bag = extract_tags(path).as_tag_bag()

    assert bag["title"] == "Blue Train"
    assert "picture" not in bag
    assert all(not key.startswith("APIC") for key in bag.get("raw", {}))


def test_file_without_cover(tmp_path):
    path = tmp_path / "song.mp3"
    make_tagged_mp3(path, cover=None)

    assert extract_tags(path).picture is None


def test_garbage_file_yields_empty_tags(tmp_path):
    path = tmp_path / "noise.mp3"
    path.write_bytes(b"definitely not audio")

    assert extract_tags(path) == ExtractedTags()


def test_missing_file_yields_empty_tags(tmp_path):
    assert extract_tags(tmp_path / "missing.flac") == ExtractedTags()


def test_picture_extension():
    assert picture_extension("image/jpeg") == "jpg"
    assert picture_extension("IMAGE/PNG") == "png"
    assert picture_extension("image/gif") is None


def test_year_from_id3_timestamp(tmp_path):
    path = tmp_path / "song.mp3"
    make_tagged_mp3(path)
    id3 = ID3(str(path))
    id3.add(TDRC(encoding=3, text="2004-05-01"))
    id3.save(str(path))

    tags = extract_tags(path)

    assert tags.year == 2004
    assert tags.raw["TDRC"] == "2004-05-01"
