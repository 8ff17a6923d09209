"""
Tag metadata extraction using mutagen.

extract_tags() never raises: unreadable files produce an empty ExtractedTags and
the upload pipeline fills in fallback values.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import mutagen
from mutagen.flac import Picture
from mutagen.id3 import ID3, ID3NoHeaderError
from mutagen.mp4 import MP4Cover, MP4Tags

logger = logging.getLogger(__name__)

# Cover formats we keep as side files, with the extension they are stored under.
PICTURE_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
}

_ID3_FRAMES = {
    "title": "TIT2",
    "artist": "TPE1",
    "album": "TALB",
    "album_artist": "TPE2",
    "composer": "TCOM",
    "genre": "TCON",
    "year": "TDRC",
    "track_number": "TRCK",
    "disc_number": "TPOS",
}

_MP4_ATOMS = {
    "title": "\xa9nam",
    "artist": "\xa9ART",
    "album": "\xa9alb",
    "album_artist": "aART",
    "composer": "\xa9wrt",
    "genre": "\xa9gen",
    "year": "\xa9day",
}

_VORBIS_KEYS = {
    "title": "title",
    "artist": "artist",
    "album": "album",
    "album_artist": "albumartist",
    "composer": "composer",
    "genre": "genre",
    "year": "date",
    "track_number": "tracknumber",
    "disc_number": "discnumber",
}


@dataclass
class ExtractedTags:
    """Normalized result of parsing one audio file."""

    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    album_artist: Optional[str] = None
    composer: Optional[str] = None
    genre: Optional[str] = None
    year: Optional[int] = None
    track_number: Optional[int] = None
    disc_number: Optional[int] = None
    duration: Optional[float] = None
    bitrate: Optional[int] = None
    sample_rate: Optional[int] = None
    codec: Optional[str] = None
    picture: Optional[Tuple[str, bytes]] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    def as_tag_bag(self) -> Dict[str, Any]:
        """JSON-safe view of the extracted values, stored verbatim on the record."""
        bag = {
            name: getattr(self, name)
            for name in (
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
            )
            if getattr(self, name) is not None
        }
        if self.raw:
            bag["raw"] = self.raw
        return bag


def _first_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
        if value is None:
            return None
    text_attr = getattr(value, "text", None)
    if isinstance(text_attr, str):
        # ID3TimeStamp exposes its whole value as a single string.
        value = text_attr
    elif text_attr is not None:
        return _first_text(list(text_attr))
    text = str(value).strip()
    return text or None


def _leading_int(value: Optional[str]) -> Optional[int]:
    """'3/12' -> 3, '2004-05-01' -> 2004, garbage -> None."""
    if not value:
        return None
    head = value.replace("/", "-").split("-", 1)[0].strip()
    try:
        return int(head)
    except ValueError:
        return None


def _apply_text_fields(result: ExtractedTags, values: Dict[str, Optional[str]]) -> None:
    for name, text in values.items():
        if text is None:
            continue
        if name in ("year", "track_number", "disc_number"):
            setattr(result, name, _leading_int(text))
        else:
            setattr(result, name, text)


def _read_id3(tags: ID3, result: ExtractedTags) -> None:
    _apply_text_fields(result, {name: _first_text(tags.get(frame)) for name, frame in _ID3_FRAMES.items()})
    for frame in tags.getall("APIC"):
        if frame.mime in PICTURE_EXTENSIONS:
            result.picture = (frame.mime, bytes(frame.data))
            break


def _read_mp4(tags: MP4Tags, result: ExtractedTags) -> None:
    _apply_text_fields(result, {name: _first_text(tags.get(atom)) for name, atom in _MP4_ATOMS.items()})
    for atom, attribute in (("trkn", "track_number"), ("disk", "disc_number")):
        pairs = tags.get(atom)
        if pairs:
            setattr(result, attribute, int(pairs[0][0]))
    for cover in tags.get("covr", []):
        mime = "image/png" if cover.imageformat == MP4Cover.FORMAT_PNG else "image/jpeg"
        result.picture = (mime, bytes(cover))
        break


def _read_vorbis(audio: Any, result: ExtractedTags) -> None:
    tags = audio.tags
    _apply_text_fields(result, {name: _first_text(tags.get(key)) for name, key in _VORBIS_KEYS.items()})

    pictures: List[Picture] = list(getattr(audio, "pictures", []) or [])
    for encoded in tags.get("metadata_block_picture", []):
        try:
            pictures.append(Picture(base64.b64decode(encoded)))
        except (ValueError, mutagen.MutagenError):
            logger.debug("vorbis_picture_undecodable")
    for picture in pictures:
        if picture.mime in PICTURE_EXTENSIONS:
            result.picture = (picture.mime, bytes(picture.data))
            break


def _raw_tag_values(tags: Any) -> Dict[str, Any]:
    """Text-only copy of the container's tags; binary frames are dropped."""
    raw: Dict[str, Any] = {}
    try:
        items = list(tags.items())
    except (AttributeError, TypeError):
        return raw
    for key, value in items:
        if str(key).startswith(("APIC", "covr", "metadata_block_picture")):
            continue
        text = _first_text(value)
        if text is not None and len(text) <= 1024:
            raw[str(key)] = text
    return raw


def _read_stream_info(audio: Any, result: ExtractedTags) -> None:
    info = getattr(audio, "info", None)
    if info is None:
        return
    length = getattr(info, "length", None)
    if length:
        result.duration = round(float(length), 3)
    bitrate = getattr(info, "bitrate", None)
    if bitrate:
        result.bitrate = int(bitrate / 1000)
    sample_rate = getattr(info, "sample_rate", None)
    if sample_rate:
        result.sample_rate = int(sample_rate)
    codec = getattr(info, "codec", None)
    result.codec = str(codec) if codec else type(audio).__name__.lower()


# PUBLIC_INTERFACE
def extract_tags(path: Path) -> ExtractedTags:
    """
    Parse tag metadata and stream parameters from an audio file.

    Files whose audio stream mutagen cannot decode still get their ID3 tags read,
    if they carry any.
    """
    result = ExtractedTags()
    try:
        audio = mutagen.File(str(path))
    except (mutagen.MutagenError, OSError, ValueError) as exc:
        logger.info("tag_parse_failed: path=%s exc=%s", path, exc.__class__.__name__)
        audio = None

    if audio is None:
        try:
            tags = ID3(str(path))
        except (ID3NoHeaderError, mutagen.MutagenError, OSError, ValueError):
            return result
        _read_id3(tags, result)
        result.raw = _raw_tag_values(tags)
        return result

    try:
        _read_stream_info(audio, result)
        tags = audio.tags
        if tags is None:
            return result
        if isinstance(tags, ID3):
            _read_id3(tags, result)
        elif isinstance(tags, MP4Tags):
            _read_mp4(tags, result)
        else:
            _read_vorbis(audio, result)
        result.raw = _raw_tag_values(tags)
    except (mutagen.MutagenError, AttributeError, KeyError, TypeError, ValueError) as exc:
        # Keep whatever was read before the container misbehaved.
        logger.info("tag_read_incomplete: path=%s exc=%s", path, exc.__class__.__name__)
    return result


def picture_extension(mime: str) -> Optional[str]:
    return PICTURE_EXTENSIONS.get(mime.lower())
