"""
Byte-range streaming of stored payloads.

Only single `bytes=` ranges are honored. A header that cannot be parsed as one is
ignored and the whole file is served, as RFC 9110 allows; a parseable range that
lies outside the file is answered with 416.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

from starlette.responses import StreamingResponse

from src.api.errors import RangeNotSatisfiableError

logger = logging.getLogger(__name__)

READ_CHUNK_BYTES = 64 * 1024


@dataclass(frozen=True)
class ByteRange:
    start: int
    end: int  # inclusive

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, size: int) -> str:
        return f"bytes {self.start}-{self.end}/{size}"


# PUBLIC_INTERFACE
def parse_range_header(range_header: Optional[str], file_size: int, chunk_cap: int = 0) -> Optional[ByteRange]:
    """
    Parse a `Range: bytes=start-end` header against a payload of `file_size` bytes.

    Returns:
        The inclusive ByteRange to serve, or None when the header is absent or not a
        single byte range (serve the full body).

    Raises:
        RangeNotSatisfiableError: start beyond the payload, or start > end.
    """
    if not range_header:
        return None

    unit, sep, spec = range_header.strip().partition("=")
    if not sep or unit.strip().lower() != "bytes":
        return None
    spec = spec.strip()
    if "," in spec or "-" not in spec:
        return None

    start_s, end_s = (part.strip() for part in spec.split("-", 1))
    if not (start_s or end_s):
        return None
    if (start_s and not start_s.isdigit()) or (end_s and not end_s.isdigit()):
        return None

    if not start_s:
        # Suffix range: the last N bytes.
        suffix_len = int(end_s)
        if suffix_len == 0 or file_size == 0:
            raise RangeNotSatisfiableError(file_size)
        return ByteRange(max(file_size - suffix_len, 0), file_size - 1)

    start = int(start_s)
    if end_s:
        end = int(end_s)
    elif chunk_cap > 0:
        end = start + chunk_cap - 1
    else:
        end = file_size - 1

    if start >= file_size or start > end:
        raise RangeNotSatisfiableError(file_size)

    return ByteRange(start, min(end, file_size - 1))


def iter_file_range(path: Path, start: int, end: int, chunk_size: int = READ_CHUNK_BYTES) -> Iterator[bytes]:
    """
    Yield bytes [start, end] of `path` in chunks.

    Runs after the status line and headers have been sent, so a storage error can
    only cut the body short; it is logged and the response ends.
    """
    remaining = end - start + 1
    try:
        with path.open("rb") as f:
            f.seek(start)
            while remaining > 0:
                chunk = f.read(min(chunk_size, remaining))
                if not chunk:
                    break
                remaining -= len(chunk)
                yield chunk
    except OSError as exc:
        logger.warning(
            "stream_aborted: path=%s start=%s end=%s remaining=%s exc=%s",
            str(path),
            start,
            end,
            remaining,
            exc.__class__.__name__,
        )
        return
    if remaining > 0:
        logger.warning("stream_truncated: path=%s start=%s end=%s remaining=%s", str(path), start, end, remaining)


# PUBLIC_INTERFACE
def build_stream_response(
    path: Path,
    file_size: int,
    media_type: str,
    range_header: Optional[str],
    chunk_cap: int = 0,
) -> StreamingResponse:
    """Return a 200 (full) or 206 (partial) streaming response for a stored payload."""
    byte_range = parse_range_header(range_header, file_size, chunk_cap)
    headers = {"Accept-Ranges": "bytes"}

    if byte_range is None:
        headers["Content-Length"] = str(file_size)
        return StreamingResponse(
            iter_file_range(path, 0, file_size - 1),
            status_code=200,
            media_type=media_type,
            headers=headers,
        )

    headers["Content-Range"] = byte_range.content_range(file_size)
    headers["Content-Length"] = str(byte_range.length)
    return StreamingResponse(
        iter_file_range(path, byte_range.start, byte_range.end),
        status_code=206,
        media_type=media_type,
        headers=headers,
    )
