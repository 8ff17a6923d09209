"""
Flat-file backend for AudioFileRepository.

Each record is a `{id}.metadata.json` sidecar next to its `{id}.{ext}` payload.
Sidecars are written to a temporary name and hard-linked into place, so readers
never observe a half-written record and an existing id is never overwritten.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Iterator, List, Tuple

from pydantic import ValidationError

from src.api.errors import ConflictError, InternalError, NotFoundError
from src.api.repository import SEARCH_FIELDS, ArchiveQuery, AudioFileRepository
from src.api.schemas import AudioFileRecord

logger = logging.getLogger(__name__)

SIDECAR_SUFFIX = ".metadata.json"
_ID_RE = re.compile(r"^[0-9a-f]{32}$")


def _sort_value(value):
    if value is None:
        return (1, "")
    if isinstance(value, str):
        return (0, value.lower())
    return (0, value)


class JsonSidecarRepository(AudioFileRepository):
    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def sidecar_path(self, file_id: str) -> Path:
        return self.directory / f"{file_id}{SIDECAR_SUFFIX}"

    def create(self, record: AudioFileRecord) -> AudioFileRecord:
        self.directory.mkdir(parents=True, exist_ok=True)
        if any(existing.filename == record.filename for existing in self._iter_records()):
            raise ConflictError("filename")

        final = self.sidecar_path(record.id)
        staging = final.with_name(f".{final.name}.{os.getpid()}.tmp")
        payload = record.model_dump_json(by_alias=True, indent=2)
        try:
            staging.write_text(payload, encoding="utf-8")
            os.link(staging, final)
        except FileExistsError as exc:
            raise ConflictError("id") from exc
        except OSError as exc:
            logger.exception("sidecar_write_failed: id=%s path=%s", record.id, final)
            raise InternalError("Failed to store audio metadata.") from exc
        finally:
            staging.unlink(missing_ok=True)
        return record

    def get(self, file_id: str) -> AudioFileRecord:
        if not _ID_RE.match(file_id):
            raise NotFoundError("File not found.")
        path = self.sidecar_path(file_id)
        try:
            return self._load(path)
        except FileNotFoundError as exc:
            raise NotFoundError("File not found.") from exc
        except (OSError, ValueError) as exc:
            logger.exception("sidecar_read_failed: id=%s path=%s", file_id, path)
            raise InternalError("Failed to read audio metadata.") from exc

    def list(self, query: ArchiveQuery) -> Tuple[List[AudioFileRecord], int]:
        records = list(self._iter_records())

        term = query.search_term
        if term:
            needle = term.lower()
            records = [
                r
                for r in records
                if any(needle in (getattr(r, name) or "").lower() for name in SEARCH_FIELDS)
            ]

        attribute, descending = query.resolve_sort()
        # Two stable passes: id ascending breaks ties, then the requested column.
        records.sort(key=lambda r: r.id)
        records.sort(key=lambda r: _sort_value(getattr(r, attribute)), reverse=descending)

        return records[query.offset : query.offset + query.page_size], len(records)

    def delete(self, file_id: str) -> AudioFileRecord:
        record = self.get(file_id)
        try:
            self.sidecar_path(file_id).unlink()
        except FileNotFoundError as exc:
            raise NotFoundError("File not found.") from exc
        except OSError as exc:
            raise InternalError("Failed to delete audio metadata.") from exc
        return record

    @staticmethod
    def _load(path: Path) -> AudioFileRecord:
        return AudioFileRecord.model_validate(json.loads(path.read_text(encoding="utf-8")))

    def _iter_records(self) -> Iterator[AudioFileRecord]:
        if not self.directory.is_dir():
            return
        for path in sorted(self.directory.glob(f"*{SIDECAR_SUFFIX}")):
            try:
                yield self._load(path)
            except FileNotFoundError:
                # Deleted between glob and read.
                continue
            except (OSError, ValueError, ValidationError):
                logger.warning("sidecar_skipped_unreadable: path=%s", path)
