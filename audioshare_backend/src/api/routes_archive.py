"""
Archive endpoint:
- GET /archive?page=&search=&sortBy=&sortOrder=
"""

from __future__ import annotations

import math
from typing import Optional

from fastapi import APIRouter, Depends, Query

from src.api.errors import BadRequestError
from src.api.repository import ArchiveQuery, AudioFileRepository, repository_dep
from src.api.schemas import ArchivePage, AudioFileSummary, ErrorResponse
from src.api.settings import Settings, get_settings

router = APIRouter(tags=["Archive"])


@router.get(
    "/archive",
    response_model=ArchivePage,
    summary="List stored files",
    description=(
        "Paginated listing with optional case-insensitive search over filename, title, artist "
        "and album. sortBy accepts filename, title, artist, album, size or uploadDate; anything "
        "else sorts by upload date, newest first."
    ),
    operation_id="list_archive",
    responses={400: {"model": ErrorResponse}},
)
def list_archive(
    page: int = Query(1, description="1-based page number."),
    search: Optional[str] = Query(None, description="Substring to match."),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder", description="asc or desc."),
    settings: Settings = Depends(get_settings),
    repository: AudioFileRepository = Depends(repository_dep),
) -> ArchivePage:
    """Return one page of archive summaries."""
    if page < 1:
        raise BadRequestError("page must be 1 or greater.")

    query = ArchiveQuery(
        page=page,
        page_size=settings.page_size,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    records, total = repository.list(query)
    total_pages = math.ceil(total / settings.page_size) if total else 0

    return ArchivePage(
        items=[AudioFileSummary.from_record(r) for r in records],
        total=total,
        page=page,
        page_size=settings.page_size,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_previous=page > 1,
    )
