"""Project changelog (activity feed) API endpoints."""
from math import ceil
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from pmboard_core import changelog, schemas
from pmboard_core.changelog_dedupe import dedupe_changelog

from ...database import get_db
from ..lookups import require_project

router = APIRouter(tags=["changelog"])


def changelog_page(
    db: Session,
    project_id: UUID,
    page: int,
    page_size: int,
    dedupe: bool,
) -> schemas.ChangeLogListResponse:
    """
    One page of a project's changelog, newest first.

    Dedupe applies within the page; `total` always counts stored entries.
    """
    require_project(db, project_id)
    entries, total = changelog.get_entries(db, project_id, skip=(page - 1) * page_size, limit=page_size)
    if dedupe:
        entries = dedupe_changelog(entries)

    return schemas.ChangeLogListResponse(
        items=entries,
        count=len(entries),
        deduped=dedupe,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=ceil(total / page_size) if total > 0 else 0,
    )


@router.get("/{project_id}/changelog", response_model=schemas.ChangeLogListResponse)
def list_changelog(
    project_id: UUID,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=200, description="Items per page"),
    dedupe: bool = Query(False, description="Collapse repeats of the same event within 5 seconds"),
    db: Session = Depends(get_db),
):
    """
    Project activity feed, newest first.

    - **dedupe**: Hide near-duplicate entries (same event logged again within 5 s); off by default
    """
    return changelog_page(db, project_id, page, page_size, dedupe)
