"""Projects API endpoints."""
import logging
from math import ceil
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from pmboard_core import crud, models, schemas

from ...database import get_db
from ...storage import AttachmentStorage, get_storage
from ..lookups import require_project

logger = logging.getLogger("pmboard-core.projects")

router = APIRouter(tags=["projects"])


def project_responses(db: Session, projects: list[models.Project]) -> list[schemas.ProjectResponse]:
    """Serialize projects with their feature counts."""
    counts = crud.get_feature_counts(db, [p.id for p in projects])
    return [
        schemas.ProjectResponse.model_validate(p).model_copy(update={"feature_count": counts.get(p.id, 0)})
        for p in projects
    ]


@router.post("/", response_model=schemas.ProjectResponse, status_code=201)
def create_project(
    project: schemas.ProjectCreate,
    db: Session = Depends(get_db),
):
    """
    Create a new project.

    - **name**: Project name
    - **description**: Optional description
    - **repo_url**: Optional repository URL
    - **context_md**: Optional mission/context markdown included in the agent snapshot
    """
    result = crud.create_project(
        db=db,
        name=project.name,
        description=project.description,
        repo_url=project.repo_url,
        context_md=project.context_md,
    )
    logger.info(f"Created project '{result.name}' (ID: {result.id})")
    return result


@router.get("/", response_model=schemas.ProjectListResponse)
def list_projects(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    search: Optional[str] = Query(None, description="Search in name and description"),
    db: Session = Depends(get_db),
):
    """
    List projects, newest first.

    - **page**: Page number (starts at 1)
    - **page_size**: Number of items per page (1-100)
    - **search**: Search text in name and description
    """
    skip = (page - 1) * page_size
    projects, total = crud.get_projects(db=db, search=search, skip=skip, limit=page_size)

    return schemas.ProjectListResponse(
        items=project_responses(db, projects),
        total=total,
        page=page,
        page_size=page_size,
        total_pages=ceil(total / page_size) if total > 0 else 0,
    )


@router.get("/{project_id}", response_model=schemas.ProjectResponse)
def get_project(
    project_id: UUID,
    db: Session = Depends(get_db),
):
    """
    Get a specific project by ID.
    """
    project = require_project(db, project_id)
    return project_responses(db, [project])[0]


@router.put("/{project_id}", response_model=schemas.ProjectResponse)
def update_project(
    project_id: UUID,
    project_update: schemas.ProjectUpdate,
    db: Session = Depends(get_db),
):
    """
    Update a project. Only the fields sent are changed; send null to clear
    an optional field.
    """
    existing = require_project(db, project_id)

    try:
        project = crud.update_project(db, existing, project_update.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return project_responses(db, [project])[0]


@router.delete("/{project_id}", status_code=204)
def delete_project(
    project_id: UUID,
    db: Session = Depends(get_db),
    storage: AttachmentStorage = Depends(get_storage),
):
    """
    Delete a project with all its features, milestones and changelog
    (cascading delete). Attachment files are removed afterwards.

    Use with caution!
    """
    require_project(db, project_id)
    filenames = crud.get_attachment_filenames(db, project_id)

    crud.delete_project(db, project_id)
    for filename in filenames:
        storage.delete(filename)
    logger.info(f"Deleted project {project_id} ({len(filenames)} attachment files)")
