"""Features API endpoints (board cards)."""
import logging
from math import ceil
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from pmboard_core import crud, models, schemas
from pmboard_core.markdown_utils import export_filename, render_feature_export

from ...database import get_db
from ...storage import AttachmentStorage, get_storage
from ..lookups import require_feature, require_project

logger = logging.getLogger("pmboard-core.features")

router = APIRouter(tags=["features"])


def feature_list_item(feature: models.Feature) -> schemas.FeatureListItem:
    """Serialize a feature for listings, with subtask progress counts."""
    item = schemas.FeatureListItem.model_validate(feature)
    return item.model_copy(update={
        "subtask_count": len(feature.subtasks),
        "done_subtask_count": sum(1 for s in feature.subtasks if s.status == models.SubtaskStatus.DONE),
    })


@router.get("/features/", response_model=schemas.FeatureListResponse)
def search_features(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    project_id: Optional[UUID] = Query(None, description="Filter by project"),
    status: Optional[models.FeatureStatus] = Query(None, description="Filter by status"),
    priority: Optional[models.Priority] = Query(None, description="Filter by priority"),
    search: Optional[str] = Query(None, description="Search in title, description and spec"),
    db: Session = Depends(get_db),
):
    """
    Search features across projects with optional filtering and pagination.

    - **page**: Page number (starts at 1)
    - **page_size**: Number of items per page (1-100)
    - **project_id**: Filter by project
    - **status**: Filter by status (e.g. IN_PROGRESS)
    - **priority**: Filter by priority (e.g. HIGH)
    - **search**: Case-insensitive text search in title, description and spec
    """
    if project_id is not None:
        require_project(db, project_id)

    skip = (page - 1) * page_size
    features, total = crud.search_features(
        db=db,
        project_id=project_id,
        status=status,
        priority=priority,
        search=search,
        skip=skip,
        limit=page_size,
    )

    return schemas.FeatureListResponse(
        items=[feature_list_item(f) for f in features],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=ceil(total / page_size) if total > 0 else 0,
    )


@router.get("/projects/{project_id}/features", response_model=list[schemas.FeatureListItem])
def list_project_features(
    project_id: UUID,
    status: Optional[models.FeatureStatus] = Query(None, description="Only this column"),
    db: Session = Depends(get_db),
):
    """
    List a project's features in board order (column, then position).
    """
    require_project(db, project_id)
    return [feature_list_item(f) for f in crud.get_project_features(db, project_id, status=status)]


@router.post("/projects/{project_id}/features", response_model=schemas.FeatureResponse, status_code=201)
def create_feature(
    project_id: UUID,
    feature: schemas.FeatureCreate,
    db: Session = Depends(get_db),
):
    """
    Create a feature at the end of its status column.

    - **title**: Feature title
    - **description**: Optional short description
    - **spec**: Optional markdown specification
    - **priority**: LOW, MEDIUM (default), HIGH or URGENT
    - **status**: Column (default BACKLOG)
    - **branch_url** / **pr_url**: Optional links
    - **milestone_id**: Optional milestone in the same project
    """
    require_project(db, project_id)

    try:
        result = crud.create_feature(db, project_id, feature)
    except ValueError as e:
        logger.warning(f"Invalid feature: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"Created feature '{result.title}' (ID: {result.id}) in project {project_id}")
    return result


@router.get("/projects/{project_id}/features/{feature_id}", response_model=schemas.FeatureResponse)
def get_feature(
    project_id: UUID,
    feature_id: UUID,
    db: Session = Depends(get_db),
):
    """
    Get a feature with its subtasks and attachments.
    """
    return require_feature(db, project_id, feature_id)


@router.put("/projects/{project_id}/features/{feature_id}", response_model=schemas.FeatureResponse)
def update_feature(
    project_id: UUID,
    feature_id: UUID,
    feature_update: schemas.FeatureUpdate,
    db: Session = Depends(get_db),
):
    """
    Update a feature. Only the fields sent are changed.

    A status change appends the feature to the end of the new column; use
    the position endpoint to drop it at a specific index.
    """
    feature = require_feature(db, project_id, feature_id)

    try:
        return crud.update_feature(db, feature, feature_update.model_dump(exclude_unset=True))
    except ValueError as e:
        logger.warning(f"Invalid feature update for {feature_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e))


@router.patch(
    "/projects/{project_id}/features/{feature_id}/position",
    response_model=schemas.FeatureResponse,
    responses={204: {"description": "Feature was deleted concurrently; nothing moved"}},
)
def move_feature(
    project_id: UUID,
    feature_id: UUID,
    move: schemas.FeatureMoveRequest,
    db: Session = Depends(get_db),
):
    """
    Drag-and-drop move: put the feature in column **status** at index
    **position** (clamped to the column length). Positions in the target
    column are rewritten in the same transaction.
    """
    require_feature(db, project_id, feature_id)

    feature = crud.move_feature(db, feature_id, move.status, move.position)
    if feature is None:
        return Response(status_code=204)
    return feature


@router.delete("/projects/{project_id}/features/{feature_id}", status_code=204)
def delete_feature(
    project_id: UUID,
    feature_id: UUID,
    db: Session = Depends(get_db),
    storage: AttachmentStorage = Depends(get_storage),
):
    """
    Delete a feature with its subtasks and attachments.
    """
    feature = require_feature(db, project_id, feature_id)
    filenames = [a.filename for a in feature.attachments]

    crud.delete_feature(db, feature)
    for filename in filenames:
        storage.delete(filename)
    logger.info(f"Deleted feature {feature_id} from project {project_id}")


@router.get("/projects/{project_id}/features/{feature_id}/export")
def export_feature(
    project_id: UUID,
    feature_id: UUID,
    db: Session = Depends(get_db),
):
    """
    Download a feature as a markdown file (YAML frontmatter, spec, subtasks).
    """
    feature = require_feature(db, project_id, feature_id)
    content = render_feature_export(feature, feature.project.name)

    return Response(
        content=content,
        media_type="text/markdown; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(feature.title)}"'},
    )
