"""Agent API endpoints.

Same data model as the board endpoints, shaped for autonomous coding agents:
enum inputs are forgiving ("in progress", "IN-PROGRESS"), feature updates
accept a mixed subtask batch, and every change is logged with source=agent.
"""
import logging
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import TypeAdapter, ValidationError
from sqlalchemy.orm import Session

from pmboard_core import changelog, crud, schemas
from pmboard_core.markdown_utils import build_context_document, render_context_markdown
from pmboard_core.models import ChangeSource

from ...config import get_settings
from ...database import get_db
from ..lookups import require_milestone, require_project
from .changelog import changelog_page
from .features import feature_list_item
from .projects import project_responses

logger = logging.getLogger("pmboard-core.agent")

router = APIRouter(tags=["agent"])

_STATUS = TypeAdapter(schemas.AgentFeatureStatus)
_PRIORITY = TypeAdapter(schemas.AgentPriority)


def _parse_filter(adapter: TypeAdapter, name: str, value: Optional[str]):
    """Validate a forgiving enum query parameter (422 on unknown values)."""
    if value is None:
        return None
    try:
        return adapter.validate_python(value)
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail=[{"loc": ["query", name], "msg": err["msg"], "type": err["type"]} for err in e.errors()],
        )


# ============================================================================
# Projects
# ============================================================================

@router.get("/projects", response_model=list[schemas.ProjectResponse])
def list_projects(db: Session = Depends(get_db)):
    """List all projects, newest first."""
    projects, _ = crud.get_projects(db, limit=None)
    return project_responses(db, projects)


@router.get("/projects/{project_id}", response_model=schemas.ProjectResponse)
def get_project(project_id: UUID, db: Session = Depends(get_db)):
    """Get a project."""
    return project_responses(db, [require_project(db, project_id)])[0]


@router.patch("/projects/{project_id}", response_model=schemas.ProjectResponse)
def update_project(
    project_id: UUID,
    project_update: schemas.AgentProjectUpdate,
    db: Session = Depends(get_db),
):
    """Update project details, e.g. the mission/context markdown."""
    project = require_project(db, project_id)

    try:
        project = crud.update_project(db, project, project_update.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"Agent updated project {project_id}")
    return project_responses(db, [project])[0]


@router.get(
    "/projects/{project_id}/context",
    responses={200: {"content": {"text/markdown": {}, "application/json": {}}}},
)
def get_project_context(
    project_id: UUID,
    format: Literal["markdown", "json"] = Query("markdown", description="markdown (default) or json"),
    db: Session = Depends(get_db),
):
    """
    Live project snapshot for agents: project facts, mission context, board
    summary, milestones, features by column with checklists and specs, recent
    activity, and the recommended agent workflow.

    Never cached; re-fetch after every change.
    """
    settings = get_settings()
    project = require_project(db, project_id)
    features = crud.get_project_features(db, project_id)
    milestones = crud.get_milestones(db, project_id)
    recent = changelog.get_recent_activity(
        db,
        project_id,
        fetch=settings.context_activity_fetch,
        limit=settings.context_activity_limit,
    )

    if format == "json":
        return build_context_document(project, features, milestones, recent)

    content = render_context_markdown(project, features, milestones, recent, base_url=settings.public_base_url)
    return Response(content=content, media_type="text/markdown; charset=utf-8")


@router.get("/projects/{project_id}/changelog", response_model=schemas.ChangeLogListResponse)
def get_changelog(
    project_id: UUID,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    dedupe: bool = Query(False, description="Hide near-duplicate entries"),
    db: Session = Depends(get_db),
):
    """Project activity, newest first (near-duplicates hidden with dedupe=true)."""
    return changelog_page(db, project_id, page, page_size, dedupe)


# ============================================================================
# Milestones
# ============================================================================

@router.get("/projects/{project_id}/milestones", response_model=list[schemas.MilestoneResponse])
def list_milestones(project_id: UUID, db: Session = Depends(get_db)):
    """List milestones in roadmap order with their features."""
    require_project(db, project_id)
    return crud.get_milestones(db, project_id)


@router.post("/projects/{project_id}/milestones", response_model=schemas.MilestoneResponse, status_code=201)
def create_milestone(
    project_id: UUID,
    milestone: schemas.AgentMilestoneCreate,
    db: Session = Depends(get_db),
):
    """Create a milestone at the end of the roadmap, or at **position**."""
    require_project(db, project_id)
    result = crud.create_milestone(
        db,
        project_id,
        name=milestone.name,
        description=milestone.description,
        target_date=milestone.target_date,
        position=milestone.position,
    )
    logger.info(f"Agent created milestone '{result.name}' (ID: {result.id})")
    return result


@router.patch(
    "/projects/{project_id}/milestones/{milestone_id}",
    response_model=schemas.MilestoneResponse,
    responses={204: {"description": "Milestone was deleted concurrently"}},
)
def update_milestone(
    project_id: UUID,
    milestone_id: UUID,
    milestone_update: schemas.AgentMilestoneUpdate,
    db: Session = Depends(get_db),
):
    """Update a milestone; **position** moves it on the roadmap."""
    milestone = require_milestone(db, project_id, milestone_id)
    changes = milestone_update.model_dump(exclude_unset=True)
    position = changes.pop("position", None)

    try:
        milestone = crud.update_milestone(db, milestone, changes, position=position)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if milestone is None:
        return Response(status_code=204)
    return milestone


@router.delete("/projects/{project_id}/milestones/{milestone_id}", status_code=204)
def delete_milestone(
    project_id: UUID,
    milestone_id: UUID,
    db: Session = Depends(get_db),
):
    """Delete a milestone; its features become unassigned."""
    crud.delete_milestone(db, require_milestone(db, project_id, milestone_id))
    logger.info(f"Agent deleted milestone {milestone_id}")


# ============================================================================
# Features
# ============================================================================

@router.get("/features", response_model=schemas.AgentFeatureListResponse)
def list_features(
    project_id: Optional[UUID] = Query(None, description="Filter by project"),
    status: Optional[str] = Query(None, description='Filter by status, e.g. "in_progress"'),
    priority: Optional[str] = Query(None, description='Filter by priority, e.g. "high"'),
    q: Optional[str] = Query(None, description="Search in title, description and spec"),
    limit: int = Query(50, ge=1, le=100, description="Maximum number of features"),
    db: Session = Depends(get_db),
):
    """
    List features across projects, in board order (column, then position).
    """
    if project_id is not None:
        require_project(db, project_id)

    features, _ = crud.search_features(
        db,
        project_id=project_id,
        status=_parse_filter(_STATUS, "status", status),
        priority=_parse_filter(_PRIORITY, "priority", priority),
        search=q,
        limit=limit,
    )
    items = [feature_list_item(f) for f in features]
    return schemas.AgentFeatureListResponse(items=items, count=len(items))


@router.post("/features", response_model=schemas.FeatureResponse, status_code=201)
def create_feature(
    feature: schemas.AgentFeatureCreate,
    db: Session = Depends(get_db),
):
    """
    Create a feature, optionally with an initial checklist.

    - **project_id**: Owning project
    - **subtasks**: Optional list of subtask titles, in order
    - **status** / **priority**: Case-insensitive ("in progress", "high")
    """
    require_project(db, feature.project_id)
    fields = schemas.FeatureCreate.model_validate(feature.model_dump(exclude={"project_id", "subtasks"}))

    try:
        result = crud.create_feature(
            db,
            feature.project_id,
            fields,
            subtask_titles=feature.subtasks,
            source=ChangeSource.AGENT,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"Agent created feature '{result.title}' (ID: {result.id})")
    return result


@router.get("/features/{feature_id}", response_model=schemas.FeatureResponse)
def get_feature(feature_id: UUID, db: Session = Depends(get_db)):
    """Get a feature with its subtasks, attachments and spec."""
    feature = crud.get_feature(db, feature_id)
    if not feature:
        raise HTTPException(status_code=404, detail="Feature not found")
    return feature


@router.patch("/features/{feature_id}", response_model=schemas.FeatureResponse)
def update_feature(
    feature_id: UUID,
    feature_update: schemas.AgentFeatureUpdate,
    db: Session = Depends(get_db),
):
    """
    Update a feature and its checklist in one request.

    **subtasks** mixes new subtask titles and status changes:
    `["Write tests", {"id": "<subtaskId>", "status": "done"}]`. If any
    referenced subtask does not belong to the feature, nothing is applied.
    """
    feature = crud.get_feature(db, feature_id)
    if not feature:
        raise HTTPException(status_code=404, detail="Feature not found")

    changes = feature_update.model_dump(exclude_unset=True, exclude={"subtasks"})

    try:
        result = crud.update_feature(
            db,
            feature,
            changes,
            subtask_ops=feature_update.subtasks,
            source=ChangeSource.AGENT,
        )
    except crud.SubtaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"Agent updated feature {feature_id} ({len(feature_update.subtasks)} subtask ops)")
    return result
