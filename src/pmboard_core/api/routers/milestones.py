"""Milestones (roadmap) API endpoints."""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from pmboard_core import crud, positions, schemas

from ...database import get_db
from ..lookups import require_milestone, require_project

logger = logging.getLogger("pmboard-core.milestones")

router = APIRouter(tags=["milestones"])


@router.get("/{project_id}/milestones", response_model=list[schemas.MilestoneResponse])
def list_milestones(
    project_id: UUID,
    db: Session = Depends(get_db),
):
    """List milestones in roadmap order, each with its assigned features."""
    require_project(db, project_id)
    return crud.get_milestones(db, project_id)


@router.post("/{project_id}/milestones", response_model=schemas.MilestoneResponse, status_code=201)
def create_milestone(
    project_id: UUID,
    milestone: schemas.MilestoneCreate,
    db: Session = Depends(get_db),
):
    """
    Create a milestone at the end of the roadmap.

    - **name**: Milestone name (e.g. "v1.0")
    - **description**: Optional description
    - **target_date**: Optional target date
    """
    require_project(db, project_id)
    result = crud.create_milestone(
        db,
        project_id,
        name=milestone.name,
        description=milestone.description,
        target_date=milestone.target_date,
    )
    logger.info(f"Created milestone '{result.name}' (ID: {result.id}) in project {project_id}")
    return result


@router.put("/{project_id}/milestones/{milestone_id}", response_model=schemas.MilestoneResponse)
def update_milestone(
    project_id: UUID,
    milestone_id: UUID,
    milestone_update: schemas.MilestoneUpdate,
    db: Session = Depends(get_db),
):
    """Update a milestone's name, description or target date."""
    milestone = require_milestone(db, project_id, milestone_id)

    try:
        return crud.update_milestone(db, milestone, milestone_update.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.patch(
    "/{project_id}/milestones/{milestone_id}/position",
    response_model=schemas.MilestoneResponse,
    responses={204: {"description": "Milestone was deleted concurrently; nothing moved"}},
)
def reorder_milestone(
    project_id: UUID,
    milestone_id: UUID,
    update: schemas.PositionUpdate,
    db: Session = Depends(get_db),
):
    """Move a milestone to **position** on the roadmap."""
    require_milestone(db, project_id, milestone_id)

    milestone = positions.reorder_milestone(db, milestone_id, update.position)
    if milestone is None:
        return Response(status_code=204)
    return milestone


@router.delete("/{project_id}/milestones/{milestone_id}", status_code=204)
def delete_milestone(
    project_id: UUID,
    milestone_id: UUID,
    db: Session = Depends(get_db),
):
    """
    Delete a milestone. Its features stay on the board, unassigned.
    """
    crud.delete_milestone(db, require_milestone(db, project_id, milestone_id))
    logger.info(f"Deleted milestone {milestone_id} from project {project_id}")
