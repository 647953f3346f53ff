"""Subtask (feature checklist) API endpoints."""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from pmboard_core import crud, positions, schemas

from ...database import get_db
from ..lookups import require_feature

logger = logging.getLogger("pmboard-core.subtasks")

router = APIRouter(tags=["subtasks"])


def _require_subtask(db: Session, feature_id: UUID, subtask_id: UUID):
    subtask = crud.get_subtask(db, subtask_id, feature_id)
    if not subtask:
        raise HTTPException(status_code=404, detail="Subtask not found")
    return subtask


@router.get("/{project_id}/features/{feature_id}/subtasks", response_model=list[schemas.SubtaskResponse])
def list_subtasks(
    project_id: UUID,
    feature_id: UUID,
    db: Session = Depends(get_db),
):
    """List a feature's checklist in order."""
    require_feature(db, project_id, feature_id)
    return crud.get_subtasks(db, feature_id)


@router.post(
    "/{project_id}/features/{feature_id}/subtasks",
    response_model=schemas.SubtaskResponse,
    status_code=201,
)
def create_subtask(
    project_id: UUID,
    feature_id: UUID,
    subtask: schemas.SubtaskCreate,
    db: Session = Depends(get_db),
):
    """Append a subtask to the end of the checklist."""
    feature = require_feature(db, project_id, feature_id)
    return crud.create_subtask(db, feature, subtask.title)


@router.put("/{project_id}/features/{feature_id}/subtasks/{subtask_id}", response_model=schemas.SubtaskResponse)
def update_subtask(
    project_id: UUID,
    feature_id: UUID,
    subtask_id: UUID,
    subtask_update: schemas.SubtaskUpdate,
    db: Session = Depends(get_db),
):
    """
    Rename a subtask or flip its status (OPEN / DONE).
    """
    feature = require_feature(db, project_id, feature_id)
    subtask = _require_subtask(db, feature_id, subtask_id)

    try:
        return crud.update_subtask(db, feature, subtask, subtask_update.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.patch(
    "/{project_id}/features/{feature_id}/subtasks/{subtask_id}/position",
    response_model=schemas.SubtaskResponse,
    responses={204: {"description": "Subtask was deleted concurrently; nothing moved"}},
)
def reorder_subtask(
    project_id: UUID,
    feature_id: UUID,
    subtask_id: UUID,
    update: schemas.PositionUpdate,
    db: Session = Depends(get_db),
):
    """Move a subtask to **position** within its checklist."""
    require_feature(db, project_id, feature_id)
    _require_subtask(db, feature_id, subtask_id)

    subtask = positions.reorder_subtask(db, subtask_id, update.position)
    if subtask is None:
        return Response(status_code=204)
    return subtask


@router.delete("/{project_id}/features/{feature_id}/subtasks/{subtask_id}", status_code=204)
def delete_subtask(
    project_id: UUID,
    feature_id: UUID,
    subtask_id: UUID,
    db: Session = Depends(get_db),
):
    """Delete a subtask."""
    require_feature(db, project_id, feature_id)
    crud.delete_subtask(db, _require_subtask(db, feature_id, subtask_id))
