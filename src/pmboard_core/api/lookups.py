"""Parent lookups shared by routers.

A child requested under the wrong parent is reported as not found.
"""
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.orm import Session

from pmboard_core import crud, models


def require_project(db: Session, project_id: UUID) -> models.Project:
    project = crud.get_project(db, project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


def require_feature(db: Session, project_id: UUID, feature_id: UUID) -> models.Feature:
    require_project(db, project_id)
    feature = crud.get_feature(db, feature_id, project_id=project_id)
    if not feature:
        raise HTTPException(status_code=404, detail="Feature not found")
    return feature


def require_milestone(db: Session, project_id: UUID, milestone_id: UUID) -> models.Milestone:
    require_project(db, project_id)
    milestone = crud.get_milestone(db, milestone_id, project_id=project_id)
    if not milestone:
        raise HTTPException(status_code=404, detail="Milestone not found")
    return milestone
