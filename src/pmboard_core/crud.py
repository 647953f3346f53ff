"""CRUD operations for projects, features, subtasks, milestones and attachments."""
import logging
from datetime import datetime
from typing import Any, Optional, Sequence
from uuid import UUID

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session, selectinload

from . import changelog, models, positions, schemas
from .models import ChangeSource

logger = logging.getLogger("pmboard-core.crud")


class SubtaskNotFoundError(LookupError):
    """Raised when a batch update references a subtask the feature does not have."""

    def __init__(self, subtask_id: UUID):
        super().__init__(f"Subtask {subtask_id} not found on this feature")
        self.subtask_id = subtask_id


def _status_sort_expression():
    """Build SQLAlchemy CASE expression for board column order.

    In progress first, cancelled last (see models.STATUS_DISPLAY_ORDER).
    """
    return case(
        *[(models.Feature.status == status, order)
          for order, status in enumerate(models.STATUS_DISPLAY_ORDER)],
        else_=99
    )


def _validate_milestone(db: Session, project_id: UUID, milestone_id: Optional[UUID]) -> None:
    """Raise ValueError unless the milestone exists in the same project."""
    if milestone_id is None:
        return
    milestone = get_milestone(db, milestone_id, project_id=project_id)
    if not milestone:
        raise ValueError(f"Milestone {milestone_id} not found in this project")


# ============================================================================
# Project CRUD Operations
# ============================================================================

def create_project(
    db: Session,
    name: str,
    description: Optional[str] = None,
    repo_url: Optional[str] = None,
    context_md: Optional[str] = None,
) -> models.Project:
    """
    Create a new project.

    Args:
        db: Database session
        name: Project name
        description: Optional description
        repo_url: Optional repository URL
        context_md: Optional mission/context markdown for agents

    Returns:
        Created project instance
    """
    db_project = models.Project(
        name=name,
        description=description,
        repo_url=repo_url,
        context_md=context_md,
    )
    db.add(db_project)
    db.commit()
    db.refresh(db_project)
    logger.debug(f"Created project {db_project.id} ({db_project.name})")
    return db_project


def get_project(db: Session, project_id: UUID) -> Optional[models.Project]:
    """
    Get a project by ID.

    Returns:
        Project instance or None if not found
    """
    return db.query(models.Project).filter(models.Project.id == project_id).first()


def get_projects(
    db: Session,
    search: Optional[str] = None,
    skip: int = 0,
    limit: Optional[int] = 100,
) -> tuple[list[models.Project], int]:
    """
    Get projects, newest first, with optional search and pagination.

    Args:
        db: Database session
        search: Optional search in name and description
        skip: Number of records to skip
        limit: Maximum number of records to return (None for all)

    Returns:
        Tuple of (projects list, total count)
    """
    query = db.query(models.Project)

    if search:
        search_pattern = f"%{search}%"
        query = query.filter(
            or_(
                models.Project.name.ilike(search_pattern),
                models.Project.description.ilike(search_pattern),
            )
        )

    total = query.count()
    query = query.order_by(models.Project.created_at.desc()).offset(skip)
    if limit is not None:
        query = query.limit(limit)

    return query.all(), total


def get_feature_counts(db: Session, project_ids: Sequence[UUID]) -> dict[UUID, int]:
    """Count features per project in one query."""
    if not project_ids:
        return {}
    rows = (
        db.query(models.Feature.project_id, func.count(models.Feature.id))
        .filter(models.Feature.project_id.in_(project_ids))
        .group_by(models.Feature.project_id)
        .all()
    )
    return {project_id: count for project_id, count in rows}


def update_project(db: Session, db_project: models.Project, changes: dict[str, Any]) -> models.Project:
    """
    Apply a partial update to a project.

    Args:
        db: Database session
        db_project: Project to update
        changes: Fields that were explicitly sent (``model_dump(exclude_unset=True)``)

    Returns:
        Updated project
    """
    if "name" in changes and changes["name"] is None:
        raise ValueError("Project name cannot be empty")

    for name in ("name", "description", "repo_url", "context_md"):
        if name in changes:
            setattr(db_project, name, changes[name])

    db.commit()
    db.refresh(db_project)
    logger.debug(f"Updated project {db_project.id}")
    return db_project


def delete_project(db: Session, project_id: UUID) -> bool:
    """
    Delete a project with its features, milestones and changelog (cascading delete).

    Returns:
        True if deleted, False if not found
    """
    db_project = get_project(db, project_id)
    if not db_project:
        return False

    db.delete(db_project)
    db.commit()
    logger.debug(f"Deleted project {project_id}")
    return True


# ============================================================================
# Feature CRUD Operations
# ============================================================================

def create_feature(
    db: Session,
    project_id: UUID,
    feature: schemas.FeatureCreate,
    subtask_titles: Sequence[str] = (),
    source: ChangeSource = ChangeSource.HUMAN,
) -> models.Feature:
    """
    Create a feature at the end of its status column.

    Args:
        db: Database session
        project_id: Owning project
        feature: Validated feature fields
        subtask_titles: Optional initial checklist, in order
        source: Who is creating it (for the changelog)

    Returns:
        Created feature instance

    Raises:
        ValueError: If the milestone is not part of the project
    """
    _validate_milestone(db, project_id, feature.milestone_id)

    db_feature = models.Feature(
        project_id=project_id,
        title=feature.title,
        description=feature.description,
        spec=feature.spec,
        priority=feature.priority,
        status=feature.status,
        position=positions.next_feature_position(db, project_id, feature.status),
        branch_url=feature.branch_url,
        pr_url=feature.pr_url,
        milestone_id=feature.milestone_id,
    )
    db_feature.subtasks = [
        models.Subtask(title=title, position=index)
        for index, title in enumerate(subtask_titles)
    ]
    db.add(db_feature)
    db.commit()
    db.refresh(db_feature)
    logger.debug(f"Created feature {db_feature.id} in project {project_id} at {db_feature.status.value}@{db_feature.position}")

    changelog.emit(db, [changelog.feature_created_entry(db_feature)], source=source)
    return db_feature


def get_feature(
    db: Session,
    feature_id: UUID,
    project_id: Optional[UUID] = None,
) -> Optional[models.Feature]:
    """
    Get a feature by ID, optionally requiring it to belong to a project.

    Returns:
        Feature instance or None if not found (or in another project)
    """
    query = db.query(models.Feature).filter(models.Feature.id == feature_id)
    if project_id is not None:
        query = query.filter(models.Feature.project_id == project_id)
    return query.first()


def get_project_features(
    db: Session,
    project_id: UUID,
    status: Optional[models.FeatureStatus] = None,
) -> list[models.Feature]:
    """All features of a project in board order (column, then position)."""
    query = (
        db.query(models.Feature)
        .options(selectinload(models.Feature.subtasks))
        .filter(models.Feature.project_id == project_id)
    )
    if status is not None:
        query = query.filter(models.Feature.status == status)
    return query.order_by(_status_sort_expression(), *positions.scope_ordering(models.Feature)).all()


def search_features(
    db: Session,
    project_id: Optional[UUID] = None,
    status: Optional[models.FeatureStatus] = None,
    priority: Optional[models.Priority] = None,
    search: Optional[str] = None,
    skip: int = 0,
    limit: int = 50,
) -> tuple[list[models.Feature], int]:
    """
    Filter features across projects.

    Args:
        db: Database session
        project_id: Optional project filter
        status: Optional status filter
        priority: Optional priority filter
        search: Case-insensitive text search in title, description and spec
        skip: Number of records to skip
        limit: Maximum number of records to return

    Returns:
        Tuple of (features list, total count)
    """
    query = db.query(models.Feature).options(selectinload(models.Feature.subtasks))

    if project_id:
        query = query.filter(models.Feature.project_id == project_id)
    if status:
        query = query.filter(models.Feature.status == status)
    if priority:
        query = query.filter(models.Feature.priority == priority)
    if search:
        search_pattern = f"%{search}%"
        query = query.filter(
            or_(
                models.Feature.title.ilike(search_pattern),
                models.Feature.description.ilike(search_pattern),
                models.Feature.spec.ilike(search_pattern),
            )
        )

    total = query.count()
    features = (
        query.order_by(_status_sort_expression(), *positions.scope_ordering(models.Feature))
        .offset(skip)
        .limit(limit)
        .all()
    )
    return features, total


def update_feature(
    db: Session,
    db_feature: models.Feature,
    changes: dict[str, Any],
    subtask_ops: Sequence[schemas.SubtaskCreateOp | schemas.SubtaskStatusOp] = (),
    source: ChangeSource = ChangeSource.HUMAN,
) -> models.Feature:
    """
    Apply a partial update and an optional subtask batch in one transaction.

    A status change without an explicit position appends the feature to the
    end of the new column. Changelog entries are written after the commit.

    Args:
        db: Database session
        db_feature: Feature to update
        changes: Fields that were explicitly sent (``model_dump(exclude_unset=True)``,
            without ``subtasks``)
        subtask_ops: Tagged subtask batch (create / update_status)
        source: Who is making the change (for the changelog)

    Returns:
        Updated feature

    Raises:
        ValueError: On invalid values (e.g. milestone from another project)
        SubtaskNotFoundError: If a status op references an unknown subtask;
            nothing is applied in that case
    """
    for required in ("title", "priority", "status"):
        if required in changes and changes[required] is None:
            raise ValueError(f"Feature {required} cannot be null")
    if "milestone_id" in changes:
        _validate_milestone(db, db_feature.project_id, changes["milestone_id"])

    before = changelog.snapshot_feature(db_feature)

    new_status = changes.get("status")
    if new_status is not None and new_status != db_feature.status:
        db_feature.position = positions.next_feature_position(db, db_feature.project_id, new_status)
        db_feature.status = new_status

    for name in ("title", "description", "spec", "priority", "branch_url", "pr_url", "milestone_id"):
        if name in changes:
            setattr(db_feature, name, changes[name])

    subtasks_by_id = {subtask.id: subtask for subtask in db_feature.subtasks}
    next_subtask_position = positions.next_subtask_position(db, db_feature.id)
    created: list[models.Subtask] = []
    # Pre-batch status per subtask; repeated ops on one subtask log only the net change
    flipped: dict[UUID, tuple[models.Subtask, models.SubtaskStatus]] = {}

    for op in subtask_ops:
        if isinstance(op, schemas.SubtaskCreateOp):
            subtask = models.Subtask(title=op.title, position=next_subtask_position)
            next_subtask_position += 1
            db_feature.subtasks.append(subtask)
            created.append(subtask)
        else:
            subtask = subtasks_by_id.get(op.id)
            if subtask is None:
                db.rollback()
                raise SubtaskNotFoundError(op.id)
            flipped.setdefault(subtask.id, (subtask, subtask.status))
            subtask.status = op.status

    db.commit()
    db.refresh(db_feature)
    logger.debug(
        f"Updated feature {db_feature.id}: fields={sorted(changes)} "
        f"subtasks_created={len(created)} subtasks_updated={len(flipped)}"
    )

    entries = changelog.feature_change_entries(before, db_feature)
    entries.extend(changelog.subtask_created_entry(db_feature, subtask) for subtask in created)
    entries.extend(
        changelog.subtask_status_entry(db_feature, subtask, previous)
        for subtask, previous in flipped.values()
    )
    changelog.emit(db, entries, source=source)
    return db_feature


def move_feature(
    db: Session,
    feature_id: UUID,
    status: models.FeatureStatus,
    position: int,
    source: ChangeSource = ChangeSource.HUMAN,
) -> Optional[models.Feature]:
    """
    Drag-and-drop move of a feature to (status, position).

    Returns:
        The moved feature, or None if it was deleted concurrently (no-op)
    """
    move = positions.move_feature(db, feature_id, status, position)
    if move is None:
        return None

    if move.status_changed:
        feature = move.feature
        old, new = move.from_status.value, feature.status.value
        changelog.emit(db, [changelog.PendingEntry(
            action=models.ChangeAction.STATUS_CHANGED,
            summary=f'"{feature.title}" moved from {old} to {new}',
            project_id=feature.project_id,
            feature_id=feature.id,
            feature_title=feature.title,
            meta={"from": old, "to": new},
        )], source=source)
    return move.feature


def delete_feature(
    db: Session,
    db_feature: models.Feature,
    source: ChangeSource = ChangeSource.HUMAN,
) -> None:
    """
    Delete a feature with its subtasks, attachments and changelog entries.

    A FEATURE_DELETED entry (title snapshot only) is written afterwards.
    """
    project_id, feature_id, title = db_feature.project_id, db_feature.id, db_feature.title

    db.delete(db_feature)
    db.commit()
    logger.debug(f"Deleted feature {feature_id} from project {project_id}")

    changelog.emit(db, [changelog.feature_deleted_entry(project_id, feature_id, title)], source=source)


# ============================================================================
# Subtask CRUD Operations
# ============================================================================

def get_subtask(db: Session, subtask_id: UUID, feature_id: UUID) -> Optional[models.Subtask]:
    """Get a subtask that belongs to the given feature."""
    return (
        db.query(models.Subtask)
        .filter(models.Subtask.id == subtask_id, models.Subtask.feature_id == feature_id)
        .first()
    )


def get_subtasks(db: Session, feature_id: UUID) -> list[models.Subtask]:
    """A feature's checklist in order."""
    return (
        db.query(models.Subtask)
        .filter(models.Subtask.feature_id == feature_id)
        .order_by(*positions.scope_ordering(models.Subtask))
        .all()
    )


def create_subtask(
    db: Session,
    db_feature: models.Feature,
    title: str,
    source: ChangeSource = ChangeSource.HUMAN,
) -> models.Subtask:
    """Append a subtask to a feature's checklist."""
    db_subtask = models.Subtask(
        feature_id=db_feature.id,
        title=title,
        position=positions.next_subtask_position(db, db_feature.id),
    )
    db.add(db_subtask)
    db.commit()
    db.refresh(db_subtask)

    changelog.emit(db, [changelog.subtask_created_entry(db_feature, db_subtask)], source=source)
    return db_subtask


def update_subtask(
    db: Session,
    db_feature: models.Feature,
    db_subtask: models.Subtask,
    changes: dict[str, Any],
    source: ChangeSource = ChangeSource.HUMAN,
) -> models.Subtask:
    """Update a subtask's title and/or status; status flips are logged."""
    for required in ("title", "status"):
        if required in changes and changes[required] is None:
            raise ValueError(f"Subtask {required} cannot be null")

    previous = db_subtask.status
    if "title" in changes:
        db_subtask.title = changes["title"]
    if "status" in changes:
        db_subtask.status = changes["status"]

    db.commit()
    db.refresh(db_subtask)

    changelog.emit(db, [changelog.subtask_status_entry(db_feature, db_subtask, previous)], source=source)
    return db_subtask


def delete_subtask(db: Session, db_subtask: models.Subtask) -> None:
    """Delete a subtask. Its changelog entries keep their title snapshot."""
    db.delete(db_subtask)
    db.commit()


# ============================================================================
# Milestone CRUD Operations
# ============================================================================

def create_milestone(
    db: Session,
    project_id: UUID,
    name: str,
    description: Optional[str] = None,
    target_date: Optional[datetime] = None,
    position: Optional[int] = None,
) -> models.Milestone:
    """
    Create a milestone at the end of the roadmap, or at `position` if given.

    The insert and the reorder share one transaction.

    Returns:
        Created milestone instance
    """
    db_milestone = models.Milestone(
        project_id=project_id,
        name=name,
        description=description,
        target_date=target_date,
        position=positions.next_milestone_position(db, project_id),
    )
    db.add(db_milestone)

    if position is not None and position != db_milestone.position:
        db.flush()
        db_milestone = positions.reorder_milestone(db, db_milestone.id, position)
    else:
        db.commit()
        db.refresh(db_milestone)

    logger.debug(f"Created milestone {db_milestone.id} ({db_milestone.name}) at {db_milestone.position}")
    return db_milestone


def get_milestone(
    db: Session,
    milestone_id: UUID,
    project_id: Optional[UUID] = None,
) -> Optional[models.Milestone]:
    """Get a milestone, optionally requiring it to belong to a project."""
    query = db.query(models.Milestone).filter(models.Milestone.id == milestone_id)
    if project_id is not None:
        query = query.filter(models.Milestone.project_id == project_id)
    return query.first()


def get_milestones(db: Session, project_id: UUID) -> list[models.Milestone]:
    """A project's milestones in roadmap order, with their features loaded."""
    return (
        db.query(models.Milestone)
        .options(selectinload(models.Milestone.features))
        .filter(models.Milestone.project_id == project_id)
        .order_by(*positions.scope_ordering(models.Milestone))
        .all()
    )


def update_milestone(
    db: Session,
    db_milestone: models.Milestone,
    changes: dict[str, Any],
    position: Optional[int] = None,
) -> Optional[models.Milestone]:
    """
    Apply a partial update to a milestone (name, description, target date).

    With `position`, the field changes and the roadmap reorder commit together.

    Returns:
        Updated milestone, or None if it was deleted concurrently
    """
    if "name" in changes and changes["name"] is None:
        raise ValueError("Milestone name cannot be empty")

    for name in ("name", "description", "target_date"):
        if name in changes:
            setattr(db_milestone, name, changes[name])

    if position is not None:
        db.flush()
        return positions.reorder_milestone(db, db_milestone.id, position)

    db.commit()
    db.refresh(db_milestone)
    return db_milestone


def delete_milestone(db: Session, db_milestone: models.Milestone) -> None:
    """Delete a milestone. Its features become unscheduled (milestone_id set to NULL)."""
    milestone_id = db_milestone.id
    db.delete(db_milestone)
    db.commit()
    logger.debug(f"Deleted milestone {milestone_id}")


# ============================================================================
# Attachment CRUD Operations
# ============================================================================

def create_attachment(
    db: Session,
    feature_id: UUID,
    filename: str,
    original_name: str,
    mime_type: str,
    size: int,
    url: str,
) -> models.Attachment:
    """Record metadata for a stored attachment blob."""
    db_attachment = models.Attachment(
        feature_id=feature_id,
        filename=filename,
        original_name=original_name,
        mime_type=mime_type,
        size=size,
        url=url,
    )
    db.add(db_attachment)
    db.commit()
    db.refresh(db_attachment)
    return db_attachment


def get_attachment(db: Session, attachment_id: UUID, feature_id: UUID) -> Optional[models.Attachment]:
    """Get an attachment that belongs to the given feature."""
    return (
        db.query(models.Attachment)
        .filter(models.Attachment.id == attachment_id, models.Attachment.feature_id == feature_id)
        .first()
    )


def delete_attachment(db: Session, db_attachment: models.Attachment) -> None:
    """Delete attachment metadata (the caller removes the blob)."""
    db.delete(db_attachment)
    db.commit()


def get_attachment_filenames(
    db: Session,
    project_id: UUID,
    feature_id: Optional[UUID] = None,
) -> list[str]:
    """Blob filenames owned by a project (or one of its features), for cleanup after a delete."""
    query = (
        db.query(models.Attachment.filename)
        .join(models.Feature, models.Attachment.feature_id == models.Feature.id)
        .filter(models.Feature.project_id == project_id)
    )
    if feature_id is not None:
        query = query.filter(models.Feature.id == feature_id)
    return [filename for (filename,) in query.all()]
