"""Position bookkeeping for drag-and-drop ordering.

Positions are dense, zero-based integers within a scope:

- features: (project_id, status)  - a board column
- subtasks: feature_id            - a checklist
- milestones: project_id          - the roadmap

Creation appends to the end of the scope. Reordering within a scope rewrites
every position in the scope to its list index. Moving a feature to another
column shifts the target column open at the drop index; the column it left is
not compacted, so its positions may keep a gap until the next reorder there.

Every multi-row rewrite is committed as a single transaction with the scope
rows locked (SELECT ... FOR UPDATE where the backend supports it).
"""
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger("pmboard-core.positions")

ItemT = TypeVar("ItemT")


@dataclass
class FeatureMove:
    """Outcome of move_feature()."""

    feature: models.Feature
    from_status: models.FeatureStatus
    from_position: int

    @property
    def status_changed(self) -> bool:
        return self.from_status != self.feature.status


def scope_ordering(model) -> tuple:
    """Deterministic scope order: position, then creation time, then id."""
    return (model.position.asc(), model.created_at.asc(), model.id.asc())


def next_position(db: Session, model, *scope_filters) -> int:
    """
    Position for a new item appended to a scope.

    Returns max(position) + 1 within the scope, or 0 for an empty scope.
    """
    current_max = db.query(func.max(model.position)).filter(*scope_filters).scalar()
    return 0 if current_max is None else current_max + 1


def next_feature_position(db: Session, project_id: UUID, status: models.FeatureStatus) -> int:
    return next_position(
        db,
        models.Feature,
        models.Feature.project_id == project_id,
        models.Feature.status == status,
    )


def next_subtask_position(db: Session, feature_id: UUID) -> int:
    return next_position(db, models.Subtask, models.Subtask.feature_id == feature_id)


def next_milestone_position(db: Session, project_id: UUID) -> int:
    return next_position(db, models.Milestone, models.Milestone.project_id == project_id)


def clamp_index(index: int, length: int) -> int:
    """Clamp a drop index into [0, length]."""
    return max(0, min(index, length))


def move_in_list(items: Sequence[ItemT], item: ItemT, target_index: int) -> list[ItemT]:
    """
    Remove `item` from its current index and reinsert it at `target_index`.

    The target index refers to the list after removal and is clamped to its
    bounds. Returns a new list; the input is left untouched.

    Raises:
        ValueError: If `item` is not in `items`
    """
    reordered = list(items)
    reordered.remove(item)
    reordered.insert(clamp_index(target_index, len(reordered)), item)
    return reordered


def renumber(items: Sequence) -> int:
    """
    Assign position = index to each item.

    Returns:
        Number of items whose position actually changed
    """
    changed = 0
    for index, item in enumerate(items):
        if item.position != index:
            item.position = index
            changed += 1
    return changed


def _reorder_in_scope(db: Session, model, item_id: UUID, scope_columns: tuple, target_index: int):
    """
    Move one item to `target_index` inside its own scope and renumber the scope.

    Returns the item, or None if it no longer exists (treated as a benign race
    with a concurrent delete).
    """
    try:
        item = db.query(model).filter(model.id == item_id).with_for_update().first()
        if item is None:
            db.rollback()
            logger.info(f"Reorder skipped: {model.__name__} {item_id} no longer exists")
            return None

        scope_filters = [getattr(model, column) == getattr(item, column) for column in scope_columns]
        scope_items = (
            db.query(model)
            .filter(*scope_filters)
            .order_by(*scope_ordering(model))
            .with_for_update()
            .all()
        )

        changed = renumber(move_in_list(scope_items, item, target_index))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(item)
    logger.debug(f"Reordered {model.__name__} {item_id} to index {item.position} ({changed} positions rewritten)")
    return item


def reorder_feature(db: Session, feature_id: UUID, target_index: int) -> Optional[models.Feature]:
    """Reorder a feature within its board column."""
    return _reorder_in_scope(db, models.Feature, feature_id, ("project_id", "status"), target_index)


def reorder_subtask(db: Session, subtask_id: UUID, target_index: int) -> Optional[models.Subtask]:
    """Reorder a subtask within its feature's checklist."""
    return _reorder_in_scope(db, models.Subtask, subtask_id, ("feature_id",), target_index)


def reorder_milestone(db: Session, milestone_id: UUID, target_index: int) -> Optional[models.Milestone]:
    """Reorder a milestone on its project's roadmap."""
    return _reorder_in_scope(db, models.Milestone, milestone_id, ("project_id",), target_index)


def move_feature(
    db: Session,
    feature_id: UUID,
    status: models.FeatureStatus,
    target_index: int,
) -> Optional[FeatureMove]:
    """
    Drop a feature into column `status` at `target_index`.

    Same column: plain reorder (remove, reinsert, renumber the column).
    Other column: every feature in the target column at or after the index is
    shifted down by one and the moved feature takes the index (the target
    column is renumbered densely). The source column is left as is.

    Both paths commit once. Returns None when the feature was deleted
    concurrently.
    """
    try:
        feature = db.query(models.Feature).filter(models.Feature.id == feature_id).with_for_update().first()
        if feature is None:
            db.rollback()
            logger.info(f"Move skipped: feature {feature_id} no longer exists")
            return None

        from_status = feature.status
        from_position = feature.position

        if from_status == status:
            db.rollback()
            moved = reorder_feature(db, feature_id, target_index)
            if moved is None:
                return None
            return FeatureMove(feature=moved, from_status=from_status, from_position=from_position)

        target_items = (
            db.query(models.Feature)
            .filter(
                models.Feature.project_id == feature.project_id,
                models.Feature.status == status,
                models.Feature.id != feature.id,
            )
            .order_by(*scope_ordering(models.Feature))
            .with_for_update()
            .all()
        )
        position = clamp_index(target_index, len(target_items))

        # Items at or after the drop index shift down by one; renumbering the
        # whole column also closes any gap it carried from earlier moves out.
        target_items.insert(position, feature)
        feature.status = status
        renumber(target_items)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(feature)
    logger.debug(
        f"Moved feature {feature_id} from {from_status.value}@{from_position} "
        f"to {status.value}@{position}"
    )
    return FeatureMove(feature=feature, from_status=from_status, from_position=from_position)
