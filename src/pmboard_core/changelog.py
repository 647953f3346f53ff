"""Changelog emission and queries.

Each externally meaningful change produces one entry per changed field:
status and priority transitions carry ``{"from", "to"}`` metadata, spec edits
produce SPEC_UPDATED, other field edits produce FEATURE_UPDATED, and subtask
completion/reopen/creation each get their own entry.

Emission runs after the primary mutation has committed and is best-effort: if
writing the entries fails, the failure is logged and rolled back and the
mutation stands.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .changelog_dedupe import dedupe_changelog
from .models import ChangeAction, ChangeSource

logger = logging.getLogger("pmboard-core.changelog")

# Fields whose old/new values are too long to copy into metadata
LONG_TEXT_FIELDS = {"description"}

# Feature fields covered by FEATURE_UPDATED, in emission order
GENERIC_FEATURE_FIELDS = ("title", "description", "branch_url", "pr_url", "milestone_id")

FIELD_LABELS = {
    "title": "title",
    "description": "description",
    "branch_url": "branch URL",
    "pr_url": "PR URL",
    "milestone_id": "milestone",
}


@dataclass
class PendingEntry:
    """A changelog entry that has been computed but not yet written."""

    action: ChangeAction
    summary: str
    project_id: UUID
    feature_id: Optional[UUID] = None
    feature_title: Optional[str] = None
    subtask_id: Optional[UUID] = None
    subtask_title: Optional[str] = None
    meta: Optional[dict[str, Any]] = field(default=None)


def _plain(value: Any) -> Any:
    """Make a value JSON-friendly for metadata."""
    if value is None:
        return None
    if hasattr(value, "value"):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    return value


def snapshot_feature(feature: models.Feature) -> dict[str, Any]:
    """Capture the tracked fields of a feature before it is modified."""
    return {
        "title": feature.title,
        "description": feature.description,
        "spec": feature.spec,
        "priority": feature.priority,
        "status": feature.status,
        "branch_url": feature.branch_url,
        "pr_url": feature.pr_url,
        "milestone_id": feature.milestone_id,
    }


def feature_created_entry(feature: models.Feature) -> PendingEntry:
    return PendingEntry(
        action=ChangeAction.FEATURE_CREATED,
        summary=f'Feature created: "{feature.title}"',
        project_id=feature.project_id,
        feature_id=feature.id,
        feature_title=feature.title,
        meta={"status": _plain(feature.status), "priority": _plain(feature.priority)},
    )


def feature_deleted_entry(project_id: UUID, feature_id: UUID, title: str) -> PendingEntry:
    # The feature row is gone, so only the snapshot and metadata point at it
    return PendingEntry(
        action=ChangeAction.FEATURE_DELETED,
        summary=f'Feature deleted: "{title}"',
        project_id=project_id,
        feature_title=title,
        meta={"feature_id": str(feature_id)},
    )


def feature_change_entries(before: dict[str, Any], feature: models.Feature) -> list[PendingEntry]:
    """
    Diff a feature against its pre-update snapshot.

    Args:
        before: Result of snapshot_feature() taken before the update
        feature: The feature after the update

    Returns:
        One pending entry per changed field (unchanged fields produce nothing)
    """
    after = snapshot_feature(feature)
    title = after["title"]
    base = {"project_id": feature.project_id, "feature_id": feature.id, "feature_title": title}
    entries: list[PendingEntry] = []

    if before["status"] != after["status"]:
        old, new = _plain(before["status"]), _plain(after["status"])
        entries.append(PendingEntry(
            action=ChangeAction.STATUS_CHANGED,
            summary=f'"{title}" moved from {old} to {new}',
            meta={"from": old, "to": new},
            **base,
        ))

    if before["priority"] != after["priority"]:
        old, new = _plain(before["priority"]), _plain(after["priority"])
        entries.append(PendingEntry(
            action=ChangeAction.PRIORITY_CHANGED,
            summary=f'"{title}" priority changed from {old} to {new}',
            meta={"from": old, "to": new},
            **base,
        ))

    if (before["spec"] or "") != (after["spec"] or ""):
        entries.append(PendingEntry(
            action=ChangeAction.SPEC_UPDATED,
            summary=f'Spec updated: "{title}"',
            meta={"length": len(after["spec"] or "")},
            **base,
        ))

    for name in GENERIC_FEATURE_FIELDS:
        if before[name] == after[name]:
            continue
        meta: dict[str, Any] = {"field": name}
        if name not in LONG_TEXT_FIELDS:
            meta["from"] = _plain(before[name])
            meta["to"] = _plain(after[name])
        entries.append(PendingEntry(
            action=ChangeAction.FEATURE_UPDATED,
            summary=f'"{title}" {FIELD_LABELS[name]} updated',
            meta=meta,
            **base,
        ))

    return entries


def subtask_created_entry(feature: models.Feature, subtask: models.Subtask) -> PendingEntry:
    return PendingEntry(
        action=ChangeAction.SUBTASK_CREATED,
        summary=f'Subtask added to "{feature.title}": "{subtask.title}"',
        project_id=feature.project_id,
        feature_id=feature.id,
        feature_title=feature.title,
        subtask_id=subtask.id,
        subtask_title=subtask.title,
    )


def subtask_status_entry(
    feature: models.Feature,
    subtask: models.Subtask,
    previous: models.SubtaskStatus,
) -> Optional[PendingEntry]:
    """Entry for a subtask status flip, or None when the status did not change."""
    if previous == subtask.status:
        return None

    if subtask.status == models.SubtaskStatus.DONE:
        action = ChangeAction.SUBTASK_DONE
        summary = f'Subtask completed on "{feature.title}": "{subtask.title}"'
    else:
        action = ChangeAction.SUBTASK_REOPENED
        summary = f'Subtask reopened on "{feature.title}": "{subtask.title}"'

    return PendingEntry(
        action=action,
        summary=summary,
        project_id=feature.project_id,
        feature_id=feature.id,
        feature_title=feature.title,
        subtask_id=subtask.id,
        subtask_title=subtask.title,
        meta={"from": _plain(previous), "to": _plain(subtask.status)},
    )


def emit(
    db: Session,
    entries: Iterable[Optional[PendingEntry]],
    source: ChangeSource = ChangeSource.HUMAN,
) -> list[models.ChangeLog]:
    """
    Write pending entries in one commit, best-effort.

    Call only after the primary mutation has been committed. None entries are
    skipped so callers can pass the result of subtask_status_entry() directly.

    Returns:
        The written entries, or an empty list if nothing was written
    """
    rows = [
        models.ChangeLog(
            action=entry.action,
            summary=entry.summary,
            project_id=entry.project_id,
            feature_id=entry.feature_id,
            feature_title=entry.feature_title,
            subtask_id=entry.subtask_id,
            subtask_title=entry.subtask_title,
            meta=entry.meta,
            source=source,
        )
        for entry in entries
        if entry is not None
    ]
    if not rows:
        return []

    try:
        db.add_all(rows)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(
            f"Failed to write {len(rows)} changelog entries ({', '.join(r.action.value for r in rows)}): {e}",
            exc_info=True,
        )
        return []

    logger.debug(f"Logged {len(rows)} changelog entries ({source.value})")
    return rows


def get_entries(
    db: Session,
    project_id: UUID,
    skip: int = 0,
    limit: int = 50,
) -> tuple[list[models.ChangeLog], int]:
    """
    Get a page of a project's changelog, newest first.

    Returns:
        Tuple of (entries, total count)
    """
    query = db.query(models.ChangeLog).filter(models.ChangeLog.project_id == project_id)
    total = query.count()
    entries = (
        query.order_by(models.ChangeLog.created_at.desc(), models.ChangeLog.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )
    return entries, total


def get_recent_activity(
    db: Session,
    project_id: UUID,
    fetch: int = 20,
    limit: int = 5,
) -> list[models.ChangeLog]:
    """
    Most recent distinct activity for the context snapshot.

    Reads the newest `fetch` rows, removes near-duplicates and keeps the first
    `limit` of what remains.
    """
    entries, _ = get_entries(db, project_id, skip=0, limit=fetch)
    return dedupe_changelog(entries)[:limit]
