"""Collapse near-duplicate changelog entries.

Some write paths can log the same logical event more than once in quick
succession (for example a batched update whose steps overlap). Readers call
dedupe_changelog() on a newest-first page of entries to hide the repeats.
"""
import json
from datetime import timedelta
from typing import Any, Iterable, TypeVar

DEDUPE_WINDOW = timedelta(milliseconds=5000)

EntryT = TypeVar("EntryT")


def canonical_meta(meta: Any) -> str:
    """Serialize metadata with sorted keys so key order never affects equality."""
    return json.dumps(meta, sort_keys=True, separators=(",", ":"), default=str)


def entry_key(entry: Any) -> tuple[str, str, str, str, str, str]:
    """
    Identity key for "the same event".

    (project id, action, feature id or "", subtask id or "", summary,
    canonical metadata)
    """
    action = getattr(entry.action, "value", entry.action)
    return (
        str(entry.project_id),
        str(action),
        str(entry.feature_id) if entry.feature_id is not None else "",
        str(entry.subtask_id) if entry.subtask_id is not None else "",
        entry.summary,
        canonical_meta(entry.meta),
    )


def dedupe_changelog(
    entries: Iterable[EntryT],
    window: timedelta = DEDUPE_WINDOW,
) -> list[EntryT]:
    """
    Drop entries that repeat a more recent entry within the window.

    Entries must be ordered newest first; this is not checked and the input is
    never re-sorted. For each identity key the first entry seen is kept and
    becomes the reference point. A later (older) entry with the same key is
    dropped when it is strictly less than `window` older than the reference;
    otherwise it is kept and becomes the new reference.

    Args:
        entries: Changelog entries (ORM rows or schemas) sorted by created_at desc
        window: Dedupe window (default 5 seconds)

    Returns:
        The kept entries, in their original relative order
    """
    reference_by_key: dict[tuple, Any] = {}
    kept: list[EntryT] = []

    for entry in entries:
        key = entry_key(entry)
        reference = reference_by_key.get(key)

        if reference is not None and reference - entry.created_at < window:
            continue

        reference_by_key[key] = entry.created_at
        kept.append(entry)

    return kept
