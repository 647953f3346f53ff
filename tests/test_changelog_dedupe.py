"""Tests for changelog near-duplicate collapsing."""
from datetime import datetime, timedelta
from types import SimpleNamespace
from uuid import uuid4

from pmboard_core.changelog_dedupe import DEDUPE_WINDOW, canonical_meta, dedupe_changelog, entry_key

PROJECT_ID = uuid4()
FEATURE_ID = uuid4()
T0 = datetime(2026, 1, 1, 12, 0, 0)


def entry(offset_ms, action="STATUS_CHANGED", summary='"Login" moved from TODO to DONE',
          meta=None, feature_id=FEATURE_ID, subtask_id=None, name=None):
    """An entry created `offset_ms` before T0 (newest-first lists use growing offsets)."""
    return SimpleNamespace(
        name=name,
        project_id=PROJECT_ID,
        action=action,
        feature_id=feature_id,
        subtask_id=subtask_id,
        summary=summary,
        meta={"from": "TODO", "to": "DONE"} if meta is None else meta,
        created_at=T0 - timedelta(milliseconds=offset_ms),
    )


class TestWindow:
    """Test the 5 second dedupe window."""

    def test_default_window_is_five_seconds(self):
        assert DEDUPE_WINDOW == timedelta(seconds=5)

    def test_repeat_three_seconds_older_is_dropped(self):
        """Same event logged twice, 3 s apart: only the newest survives."""
        newest, older = entry(0, name="a"), entry(3000, name="b")
        assert dedupe_changelog([newest, older]) == [newest]

    def test_repeat_just_inside_window_is_dropped(self):
        newest, older = entry(0), entry(4999)
        assert dedupe_changelog([newest, older]) == [newest]

    def test_repeat_just_outside_window_is_kept(self):
        newest, older = entry(0), entry(5001)
        assert dedupe_changelog([newest, older]) == [newest, older]

    def test_repeat_exactly_at_window_is_kept(self):
        """The comparison is strict: exactly 5000 ms apart is not a duplicate."""
        newest, older = entry(0), entry(5000)
        assert dedupe_changelog([newest, older]) == [newest, older]

    def test_kept_entry_becomes_new_reference(self):
        """After a kept entry, later repeats are measured against it, not the first one."""
        first, second, third = entry(0), entry(6000), entry(9000)
        assert dedupe_changelog([first, second, third]) == [first, second]

    def test_dropped_entry_does_not_move_reference(self):
        first, dropped, kept = entry(0), entry(3000), entry(5500)
        assert dedupe_changelog([first, dropped, kept]) == [first, kept]


class TestIdentity:
    """Test which entries count as the same event."""

    def test_different_action_is_distinct(self):
        a = entry(0, action="STATUS_CHANGED")
        b = entry(1000, action="PRIORITY_CHANGED")
        assert dedupe_changelog([a, b]) == [a, b]

    def test_different_summary_is_distinct(self):
        a = entry(0, summary="one")
        b = entry(1000, summary="two")
        assert dedupe_changelog([a, b]) == [a, b]

    def test_different_subtask_is_distinct(self):
        a = entry(0, action="SUBTASK_DONE", subtask_id=uuid4())
        b = entry(1000, action="SUBTASK_DONE", subtask_id=uuid4())
        assert dedupe_changelog([a, b]) == [a, b]

    def test_different_meta_is_distinct(self):
        a = entry(0, meta={"from": "TODO", "to": "DONE"})
        b = entry(1000, meta={"from": "BACKLOG", "to": "DONE"})
        assert dedupe_changelog([a, b]) == [a, b]

    def test_meta_key_order_does_not_matter(self):
        a = entry(0, meta={"from": "TODO", "to": "DONE"})
        b = entry(1000, meta={"to": "DONE", "from": "TODO"})
        assert dedupe_changelog([a, b]) == [a]
        assert canonical_meta(a.meta) == canonical_meta(b.meta)

    def test_source_is_not_part_of_identity(self):
        a = entry(0)
        a.source = "agent"
        b = entry(1000)
        b.source = "human"
        assert entry_key(a) == entry_key(b)
        assert dedupe_changelog([a, b]) == [a]

    def test_missing_feature_and_meta(self):
        a = entry(0, action="FEATURE_DELETED", feature_id=None, meta=None)
        a.meta = None
        b = entry(1000, action="FEATURE_DELETED", feature_id=None)
        b.meta = None
        assert entry_key(a) == entry_key(b)
        assert dedupe_changelog([a, b]) == [a]


class TestProperties:
    """Test general properties of the dedupe pass."""

    def build(self):
        return [
            entry(0, name="s1"),
            entry(500, action="SUBTASK_DONE", name="d1"),
            entry(1000, name="s2"),
            entry(2000, action="SUBTASK_DONE", name="d2"),
            entry(7000, name="s3"),
        ]

    def test_order_is_preserved(self):
        entries = self.build()
        kept = dedupe_changelog(entries)
        assert [e.name for e in kept] == ["s1", "d1", "s3"]
        assert kept == [e for e in entries if e in kept]

    def test_idempotent(self):
        once = dedupe_changelog(self.build())
        assert dedupe_changelog(once) == once

    def test_empty_input(self):
        assert dedupe_changelog([]) == []

    def test_input_not_mutated(self):
        entries = self.build()
        snapshot = list(entries)
        dedupe_changelog(entries)
        assert entries == snapshot
