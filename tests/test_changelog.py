"""Tests for changelog emission, immutability and retention."""
import pytest
from sqlalchemy.exc import SQLAlchemyError

from pmboard_core import changelog, crud, models, schemas
from pmboard_core.models import ChangeAction, ChangeLogImmutableError, ChangeSource


def actions(db, project_id):
    """Actions of a project's changelog, oldest first."""
    db.expire_all()
    entries, _ = changelog.get_entries(db, project_id, limit=100)
    return [e.action for e in reversed(entries)]


class TestEmission:
    """Test which entries each change produces."""

    def test_feature_created(self, db, project, make_feature):
        feature = make_feature("Login", priority="HIGH")

        entries, total = changelog.get_entries(db, project.id)
        assert total == 1
        assert entries[0].action == ChangeAction.FEATURE_CREATED
        assert entries[0].feature_id == feature.id
        assert entries[0].feature_title == "Login"
        assert entries[0].meta == {"status": "BACKLOG", "priority": "HIGH"}
        assert entries[0].source == ChangeSource.HUMAN

    def test_one_entry_per_changed_field(self, db, project, make_feature):
        feature = make_feature("Login")

        crud.update_feature(db, feature, {
            "title": "Login page",
            "status": models.FeatureStatus.IN_PROGRESS,
            "priority": models.Priority.URGENT,
            "spec": "# Spec",
            "description": "Long text",
        })

        db.expire_all()
        entries, _ = changelog.get_entries(db, project.id)
        by_action = {}
        for e in entries:
            by_action.setdefault(e.action, []).append(e)

        assert by_action[ChangeAction.STATUS_CHANGED][0].meta == {"from": "BACKLOG", "to": "IN_PROGRESS"}
        assert by_action[ChangeAction.PRIORITY_CHANGED][0].meta == {"from": "MEDIUM", "to": "URGENT"}
        assert by_action[ChangeAction.SPEC_UPDATED][0].meta == {"length": 6}
        updated = {e.meta["field"]: e.meta for e in by_action[ChangeAction.FEATURE_UPDATED]}
        assert updated["title"] == {"field": "title", "from": "Login", "to": "Login page"}
        # Long text fields only name the field
        assert updated["description"] == {"field": "description"}
        assert all(e.feature_title == "Login page" for e in entries if e.action != ChangeAction.FEATURE_CREATED)

    def test_unchanged_values_produce_nothing(self, db, project, make_feature):
        feature = make_feature("Login")

        crud.update_feature(db, feature, {"title": "Login", "priority": models.Priority.MEDIUM})

        assert actions(db, project.id) == [ChangeAction.FEATURE_CREATED]

    def test_subtask_flip_and_create(self, db, project, make_feature):
        feature = make_feature("Login")
        subtask = crud.create_subtask(db, feature, "Write form")

        crud.update_subtask(db, feature, subtask, {"status": models.SubtaskStatus.DONE})
        crud.update_subtask(db, feature, subtask, {"status": models.SubtaskStatus.DONE})
        crud.update_subtask(db, feature, subtask, {"status": models.SubtaskStatus.OPEN})

        assert actions(db, project.id) == [
            ChangeAction.FEATURE_CREATED,
            ChangeAction.SUBTASK_CREATED,
            ChangeAction.SUBTASK_DONE,
            ChangeAction.SUBTASK_REOPENED,
        ]

    def test_move_logs_status_change_only_across_columns(self, db, project, make_feature):
        a = make_feature("A")
        make_feature("B")

        crud.move_feature(db, a.id, models.FeatureStatus.BACKLOG, 1)
        crud.move_feature(db, a.id, models.FeatureStatus.TODO, 0)

        assert actions(db, project.id).count(ChangeAction.STATUS_CHANGED) == 1

    def test_feature_deleted_keeps_title_snapshot(self, db, project, make_feature):
        feature = make_feature("Doomed")
        feature_id = feature.id

        crud.delete_feature(db, feature)

        entries, total = changelog.get_entries(db, project.id)
        # The creation entry goes with the feature; the deletion entry stays
        assert total == 1
        assert entries[0].action == ChangeAction.FEATURE_DELETED
        assert entries[0].feature_id is None
        assert entries[0].feature_title == "Doomed"
        assert entries[0].meta == {"feature_id": str(feature_id)}

    def test_agent_source(self, db, project):
        feature = crud.create_feature(
            db, project.id, schemas.FeatureCreate(title="From agent"), source=ChangeSource.AGENT,
        )
        entries, _ = changelog.get_entries(db, project.id)
        assert entries[0].source == ChangeSource.AGENT
        assert entries[0].feature_id == feature.id


class TestBestEffort:
    """A failed changelog write never undoes the mutation."""

    def test_emit_failure_is_swallowed_and_logged(self, db, project, make_feature, monkeypatch, caplog):
        feature = make_feature("Login")
        real_commit = db.commit

        def failing_commit():
            raise SQLAlchemyError("disk full")

        crud.update_feature(db, feature, {"title": "Renamed"})  # commits normally first
        monkeypatch.setattr(db, "commit", failing_commit)
        written = changelog.emit(db, [changelog.feature_created_entry(feature)])
        monkeypatch.setattr(db, "commit", real_commit)

        assert written == []
        assert "Failed to write 1 changelog entries" in caplog.text
        db.expire_all()
        assert crud.get_feature(db, feature.id).title == "Renamed"

    def test_emit_skips_none(self, db):
        assert changelog.emit(db, [None, None]) == []


class TestImmutability:
    """Changelog entries cannot be rewritten."""

    @pytest.mark.parametrize("field,value", [
        ("summary", "rewritten"),
        ("action", ChangeAction.SPEC_UPDATED),
        ("meta", {"tampered": True}),
    ])
    def test_update_is_rejected(self, db, project, make_feature, field, value):
        make_feature("Login")
        entries, _ = changelog.get_entries(db, project.id)
        entry = entries[0]

        setattr(entry, field, value)
        with pytest.raises(ChangeLogImmutableError):
            db.commit()
        db.rollback()

        db.expire_all()
        entries, _ = changelog.get_entries(db, project.id)
        assert entries[0].summary == 'Feature created: "Login"'


class TestRetention:
    """Entries outlive subtasks but not their project or feature."""

    def test_subtask_delete_keeps_entry(self, db, project, make_feature):
        feature = make_feature("Login")
        subtask = crud.create_subtask(db, feature, "Write form")

        crud.delete_subtask(db, subtask)

        db.expire_all()
        entries, _ = changelog.get_entries(db, project.id)
        created = [e for e in entries if e.action == ChangeAction.SUBTASK_CREATED]
        assert len(created) == 1
        assert created[0].subtask_id is None
        assert created[0].subtask_title == "Write form"

    def test_project_delete_removes_entries(self, db, project, make_feature):
        make_feature("Login")
        project_id = project.id

        crud.delete_project(db, project_id)

        assert db.query(models.ChangeLog).filter(models.ChangeLog.project_id == project_id).count() == 0

    def test_recent_activity_dedupes_then_truncates(self, db, project, make_feature):
        for i in range(8):
            make_feature(f"F{i}")

        recent = changelog.get_recent_activity(db, project.id, fetch=20, limit=5)

        assert [e.feature_title for e in recent] == ["F7", "F6", "F5", "F4", "F3"]
