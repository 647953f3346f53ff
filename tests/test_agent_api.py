"""Tests for the agent API."""
from uuid import uuid4

import pytest

from pmboard_core.schemas import normalize_enum_token, tag_subtask_op

AGENT = "/api/v1/agent"


@pytest.fixture
def project_id(client):
    return client.post("/api/v1/projects/", json={"name": "Agent Board"}).json()["id"]


def create_feature(client, project_id, title, **fields):
    response = client.post(f"{AGENT}/features", json={"project_id": project_id, "title": title, **fields})
    assert response.status_code == 201, response.text
    return response.json()


class TestEnumNormalization:
    """Agents may spell enums loosely."""

    @pytest.mark.parametrize("raw", ["in progress", "IN-PROGRESS", "in_progress", " In Progress "])
    def test_normalize_token(self, raw):
        assert normalize_enum_token(raw) == "IN_PROGRESS"

    @pytest.mark.parametrize("raw", ["in progress", "IN-PROGRESS", "in_progress"])
    def test_create_with_loose_status(self, client, project_id, raw):
        feature = create_feature(client, project_id, "Login", status=raw, priority="high")
        assert feature["status"] == "IN_PROGRESS"
        assert feature["priority"] == "HIGH"

    def test_unknown_status_rejected(self, client, project_id):
        response = client.post(
            f"{AGENT}/features",
            json={"project_id": project_id, "title": "Login", "status": "almost done"},
        )
        assert response.status_code == 422

    def test_filter_with_loose_status(self, client, project_id):
        create_feature(client, project_id, "Login", status="in review")
        create_feature(client, project_id, "Billing")

        result = client.get(f"{AGENT}/features", params={"status": "In-Review"}).json()

        assert result["count"] == 1
        assert result["items"][0]["title"] == "Login"

    def test_filter_with_unknown_status(self, client, project_id):
        response = client.get(f"{AGENT}/features", params={"status": "sideways"})
        assert response.status_code == 422


class TestSubtaskBatch:
    """Feature updates carry a mixed subtask batch."""

    def test_tag_subtask_op(self):
        assert tag_subtask_op("Write tests") == {"kind": "create", "title": "Write tests"}
        assert tag_subtask_op({"id": "x", "status": "done"}) == {"kind": "update_status", "id": "x", "status": "done"}

    def test_create_with_subtasks(self, client, project_id):
        feature = create_feature(client, project_id, "Login", subtasks=["Form", "Validation"])

        assert [(s["title"], s["position"], s["status"]) for s in feature["subtasks"]] == [
            ("Form", 0, "OPEN"),
            ("Validation", 1, "OPEN"),
        ]

    def test_mixed_batch(self, client, project_id):
        feature = create_feature(client, project_id, "Login", subtasks=["Form", "Validation"])
        form_id = feature["subtasks"][0]["id"]

        response = client.patch(
            f"{AGENT}/features/{feature['id']}",
            json={
                "status": "in progress",
                "branch_url": "https://github.com/org/repo/tree/feat/login",
                "subtasks": [{"id": form_id, "status": "done"}, "Tests"],
            },
        )

        assert response.status_code == 200, response.text
        result = response.json()
        assert result["status"] == "IN_PROGRESS"
        assert [(s["title"], s["status"], s["position"]) for s in result["subtasks"]] == [
            ("Form", "DONE", 0),
            ("Validation", "OPEN", 1),
            ("Tests", "OPEN", 2),
        ]

        log = client.get(f"{AGENT}/projects/{project_id}/changelog").json()
        actions = {e["action"] for e in log["items"]}
        assert {"STATUS_CHANGED", "FEATURE_UPDATED", "SUBTASK_DONE", "SUBTASK_CREATED"} <= actions
        assert all(e["source"] == "agent" for e in log["items"])

    def test_unknown_subtask_applies_nothing(self, client, project_id):
        feature = create_feature(client, project_id, "Login", subtasks=["Form"])

        response = client.patch(
            f"{AGENT}/features/{feature['id']}",
            json={"title": "Renamed", "subtasks": ["New one", {"id": str(uuid4()), "status": "done"}]},
        )

        assert response.status_code == 404
        reloaded = client.get(f"{AGENT}/features/{feature['id']}").json()
        assert reloaded["title"] == "Login"
        assert [s["title"] for s in reloaded["subtasks"]] == ["Form"]

    def test_repeated_ops_log_net_change(self, client, project_id):
        feature = create_feature(client, project_id, "Login", subtasks=["Form", "Tests"])
        form_id, tests_id = (s["id"] for s in feature["subtasks"])

        response = client.patch(
            f"{AGENT}/features/{feature['id']}",
            json={"subtasks": [
                {"id": form_id, "status": "done"},
                {"id": form_id, "status": "open"},
                {"id": tests_id, "status": "open"},
                {"id": tests_id, "status": "done"},
                {"id": tests_id, "status": "done"},
            ]},
        )

        assert response.status_code == 200, response.text
        assert [s["status"] for s in response.json()["subtasks"]] == ["OPEN", "DONE"]
        log = client.get(f"{AGENT}/projects/{project_id}/changelog").json()
        subtask_entries = [e for e in log["items"] if e["action"].startswith("SUBTASK_")]
        assert [(e["action"], e["meta"]) for e in subtask_entries] == [
            ("SUBTASK_DONE", {"from": "OPEN", "to": "DONE"}),
        ]

    def test_subtask_of_other_feature_is_unknown(self, client, project_id):
        first = create_feature(client, project_id, "First", subtasks=["Mine"])
        second = create_feature(client, project_id, "Second")

        response = client.patch(
            f"{AGENT}/features/{second['id']}",
            json={"subtasks": [{"id": first["subtasks"][0]["id"], "status": "done"}]},
        )

        assert response.status_code == 404

    def test_pr_and_review(self, client, project_id):
        feature = create_feature(client, project_id, "Login")

        response = client.patch(
            f"{AGENT}/features/{feature['id']}",
            json={"status": "in_review", "pr_url": "https://github.com/org/repo/pull/7"},
        )

        assert response.json()["status"] == "IN_REVIEW"
        assert response.json()["pr_url"] == "https://github.com/org/repo/pull/7"


class TestAgentProjects:
    """Test agent project and milestone endpoints."""

    def test_list_and_patch(self, client, project_id):
        projects = client.get(f"{AGENT}/projects").json()
        assert [p["id"] for p in projects] == [project_id]

        response = client.patch(f"{AGENT}/projects/{project_id}", json={"context_md": "Ship the MVP"})

        assert response.json()["context_md"] == "Ship the MVP"

    def test_milestone_insert_and_move(self, client, project_id):
        base = f"{AGENT}/projects/{project_id}/milestones"
        client.post(base, json={"name": "v1"})
        client.post(base, json={"name": "v2"})
        v0 = client.post(base, json={"name": "v0", "position": 0}).json()
        assert v0["position"] == 0

        moved = client.patch(f"{base}/{v0['id']}", json={"position": 2, "name": "v3"})

        assert (moved.json()["name"], moved.json()["position"]) == ("v3", 2)
        assert [m["name"] for m in client.get(base).json()] == ["v1", "v2", "v3"]
        assert client.delete(f"{base}/{v0['id']}").status_code == 204

    def test_missing_feature(self, client):
        assert client.get(f"{AGENT}/features/{uuid4()}").status_code == 404

    def test_create_in_missing_project(self, client):
        response = client.post(f"{AGENT}/features", json={"project_id": str(uuid4()), "title": "Orphan"})
        assert response.status_code == 404

    def test_list_in_missing_project(self, client):
        response = client.get(f"{AGENT}/features", params={"project_id": str(uuid4())})

        assert response.status_code == 404
        assert response.json()["detail"] == "Project not found"

    def test_list_limit_bounds(self, client):
        assert client.get(f"{AGENT}/features", params={"limit": 0}).status_code == 422
        assert client.get(f"{AGENT}/features", params={"limit": 101}).status_code == 422
