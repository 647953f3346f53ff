"""Tests for the board (human) API."""
from uuid import uuid4

import yaml

from pmboard_core import changelog, crud, schemas

API = "/api/v1"


def create_project(client, name="Board"):
    response = client.post(f"{API}/projects/", json={"name": name})
    assert response.status_code == 201
    return response.json()


def create_feature(client, project_id, title, **fields):
    response = client.post(f"{API}/projects/{project_id}/features", json={"title": title, **fields})
    assert response.status_code == 201, response.text
    return response.json()


class TestProjects:
    """Test project endpoints."""

    def test_create_and_get(self, client):
        project = create_project(client, "Website")

        response = client.get(f"{API}/projects/{project['id']}")

        assert response.status_code == 200
        assert response.json()["name"] == "Website"
        assert response.json()["feature_count"] == 0

    def test_list_with_counts(self, client):
        project = create_project(client, "Website")
        create_feature(client, project["id"], "Login")
        create_project(client, "Other")

        result = client.get(f"{API}/projects/").json()

        assert result["total"] == 2
        assert result["total_pages"] == 1
        counts = {p["name"]: p["feature_count"] for p in result["items"]}
        assert counts == {"Website": 1, "Other": 0}

    def test_update_only_sent_fields(self, client):
        project = client.post(f"{API}/projects/", json={"name": "Website", "description": "Keep me"}).json()

        response = client.put(f"{API}/projects/{project['id']}", json={"context_md": "# Mission"})

        assert response.status_code == 200
        assert response.json()["description"] == "Keep me"
        assert response.json()["context_md"] == "# Mission"

    def test_invalid_repo_url(self, client):
        response = client.post(f"{API}/projects/", json={"name": "X", "repo_url": "not a url"})
        assert response.status_code == 422

    def test_missing_project(self, client):
        response = client.get(f"{API}/projects/{uuid4()}")
        assert response.status_code == 404
        assert response.json()["detail"] == "Project not found"

    def test_children_of_missing_project_are_404(self, client):
        assert client.get(f"{API}/projects/{uuid4()}/features").status_code == 404
        assert client.get(f"{API}/projects/{uuid4()}/milestones").status_code == 404
        assert client.get(f"{API}/projects/{uuid4()}/changelog").status_code == 404

    def test_delete_cascades(self, client):
        project = create_project(client)
        feature = create_feature(client, project["id"], "Login")

        assert client.delete(f"{API}/projects/{project['id']}").status_code == 204
        assert client.get(f"{API}/projects/{project['id']}").status_code == 404
        assert client.get(f"{API}/projects/{project['id']}/features/{feature['id']}").status_code == 404


class TestFeatures:
    """Test feature endpoints."""

    def test_board_scenario(self, client):
        """Two backlog features; the first is dragged to the top of TODO."""
        project = create_project(client)
        f1 = create_feature(client, project["id"], "F1")
        f2 = create_feature(client, project["id"], "F2")
        assert (f1["status"], f1["position"]) == ("BACKLOG", 0)
        assert (f2["status"], f2["position"]) == ("BACKLOG", 1)

        response = client.patch(
            f"{API}/projects/{project['id']}/features/{f1['id']}/position",
            json={"status": "TODO", "position": 0},
        )

        assert response.status_code == 200
        assert (response.json()["status"], response.json()["position"]) == ("TODO", 0)
        board = client.get(f"{API}/projects/{project['id']}/features").json()
        assert [(f["title"], f["status"], f["position"]) for f in board] == [
            ("F1", "TODO", 0),
            ("F2", "BACKLOG", 1),
        ]

        log = client.get(f"{API}/projects/{project['id']}/changelog").json()
        moves = [e for e in log["items"] if e["action"] == "STATUS_CHANGED"]
        assert len(moves) == 1
        assert moves[0]["meta"] == {"from": "BACKLOG", "to": "TODO"}
        assert moves[0]["feature_id"] == f1["id"]

    def test_human_surface_requires_canonical_enums(self, client):
        project = create_project(client)

        response = client.post(
            f"{API}/projects/{project['id']}/features",
            json={"title": "Login", "status": "in_progress"},
        )

        assert response.status_code == 422
        assert "status" in response.json()["detail"][0]["loc"]

    def test_title_required(self, client):
        project = create_project(client)
        response = client.post(f"{API}/projects/{project['id']}/features", json={"title": ""})
        assert response.status_code == 422

    def test_feature_under_wrong_project_is_404(self, client):
        project = create_project(client)
        other = create_project(client, "Other")
        feature = create_feature(client, project["id"], "Login")

        response = client.get(f"{API}/projects/{other['id']}/features/{feature['id']}")

        assert response.status_code == 404
        assert response.json()["detail"] == "Feature not found"

    def test_milestone_from_other_project_is_rejected(self, client):
        project = create_project(client)
        other = create_project(client, "Other")
        milestone = client.post(f"{API}/projects/{other['id']}/milestones", json={"name": "v1"}).json()

        response = client.post(
            f"{API}/projects/{project['id']}/features",
            json={"title": "Login", "milestone_id": milestone["id"]},
        )

        assert response.status_code == 400

    def test_update_and_clear_url(self, client):
        project = create_project(client)
        feature = create_feature(client, project["id"], "Login", branch_url="https://github.com/o/r/tree/login")

        response = client.put(
            f"{API}/projects/{project['id']}/features/{feature['id']}",
            json={"branch_url": "", "priority": "HIGH"},
        )

        assert response.status_code == 200
        assert response.json()["branch_url"] is None
        assert response.json()["priority"] == "HIGH"

    def test_search(self, client):
        project = create_project(client)
        create_feature(client, project["id"], "Login", spec="Uses OAuth")
        create_feature(client, project["id"], "Billing", priority="URGENT")

        by_spec = client.get(f"{API}/features/", params={"search": "oauth"}).json()
        by_priority = client.get(f"{API}/features/", params={"priority": "URGENT"}).json()

        assert [f["title"] for f in by_spec["items"]] == ["Login"]
        assert [f["title"] for f in by_priority["items"]] == ["Billing"]

    def test_search_in_missing_project_is_404(self, client):
        response = client.get(f"{API}/features/", params={"project_id": str(uuid4())})

        assert response.status_code == 404
        assert response.json()["detail"] == "Project not found"

    def test_delete(self, client):
        project = create_project(client)
        feature = create_feature(client, project["id"], "Login")

        response = client.delete(f"{API}/projects/{project['id']}/features/{feature['id']}")

        assert response.status_code == 204
        log = client.get(f"{API}/projects/{project['id']}/changelog").json()
        assert [e["action"] for e in log["items"]] == ["FEATURE_DELETED"]

    def test_export(self, client):
        project = create_project(client, "Website")
        feature = create_feature(client, project["id"], "Add Login Page!", description="Users sign in")
        client.post(f"{API}/projects/{project['id']}/features/{feature['id']}/subtasks", json={"title": "Form"})

        response = client.get(f"{API}/projects/{project['id']}/features/{feature['id']}/export")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/markdown")
        assert response.headers["content-disposition"] == 'attachment; filename="add-login-page.md"'
        _, frontmatter, body = response.text.split("---\n", 2)
        meta = yaml.safe_load(frontmatter)
        assert meta["title"] == "Add Login Page!"
        assert meta["project"] == "Website"
        assert meta["status"] == "BACKLOG"
        assert "> Users sign in" in body
        assert "_No specification written yet._" in body
        assert "- [ ] Form" in body


class TestSubtasks:
    """Test subtask endpoints."""

    def test_crud_and_reorder(self, client):
        project = create_project(client)
        feature = create_feature(client, project["id"], "Login")
        base = f"{API}/projects/{project['id']}/features/{feature['id']}/subtasks"
        ids = [client.post(base, json={"title": t}).json()["id"] for t in ("one", "two", "three")]

        done = client.put(f"{base}/{ids[0]}", json={"status": "DONE"})
        moved = client.patch(f"{base}/{ids[2]}/position", json={"position": 0})
        removed = client.delete(f"{base}/{ids[1]}")

        assert done.json()["status"] == "DONE"
        assert moved.json()["position"] == 0
        assert removed.status_code == 204
        listing = client.get(base).json()
        assert [(s["title"], s["status"]) for s in listing] == [("three", "OPEN"), ("one", "DONE")]

    def test_negative_position_rejected(self, client):
        project = create_project(client)
        feature = create_feature(client, project["id"], "Login")
        base = f"{API}/projects/{project['id']}/features/{feature['id']}/subtasks"
        subtask = client.post(base, json={"title": "one"}).json()

        response = client.patch(f"{base}/{subtask['id']}/position", json={"position": -1})

        assert response.status_code == 422

    def test_missing_subtask(self, client):
        project = create_project(client)
        feature = create_feature(client, project["id"], "Login")

        response = client.put(
            f"{API}/projects/{project['id']}/features/{feature['id']}/subtasks/{uuid4()}",
            json={"status": "DONE"},
        )

        assert response.status_code == 404


class TestMilestones:
    """Test milestone endpoints."""

    def test_roadmap(self, client):
        project = create_project(client)
        base = f"{API}/projects/{project['id']}/milestones"
        v1 = client.post(base, json={"name": "v1"}).json()
        v2 = client.post(base, json={"name": "v2", "target_date": "2026-12-01T00:00:00"}).json()
        feature = create_feature(client, project["id"], "Login", milestone_id=v1["id"])

        client.patch(f"{base}/{v2['id']}/position", json={"position": 0})
        roadmap = client.get(base).json()

        assert [(m["name"], m["position"]) for m in roadmap] == [("v2", 0), ("v1", 1)]
        assert [f["id"] for f in roadmap[1]["features"]] == [feature["id"]]

    def test_delete_unassigns_features(self, client):
        project = create_project(client)
        base = f"{API}/projects/{project['id']}/milestones"
        v1 = client.post(base, json={"name": "v1"}).json()
        feature = create_feature(client, project["id"], "Login", milestone_id=v1["id"])

        assert client.delete(f"{base}/{v1['id']}").status_code == 204

        reloaded = client.get(f"{API}/projects/{project['id']}/features/{feature['id']}").json()
        assert reloaded["milestone_id"] is None


class TestChangelog:
    """Test the activity feed endpoint."""

    def test_pagination_and_dedupe_flag(self, client):
        project = create_project(client)
        for title in ("A", "B", "C"):
            create_feature(client, project["id"], title)

        page = client.get(f"{API}/projects/{project['id']}/changelog", params={"page_size": 2}).json()
        deduped = client.get(f"{API}/projects/{project['id']}/changelog", params={"dedupe": "true"}).json()

        assert page["total"] == 3
        assert page["total_pages"] == 2
        assert page["count"] == 2
        assert [e["feature_title"] for e in page["items"]] == ["C", "B"]
        assert page["deduped"] is False
        assert deduped["deduped"] is True
        assert deduped["count"] == 3

    def test_dedupe_is_opt_in(self, client, db, project):
        feature = crud.create_feature(db, project.id, schemas.FeatureCreate(title="Login"))
        entry = changelog.feature_created_entry(feature)
        changelog.emit(db, [entry, entry])
        url = f"{API}/projects/{project.id}/changelog"

        assert client.get(url).json()["count"] == 3
        assert client.get(url, params={"dedupe": "true"}).json()["count"] == 1


class TestApp:
    """Test app-level endpoints."""

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}
