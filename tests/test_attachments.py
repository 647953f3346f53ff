"""Tests for attachment upload and storage."""
from uuid import uuid4

import pytest

from pmboard_core.storage import AttachmentStorage

API = "/api/v1"


@pytest.fixture
def feature_url(client):
    project = client.post(f"{API}/projects/", json={"name": "Files"}).json()
    feature = client.post(f"{API}/projects/{project['id']}/features", json={"title": "Docs"}).json()
    return f"{API}/projects/{project['id']}/features/{feature['id']}"


class TestStorage:
    """Test the filesystem storage."""

    def test_generated_names(self):
        assert AttachmentStorage.generate_filename("Report.PDF").endswith(".pdf")
        assert AttachmentStorage.generate_filename("README").endswith(".bin")
        assert AttachmentStorage.generate_filename("a.txt") != AttachmentStorage.generate_filename("a.txt")

    def test_save_and_delete(self, storage):
        blob = storage.save("notes.txt", b"hello")

        assert blob.url == f"/uploads/{blob.filename}"
        assert blob.size == 5
        assert storage.path_for(blob.filename).read_bytes() == b"hello"

        storage.delete(blob.filename)
        assert not storage.path_for(blob.filename).exists()

    def test_delete_missing_file_is_ignored(self, storage):
        storage.delete(f"{uuid4().hex}.txt")

    def test_path_traversal_rejected(self, storage):
        with pytest.raises(ValueError):
            storage.path_for("../outside.txt")


class TestAttachmentApi:
    """Test the attachment endpoints."""

    def test_upload_list_delete(self, client, storage, feature_url):
        response = client.post(
            f"{feature_url}/attachments",
            files={"file": ("diagram.png", b"\x89PNG data", "image/png")},
        )

        assert response.status_code == 201
        attachment = response.json()
        assert attachment["original_name"] == "diagram.png"
        assert attachment["mime_type"] == "image/png"
        assert attachment["size"] == 9
        assert attachment["filename"].endswith(".png")
        assert attachment["url"] == f"/uploads/{attachment['filename']}"
        assert storage.path_for(attachment["filename"]).read_bytes() == b"\x89PNG data"

        listing = client.get(f"{feature_url}/attachments").json()
        assert [a["id"] for a in listing] == [attachment["id"]]

        assert client.delete(f"{feature_url}/attachments/{attachment['id']}").status_code == 204
        assert not storage.path_for(attachment["filename"]).exists()
        assert client.get(f"{feature_url}/attachments").json() == []

    def test_feature_delete_removes_files(self, client, storage, feature_url):
        attachment = client.post(
            f"{feature_url}/attachments",
            files={"file": ("notes.txt", b"hi", "text/plain")},
        ).json()

        client.delete(feature_url)

        assert not storage.path_for(attachment["filename"]).exists()

    def test_missing_attachment(self, client, feature_url):
        assert client.delete(f"{feature_url}/attachments/{uuid4()}").status_code == 404

    def test_upload_requires_file(self, client, feature_url):
        assert client.post(f"{feature_url}/attachments").status_code == 422
