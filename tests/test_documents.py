from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from app.errors import InternalError
from app.models import Document
from app.storage import MemoryStorage, S3Storage, StorageRegistry
from app.stores import DocumentStore
from conftest import FakeS3Client, auth_header, make_user
from main import create_app


def _upload(client, user, content=b"hello world", filename="report.pdf", **form):
    return client.post(
        "/api/documents",
        files={"file": (filename, content, "application/pdf")},
        data=form,
        headers=auth_header(user),
    )


def _document_count(app) -> int:
    with app.state.database.session() as db:
        return db.query(Document).count()


def test_client_uploads_for_themselves_to_disk(client, settings, alice, notifier) -> None:
    response = _upload(client, alice, name="Q2 report", description="numbers")
    assert response.status_code == 201
    body = response.json()
    assert body["name"] == "Q2 report"
    assert body["client"]["id"] == alice["id"]
    assert body["uploadedBy"]["id"] == alice["id"]
    assert body["fileType"] == "pdf"
    assert body["mimeType"] == "application/pdf"
    assert body["size"] == len(b"hello world")
    assert body["storageBackend"] == "disk"
    assert body["fileUrl"].startswith("uploads/")
    stored = Path(settings.upload_dir) / Path(body["fileUrl"]).name
    assert stored.read_bytes() == b"hello world"
    assert notifier.calls == []


def test_client_cannot_upload_for_another_client(client, alice, bob) -> None:
    response = _upload(client, alice, clientId=bob["id"])
    assert response.status_code == 201
    assert response.json()["client"]["id"] == alice["id"]


def test_upload_without_file_returns_400(client, alice) -> None:
    response = client.post("/api/documents", data={"name": "nothing"}, headers=auth_header(alice))
    assert response.status_code == 400
    assert response.json()["message"] == "Please upload a file"


def test_admin_upload_requires_existing_client(client, app, admin) -> None:
    response = _upload(client, admin)
    assert response.status_code == 400
    assert response.json()["message"] == "Please specify a client"

    response = _upload(client, admin, clientId=admin["id"])
    assert response.status_code == 404
    assert _document_count(app) == 0


def test_admin_upload_for_client_notifies_client(client, admin, alice, notifier) -> None:
    response = _upload(client, admin, clientId=alice["id"], name="Contract")
    assert response.status_code == 201
    assert response.json()["uploadedBy"]["id"] == admin["id"]
    assert notifier.calls == [("+15550000001", "New document uploaded: Contract")]


def test_upload_linked_to_task(client, admin, alice, bob) -> None:
    task = client.post(
        "/api/tasks",
        json={"title": "Send ID", "clientId": alice["id"], "deadline": "2031-01-01T00:00:00Z"},
        headers=auth_header(admin),
    ).json()

    response = _upload(client, alice, taskId=task["id"])
    assert response.status_code == 201
    assert response.json()["task"] == {"id": task["id"], "title": "Send ID"}

    assert _upload(client, bob, taskId=task["id"]).status_code == 404


def test_oversized_upload_is_rejected_before_storing(settings, notifier) -> None:
    small = settings.model_copy(update={"max_upload_bytes": 16})
    app = create_app(small, notifier=notifier)
    app.state.database.connect()
    user = make_user(app, "client", "carol@example.com")
    client = TestClient(app)

    response = _upload(client, user, content=b"x" * 17)
    assert response.status_code == 413
    assert "too large" in response.json()["message"]
    assert _document_count(app) == 0
    upload_dir = Path(small.upload_dir)
    assert not upload_dir.exists() or list(upload_dir.iterdir()) == []

    assert _upload(client, user, content=b"x" * 16).status_code == 201
    app.state.database.dispose()


def test_document_listing_is_scoped_to_owner(client, admin, alice, bob) -> None:
    alice_doc = _upload(client, alice).json()
    bob_doc = _upload(client, bob).json()

    response = client.get("/api/documents", headers=auth_header(alice))
    assert [d["id"] for d in response.json()] == [alice_doc["id"]]

    response = client.get("/api/documents", headers=auth_header(admin))
    assert {d["id"] for d in response.json()} == {alice_doc["id"], bob_doc["id"]}

    assert client.get(f"/api/documents/{bob_doc['id']}", headers=auth_header(alice)).status_code == 403
    assert client.get(f"/api/documents/{bob_doc['id']}", headers=auth_header(admin)).status_code == 200
    assert client.get("/api/documents/missing", headers=auth_header(admin)).status_code == 404


def test_download_from_disk_returns_bytes(client, alice, bob) -> None:
    doc = _upload(client, alice, content=b"%PDF-1.4 data", name="Statement").json()

    response = client.get(f"/api/documents/download/{doc['id']}", headers=auth_header(alice))
    assert response.status_code == 200
    assert response.content == b"%PDF-1.4 data"
    assert response.headers["content-type"] == "application/pdf"
    assert 'filename="Statement.pdf"' in response.headers["content-disposition"]

    response = client.get(f"/api/documents/download/{doc['id']}", headers=auth_header(bob))
    assert response.status_code == 403


def test_delete_disk_document_removes_file(client, settings, alice, bob) -> None:
    doc = _upload(client, alice).json()
    stored = Path(settings.upload_dir) / Path(doc["fileUrl"]).name
    assert stored.exists()

    assert client.delete(f"/api/documents/{doc['id']}", headers=auth_header(bob)).status_code == 403

    response = client.delete(f"/api/documents/{doc['id']}", headers=auth_header(alice))
    assert response.status_code == 200
    assert response.json()["message"] == "Document removed"
    assert not stored.exists()
    assert client.get(f"/api/documents/{doc['id']}", headers=auth_header(alice)).status_code == 404


@pytest.fixture()
def memory_app(settings, notifier):
    memory_settings = settings.model_copy(update={"storage_backend": "memory"})
    app = create_app(memory_settings, notifier=notifier)
    app.state.database.connect()
    yield app
    app.state.database.dispose()


def test_memory_storage_download_is_unsupported(memory_app) -> None:
    user = make_user(memory_app, "client", "dora@example.com")
    client = TestClient(memory_app)

    doc = _upload(client, user).json()
    assert doc["storageBackend"] == "memory"
    assert doc["fileUrl"].startswith("uploads/")

    response = client.get(f"/api/documents/download/{doc['id']}", headers=auth_header(user))
    assert response.status_code == 200
    body = response.json()
    assert "not available" in body["message"]
    assert body["document"]["id"] == doc["id"]

    response = client.delete(f"/api/documents/{doc['id']}", headers=auth_header(user))
    assert response.status_code == 200
    assert response.json()["message"] == "Document record removed"
    assert _document_count(memory_app) == 0


def test_records_from_an_earlier_backend_stay_readable(memory_app, settings) -> None:
    disk_app = create_app(settings)
    disk_app.state.database.connect()
    user = make_user(disk_app, "client", "erin@example.com")
    doc = _upload(TestClient(disk_app), user, content=b"old bytes").json()
    disk_app.state.database.dispose()

    # Same database, now served by a memory-backed deployment.
    response = TestClient(memory_app).get(
        f"/api/documents/download/{doc['id']}",
        headers=auth_header(user),
    )
    assert response.status_code == 200
    assert response.content == b"old bytes"


@pytest.fixture()
def s3_app(settings, notifier):
    s3_settings = settings.model_copy(update={"storage_backend": "s3"})
    fake = FakeS3Client()
    registry = StorageRegistry(s3_settings, active=S3Storage(s3_settings, client=fake))
    app = create_app(s3_settings, storage=registry, notifier=notifier)
    app.state.database.connect()
    app.state.fake_s3 = fake
    yield app
    app.state.database.dispose()


def test_s3_upload_redirect_and_delete(s3_app) -> None:
    user = make_user(s3_app, "client", "frank@example.com")
    client = TestClient(s3_app)
    fake = s3_app.state.fake_s3

    doc = _upload(client, user, content=b"cloud bytes", filename="scan.png").json()
    assert doc["storageBackend"] == "s3"
    assert doc["fileUrl"].startswith("https://cdn.example.com/documents/")
    key = doc["fileUrl"][len("https://cdn.example.com/"):]
    assert fake.objects[key] == b"cloud bytes"

    response = client.get(
        f"/api/documents/download/{doc['id']}",
        headers=auth_header(user),
        follow_redirects=False,
    )
    assert response.status_code == 307
    assert response.headers["location"] == doc["fileUrl"]

    response = client.delete(f"/api/documents/{doc['id']}", headers=auth_header(user))
    assert response.status_code == 200
    assert response.json()["message"] == "Document removed"
    assert fake.deleted == [key]
    assert key not in fake.objects


def test_registry_returns_none_for_unknown_backend(settings) -> None:
    registry = StorageRegistry(settings, active=MemoryStorage())
    assert registry.for_record("memory") is registry.active
    assert registry.for_record("tape") is None


def test_download_of_missing_disk_file_returns_404(client, settings, alice) -> None:
    doc = _upload(client, alice).json()
    (Path(settings.upload_dir) / Path(doc["fileUrl"]).name).unlink()

    response = client.get(f"/api/documents/download/{doc['id']}", headers=auth_header(alice))
    assert response.status_code == 404
    assert response.json() == {"message": "File not found"}


def test_failed_record_insert_removes_stored_file(client, settings, alice, monkeypatch) -> None:
    def broken_create(self, **fields):
        raise InternalError(detail="insert failed")

    monkeypatch.setattr(DocumentStore, "create", broken_create)
    response = _upload(client, alice)

    assert response.status_code == 500
    assert response.json()["error"] == "insert failed"
    upload_dir = Path(settings.upload_dir)
    assert not upload_dir.exists() or list(upload_dir.iterdir()) == []


def test_failed_record_delete_keeps_stored_file(client, app, settings, alice, monkeypatch) -> None:
    doc = _upload(client, alice).json()
    stored = Path(settings.upload_dir) / Path(doc["fileUrl"]).name

    def broken_delete(self, entity):
        raise InternalError(detail="delete failed")

    monkeypatch.setattr(DocumentStore, "delete", broken_delete)
    response = client.delete(f"/api/documents/{doc['id']}", headers=auth_header(alice))

    assert response.status_code == 500
    assert stored.read_bytes() == b"hello world"
    assert _document_count(app) == 1
