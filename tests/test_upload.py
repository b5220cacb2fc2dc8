import io
import json
from pathlib import Path

from fastapi.testclient import TestClient

from billify.api.main import app
from billify.core.config import settings
from billify.models.bill import Bill
from billify.services import clients
from billify.services.clients import get_document_store, get_job_publisher

client = TestClient(app)


def upload(name="Jane", email="jane@x.com", filename="invoice1.pdf", content=b"%PDF-1.4 sample invoice"):
    files = {"file": (filename, io.BytesIO(content), "application/pdf")}
    data = {}
    if name is not None:
        data["name"] = name
    if email is not None:
        data["email"] = email
    return client.post("/invoices/upload", files=files, data=data)


def test_health():
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_upload_queues_exactly_one_job():
    r = upload()

    assert r.status_code == 200
    data = r.json()
    assert data["message"] == "Successfully uploaded invoice & queued it for processing"
    assert data["name"] == "Jane"
    assert data["email"] == "jane@x.com"

    messages = clients.get_job_receiver().receive_messages(max_message_count=10)
    assert len(messages) == 1
    job = json.loads(str(messages[0]))
    assert job["id"] == data["id"]
    assert job["name"] == "Jane"
    assert job["email"] == "jane@x.com"
    assert job["documentRef"] == "invoice1.pdf"
    assert job["timestamp"]


def test_upload_stores_document_under_filename():
    upload(content=b"invoice bytes")

    stored = Path(settings.local_document_dir) / "invoice1.pdf"
    assert stored.read_bytes() == b"invoice bytes"


def test_upload_missing_name_is_rejected():
    r = upload(name=None)

    assert r.status_code == 400
    assert "name" in r.json()["message"]
    assert len(clients.get_job_receiver()) == 0


def test_upload_blank_email_is_rejected():
    r = upload(email="   ")

    assert r.status_code == 400
    assert "email" in r.json()["message"]


def test_upload_without_file():
    r = client.post("/invoices/upload", data={"name": "Jane", "email": "jane@x.com"})

    assert r.status_code == 422


def test_document_store_failure_returns_500():
    class BrokenStore:
        def put(self, key, content, content_type=None):
            raise OSError("container not found")

    app.dependency_overrides[get_document_store] = lambda: BrokenStore()
    try:
        r = upload()

        assert r.status_code == 500
        assert r.json()["message"].startswith("Error while processing request.")
        assert "container not found" in r.json()["message"]
        assert len(clients.get_job_receiver()) == 0
    finally:
        app.dependency_overrides.clear()


def test_publish_failure_returns_500_and_keeps_document():
    class BrokenPublisher:
        def publish(self, job):
            raise ConnectionError("Service Bus unavailable")

    app.dependency_overrides[get_job_publisher] = lambda: BrokenPublisher()
    try:
        r = upload()

        assert r.status_code == 500
        assert "Service Bus unavailable" in r.json()["message"]
        # No rollback of the stored document
        assert (Path(settings.local_document_dir) / "invoice1.pdf").exists()
    finally:
        app.dependency_overrides.clear()


def test_intake_verification_mails_new_submitter(monkeypatch):
    monkeypatch.setattr(settings, "intake_request_verification", True)

    r = upload(email="new@x.com")

    assert r.status_code == 200
    sent = clients.get_email_service().sent_to("new@x.com")
    assert len(sent) == 1
    assert sent[0]["subject"] == "Verify your email address for Billify"


def test_intake_verification_off_by_default():
    upload(email="new@x.com")

    assert clients.get_email_service().sent == []


def test_list_bills_newest_first():
    store = clients.get_bill_store()
    store.put_if_absent(Bill(id="a", name="Jane", email="jane@x.com", total=1, timestamp="2026-10-01T00:00:00+00:00"))
    store.put_if_absent(Bill(id="b", name="Jane", email="jane@x.com", total=2, timestamp="2026-10-02T00:00:00+00:00"))

    data = client.get("/invoices/bills").json()

    assert data["total_bills"] == 2
    assert [b["id"] for b in data["bills"]] == ["b", "a"]
