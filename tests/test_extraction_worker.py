"""
Tests for the extraction worker: validation, analysis, persistence,
idempotency and the processed-invoice notification.
"""

import asyncio
import time

import pytest

from billify.services.extraction import ExtractionWorker, JobStatus
from billify.services.extraction_types import Failed
from billify.models.notification import NotificationStatus


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def verified(registry):
    registry.mark_verified("jane@x.com")
    return registry


def test_valid_job_produces_bill_and_email(make_analyzer, make_job, bill_store, email_service, verified):
    analyzer = make_analyzer(("TOTAL", "99.99"), ("VENDOR_NAME", " Acme "))
    worker = ExtractionWorker(analyzer, bill_store, email_service)
    job = make_job(id="job-1")

    outcomes = run(worker.process_batch([job]))

    assert [o.status for o in outcomes] == [JobStatus.PROCESSED]
    bill = bill_store.get("job-1")
    assert bill.total == 99.99
    assert bill.vendor_name == "Acme"
    assert bill.name == "Jane"
    assert bill.email == "jane@x.com"
    assert bill.timestamp == job["timestamp"]
    assert analyzer.calls == ["invoice1.pdf"]

    assert outcomes[0].notification.status is NotificationStatus.DELIVERED
    sent = email_service.sent_to("jane@x.com")
    assert len(sent) == 1
    assert "99.99" in sent[0]["subject"]
    assert "Acme" in sent[0]["text_body"]


def test_invalid_job_is_skipped_and_batch_continues(make_analyzer, make_job, bill_store, email_service, verified):
    worker = ExtractionWorker(make_analyzer(("TOTAL", "10")), bill_store, email_service)
    bad = make_job(id="bad")
    del bad["email"]

    outcomes = run(worker.process_batch([bad, make_job(id="good-1"), make_job(id="good-2")]))

    assert [o.status for o in outcomes] == [JobStatus.INVALID, JobStatus.PROCESSED, JobStatus.PROCESSED]
    assert "email" in outcomes[0].error
    assert bill_store.get("bad") is None
    assert bill_store.get("good-1") is not None
    assert bill_store.get("good-2") is not None


def test_analysis_failure_commits_zero_total_bill(make_analyzer, make_job, bill_store, email_service, verified):
    analyzer = make_analyzer(outcome=Failed(reason="service unavailable"))
    worker = ExtractionWorker(analyzer, bill_store, email_service)

    outcomes = run(worker.process_batch([make_job(id="job-1")]))

    assert outcomes[0].status is JobStatus.PROCESSED
    assert bill_store.get("job-1").total == 0
    assert bill_store.get("job-1").vendor_name is None


def test_analyzer_exception_commits_zero_total_bill(make_analyzer, make_job, bill_store, email_service, verified):
    worker = ExtractionWorker(make_analyzer(error=RuntimeError("boom")), bill_store, email_service)

    outcomes = run(worker.process_batch([make_job(id="job-1")]))

    assert outcomes[0].status is JobStatus.PROCESSED
    assert bill_store.get("job-1").total == 0


def test_quarantine_policy_persists_nothing(make_analyzer, make_job, bill_store, email_service, verified):
    analyzer = make_analyzer(outcome=Failed(reason="timeout"))
    worker = ExtractionWorker(analyzer, bill_store, email_service, failure_policy="quarantine")

    outcomes = run(worker.process_batch([make_job(id="job-1")]))

    assert outcomes[0].status is JobStatus.QUARANTINED
    assert outcomes[0].error == "timeout"
    assert bill_store.get("job-1") is None
    assert email_service.sent == []


def test_unknown_failure_policy_rejected(make_analyzer, bill_store, email_service):
    with pytest.raises(ValueError):
        ExtractionWorker(make_analyzer(), bill_store, email_service, failure_policy="retry-forever")


def test_redelivered_job_creates_one_bill(make_analyzer, make_job, bill_store, email_service, verified):
    analyzer = make_analyzer(("TOTAL", "20.00"))
    worker = ExtractionWorker(analyzer, bill_store, email_service)
    job = make_job(id="job-1")

    first = run(worker.process_batch([job]))
    second = run(worker.process_batch([job]))

    assert first[0].status is JobStatus.PROCESSED
    assert second[0].status is JobStatus.DUPLICATE
    assert len(bill_store.list_all()) == 1
    assert len(email_service.sent_to("jane@x.com")) == 1
    assert analyzer.calls == ["invoice1.pdf"]


def test_unverified_recipient_gets_one_verification_request_per_batch(make_analyzer, make_job, bill_store, email_service):
    worker = ExtractionWorker(make_analyzer(("TOTAL", "5")), bill_store, email_service)

    outcomes = run(worker.process_batch([make_job(), make_job()]))

    assert [o.notification.status for o in outcomes] == [NotificationStatus.VERIFICATION_REQUESTED] * 2
    sent = email_service.sent_to("jane@x.com")
    assert len(sent) == 1
    assert sent[0]["subject"].startswith("Verify your email")
    # Bills are still recorded for unverified users
    assert len(bill_store.list_all()) == 2


def test_bill_store_failure_fails_only_that_job(make_analyzer, make_job, bill_store, email_service, verified):
    class FlakyStore(type(bill_store)):
        def put_if_absent(self, bill):
            if bill.id == "job-1":
                raise OSError("disk full")
            return super().put_if_absent(bill)

    store = FlakyStore()
    worker = ExtractionWorker(make_analyzer(("TOTAL", "1")), store, email_service)

    outcomes = run(worker.process_batch([make_job(id="job-1"), make_job(id="job-2")]))

    assert outcomes[0].status is JobStatus.FAILED
    assert "disk full" in outcomes[0].error
    assert outcomes[1].status is JobStatus.PROCESSED
    assert store.get("job-2") is not None


def test_retention_sets_expiry(make_analyzer, make_job, bill_store, email_service, verified):
    worker = ExtractionWorker(make_analyzer(("TOTAL", "1")), bill_store, email_service, retention_days=30)

    run(worker.process_batch([make_job(id="job-1")]))

    expires_at = bill_store.get("job-1").expires_at
    assert expires_at is not None
    assert expires_at > time.time() + 29 * 86400
    assert bill_store.get("job-1").to_record()["ttl"] == expires_at
