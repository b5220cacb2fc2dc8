"""
Pytest configuration.

Registers the integration marker/option and provides fakes shared by the
pipeline tests. Every test runs against local collaborators (in-process
queue, temp document directory, in-memory stores, mock email).
"""

import uuid
from datetime import datetime, UTC

import pytest

from billify.core.config import settings
from billify.services import storage
from billify.services.clients import reset_clients
from billify.services.extraction_types import AnalyzedField, Extracted
from billify.services.mailer import MockEmailService
from billify.services.storage import InMemoryBillStore, RecipientRegistry


def pytest_addoption(parser):
    """Add custom command-line options"""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests against real Azure resources"
    )


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test requiring real Azure resources"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is specified"""
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


@pytest.fixture(autouse=True)
def local_pipeline(tmp_path, monkeypatch):
    """Point every collaborator at its local implementation and start clean"""
    overrides = {
        "service_bus_connection_string": None,
        "blob_connection_string": None,
        "az_di_endpoint": None,
        "az_di_api_key": None,
        "bill_db_path": None,
        "recipients_db_path": None,
        "email_provider": "mock",
        "intake_request_verification": False,
        "extraction_failure_policy": "commit_zero",
        "bill_retention_days": None,
        "local_document_dir": str(tmp_path / "invoices"),
    }
    for name, value in overrides.items():
        monkeypatch.setattr(settings, name, value)

    reset_clients()
    storage.bill_store._bills.clear()
    storage.recipient_registry._recipients.clear()
    yield
    reset_clients()


class FakeAnalyzer:
    """Stands in for DocumentAnalyzer; returns a fixed outcome or raises"""

    def __init__(self, outcome=None, error=None):
        self.outcome = outcome if outcome is not None else Extracted(fields=[])
        self.error = error
        self.calls = []

    def analyze(self, document_ref):
        self.calls.append(document_ref)
        if self.error is not None:
            raise self.error
        return self.outcome


@pytest.fixture
def make_analyzer():
    """Build a FakeAnalyzer from (field_type, text) pairs, an outcome, or an error"""
    def _make(*pairs, outcome=None, error=None):
        if outcome is None and pairs:
            outcome = Extracted(fields=[AnalyzedField(field_type=t, text=v) for t, v in pairs])
        return FakeAnalyzer(outcome=outcome, error=error)
    return _make


@pytest.fixture
def make_job():
    """Build a job message dict with sensible defaults"""
    def _make(**fields):
        job = {
            "id": str(uuid.uuid4()),
            "name": "Jane",
            "email": "jane@x.com",
            "documentRef": "invoice1.pdf",
            "timestamp": datetime.now(UTC).isoformat(),
        }
        job.update(fields)
        return job
    return _make


@pytest.fixture
def bill_store():
    return InMemoryBillStore()


@pytest.fixture
def registry():
    return RecipientRegistry()


@pytest.fixture
def email_service(registry):
    return MockEmailService(registry)
