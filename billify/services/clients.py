"""
Process-wide service handles.

Each collaborator is built on first use from settings and then reused for
every request/message this process handles. Cloud-backed implementations
are chosen when their settings are present, local ones otherwise.
"""

from loguru import logger

from ..core.config import settings
from . import storage
from .document_analysis import DocumentAnalyzer
from .document_store import BlobDocumentStore, DocumentStore, LocalDocumentStore
from .extraction import ExtractionWorker
from .job_queue import InMemoryJobQueue, JobPublisher
from .mailer import EmailService, GraphEmailService, MockEmailService
from .storage import BillStoreBase, RecipientRegistryBase, SQLiteBillStore, SQLiteRecipientRegistry

_handles: dict = {}


def _cached(name: str, factory):
    if name not in _handles:
        _handles[name] = factory()
    return _handles[name]


def reset_clients() -> None:
    """Forget every cached handle (tests, or after settings change)."""
    _handles.clear()


def get_document_store() -> DocumentStore:
    def build():
        if settings.blob_connection_string:
            return BlobDocumentStore.from_connection_string(settings.blob_connection_string, settings.blob_container)
        logger.warning("Blob storage not configured - storing documents locally", path=settings.local_document_dir)
        return LocalDocumentStore(settings.local_document_dir)
    return _cached("document_store", build)


def _service_bus_client():
    from azure.servicebus import ServiceBusClient
    return _cached(
        "service_bus",
        lambda: ServiceBusClient.from_connection_string(settings.service_bus_connection_string),
    )


def _local_queue() -> InMemoryJobQueue:
    return _cached("local_queue", InMemoryJobQueue)


def get_job_publisher() -> JobPublisher:
    def build():
        if settings.service_bus_connection_string:
            sender = _service_bus_client().get_queue_sender(queue_name=settings.service_bus_queue_name)
            return JobPublisher(sender=sender, entity_name=settings.service_bus_queue_name)
        logger.warning("Service Bus not configured - using in-process job queue")
        return JobPublisher(sender=_local_queue(), entity_name="local")
    return _cached("job_publisher", build)


def get_job_receiver():
    """A queue receiver; a fresh Service Bus receiver per call, or the shared local queue."""
    if settings.service_bus_connection_string:
        return _service_bus_client().get_queue_receiver(queue_name=settings.service_bus_queue_name)
    return _local_queue()


def get_document_analyzer() -> DocumentAnalyzer:
    return _cached("document_analyzer", lambda: DocumentAnalyzer.from_settings(get_document_store()))


def get_bill_store() -> BillStoreBase:
    def build():
        if settings.bill_db_path:
            return SQLiteBillStore(settings.bill_db_path)
        return storage.bill_store
    return _cached("bill_store", build)


def get_recipient_registry() -> RecipientRegistryBase:
    def build():
        if settings.recipients_db_path:
            return SQLiteRecipientRegistry(settings.recipients_db_path)
        return storage.recipient_registry
    return _cached("recipient_registry", build)


def get_email_service() -> EmailService:
    def build():
        registry = get_recipient_registry()
        if settings.email_provider.lower() == "graph":
            return GraphEmailService.from_settings(registry)
        return MockEmailService(registry, sender=settings.email_sender, api_base_url=settings.api_base_url)
    return _cached("email_service", build)


def get_extraction_worker() -> ExtractionWorker:
    return _cached("extraction_worker", lambda: ExtractionWorker(
        get_document_analyzer(),
        get_bill_store(),
        get_email_service(),
        failure_policy=settings.extraction_failure_policy,
        retention_days=settings.bill_retention_days,
    ))
