"""
Invoice intake: store the uploaded document and hand a job to the queue.

Storage write then queue publish, in that order, with no rollback: if the
publish fails the stored document stays behind and the caller gets an error.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, UTC

from loguru import logger
from pydantic import ValidationError

from ..core.errors import ExternalServiceError, JobValidationError
from ..models.job import Job
from ..models.notification import may_send
from .document_store import DocumentStore
from .job_queue import JobPublisher


@dataclass
class UploadedDocument:
    filename: str
    content: bytes
    content_type: str | None = None


async def submit_invoice(
    document: UploadedDocument,
    name: str,
    email: str,
    document_store: DocumentStore,
    publisher: JobPublisher,
    email_service=None,
) -> Job:
    """
    Accept one invoice upload.

    Args:
        document: Decoded upload (filename, bytes, content type)
        name: Submitter name
        email: Submitter email
        document_store: Where the document is written, keyed by filename
        publisher: Queue the job is published to
        email_service: When given, non-verified submitters are sent a
            verification request before anything is stored

    Returns:
        The published Job

    Raises:
        JobValidationError: missing name, email or filename
        ExternalServiceError: email, storage or queue failure
    """
    if not document.filename:
        raise JobValidationError("Uploaded file has no filename")

    try:
        job = Job(
            id=str(uuid.uuid4()),
            name=name or "",
            email=email or "",
            document_ref=document.filename,
            timestamp=datetime.now(UTC).isoformat(),
        )
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
        raise JobValidationError(f"Missing or empty fields: {', '.join(fields)}") from e

    logger.info("Received an invoice processing request", name=job.name, document_ref=job.document_ref)

    if email_service is not None:
        await _ensure_verification_requested(email_service, job.email)

    try:
        document_store.put(job.document_ref, document.content, document.content_type)
    except Exception as e:
        raise ExternalServiceError("document store", str(e)) from e

    try:
        publisher.publish(job)
    except Exception as e:
        raise ExternalServiceError("job queue", str(e)) from e

    logger.info("Job published for further processing", job_id=job.id, document_ref=job.document_ref)
    return job


async def _ensure_verification_requested(email_service, email: str) -> None:
    try:
        state = await email_service.get_verification_state(email)
        if not may_send(state):
            await email_service.request_verification(email)
            logger.info("Sent an email to the user to verify it", recipient=email)
    except Exception as e:
        raise ExternalServiceError("email", str(e)) from e
