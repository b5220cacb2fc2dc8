"""
Extraction worker: turns queued jobs into persisted bills.

For each delivered job: validate, analyze the stored document, map the
analysis fields onto a Bill, persist it (conditional on the job id) and
send the processed-invoice notification. Jobs in a batch are handled one
after another and independently; one bad job never stops the rest.
"""

import asyncio
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Union

from loguru import logger

from ..core.errors import ExternalServiceError
from ..models.bill import Bill
from ..models.job import Job, decode_job
from ..models.notification import NotificationResult
from .extraction_types import AnalyzedField, Extracted, Failed, ExtractionOutcome
from .notifications import NotificationGateway
from .storage.bill_store_base import BillStoreBase
from .templates import compose

FAILURE_POLICIES = ("commit_zero", "quarantine")

CURRENCY_SYMBOLS = ["$", "€", "£", "¥", "₹"]
CURRENCY_CODES = ["USD", "AUD", "EUR", "GBP", "CAD", "JPY", "CNY", "INR"]


def parse_total(text: str | None) -> float:
    """
    Parse a detected TOTAL value.

    Handles currency symbols, currency codes, and commas, e.g. "$123.45",
    "USD 123.45", "1,234.56". Anything unparseable, negative or non-finite
    yields 0.
    """
    if text is None:
        return 0.0

    total_str = str(text).replace(",", "")
    for symbol in CURRENCY_SYMBOLS:
        total_str = total_str.replace(symbol, "")
    for curr_code in CURRENCY_CODES:
        total_str = total_str.replace(curr_code, "")
    total_str = total_str.strip()

    try:
        value = float(total_str)
    except (ValueError, TypeError):
        logger.warning("Could not parse invoice total", raw=text)
        return 0.0

    if not math.isfinite(value) or value < 0:
        logger.warning("Ignoring out-of-range invoice total", raw=text)
        return 0.0

    return value


def map_fields(fields: Iterable[AnalyzedField]) -> tuple[float, str | None]:
    """
    Map analysis fields onto (total, vendor_name).

    Only TOTAL and VENDOR_NAME are consumed; other field types are ignored.
    When a type appears more than once the last occurrence wins.
    """
    total = 0.0
    vendor_name = None
    for field in fields:
        if not field.text:
            continue
        if field.field_type == "TOTAL":
            total = parse_total(field.text)
        elif field.field_type == "VENDOR_NAME":
            vendor_name = field.text.strip() or None
    return total, vendor_name


class JobStatus(str, Enum):
    PROCESSED = "processed"
    DUPLICATE = "duplicate"      # bill for this job id already existed
    INVALID = "invalid"          # payload failed validation
    QUARANTINED = "quarantined"  # analysis failed under the quarantine policy
    FAILED = "failed"            # persistence or other unexpected error


@dataclass
class JobOutcome:
    status: JobStatus
    job_id: Optional[str] = None
    bill: Optional[Bill] = None
    notification: Optional[NotificationResult] = None
    error: Optional[str] = None


class ExtractionWorker:
    """
    Processes delivered job batches.

    failure_policy decides what an analysis failure means:
    - commit_zero: persist the bill with total 0 (every valid job yields a bill)
    - quarantine: persist nothing and report the job for redelivery
    """

    def __init__(self, analyzer, bill_store: BillStoreBase, email_service,
                 failure_policy: str = "commit_zero", retention_days: int | None = None):
        if failure_policy not in FAILURE_POLICIES:
            raise ValueError(f"Unknown extraction failure policy: {failure_policy}")
        self.analyzer = analyzer
        self.bill_store = bill_store
        self.email_service = email_service
        self.failure_policy = failure_policy
        self.retention_days = retention_days

    async def process_batch(self, bodies: Iterable[Union[str, bytes, dict]]) -> list[JobOutcome]:
        """Process every message body in a delivered batch, in order."""
        gateway = NotificationGateway(self.email_service)
        outcomes = []

        for body in bodies:
            decoded = decode_job(body)
            if not decoded.ok:
                logger.error("Missing fields in job message, skipping", error=decoded.error)
                outcomes.append(JobOutcome(JobStatus.INVALID, error=decoded.error))
                continue

            job = decoded.job
            try:
                outcomes.append(await self.process_job(job, gateway))
            except Exception as e:
                logger.error("Job processing failed", job_id=job.id, error=str(e))
                outcomes.append(JobOutcome(JobStatus.FAILED, job_id=job.id, error=str(e)))

        return outcomes

    async def process_job(self, job: Job, gateway: NotificationGateway | None = None) -> JobOutcome:
        """
        Process one validated job end to end.

        Raises:
            ExternalServiceError: the bill could not be persisted
        """
        gateway = gateway or NotificationGateway(self.email_service)
        logger.info("Invoice processing initiated", job_id=job.id, name=job.name, document_ref=job.document_ref)

        if self.bill_store.get(job.id) is not None:
            logger.info("Bill already exists for job, skipping redelivery", job_id=job.id)
            return JobOutcome(JobStatus.DUPLICATE, job_id=job.id)

        outcome = await self._analyze(job)
        total, vendor_name = 0.0, None
        if isinstance(outcome, Extracted):
            try:
                total, vendor_name = map_fields(outcome.fields)
            except Exception as e:
                outcome = Failed(reason=f"Malformed analysis response: {str(e)}")

        if isinstance(outcome, Failed):
            if self.failure_policy == "quarantine":
                logger.warning("Extraction failed, job quarantined for retry", job_id=job.id, reason=outcome.reason)
                return JobOutcome(JobStatus.QUARANTINED, job_id=job.id, error=outcome.reason)
            logger.warning("Extraction failed, saving bill with zero total", job_id=job.id, reason=outcome.reason)

        bill = Bill.from_job(job, total=total, vendor_name=vendor_name, expires_at=self._expiry())

        try:
            created = self.bill_store.put_if_absent(bill)
        except Exception as e:
            raise ExternalServiceError("bill store", str(e)) from e

        if not created:
            logger.info("Bill already exists for job, skipping redelivery", job_id=job.id)
            return JobOutcome(JobStatus.DUPLICATE, job_id=job.id)

        logger.info("Saved invoice details", job_id=job.id, total=bill.total, vendor=bill.vendor_name)

        notification = await gateway.notify_content(job.email, compose("invoice_processed", bill=bill))
        return JobOutcome(JobStatus.PROCESSED, job_id=job.id, bill=bill, notification=notification)

    async def _analyze(self, job: Job) -> ExtractionOutcome:
        # Analysis clients are synchronous; keep the event loop free while they poll
        try:
            return await asyncio.to_thread(self.analyzer.analyze, job.document_ref)
        except Exception as e:
            logger.error("Error while extracting expense info", job_id=job.id, error=str(e))
            return Failed(reason=str(e))

    def _expiry(self) -> int | None:
        if not self.retention_days:
            return None
        return int(time.time()) + self.retention_days * 86400


async def run_worker(receiver, worker: ExtractionWorker, max_batch_size: int = 10,
                     max_wait_time: float = 5.0, max_batches: int | None = None) -> dict:
    """
    Consume jobs from a queue receiver until max_batches receives (forever if None).

    Settlement per outcome: processed/duplicate -> complete, invalid ->
    dead-letter, quarantined/failed -> abandon (the queue redelivers).

    Works with an azure.servicebus ServiceBusReceiver or an InMemoryJobQueue.
    """
    counts = {status.value: 0 for status in JobStatus}
    batches = 0

    with receiver:
        while max_batches is None or batches < max_batches:
            batches += 1
            messages = await asyncio.to_thread(
                receiver.receive_messages,
                max_message_count=max_batch_size,
                max_wait_time=max_wait_time,
            )
            if not messages:
                continue

            logger.info("Received job batch", size=len(messages))
            outcomes = await worker.process_batch([str(m) for m in messages])

            for message, outcome in zip(messages, outcomes):
                counts[outcome.status.value] += 1
                _settle(receiver, message, outcome)

    return counts


def _settle(receiver, message, outcome: JobOutcome) -> None:
    # Settlement failures stay with their message; unsettled messages are redelivered
    try:
        if outcome.status in (JobStatus.PROCESSED, JobStatus.DUPLICATE):
            receiver.complete_message(message)
        elif outcome.status is JobStatus.INVALID:
            receiver.dead_letter_message(message, reason="InvalidJob", error_description=outcome.error)
        else:
            receiver.abandon_message(message)
    except Exception as e:
        logger.error(
            "Could not settle job message",
            job_id=outcome.job_id,
            message_id=getattr(message, "message_id", None),
            status=outcome.status.value,
            error=str(e)
        )
