"""
Monthly aggregation: one consolidated total per recipient.

Scans every bill, sums totals per email and notifies each recipient
concurrently. A failed scan fails the run; a failed notification only
affects its own recipient.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, UTC
from decimal import Decimal
from typing import Dict, Iterable, Optional

from loguru import logger

from ..core.errors import ExternalServiceError, PartialDeliveryError
from ..models.bill import Bill
from ..models.notification import NotificationResult, NotificationStatus
from .mailer import EmailService
from .notifications import NotificationGateway
from .storage.bill_store_base import BillStoreBase
from .storage.recipients import normalize_email
from .templates import compose


@dataclass
class AggregationReport:
    month: str
    totals: Dict[str, float] = field(default_factory=dict)
    outcomes: Dict[str, NotificationStatus] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def delivered(self) -> int:
        return sum(1 for s in self.outcomes.values() if s is NotificationStatus.DELIVERED)


def aggregate_totals(bills: Iterable[Bill]) -> Dict[str, float]:
    """
    Sum bill totals per recipient email, case-insensitively (the same
    normalisation the recipient registry applies).

    Streams the input; only one running sum per recipient is held.
    Accumulates in Decimal so adding many amounts doesn't drift
    (0.1 + 0.2 sums to 0.3).
    """
    sums: Dict[str, Decimal] = {}
    for bill in bills:
        key = normalize_email(bill.email)
        sums[key] = sums.get(key, Decimal(0)) + Decimal(repr(bill.total))
    return {email: float(amount) for email, amount in sums.items()}


def reporting_month(now: Optional[datetime] = None) -> str:
    """The calendar month that just ended, e.g. 'September 2026' for a run on 1 October 2026."""
    now = now or datetime.now(UTC)
    last_month = now.replace(day=1) - timedelta(days=1)
    return last_month.strftime("%B %Y")


async def _notify_recipient(gateway: NotificationGateway, email: str, total: float, month: str) -> NotificationResult:
    content = compose("monthly_report", total=total, month=month)
    result = await gateway.notify_content(email, content)
    if result.status is NotificationStatus.FAILED:
        raise PartialDeliveryError(email, result.error or "unknown error")
    return result


async def run_aggregation(bill_store: BillStoreBase, email_service: EmailService,
                          now: Optional[datetime] = None, page_size: int = 100) -> AggregationReport:
    """
    Run one aggregation cycle.

    Raises:
        ExternalServiceError: the bill scan failed (nothing was sent)
    """
    report = AggregationReport(month=reporting_month(now))

    try:
        report.totals = aggregate_totals(bill_store.scan(page_size=page_size))
    except Exception as e:
        logger.error("Error occurred while scanning bills", error=str(e))
        raise ExternalServiceError("bill store", f"scan failed: {e}") from e

    if not report.totals:
        logger.info("No bills present, nothing to aggregate")
        return report

    logger.info("Aggregated totals", recipients=len(report.totals), month=report.month)

    gateway = NotificationGateway(email_service)
    emails = list(report.totals)
    results = await asyncio.gather(
        *(_notify_recipient(gateway, email, report.totals[email], report.month) for email in emails),
        return_exceptions=True,
    )

    for email, result in zip(emails, results):
        if isinstance(result, BaseException):
            report.outcomes[email] = NotificationStatus.FAILED
            report.failures[email] = str(result)
            logger.error("Monthly report not delivered", recipient=email, error=str(result))
        else:
            report.outcomes[email] = result.status

    logger.info(
        "Monthly aggregation complete",
        month=report.month,
        recipients=len(emails),
        delivered=report.delivered,
        failed=len(report.failures)
    )
    return report
