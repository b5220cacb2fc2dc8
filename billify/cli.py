#!/usr/bin/env python3
"""
Billify background processes.

Usage:
    billify worker                 # consume invoice jobs from the queue
    billify worker --max-batches 1 # drain one batch and exit
    billify aggregate              # run the monthly aggregation now
    billify schedule               # sleep until each monthly trigger, then aggregate
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime, UTC

from .core.config import settings
from .core.errors import ExternalServiceError
from .core.logging import setup_logging
from .services.aggregation import run_aggregation
from .services.clients import get_bill_store, get_email_service, get_extraction_worker, get_job_receiver
from .services.extraction import run_worker
from .services.schedule import cron_expression, next_run

logger = setup_logging()


async def _worker(max_batches: int | None) -> int:
    email_service = get_email_service()
    try:
        counts = await run_worker(
            get_job_receiver(),
            get_extraction_worker(),
            max_batch_size=settings.worker_batch_size,
            max_wait_time=settings.worker_max_wait_seconds,
            max_batches=max_batches,
        )
    finally:
        await email_service.aclose()
    logger.info("Worker stopped", **counts)
    return 0


async def _aggregate() -> int:
    email_service = get_email_service()
    try:
        report = await run_aggregation(get_bill_store(), email_service, page_size=settings.scan_page_size)
    except ExternalServiceError as e:
        logger.error("Monthly aggregation failed", error=str(e))
        return 1
    finally:
        await email_service.aclose()

    print(json.dumps({
        "month": report.month,
        "recipients": len(report.totals),
        "delivered": report.delivered,
        "failures": report.failures,
    }, indent=2))
    return 0


async def _schedule(once: bool) -> int:
    logger.info(
        "Aggregation scheduler started",
        cron=cron_expression(settings.aggregation_day, settings.aggregation_hour)
    )
    while True:
        due = next_run(day=settings.aggregation_day, hour=settings.aggregation_hour)
        logger.info("Next monthly aggregation", at=due.isoformat())
        await asyncio.sleep(max(0.0, (due - datetime.now(UTC)).total_seconds()))

        status = await _aggregate()
        if once:
            return status


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="billify",
        description="Billify invoice pipeline background processes"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    worker_parser = subparsers.add_parser("worker", help="Consume invoice jobs from the queue")
    worker_parser.add_argument(
        "--max-batches",
        type=int,
        default=None,
        help="Stop after this many receive calls (default: run forever)"
    )

    subparsers.add_parser("aggregate", help="Run the monthly aggregation once, now")

    schedule_parser = subparsers.add_parser("schedule", help="Run the aggregation on its monthly schedule")
    schedule_parser.add_argument("--once", action="store_true", help="Exit after the next scheduled run")

    args = parser.parse_args(argv)

    if args.command == "worker":
        return asyncio.run(_worker(args.max_batches))
    if args.command == "aggregate":
        return asyncio.run(_aggregate())
    return asyncio.run(_schedule(args.once))


if __name__ == "__main__":
    sys.exit(main())
