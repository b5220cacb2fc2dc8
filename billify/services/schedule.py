
from datetime import datetime, UTC


def cron_expression(day: int = 1, hour: int = 11) -> str:
    """Cron form of the aggregation trigger, for the hosting scheduler"""
    return f"0 {hour} {day} * *"


def next_run(after: datetime | None = None, day: int = 1, hour: int = 11) -> datetime:
    """
    Next aggregation time strictly after `after` (UTC): `day` of a month at `hour`:00.

    Days that don't exist in a month (e.g. 31) fall back to that month's
    last day.
    """
    if not 1 <= day <= 31 or not 0 <= hour <= 23:
        raise ValueError(f"Invalid aggregation schedule: day={day} hour={hour}")

    after = after or datetime.now(UTC)
    if after.tzinfo is None:
        after = after.replace(tzinfo=UTC)

    year, month = after.year, after.month
    while True:
        candidate = datetime(year, month, min(day, _days_in_month(year, month)), hour, tzinfo=UTC)
        if candidate > after:
            return candidate
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)


def _days_in_month(year: int, month: int) -> int:
    if month == 12:
        return 31
    return (datetime(year, month + 1, 1) - datetime(year, month, 1)).days


AGGREGATION_SCHEDULE = cron_expression()
