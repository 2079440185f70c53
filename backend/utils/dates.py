from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from config import settings


# Timestamps are stored as naive UTC
def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def day_start(day: date) -> datetime:
    """First instant of `day` in the reference time zone, as naive UTC."""
    local = datetime.combine(day, time.min, tzinfo=ZoneInfo(settings.REFERENCE_TIMEZONE))
    return to_utc_naive(local)


def day_end_exclusive(day: date) -> datetime:
    return day_start(day + timedelta(days=1))


def reference_today() -> date:
    return datetime.now(ZoneInfo(settings.REFERENCE_TIMEZONE)).date()
