"""Reference-timezone helpers shared by availability and admission.

Every calendar day is a UTC day. Reservation dates carry no time of day, so a
day window is simply ``[day, day + 1)`` on the stored date column.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

HOURS_PER_DAY = 24


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_reservation_date(value: date | datetime) -> date:
    # datetime is a subclass of date, so it has to be checked first.
    if isinstance(value, datetime):
        return to_utc(value).date()
    return value


def day_window(day: date) -> tuple[date, date]:
    return day, day + timedelta(days=1)


def reservation_start(day: date, hour: int) -> datetime:
    return datetime.combine(day, time(hour=hour), tzinfo=timezone.utc)


def is_valid_hour(hour: int) -> bool:
    return isinstance(hour, int) and not isinstance(hour, bool) and 0 <= hour < HOURS_PER_DAY
