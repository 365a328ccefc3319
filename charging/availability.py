"""Hourly occupancy and remaining capacity for a station day."""

from __future__ import annotations

from collections import Counter
from datetime import date, datetime
from typing import Callable, Iterable, Optional

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from charging.errors import NotFoundError, translate_store_errors
from charging.models import Booking, Station
from charging.schema import BookingStatus, HourAvailability, StationAvailabilityResponse
from charging.timeutils import HOURS_PER_DAY, day_window, to_reservation_date


def _live_at_hour(*, station_id: str, day: date, hour: int, exclude_booking_id: Optional[str] = None) -> list:
    start, end = day_window(day)
    clauses = [
        Booking.station_id == station_id,
        Booking.reservation_date >= start,
        Booking.reservation_date < end,
        Booking.reservation_hour == hour,
        Booking.status != BookingStatus.CANCELLED,
    ]
    if exclude_booking_id is not None:
        clauses.append(Booking.id != exclude_booking_id)
    return clauses


def day_bookings_query(*, station_id: str, day: date) -> Select:
    start, end = day_window(day)
    return select(Booking).where(
        Booking.station_id == station_id,
        Booking.reservation_date >= start,
        Booking.reservation_date < end,
        Booking.status != BookingStatus.CANCELLED,
    )


def hour_count(
    db: Session,
    *,
    station_id: str,
    day: date,
    hour: int,
    exclude_booking_id: Optional[str] = None,
) -> int:
    stmt = (
        select(func.count())
        .select_from(Booking)
        .where(*_live_at_hour(station_id=station_id, day=day, hour=hour, exclude_booking_id=exclude_booking_id))
    )
    return int(db.scalar(stmt) or 0)


def free_slot_index(
    db: Session,
    *,
    station: Station,
    day: date,
    hour: int,
    exclude_booking_id: Optional[str] = None,
) -> Optional[int]:
    """Lowest unclaimed slot index below capacity, or ``None`` when the hour is full."""
    if hour_count(db, station_id=station.id, day=day, hour=hour, exclude_booking_id=exclude_booking_id) >= station.slot_capacity:
        return None

    stmt = select(Booking.slot_index).where(
        *_live_at_hour(station_id=station.id, day=day, hour=hour, exclude_booking_id=exclude_booking_id)
    )
    taken = {index for index in db.scalars(stmt) if index is not None}
    for index in range(station.slot_capacity):
        if index not in taken:
            return index
    return None


def tally_hours(bookings: Iterable[Booking], capacity: int) -> list[HourAvailability]:
    booked = Counter(booking.reservation_hour for booking in bookings)
    return [
        HourAvailability(
            hour=hour,
            booked=booked[hour],
            total=capacity,
            remaining=max(capacity - booked[hour], 0),
        )
        for hour in range(HOURS_PER_DAY)
    ]


def load_active_station(db: Session, station_id: str) -> Station:
    station = db.get(Station, station_id)
    if not station or not station.is_active:
        raise NotFoundError("Station not found or inactive.")
    return station


class AvailabilityCalculator:
    """Read-only view over the booking table; every call recomputes from current rows."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def get_availability(self, station_id: str, day: date | datetime) -> StationAvailabilityResponse:
        day = to_reservation_date(day)
        with translate_store_errors("reading availability"), self._session_factory() as db:
            station = load_active_station(db, station_id)
            bookings = list(db.scalars(day_bookings_query(station_id=station.id, day=day)))
            return StationAvailabilityResponse(
                station_id=station.id,
                station_name=station.name,
                date=day,
                hours=tally_hours(bookings, station.slot_capacity),
            )

    def available_hours(self, station_id: str, day: date | datetime) -> list[int]:
        availability = self.get_availability(station_id, day)
        return [slot.hour for slot in availability.hours if slot.remaining > 0]
