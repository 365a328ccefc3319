from datetime import datetime, timedelta, timezone

import pytest

from charging.availability import AvailabilityCalculator, free_slot_index, hour_count, tally_hours
from charging.errors import NotFoundError
from charging.models import Booking, Station
from charging.schema import BookingStatus
from conftest import FIXED_NOW, RESERVATION_DAY


def _insert_booking(session_factory, *, hour, status=BookingStatus.PENDING, slot_index=0, day=RESERVATION_DAY):
    with session_factory() as db:
        with db.begin():
            db.add(
                Booking(
                    owner_id="owner-x",
                    station_id="st-1",
                    reservation_date=day,
                    reservation_hour=hour,
                    slot_index=None if status == BookingStatus.CANCELLED else slot_index,
                    status=status,
                    created_at=FIXED_NOW,
                )
            )


def test_empty_day_reports_every_hour_free(session_factory, add_station):
    add_station("st-1", capacity=3)

    availability = AvailabilityCalculator(session_factory).get_availability("st-1", RESERVATION_DAY)

    assert availability.station_name == "Central Charging Hub"
    assert [slot.hour for slot in availability.hours] == list(range(24))
    assert all(slot.booked == 0 and slot.remaining == 3 and slot.total == 3 for slot in availability.hours)


def test_cancelled_and_other_days_are_ignored(session_factory, add_station):
    add_station("st-1", capacity=2)
    _insert_booking(session_factory, hour=10, slot_index=0)
    _insert_booking(session_factory, hour=10, status=BookingStatus.COMPLETED, slot_index=1)
    _insert_booking(session_factory, hour=10, status=BookingStatus.CANCELLED)
    _insert_booking(session_factory, hour=10, day=RESERVATION_DAY + timedelta(days=1))
    _insert_booking(session_factory, hour=23)

    calculator = AvailabilityCalculator(session_factory)
    hours = calculator.get_availability("st-1", RESERVATION_DAY).hours

    assert (hours[10].booked, hours[10].remaining) == (2, 0)
    assert (hours[23].booked, hours[23].remaining) == (1, 1)
    assert sum(slot.booked for slot in hours) == 3
    assert 10 not in calculator.available_hours("st-1", RESERVATION_DAY)
    assert calculator.available_hours("st-1", RESERVATION_DAY)[:3] == [0, 1, 2]


def test_datetime_input_is_read_as_utc_day(session_factory, add_station):
    add_station("st-1", capacity=1)
    _insert_booking(session_factory, hour=4)

    late_evening_west = datetime(2024, 1, 14, 22, 0, tzinfo=timezone(timedelta(hours=-5)))
    availability = AvailabilityCalculator(session_factory).get_availability("st-1", late_evening_west)

    assert availability.date == RESERVATION_DAY
    assert availability.hours[4].booked == 1


def test_unknown_or_inactive_station_is_not_found(session_factory, add_station):
    add_station("st-off", is_active=False)
    calculator = AvailabilityCalculator(session_factory)

    with pytest.raises(NotFoundError):
        calculator.get_availability("missing", RESERVATION_DAY)
    with pytest.raises(NotFoundError):
        calculator.get_availability("st-off", RESERVATION_DAY)


def test_remaining_never_goes_negative():
    bookings = [Booking(reservation_hour=5) for _ in range(3)]

    hours = tally_hours(bookings, capacity=2)

    assert (hours[5].booked, hours[5].remaining) == (3, 0)


def test_free_slot_index_skips_claimed_and_excluded(session_factory, add_station):
    add_station("st-1", capacity=3)
    _insert_booking(session_factory, hour=12, slot_index=0)
    _insert_booking(session_factory, hour=12, slot_index=2)

    with session_factory() as db:
        station = db.get(Station, "st-1")
        assert hour_count(db, station_id="st-1", day=RESERVATION_DAY, hour=12) == 2
        assert free_slot_index(db, station=station, day=RESERVATION_DAY, hour=12) == 1
        assert free_slot_index(db, station=station, day=RESERVATION_DAY, hour=13) == 0

    _insert_booking(session_factory, hour=12, slot_index=1)
    with session_factory() as db:
        station = db.get(Station, "st-1")
        assert free_slot_index(db, station=station, day=RESERVATION_DAY, hour=12) is None
