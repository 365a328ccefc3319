"""Core booking admission and status lifecycle operations."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from charging.availability import AvailabilityCalculator, free_slot_index
from charging.credentials import CredentialIssuer
from charging.errors import (
    CapacityExceededError,
    ConflictError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
    NotOwnerError,
    translate_store_errors,
)
from charging.locks import KeyedLockRegistry, SlotKey
from charging.models import Booking, Station
from charging.rules import BookingPolicy, RuleCheckResult, RuleEngine
from charging.schema import BookingRead, BookingStatus, StationAvailabilityResponse
from charging.timeutils import to_reservation_date, utc_now

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
SlotWriter = Callable[[Session], tuple[Booking, Station]]


def _raise_if_denied(check: RuleCheckResult, error_cls: type) -> None:
    if not check.allowed:
        raise error_cls(check.reason or "Booking rule check failed.")


def _load_booking(db: Session, booking_id: str, *, lock_rows: bool = False) -> Booking:
    stmt = select(Booking).where(Booking.id == booking_id)
    if lock_rows:
        stmt = stmt.with_for_update()
    booking = db.scalar(stmt)
    if not booking:
        raise NotFoundError("Booking not found.")
    return booking


def _load_station_for_admission(db: Session, station_id: str) -> Station:
    station = db.get(Station, station_id)
    if not station:
        raise NotFoundError("Station not found.")
    if not station.is_active:
        raise InvalidStateError("Station is not active.")
    return station


def _capacity_exceeded(station: Station, hour: int) -> CapacityExceededError:
    return CapacityExceededError(
        f"No available slots for hour {hour}:00. All {station.slot_capacity} slots are booked."
    )


class BookingEngine:
    """Admits bookings without overbooking any (station, date, hour) and owns their status lifecycle.

    Admission of a slot is serialized in-process by a lock keyed on the slot and
    across processes by the ``uq_booking_slot`` constraint: each live booking
    claims a distinct slot index below the station capacity, so a concurrent
    writer that picked the same index fails on insert and re-derives occupancy.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        clock: Clock = utc_now,
        credential_issuer: Optional[CredentialIssuer] = None,
        policy: Optional[BookingPolicy] = None,
        locks: Optional[KeyedLockRegistry] = None,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._credential_issuer = credential_issuer
        self._policy = policy or BookingPolicy()
        self._locks = locks or KeyedLockRegistry()
        self.availability = AvailabilityCalculator(session_factory)

    def get_availability(self, station_id: str, day: date | datetime) -> StationAvailabilityResponse:
        return self.availability.get_availability(station_id, day)

    def available_hours(self, station_id: str, day: date | datetime) -> list[int]:
        return self.availability.available_hours(station_id, day)

    def _admit(self, key: SlotKey, write: SlotWriter, *, action: str) -> BookingRead:
        with self._locks.hold(key):
            attempt = 0
            max_attempts = 1
            while True:
                attempt += 1
                try:
                    with translate_store_errors(action), self._session_factory() as db:
                        with db.begin():
                            booking, station = write(db)
                            # Every lost race means another booking took an index, so
                            # capacity + 1 attempts always end in success or a full hour.
                            max_attempts = station.slot_capacity + 1
                            db.flush()
                            return BookingRead.model_validate(booking)
                except IntegrityError as exc:
                    if attempt >= max_attempts:
                        logger.warning("Giving up %s for %s after %d attempts", action, key, attempt)
                        raise ConflictError("Slot was claimed by a concurrent booking; try again.") from exc
                    logger.warning("Lost slot race while %s for %s (attempt %d); retrying", action, key, attempt)

    def create_booking(self, owner_id: str, station_id: str, reservation_date: date | datetime, hour: int) -> BookingRead:
        if not owner_id:
            raise InvalidArgumentError("owner_id is required.")
        _raise_if_denied(RuleEngine.check_hour(hour), InvalidArgumentError)
        day = to_reservation_date(reservation_date)
        now = self._clock()
        _raise_if_denied(RuleEngine.check_advance_limit(day, now, self._policy), InvalidArgumentError)

        def write(db: Session) -> tuple[Booking, Station]:
            station = _load_station_for_admission(db, station_id)
            slot_index = free_slot_index(db, station=station, day=day, hour=hour)
            if slot_index is None:
                raise _capacity_exceeded(station, hour)
            booking = Booking(
                owner_id=owner_id,
                station_id=station.id,
                reservation_date=day,
                reservation_hour=hour,
                slot_index=slot_index,
                status=BookingStatus.PENDING,
                created_at=now,
            )
            db.add(booking)
            return booking, station

        result = self._admit(SlotKey(station_id, day, hour), write, action="creating booking")
        logger.info("Created booking %s for station %s on %s at %02d:00", result.id, station_id, day, hour)
        return result

    def reschedule_booking(
        self,
        booking_id: str,
        station_id: str,
        reservation_date: date | datetime,
        hour: int,
    ) -> BookingRead:
        _raise_if_denied(RuleEngine.check_hour(hour), InvalidArgumentError)
        day = to_reservation_date(reservation_date)
        now = self._clock()
        _raise_if_denied(RuleEngine.check_advance_limit(day, now, self._policy), InvalidArgumentError)

        def write(db: Session) -> tuple[Booking, Station]:
            booking = _load_booking(db, booking_id, lock_rows=True)
            if booking.status != BookingStatus.PENDING:
                raise InvalidStateError(
                    f"Only pending bookings can be rescheduled; booking is {booking.status.value}."
                )
            _raise_if_denied(
                RuleEngine.check_modification_window(booking.reservation_date, booking.reservation_hour, now, self._policy),
                InvalidStateError,
            )
            station = _load_station_for_admission(db, station_id)
            if (booking.station_id, booking.reservation_date, booking.reservation_hour) == (station.id, day, hour):
                return booking, station

            slot_index = free_slot_index(db, station=station, day=day, hour=hour, exclude_booking_id=booking.id)
            if slot_index is None:
                raise _capacity_exceeded(station, hour)
            booking.station_id = station.id
            booking.reservation_date = day
            booking.reservation_hour = hour
            booking.slot_index = slot_index
            booking.updated_at = now
            return booking, station

        result = self._admit(SlotKey(station_id, day, hour), write, action="rescheduling booking")
        logger.info("Rescheduled booking %s to station %s on %s at %02d:00", booking_id, station_id, day, hour)
        return result

    def cancel_booking(self, booking_id: str, requester_id: Optional[str] = None) -> BookingRead:
        """Cancel a pending or approved booking.

        ``requester_id`` identifies an owner acting on their own booking; owners are
        also bound by the modification cutoff. Operators pass no requester.
        """
        now = self._clock()
        with translate_store_errors("cancelling booking"), self._session_factory() as db:
            with db.begin():
                booking = _load_booking(db, booking_id, lock_rows=True)
                if requester_id is not None and booking.owner_id != requester_id:
                    raise NotOwnerError("Booking does not belong to this user.")
                _raise_if_denied(RuleEngine.check_transition(booking.status, BookingStatus.CANCELLED), InvalidStateError)
                if requester_id is not None:
                    _raise_if_denied(
                        RuleEngine.check_modification_window(
                            booking.reservation_date, booking.reservation_hour, now, self._policy
                        ),
                        InvalidStateError,
                    )

                booking.status = BookingStatus.CANCELLED
                booking.slot_index = None
                booking.updated_at = now
                db.flush()
                result = BookingRead.model_validate(booking)

        logger.info("Cancelled booking %s", booking_id)
        return result

    def approve_booking(self, booking_id: str) -> BookingRead:
        now = self._clock()
        with translate_store_errors("approving booking"), self._session_factory() as db:
            with db.begin():
                booking = _load_booking(db, booking_id, lock_rows=True)
                _raise_if_denied(RuleEngine.check_transition(booking.status, BookingStatus.APPROVED), InvalidStateError)

                booking.status = BookingStatus.APPROVED
                booking.updated_at = now
                if self._credential_issuer is not None:
                    booking.credential = self._credential_issuer.issue(booking)
                db.flush()
                result = BookingRead.model_validate(booking)

        logger.info("Approved booking %s", booking_id)
        return result

    def complete_booking(self, booking_id: str) -> BookingRead:
        now = self._clock()
        with translate_store_errors("completing booking"), self._session_factory() as db:
            with db.begin():
                booking = _load_booking(db, booking_id, lock_rows=True)
                _raise_if_denied(RuleEngine.check_transition(booking.status, BookingStatus.COMPLETED), InvalidStateError)

                booking.status = BookingStatus.COMPLETED
                booking.updated_at = now
                db.flush()
                result = BookingRead.model_validate(booking)

        logger.info("Completed booking %s", booking_id)
        return result

    def purge_booking(self, booking_id: str, requester_id: Optional[str] = None) -> None:
        """Delete a pending or cancelled booking; approved and completed ones stay for the audit trail.

        With ``requester_id`` the delete is owner-scoped, like ``cancel_booking``.
        """
        with translate_store_errors("purging booking"), self._session_factory() as db:
            with db.begin():
                booking = _load_booking(db, booking_id, lock_rows=True)
                if requester_id is not None and booking.owner_id != requester_id:
                    raise NotOwnerError("Booking does not belong to this user.")
                _raise_if_denied(RuleEngine.check_purge(booking.status), InvalidStateError)
                db.delete(booking)

        logger.info("Purged booking %s", booking_id)

    def get_booking(self, booking_id: str) -> BookingRead:
        with translate_store_errors("reading booking"), self._session_factory() as db:
            return BookingRead.model_validate(_load_booking(db, booking_id))

    def list_owner_bookings(self, owner_id: str) -> list[BookingRead]:
        stmt = (
            select(Booking)
            .where(Booking.owner_id == owner_id)
            .order_by(Booking.reservation_date.desc(), Booking.reservation_hour.desc())
        )
        with translate_store_errors("listing bookings"), self._session_factory() as db:
            return [BookingRead.model_validate(booking) for booking in db.scalars(stmt)]

    def list_station_bookings(self, station_id: str, day: date | datetime) -> list[BookingRead]:
        day = to_reservation_date(day)
        stmt = (
            select(Booking)
            .where(Booking.station_id == station_id, Booking.reservation_date == day)
            .order_by(Booking.reservation_hour.asc(), Booking.created_at.asc())
        )
        with translate_store_errors("listing bookings"), self._session_factory() as db:
            if not db.get(Station, station_id):
                raise NotFoundError("Station not found.")
            return [BookingRead.model_validate(booking) for booking in db.scalars(stmt)]
