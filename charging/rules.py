"""Rule evaluation logic for charging bookings."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from charging.schema import BookingStatus
from charging.timeutils import HOURS_PER_DAY, is_valid_hour, reservation_start, to_utc

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.APPROVED, BookingStatus.CANCELLED}),
    BookingStatus.APPROVED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

PURGEABLE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CANCELLED})


@dataclass(frozen=True)
class BookingPolicy:
    """Optional time-window limits; ``None`` turns a limit off."""

    advance_booking_limit_days: Optional[int] = None
    modification_cutoff_hours: Optional[int] = None


@dataclass
class RuleCheckResult:
    allowed: bool
    reason: str | None = None


class RuleEngine:
    @staticmethod
    def check_hour(hour: int) -> RuleCheckResult:
        if not is_valid_hour(hour):
            return RuleCheckResult(
                allowed=False,
                reason=f"Reservation hour must be between 0 and {HOURS_PER_DAY - 1}.",
            )
        return RuleCheckResult(allowed=True)

    @staticmethod
    def check_advance_limit(day: date, now: datetime, policy: BookingPolicy) -> RuleCheckResult:
        if policy.advance_booking_limit_days is None:
            return RuleCheckResult(allowed=True)

        today = to_utc(now).date()
        if day < today:
            return RuleCheckResult(allowed=False, reason="Reservation date is in the past.")

        latest_allowed = today + timedelta(days=policy.advance_booking_limit_days)
        if day > latest_allowed:
            return RuleCheckResult(
                allowed=False,
                reason=(
                    "Reservation date exceeds advance booking window "
                    f"({policy.advance_booking_limit_days} days)."
                ),
            )

        return RuleCheckResult(allowed=True)

    @staticmethod
    def check_modification_window(day: date, hour: int, now: datetime, policy: BookingPolicy) -> RuleCheckResult:
        if policy.modification_cutoff_hours is None:
            return RuleCheckResult(allowed=True)

        cutoff = reservation_start(day, hour) - timedelta(hours=policy.modification_cutoff_hours)
        if to_utc(now) > cutoff:
            return RuleCheckResult(
                allowed=False,
                reason=(
                    "Cannot modify booking less than "
                    f"{policy.modification_cutoff_hours} hours before reservation."
                ),
            )

        return RuleCheckResult(allowed=True)

    @staticmethod
    def check_transition(current: BookingStatus, target: BookingStatus) -> RuleCheckResult:
        if target not in ALLOWED_TRANSITIONS[current]:
            return RuleCheckResult(
                allowed=False,
                reason=f"Cannot move booking from {current.value} to {target.value}.",
            )
        return RuleCheckResult(allowed=True)

    @staticmethod
    def check_purge(current: BookingStatus) -> RuleCheckResult:
        if current not in PURGEABLE_STATUSES:
            return RuleCheckResult(
                allowed=False,
                reason=f"Cannot delete {current.value.lower()} bookings; only pending or cancelled bookings can be purged.",
            )
        return RuleCheckResult(allowed=True)
