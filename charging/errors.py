"""Typed failures raised by the booking engine."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as SATimeoutError

logger = logging.getLogger(__name__)


class BookingError(Exception):
    kind = "booking_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidArgumentError(BookingError):
    kind = "invalid_argument"


class NotOwnerError(BookingError):
    kind = "forbidden"


class NotFoundError(BookingError):
    kind = "not_found"


class InvalidStateError(BookingError):
    kind = "invalid_state"


class CapacityExceededError(BookingError):
    kind = "capacity_exceeded"


class ConflictError(BookingError):
    """Lost a race for a slot that a concurrent admission claimed first."""

    kind = "conflict"


class TransientError(BookingError):
    """The store timed out or was unavailable; the caller may retry."""

    kind = "transient"


TRANSIENT_STORE_ERRORS = (OperationalError, SATimeoutError, InterfaceError, DisconnectionError)


@contextmanager
def translate_store_errors(action: str) -> Iterator[None]:
    try:
        yield
    except TRANSIENT_STORE_ERRORS as exc:
        logger.error("Store unavailable while %s: %s", action, exc)
        raise TransientError(f"Database unavailable while {action}; retry later.") from exc
