import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta, timezone

import pytest

from charging.credentials import SignedPayloadIssuer, credential_payload
from charging.errors import InvalidArgumentError
from charging.locks import KeyedLockRegistry, SlotKey
from charging.models import Booking
from charging.rules import BookingPolicy, RuleEngine
from charging.schema import BookingStatus
from charging.timeutils import day_window, reservation_start, to_reservation_date

NOW = datetime(2024, 1, 14, 8, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("hour,allowed", [(0, True), (23, True), (-1, False), (24, False), (True, False)])
def test_check_hour(hour, allowed):
    assert RuleEngine.check_hour(hour).allowed is allowed


@pytest.mark.parametrize(
    "current,target,allowed",
    [
        (BookingStatus.PENDING, BookingStatus.APPROVED, True),
        (BookingStatus.PENDING, BookingStatus.CANCELLED, True),
        (BookingStatus.PENDING, BookingStatus.COMPLETED, False),
        (BookingStatus.APPROVED, BookingStatus.COMPLETED, True),
        (BookingStatus.APPROVED, BookingStatus.CANCELLED, True),
        (BookingStatus.APPROVED, BookingStatus.PENDING, False),
        (BookingStatus.COMPLETED, BookingStatus.CANCELLED, False),
        (BookingStatus.CANCELLED, BookingStatus.APPROVED, False),
    ],
)
def test_transition_table(current, target, allowed):
    result = RuleEngine.check_transition(current, target)
    assert result.allowed is allowed
    if not allowed:
        assert current.value in result.reason


def test_advance_limit_disabled_by_default():
    assert RuleEngine.check_advance_limit(date(2020, 1, 1), NOW, BookingPolicy()).allowed


def test_advance_limit_window():
    policy = BookingPolicy(advance_booking_limit_days=7)

    assert RuleEngine.check_advance_limit(date(2024, 1, 14), NOW, policy).allowed
    assert RuleEngine.check_advance_limit(date(2024, 1, 21), NOW, policy).allowed
    assert not RuleEngine.check_advance_limit(date(2024, 1, 22), NOW, policy).allowed
    assert RuleEngine.check_advance_limit(date(2024, 1, 13), NOW, policy).reason == "Reservation date is in the past."


def test_modification_cutoff():
    policy = BookingPolicy(modification_cutoff_hours=12)

    assert RuleEngine.check_modification_window(date(2024, 1, 14), 20, NOW, policy).allowed
    assert not RuleEngine.check_modification_window(date(2024, 1, 14), 19, NOW, policy).allowed


def test_purge_rule():
    assert RuleEngine.check_purge(BookingStatus.CANCELLED).allowed
    assert not RuleEngine.check_purge(BookingStatus.COMPLETED).allowed


def test_time_helpers():
    assert day_window(date(2024, 2, 28)) == (date(2024, 2, 28), date(2024, 2, 29))
    assert reservation_start(date(2024, 1, 15), 10) == datetime(2024, 1, 15, 10, tzinfo=timezone.utc)
    assert to_reservation_date(datetime(2024, 1, 15, 23, 30)) == date(2024, 1, 15)
    assert to_reservation_date(date(2024, 1, 15)) == date(2024, 1, 15)


def test_lock_registry_serializes_same_key_only():
    registry = KeyedLockRegistry()
    busy = SlotKey("st-1", date(2024, 1, 15), 10)
    other = SlotKey("st-1", date(2024, 1, 15), 11)
    entered = threading.Event()

    def enter(key):
        with registry.hold(key):
            entered.set()

    with ThreadPoolExecutor(max_workers=2) as pool:
        with registry.hold(busy):
            pool.submit(enter, other).result(timeout=5)
            assert entered.is_set()

            entered.clear()
            blocked = pool.submit(enter, busy)
            assert not entered.wait(timeout=0.2)
        blocked.result(timeout=5)
        assert entered.is_set()

    assert registry.active_keys() == 0


def _booking():
    return Booking(
        id="bk-1",
        owner_id="200012345678",
        station_id="st-1",
        reservation_date=date(2024, 1, 15),
        reservation_hour=10,
    )


def test_credential_round_trip():
    issuer = SignedPayloadIssuer("secret")
    token = issuer.issue(_booking())

    assert issuer.verify(token) == {
        "booking": "bk-1",
        "owner": "200012345678",
        "station": "st-1",
        "date": "2024-01-15",
        "hour": "10",
    }
    assert credential_payload(_booking()).startswith("booking:bk-1|owner:")


def test_credential_rejects_tampering():
    token = SignedPayloadIssuer("secret").issue(_booking())

    with pytest.raises(InvalidArgumentError):
        SignedPayloadIssuer("other-secret").verify(token)
    with pytest.raises(InvalidArgumentError):
        SignedPayloadIssuer("secret").verify("not-a-token")
