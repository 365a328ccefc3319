from datetime import date, datetime, timezone

import pytest

from charging.credentials import SignedPayloadIssuer
from charging.engine import BookingEngine
from charging.models import Station
from charging.schema import ChargerType
from db.session import create_db_engine, create_session_factory, init_db

RESERVATION_DAY = date(2024, 1, 15)
FIXED_NOW = datetime(2024, 1, 14, 8, 0, tzinfo=timezone.utc)
CREDENTIAL_SECRET = "test-credential-secret"


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def db_engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'charging.db'}", timeout_seconds=30)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def add_station(session_factory):
    def _add(station_id="st-1", *, capacity=2, is_active=True, name="Central Charging Hub"):
        with session_factory() as db:
            with db.begin():
                db.add(
                    Station(
                        id=station_id,
                        name=name,
                        location="12 Galle Road, Colombo",
                        latitude=6.9271,
                        longitude=79.8612,
                        charger_type=ChargerType.DC,
                        slot_capacity=capacity,
                        is_active=is_active,
                    )
                )
        return station_id

    return _add


@pytest.fixture
def clock():
    return FixedClock(FIXED_NOW)


@pytest.fixture
def issuer():
    return SignedPayloadIssuer(CREDENTIAL_SECRET)


@pytest.fixture
def booking_engine(session_factory, clock, issuer):
    return BookingEngine(session_factory, clock=clock, credential_issuer=issuer)
