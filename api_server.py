from __future__ import annotations

import hmac
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Literal, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import Engine

from charging.credentials import SignedPayloadIssuer
from charging.engine import BookingEngine
from charging.errors import BookingError
from charging.rules import BookingPolicy
from charging.schema import (
    AvailableHoursResponse,
    BookingCancelRequest,
    BookingCreateRequest,
    BookingListResponse,
    BookingRead,
    BookingRescheduleRequest,
    ErrorResponse,
    StationAvailabilityResponse,
)
from config import Settings, get_settings
from db.session import create_db_engine, create_session_factory, validate_db_compatibility

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"
ADMIN_API_KEY_HEADER = "X-Admin-API-Key"

ERROR_STATUS_CODES = {
    "invalid_argument": status.HTTP_400_BAD_REQUEST,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "not_found": status.HTTP_404_NOT_FOUND,
    "invalid_state": status.HTTP_409_CONFLICT,
    "capacity_exceeded": status.HTTP_409_CONFLICT,
    "conflict": status.HTTP_409_CONFLICT,
    "transient": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.WARNING)
    logging.basicConfig(level=level)
    for name in ("uvicorn", "uvicorn.error"):
        logging.getLogger(name).setLevel(level)


class HealthResponse(BaseModel):
    status: Literal["ok", "error"]
    service: str
    version: str


def get_booking_engine(request: Request) -> BookingEngine:
    return request.app.state.booking_engine


def verify_api_key(request: Request, x_api_key: Optional[str] = Header(default=None, alias=API_KEY_HEADER)):
    expected = request.app.state.settings.charging_api_key
    if not x_api_key or not hmac.compare_digest(x_api_key, expected):
        raise HTTPException(status_code=401, detail="Invalid or missing API key.")


def verify_admin_api_key(
    request: Request,
    x_admin_api_key: Optional[str] = Header(default=None, alias=ADMIN_API_KEY_HEADER),
):
    expected = request.app.state.settings.admin_api_key
    if not x_admin_api_key or not hmac.compare_digest(x_admin_api_key, expected):
        raise HTTPException(status_code=401, detail="Invalid or missing admin API key.")


def build_booking_engine(settings: Settings, engine: Engine) -> BookingEngine:
    return BookingEngine(
        create_session_factory(engine),
        credential_issuer=SignedPayloadIssuer(settings.credential_secret),
        policy=BookingPolicy(
            advance_booking_limit_days=settings.advance_booking_limit_days,
            modification_cutoff_hours=settings.modification_cutoff_hours,
        ),
    )


def create_app(
    settings: Optional[Settings] = None,
    *,
    db_engine: Optional[Engine] = None,
    booking_engine: Optional[BookingEngine] = None,
) -> FastAPI:
    """Build the API. Run with ``uvicorn api_server:create_app --factory``."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    db_engine = db_engine or create_db_engine(settings.database_url, timeout_seconds=settings.db_timeout_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        validate_db_compatibility(app.state.db_engine)
        yield

    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
    app.state.settings = settings
    app.state.db_engine = db_engine
    app.state.booking_engine = booking_engine or build_booking_engine(settings, db_engine)

    @app.exception_handler(BookingError)
    def handle_booking_error(_, exc: BookingError):
        status_code = ERROR_STATUS_CODES.get(exc.kind, status.HTTP_400_BAD_REQUEST)
        if status_code >= 500:
            logger.error("Booking request failed: %s", exc.message)
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(detail=exc.message, kind=exc.kind).model_dump(mode="json"),
        )

    @app.get("/health/live", response_model=HealthResponse)
    def health_live():
        return HealthResponse(status="ok", service=settings.app_name, version=settings.app_version)

    @app.get("/health/ready", response_model=HealthResponse)
    def health_ready():
        try:
            validate_db_compatibility(app.state.db_engine)
        except Exception as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return HealthResponse(status="ok", service=settings.app_name, version=settings.app_version)

    @app.get(
        "/v1/stations/{station_id}/availability",
        response_model=StationAvailabilityResponse,
        dependencies=[Depends(verify_api_key)],
    )
    def get_station_availability(station_id: str, day: date, engine: BookingEngine = Depends(get_booking_engine)):
        return engine.get_availability(station_id, day)

    @app.get(
        "/v1/stations/{station_id}/available-hours",
        response_model=AvailableHoursResponse,
        dependencies=[Depends(verify_api_key)],
    )
    def get_available_hours(station_id: str, day: date, engine: BookingEngine = Depends(get_booking_engine)):
        return AvailableHoursResponse(station_id=station_id, date=day, hours=engine.available_hours(station_id, day))

    @app.post(
        "/v1/bookings",
        response_model=BookingRead,
        status_code=status.HTTP_201_CREATED,
        dependencies=[Depends(verify_api_key)],
    )
    def create_booking(request: BookingCreateRequest, engine: BookingEngine = Depends(get_booking_engine)):
        return engine.create_booking(
            request.owner_id,
            request.station_id,
            request.reservation_date,
            request.reservation_hour,
        )

    @app.get("/v1/bookings/{booking_id}", response_model=BookingRead, dependencies=[Depends(verify_api_key)])
    def get_booking(booking_id: str, engine: BookingEngine = Depends(get_booking_engine)):
        return engine.get_booking(booking_id)

    @app.put("/v1/bookings/{booking_id}", response_model=BookingRead, dependencies=[Depends(verify_api_key)])
    def reschedule_booking(
        booking_id: str,
        request: BookingRescheduleRequest,
        engine: BookingEngine = Depends(get_booking_engine),
    ):
        return engine.reschedule_booking(
            booking_id,
            request.station_id,
            request.reservation_date,
            request.reservation_hour,
        )

    @app.post("/v1/bookings/{booking_id}/cancel", response_model=BookingRead, dependencies=[Depends(verify_api_key)])
    def cancel_booking(
        booking_id: str,
        request: BookingCancelRequest,
        engine: BookingEngine = Depends(get_booking_engine),
    ):
        return engine.cancel_booking(booking_id, request.requester_id)

    @app.delete(
        "/v1/bookings/{booking_id}",
        status_code=status.HTTP_204_NO_CONTENT,
        dependencies=[Depends(verify_api_key)],
    )
    def delete_own_booking(
        booking_id: str,
        requester_id: str = Query(min_length=1),
        engine: BookingEngine = Depends(get_booking_engine),
    ):
        engine.purge_booking(booking_id, requester_id)

    @app.get(
        "/v1/owners/{owner_id}/bookings",
        response_model=BookingListResponse,
        dependencies=[Depends(verify_api_key)],
    )
    def owner_bookings(owner_id: str, engine: BookingEngine = Depends(get_booking_engine)):
        return BookingListResponse(bookings=engine.list_owner_bookings(owner_id))

    @app.post(
        "/v1/admin/bookings/{booking_id}/approve",
        response_model=BookingRead,
        dependencies=[Depends(verify_admin_api_key)],
    )
    def admin_approve_booking(booking_id: str, engine: BookingEngine = Depends(get_booking_engine)):
        return engine.approve_booking(booking_id)

    @app.post(
        "/v1/admin/bookings/{booking_id}/complete",
        response_model=BookingRead,
        dependencies=[Depends(verify_admin_api_key)],
    )
    def admin_complete_booking(booking_id: str, engine: BookingEngine = Depends(get_booking_engine)):
        return engine.complete_booking(booking_id)

    @app.post(
        "/v1/admin/bookings/{booking_id}/cancel",
        response_model=BookingRead,
        dependencies=[Depends(verify_admin_api_key)],
    )
    def admin_cancel_booking(booking_id: str, engine: BookingEngine = Depends(get_booking_engine)):
        return engine.cancel_booking(booking_id)

    @app.delete(
        "/v1/admin/bookings/{booking_id}",
        status_code=status.HTTP_204_NO_CONTENT,
        dependencies=[Depends(verify_admin_api_key)],
    )
    def admin_purge_booking(booking_id: str, engine: BookingEngine = Depends(get_booking_engine)):
        engine.purge_booking(booking_id)

    @app.get(
        "/v1/admin/stations/{station_id}/bookings",
        response_model=BookingListResponse,
        dependencies=[Depends(verify_admin_api_key)],
    )
    def admin_station_bookings(station_id: str, day: date, engine: BookingEngine = Depends(get_booking_engine)):
        return BookingListResponse(bookings=engine.list_station_bookings(station_id, day))

    return app
