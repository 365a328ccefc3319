"""Pydantic schemas for charging bookings and availability."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from charging.timeutils import to_utc


class BookingStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class ChargerType(str, Enum):
    AC = "AC"
    DC = "DC"


class BookingCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    owner_id: str = Field(min_length=1)
    station_id: str = Field(min_length=1)
    reservation_date: date
    reservation_hour: int


class BookingRescheduleRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    station_id: str = Field(min_length=1)
    reservation_date: date
    reservation_hour: int


class BookingCancelRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    requester_id: str = Field(min_length=1)


class BookingRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    station_id: str
    reservation_date: date
    reservation_hour: int
    status: BookingStatus
    created_at: datetime
    updated_at: Optional[datetime] = None
    credential: Optional[str] = None

    @field_validator("created_at", "updated_at")
    @classmethod
    def ensure_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # SQLite hands timestamps back without an offset.
        return to_utc(value) if value is not None else None


class BookingListResponse(BaseModel):
    bookings: list[BookingRead]


class HourAvailability(BaseModel):
    hour: int = Field(ge=0, le=23)
    booked: int = Field(ge=0)
    total: int = Field(ge=1)
    remaining: int = Field(ge=0)


class StationAvailabilityResponse(BaseModel):
    station_id: str
    station_name: str
    date: date
    hours: list[HourAvailability]


class AvailableHoursResponse(BaseModel):
    station_id: str
    date: date
    hours: list[int]


class ErrorResponse(BaseModel):
    detail: str
    kind: str

    @field_validator("detail")
    @classmethod
    def normalize_detail(cls, value: str) -> str:
        return value.strip() or "Booking request failed."
