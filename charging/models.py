"""SQLAlchemy models for the charging booking domain."""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from charging.schema import BookingStatus, ChargerType


def _new_id() -> str:
    return str(uuid.uuid4())


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Base(DeclarativeBase):
    pass


class Station(Base):
    __tablename__ = "stations"
    __table_args__ = (
        CheckConstraint("slot_capacity >= 1", name="ck_station_slot_capacity"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    charger_type: Mapped[ChargerType] = mapped_column(
        Enum(ChargerType, native_enum=False, length=8, values_callable=_enum_values),
        nullable=False,
        default=ChargerType.AC,
    )
    slot_capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        # At most one live booking may hold a given slot index for an hour.
        UniqueConstraint(
            "station_id",
            "reservation_date",
            "reservation_hour",
            "slot_index",
            name="uq_booking_slot",
        ),
        CheckConstraint("reservation_hour >= 0 AND reservation_hour <= 23", name="ck_booking_hour"),
        Index("ix_booking_station_day_hour", "station_id", "reservation_date", "reservation_hour"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    station_id: Mapped[str] = mapped_column(String(36), ForeignKey("stations.id", ondelete="CASCADE"), nullable=False)
    reservation_date: Mapped[date] = mapped_column(Date, nullable=False)
    reservation_hour: Mapped[int] = mapped_column(Integer, nullable=False)
    # NULL once cancelled, which releases the index.
    slot_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, native_enum=False, length=16, values_callable=_enum_values),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    credential: Mapped[str | None] = mapped_column(Text, nullable=True)
