from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    database_url: str
    charging_api_key: str
    admin_api_key: str
    credential_secret: str
    db_timeout_seconds: float = 10.0
    advance_booking_limit_days: Optional[int] = 7
    modification_cutoff_hours: Optional[int] = 12
    log_level: str = "WARNING"


def _clean(value: str) -> str:
    return value.strip().strip('"').strip("'")


def _get_required_env(name: str) -> str:
    value = _clean(os.getenv(name, ""))
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def _get_optional_int_env(name: str, default: Optional[int]) -> Optional[int]:
    """Read an integer variable; an explicitly empty value disables the setting."""
    raw = os.getenv(name)
    if raw is None:
        return default
    raw = _clean(raw)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"Environment variable {name} must be an integer, got {raw!r}") from exc


def _get_float_env(name: str, default: float) -> float:
    raw = _clean(os.getenv(name, ""))
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"Environment variable {name} must be a number, got {raw!r}") from exc


@lru_cache
def get_settings() -> Settings:
    return Settings(
        app_name="EV Charging Booking API",
        app_version="1.0.0",
        database_url=_get_required_env("DATABASE_URL"),
        charging_api_key=_get_required_env("CHARGING_API_KEY"),
        admin_api_key=_get_required_env("ADMIN_API_KEY"),
        credential_secret=_get_required_env("CREDENTIAL_SECRET"),
        db_timeout_seconds=_get_float_env("DB_TIMEOUT_SECONDS", 10.0),
        advance_booking_limit_days=_get_optional_int_env("ADVANCE_BOOKING_LIMIT_DAYS", 7),
        modification_cutoff_hours=_get_optional_int_env("MODIFICATION_CUTOFF_HOURS", 12),
        log_level=_clean(os.getenv("LOG_LEVEL", "WARNING")).upper() or "WARNING",
    )
