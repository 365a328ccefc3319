from __future__ import annotations

from sqlalchemy import Engine, inspect
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker


def _connect_args(database_url: str, timeout_seconds: float) -> dict:
    backend = make_url(database_url).get_backend_name()
    if backend == "sqlite":
        # Writers wait on the database lock instead of failing immediately.
        return {"timeout": timeout_seconds, "check_same_thread": False}
    if backend == "postgresql":
        return {
            "connect_timeout": max(int(timeout_seconds), 1),
            "options": f"-c statement_timeout={int(timeout_seconds * 1000)}",
        }
    return {}


def create_db_engine(database_url: str, *, timeout_seconds: float = 10.0) -> Engine:
    engine_kwargs = {
        "pool_pre_ping": True,
        "future": True,
        "connect_args": _connect_args(database_url, timeout_seconds),
    }
    if make_url(database_url).get_backend_name() != "sqlite":
        engine_kwargs["pool_timeout"] = timeout_seconds
    return create_engine(database_url, **engine_kwargs)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


def init_db(engine: Engine) -> None:
    """Bootstrap schema for environments without migrations."""
    from charging.models import Base

    Base.metadata.create_all(bind=engine)


def validate_db_compatibility(engine: Engine) -> None:
    required_tables = {"stations", "bookings"}
    required_columns = {
        "bookings": {"slot_index", "credential", "updated_at"},
        "stations": {"slot_capacity", "is_active"},
    }

    inspector = inspect(engine)
    existing_tables = set(inspector.get_table_names())
    missing_tables = sorted(required_tables - existing_tables)

    missing_column_msgs: list[str] = []
    for table_name, columns in required_columns.items():
        if table_name not in existing_tables:
            continue
        existing_columns = {col["name"] for col in inspector.get_columns(table_name)}
        missing_columns = sorted(columns - existing_columns)
        if missing_columns:
            missing_column_msgs.append(f"{table_name}: {', '.join(missing_columns)}")

    if not missing_tables and not missing_column_msgs:
        return

    details: list[str] = []
    if missing_tables:
        details.append(f"missing tables [{', '.join(missing_tables)}]")
    if missing_column_msgs:
        details.append(f"missing columns [{'; '.join(missing_column_msgs)}]")

    raise RuntimeError(
        "Database compatibility check failed: "
        + "; ".join(details)
        + ". Apply required migrations before starting the API."
    )
