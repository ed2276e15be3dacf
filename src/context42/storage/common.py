"""Common helpers for storage repositories."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool, StaticPool
from sqlmodel import create_engine

IN_MEMORY = ":memory:"


def utc_now() -> datetime:
    """Current UTC timestamp."""

    return datetime.now(tz=UTC)


def build_sqlite_engine(*, db_path: Path | str, busy_timeout_ms: int) -> Engine:
    """Build SQLAlchemy engine with consistent SQLite policy.

    An in-memory database lives on a single shared connection; file databases
    open a fresh connection per session.
    """

    in_memory = str(db_path) == IN_MEMORY
    engine = create_engine(
        "sqlite://" if in_memory else f"sqlite:///{db_path}",
        connect_args={
            "check_same_thread": False,
            "timeout": max(1.0, busy_timeout_ms / 1000.0),
        },
        poolclass=StaticPool if in_memory else NullPool,
    )
    event.listen(
        engine,
        "connect",
        lambda dbapi_connection, _: _apply_sqlite_pragmas(
            dbapi_connection,
            busy_timeout_ms=busy_timeout_ms,
            wal=not in_memory,
        ),
    )
    return engine


def _apply_sqlite_pragmas(
    dbapi_connection: sqlite3.Connection,
    *,
    busy_timeout_ms: int,
    wal: bool,
) -> None:
    cursor = dbapi_connection.cursor()
    if wal:
        cursor.execute("PRAGMA journal_mode = WAL")
    cursor.execute(f"PRAGMA busy_timeout = {max(1, busy_timeout_ms)}")
    cursor.close()
