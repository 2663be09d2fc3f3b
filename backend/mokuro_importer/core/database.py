"""Database setup for the importer.

Async SQLite through aiosqlite with:
- WAL mode so the catalogue can be read while an import is writing
- Connection pooling
- Retry with exponential backoff on lock errors
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import structlog
from sqlalchemy import event
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from mokuro_importer.core.metrics import (
    db_connections_active,
    db_connections_idle,
    db_lock_errors_total,
    db_pool_size,
    db_retries_failed_total,
    db_retry_attempts_total,
)

logger = structlog.get_logger("mokuro_importer.database")

T = TypeVar("T")

POOL_SIZE = 10
MAX_OVERFLOW = 20


def create_database_engine(
    database_file: Path | str,
    echo: bool = False,
) -> AsyncEngine:
    """Create the async SQLite engine.

    Args:
        database_file: Path to the SQLite database file.
        echo: If True, log all SQL statements.

    Returns:
        Configured AsyncEngine instance.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{database_file}",
        echo=echo,
        connect_args={"timeout": 30.0},
        pool_pre_ping=True,
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
    )
    db_pool_size.set(POOL_SIZE)

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn: Any, connection_record: Any) -> None:
        """Enable WAL mode and foreign keys on every new connection."""
        cursor = dbapi_conn.cursor()
        try:
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA foreign_keys=ON")
        finally:
            cursor.close()

    def _record_pool_usage(*_: Any) -> None:
        pool = engine.sync_engine.pool
        db_connections_active.set(pool.checkedout())  # type: ignore[attr-defined]
        db_connections_idle.set(pool.checkedin())  # type: ignore[attr-defined]

    event.listen(engine.sync_engine, "checkout", _record_pool_usage)
    event.listen(engine.sync_engine, "checkin", _record_pool_usage)

    logger.info(
        "Database engine created",
        database_file=str(database_file),
        echo=echo,
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
    )
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[SQLModelAsyncSession]:
    """Create the session factory.

    expire_on_commit=False keeps loaded rows usable after commit without
    lazy reloads, which async sessions cannot do.

    Args:
        engine: The database engine.

    Returns:
        Configured async_sessionmaker instance.
    """
    return async_sessionmaker(
        engine,
        class_=SQLModelAsyncSession,
        expire_on_commit=False,
    )


async def init_database(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    from mokuro_importer.db.models import metadata

    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    logger.debug("Database tables ensured")


async def retry_db_operation(
    operation: Callable[[], Awaitable[T]],
    session: SQLModelAsyncSession | None = None,
    max_retries: int = 5,
    retry_delay: float = 0.1,
    operation_type: str = "unknown",
) -> T:
    """Retry a database operation on SQLite lock errors with exponential backoff.

    Args:
        operation: Callable returning a fresh awaitable on each call.
        session: Optional session rolled back between attempts.
        max_retries: Maximum number of attempts.
        retry_delay: Initial delay in seconds, doubled after each attempt.
        operation_type: Label for retry metrics ("commit", "query", ...).

    Returns:
        Result of the operation.

    Raises:
        OperationalError: If the operation still fails after max_retries, or
            fails for a reason other than a lock.
    """
    for attempt in range(max_retries):
        try:
            return await operation()
        except OperationalError as exc:
            is_lock = "locked" in str(exc).lower()
            if not is_lock or attempt >= max_retries - 1:
                if is_lock:
                    db_retries_failed_total.labels(operation_type=operation_type).inc()
                logger.error(
                    "Database operation failed",
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    operation_type=operation_type,
                    error=str(exc)[:200],
                )
                raise

            db_lock_errors_total.inc()
            db_retry_attempts_total.labels(operation_type=operation_type).inc()
            logger.debug(
                "Database lock detected, retrying",
                attempt=attempt + 1,
                max_retries=max_retries,
                operation_type=operation_type,
            )
            if session is not None:
                await session.rollback()
            await asyncio.sleep(retry_delay * (2**attempt))

    raise RuntimeError(f"Operation failed after {max_retries} retries")
