"""Tests for the database helpers and their metrics."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine

from mokuro_importer.core.database import (
    POOL_SIZE,
    create_database_engine,
    init_database,
    retry_db_operation,
)
from mokuro_importer.core.metrics import (
    db_lock_errors_total,
    db_pool_size,
    db_retries_failed_total,
    db_retry_attempts_total,
)


@pytest.fixture
async def temp_db_engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """Create a temporary database engine for testing."""
    engine = create_database_engine(tmp_path / "test.db")
    yield engine
    await engine.dispose()


@pytest.fixture(autouse=True)
def clear_retry_counters() -> None:
    db_retry_attempts_total._metrics.clear()
    db_retries_failed_total._metrics.clear()


def _locked() -> OperationalError:
    return OperationalError("statement", "parameters", Exception("database is locked"))


async def test_init_database_creates_tables(temp_db_engine: AsyncEngine) -> None:
    """All volume tables exist after init_database."""
    await init_database(temp_db_engine)

    async with temp_db_engine.connect() as conn:
        tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())

    assert {"volumes", "volume_ocr", "volume_files"} <= set(tables)
    assert db_pool_size._value.get() == POOL_SIZE


async def test_retry_operation_success_first_try() -> None:
    """A successful operation runs once and records no retries."""
    calls = 0

    async def operation() -> str:
        nonlocal calls
        calls += 1
        return "success"

    assert await retry_db_operation(operation, operation_type="test") == "success"
    assert calls == 1
    assert db_retry_attempts_total.labels(operation_type="test")._value.get() == 0


async def test_retry_operation_recovers_from_lock() -> None:
    """Lock errors are retried and counted."""
    calls = 0
    lock_errors_before = db_lock_errors_total._value.get()

    async def operation() -> str:
        nonlocal calls
        calls += 1
        if calls < 2:
            raise _locked()
        return "success"

    result = await retry_db_operation(
        operation, max_retries=3, retry_delay=0.001, operation_type="test_lock"
    )

    assert result == "success"
    assert calls == 2
    assert db_retry_attempts_total.labels(operation_type="test_lock")._value.get() == 1
    assert db_lock_errors_total._value.get() == lock_errors_before + 1


async def test_retry_operation_gives_up() -> None:
    async def operation() -> str:
        raise _locked()

    with pytest.raises(OperationalError):
        await retry_db_operation(
            operation, max_retries=2, retry_delay=0.001, operation_type="test_failed"
        )

    assert db_retries_failed_total.labels(operation_type="test_failed")._value.get() == 1


async def test_retry_operation_does_not_retry_other_errors() -> None:
    """Operational errors that are not locks are raised immediately."""
    calls = 0

    async def operation() -> str:
        nonlocal calls
        calls += 1
        raise OperationalError("statement", "parameters", Exception("no such table: volumes"))

    with pytest.raises(OperationalError):
        await retry_db_operation(operation, max_retries=3, retry_delay=0.001)

    assert calls == 1
