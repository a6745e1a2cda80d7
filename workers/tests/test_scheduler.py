"""Tests for the recurring import sweep scheduler."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from cairn_workers.scheduler import (
    IMPORT_SWEEP_JOB_TYPE,
    ensure_import_sweep_job,
    import_sweep_interval_hours,
)


class _FakeCursor:
    def __init__(self, rows):
        self.execute = AsyncMock()
        self.fetchone = AsyncMock(side_effect=rows)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False

    def sql(self) -> list[str]:
        return [c.args[0] for c in self.execute.call_args_list]


def _conn(rows):
    cursor = _FakeCursor(rows)
    conn = MagicMock()
    conn.cursor = MagicMock(return_value=cursor)
    return conn, cursor


def test_import_sweep_interval_hours_default(monkeypatch):
    monkeypatch.delenv("CAIRN_IMPORT_SWEEP_INTERVAL_HOURS", raising=False)
    assert import_sweep_interval_hours() == 1


def test_import_sweep_interval_hours_clamps_to_positive(monkeypatch):
    monkeypatch.setenv("CAIRN_IMPORT_SWEEP_INTERVAL_HOURS", "-5")
    assert import_sweep_interval_hours() == 1


def test_import_sweep_interval_hours_invalid(monkeypatch):
    monkeypatch.setenv("CAIRN_IMPORT_SWEEP_INTERVAL_HOURS", "abc")
    assert import_sweep_interval_hours() == 1


def test_import_sweep_interval_hours_override(monkeypatch):
    monkeypatch.setenv("CAIRN_IMPORT_SWEEP_INTERVAL_HOURS", "6")
    assert import_sweep_interval_hours() == 6


@pytest.mark.asyncio
async def test_in_flight_sweep_blocks_scheduling():
    conn, cursor = _conn([{"id": 3}])

    assert await ensure_import_sweep_job(conn) is None
    assert not any("INSERT INTO background_jobs" in sql for sql in cursor.sql())


@pytest.mark.asyncio
async def test_recently_completed_sweep_blocks_scheduling(monkeypatch):
    monkeypatch.setenv("CAIRN_IMPORT_SWEEP_INTERVAL_HOURS", "2")
    recent = datetime.now(timezone.utc) - timedelta(minutes=30)
    conn, cursor = _conn([None, {"completed_at": recent}])

    assert await ensure_import_sweep_job(conn) is None
    assert not any("INSERT INTO background_jobs" in sql for sql in cursor.sql())


@pytest.mark.asyncio
async def test_nothing_to_sweep_skips_scheduling():
    conn, cursor = _conn([None, None, None])

    assert await ensure_import_sweep_job(conn) is None
    assert not any("INSERT INTO background_jobs" in sql for sql in cursor.sql())


@pytest.mark.asyncio
async def test_due_sweep_is_enqueued_for_oldest_unresolved_owner(monkeypatch):
    monkeypatch.delenv("CAIRN_IMPORT_SWEEP_INTERVAL_HOURS", raising=False)
    stale = datetime(2024, 1, 1, tzinfo=timezone.utc)
    conn, cursor = _conn([None, {"completed_at": stale}, {"user_id": 7}, {"id": 42}])

    assert await ensure_import_sweep_job(conn) == 42

    insert = cursor.execute.call_args_list[-1]
    assert "INSERT INTO background_jobs" in insert.args[0]
    user_id, job_type, payload = insert.args[1]
    assert user_id == 7
    assert job_type == IMPORT_SWEEP_JOB_TYPE
    assert payload.obj["scheduler_key"] == IMPORT_SWEEP_JOB_TYPE
    assert payload.obj["interval_hours"] == 1
