"""Tests for the PostgreSQL store and media service against a fake connection."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from cairn_workers.errors import ExternalResolutionError, NotFoundError
from cairn_workers.fitness_contract import UserPreferences
from cairn_workers.media_contract import ChangeCollectionToEntityInput, MediaDetails
from cairn_workers.media_service import PostgresMediaService
from cairn_workers.store import PostgresStore


class _FakeCursor:
    def __init__(self, rows=(), rowcount=0):
        self.execute = AsyncMock()
        self.fetchone = AsyncMock(side_effect=list(rows))
        self.rowcount = rowcount

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


def _conn(cursor):
    conn = MagicMock()
    conn.cursor = MagicMock(return_value=cursor)
    conn.execute = AsyncMock()
    return conn


@pytest.mark.asyncio
async def test_association_lock_uses_transaction_advisory_lock():
    conn = _conn(_FakeCursor())
    async with PostgresStore(conn).association_lock(7, 3):
        pass

    sql, params = conn.execute.await_args.args
    assert "pg_advisory_xact_lock" in sql
    assert params == ("user_to_entity:7:3",)


@pytest.mark.asyncio
@pytest.mark.parametrize("rowcount, expected", [(1, True), (0, False)])
async def test_mark_import_report_failed_only_touches_unresolved(rowcount, expected):
    cursor = _FakeCursor(rowcount=rowcount)
    assert await PostgresStore(_conn(cursor)).mark_import_report_failed(9) is expected

    sql, params = cursor.execute.await_args.args
    assert "success IS NULL" in sql
    assert params == (9,)


@pytest.mark.asyncio
async def test_enqueue_job_notifies_workers():
    cursor = _FakeCursor(rows=[{"id": 12}])
    conn = _conn(cursor)

    job_id = await PostgresStore(conn).enqueue_job(7, "import.process", {"user_id": 7}, 1)

    assert job_id == 12
    assert cursor.execute.await_args.args[1][3] == 1
    notify_sql, notify_params = conn.execute.await_args.args
    assert "pg_notify('cairn_jobs'" in notify_sql
    assert notify_params == ("import.process",)


@pytest.mark.asyncio
@pytest.mark.parametrize("row", [None, {"preferences": None}])
async def test_preferences_default_when_unset(row):
    store = PostgresStore(_conn(_FakeCursor(rows=[row])))
    assert await store.get_user_preferences(7) == UserPreferences()


@pytest.mark.asyncio
async def test_resolve_returns_existing_metadata():
    catalog = MagicMock()
    catalog.fetch_details = AsyncMock()
    media = PostgresMediaService(_conn(_FakeCursor(rows=[{"id": 4}])), catalog)

    assert await media.resolve_or_create("Movie", "Tmdb", "603") == 4
    catalog.fetch_details.assert_not_awaited()


@pytest.mark.asyncio
async def test_resolve_without_catalog_raises():
    media = PostgresMediaService(_conn(_FakeCursor(rows=[None])))

    with pytest.raises(ExternalResolutionError) as excinfo:
        await media.resolve_or_create("Movie", "Tmdb", "603")
    assert "CAIRN_CATALOG_URL" in excinfo.value.docs_hint


@pytest.mark.asyncio
async def test_resolve_fetches_and_commits_unknown_metadata():
    details = MediaDetails(identifier="603", lot="Movie", source="Tmdb", title="The Matrix")
    catalog = MagicMock()
    catalog.fetch_details = AsyncMock(return_value=details)
    cursor = _FakeCursor(rows=[None, {"id": 21}])
    media = PostgresMediaService(_conn(cursor), catalog)

    assert await media.resolve_or_create("Movie", "Tmdb", "603") == 21
    catalog.fetch_details.assert_awaited_once_with("Movie", "Tmdb", "603")
    assert "ON CONFLICT (lot, source, identifier)" in cursor.execute.await_args.args[0]


@pytest.mark.asyncio
async def test_membership_requires_existing_collection():
    cursor = _FakeCursor(rows=[None])
    media = PostgresMediaService(_conn(cursor))

    with pytest.raises(NotFoundError):
        await media.add_entity_to_collection(
            7, ChangeCollectionToEntityInput(collection_name="Watchlist", metadata_id=3)
        )
    assert cursor.execute.await_count == 1


def test_media_transaction_is_a_connection_savepoint():
    conn = _conn(_FakeCursor())
    savepoint = object()
    conn.transaction = MagicMock(return_value=savepoint)

    assert PostgresMediaService(conn).transaction() is savepoint
    conn.transaction.assert_called_once_with()
