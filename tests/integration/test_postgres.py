"""
Integration tests for the search against a live Postgres.

Tests cover:
- Boundary resolution from real pg_stats histograms
- xmin reporting
- Failure modes for out-of-range targets, missing statistics and bad input
- Cancellation of an in-flight server query
"""

import asyncio
from datetime import datetime, timezone

import pytest
from sqlalchemy import text

from xid_for_time.errors import (
    InvalidTimestampError,
    NoStatisticsAvailableError,
    QueryExecutionError,
    TargetOutOfRangeError,
)
from xid_for_time.events import RecordingEventSink
from xid_for_time.search import XidSearch
from xid_for_time.store import PostgresStore, TableRef


async def xmin_of(store: PostgresStore, table: str, key: int) -> str:
    result = await store._conn.execute(
        text(f"SELECT xmin::text AS xmin FROM {table} WHERE id = :key"), {"key": key}
    )
    return result.scalar_one()


class TestPostgresSearch:
    """End-to-end searches over PostgresStore."""

    @pytest.mark.asyncio
    async def test_describe(self, pg_settings, events_table):
        """Column types come from the catalog."""
        async with PostgresStore(pg_settings) as store:
            info = await store.describe(TableRef(events_table))

        assert info.key_type == "bigint"
        assert info.time_type == "timestamp with time zone"

    @pytest.mark.asyncio
    async def test_histogram_bounds(self, pg_settings, events_table):
        """ANALYZE produces ordered key bounds."""
        async with PostgresStore(pg_settings) as store:
            bounds = await store.histogram_bounds(TableRef(events_table))

        keys = [int(b) for b in bounds]
        assert len(keys) > 2
        assert keys == sorted(keys)

    @pytest.mark.asyncio
    async def test_boundary_near_start(self, pg_settings, events_table):
        """Target between rows 2 and 3 resolves to row 2."""
        async with PostgresStore(pg_settings) as store:
            result = await XidSearch(store, RecordingEventSink()).run(
                TableRef(events_table), "2024-01-01 12:00:25+00"
            )
            expected = await xmin_of(store, events_table, 2)

        assert result.boundary.key == 2
        assert result.exceeding.key == 3
        assert result.xmin == expected

    @pytest.mark.asyncio
    async def test_boundary_matches_scan(self, pg_settings, events_table):
        """Targets across the table agree with a direct lookup."""
        async with PostgresStore(pg_settings) as store:
            for seconds in (15, 600, 4321, 7777, 9990):
                target = datetime(2024, 1, 1, 12, tzinfo=timezone.utc).timestamp() + seconds
                target_text = datetime.fromtimestamp(target, tz=timezone.utc).isoformat()
                result = await XidSearch(store, RecordingEventSink()).run(
                    TableRef(events_table), target_text
                )

                assert result.boundary.key == (seconds - 1) // 10
                assert result.boundary.created_at < result.target

    @pytest.mark.asyncio
    async def test_exact_row_time(self, pg_settings, events_table):
        """A row created exactly at the target is excluded."""
        async with PostgresStore(pg_settings) as store:
            result = await XidSearch(store, RecordingEventSink()).run(
                TableRef(events_table), "2024-01-01 12:01:40+00"
            )

        assert result.exceeding.key == 10
        assert result.boundary.key == 9

    @pytest.mark.asyncio
    async def test_target_out_of_range(self, pg_settings, events_table):
        """Targets before the earliest sample fail in the bracket stage."""
        async with PostgresStore(pg_settings) as store:
            with pytest.raises(TargetOutOfRangeError) as exc_info:
                await XidSearch(store, RecordingEventSink()).run(
                    TableRef(events_table), "2023-01-01"
                )

        assert exc_info.value.stage == "bracketing"

    @pytest.mark.asyncio
    async def test_no_statistics(self, pg_settings, unanalyzed_table):
        """Tables never analyzed have no histogram."""
        async with PostgresStore(pg_settings) as store:
            with pytest.raises(NoStatisticsAvailableError):
                await XidSearch(store, RecordingEventSink()).run(
                    TableRef(unanalyzed_table), "2024-01-01"
                )

    @pytest.mark.asyncio
    async def test_invalid_timestamp(self, pg_settings, events_table):
        """Unparseable targets are reported by value."""
        async with PostgresStore(pg_settings) as store:
            with pytest.raises(InvalidTimestampError) as exc_info:
                await XidSearch(store, RecordingEventSink()).run(
                    TableRef(events_table), "yesterday-ish"
                )

        assert exc_info.value.value == "yesterday-ish"

    @pytest.mark.asyncio
    async def test_missing_table(self, pg_settings):
        """Unknown relations fail while describing."""
        async with PostgresStore(pg_settings) as store:
            with pytest.raises(QueryExecutionError) as exc_info:
                await XidSearch(store, RecordingEventSink()).run(
                    TableRef("xid_for_time_it_missing"), "2024-01-01"
                )

        assert exc_info.value.stage == "describing"

    @pytest.mark.asyncio
    async def test_cancel_running_query(self, pg_settings):
        """Cancelling the task stops the server-side statement."""
        store = PostgresStore(pg_settings)
        await store.connect()
        try:
            task = asyncio.create_task(store._conn.execute(text("SELECT pg_sleep(30)")))
            await asyncio.sleep(0.5)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await asyncio.wait_for(task, timeout=5)
        finally:
            await store.close()

        assert not store.is_connected
