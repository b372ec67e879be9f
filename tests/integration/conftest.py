"""
Integration test fixtures for xid-for-time.

These tests require a reachable Postgres configured through the usual
PG* variables (PGHOST, PGPORT, PGDATABASE, PGUSER, PGPASSWORD).
"""

import asyncio
import os

import pytest
from sqlalchemy import text

from xid_for_time.config import PostgresSettings
from xid_for_time.store.postgres import create_engine

# Skip Postgres tests unless explicitly enabled
PG_ENABLED = os.environ.get("XID_FOR_TIME_PG_TESTS", "0") == "1"

TABLE = "xid_for_time_it_events"
UNANALYZED_TABLE = "xid_for_time_it_fresh"
ROWS = 1000


def pytest_collection_modifyitems(config, items):
    skip = pytest.mark.skip(reason="Postgres tests disabled. Set XID_FOR_TIME_PG_TESTS=1 to enable.")
    for item in items:
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.postgres)
            if not PG_ENABLED:
                item.add_marker(skip)


async def _execute(settings: PostgresSettings, *statements: str) -> None:
    engine = create_engine(settings)
    try:
        async with engine.begin() as conn:
            for statement in statements:
                await conn.execute(text(statement))
    finally:
        await engine.dispose()


@pytest.fixture(scope="session")
def pg_settings() -> PostgresSettings:
    """Connection settings from the environment."""
    return PostgresSettings()


@pytest.fixture(scope="session")
def events_table(pg_settings):
    """Rows id=1..1000 created 10s apart from 2024-01-01 12:00:10 UTC, analyzed."""
    if not PG_ENABLED:
        yield TABLE
        return

    asyncio.run(
        _execute(
            pg_settings,
            f"DROP TABLE IF EXISTS {TABLE}",
            f"CREATE TABLE {TABLE} ("
            "id bigint PRIMARY KEY, created_at timestamptz NOT NULL)",
            f"INSERT INTO {TABLE} (id, created_at) "
            f"SELECT n, timestamptz '2024-01-01 12:00:00+00' + n * interval '10 seconds' "
            f"FROM generate_series(1, {ROWS}) AS n",
            f"ANALYZE {TABLE}",
        )
    )
    try:
        yield TABLE
    finally:
        asyncio.run(_execute(pg_settings, f"DROP TABLE IF EXISTS {TABLE}"))


@pytest.fixture(scope="session")
def unanalyzed_table(pg_settings):
    """A populated table with autovacuum disabled and no statistics."""
    if not PG_ENABLED:
        yield UNANALYZED_TABLE
        return

    asyncio.run(
        _execute(
            pg_settings,
            f"DROP TABLE IF EXISTS {UNANALYZED_TABLE}",
            f"CREATE TABLE {UNANALYZED_TABLE} ("
            "id bigint PRIMARY KEY, created_at timestamptz NOT NULL) "
            "WITH (autovacuum_enabled = false)",
            f"INSERT INTO {UNANALYZED_TABLE} (id, created_at) "
            f"SELECT n, now() FROM generate_series(1, 10) AS n",
        )
    )
    try:
        yield UNANALYZED_TABLE
    finally:
        asyncio.run(_execute(pg_settings, f"DROP TABLE IF EXISTS {UNANALYZED_TABLE}"))
