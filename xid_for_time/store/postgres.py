"""
Postgres store backend.

Runs each stage's statement over a single SQLAlchemy asyncio connection
using the psycopg 3 driver. Histogram samples come from pg_stats and the
transaction-visibility marker is the row's xmin.

Invariants:
    - One connection per run (NullPool); nothing is shared between runs
    - The connection is released on every exit path, including cancellation
    - Cancelling the awaiting task cancels the in-flight server query
    - Store-side failures surface as QueryExecutionError, never retried
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List, Mapping, Optional, Sequence

from sqlalchemy import TextClause
from sqlalchemy.exc import DataError, DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from ..config import PostgresSettings
from ..errors import ConnectionError, InvalidTimestampError, QueryExecutionError
from . import queries
from .base import BoundaryRecord, Bracket, ExceedingRecord, Sample, TableInfo, TableRef

logger = logging.getLogger(__name__)


def create_engine(settings: PostgresSettings) -> AsyncEngine:
    """Construct an async engine holding at most one live connection."""
    return create_async_engine(
        settings.url,
        poolclass=NullPool,
        connect_args={
            "connect_timeout": settings.connect_timeout,
            "sslmode": settings.sslmode,
            "application_name": settings.application_name,
        },
    )


def _describe_failure(exc: DBAPIError) -> str:
    """Prefer the driver's message over SQLAlchemy's wrapped one."""
    orig = getattr(exc, "orig", None)
    return str(orig if orig is not None else exc).strip()


class PostgresStore:
    """SearchStore implementation for Postgres.

    Example:
        >>> async with PostgresStore(PostgresSettings()) as store:
        ...     info = await store.describe(TableRef("events"))
        ...     bounds = await store.histogram_bounds(TableRef("events"))
    """

    def __init__(self, settings: PostgresSettings) -> None:
        """Initialize the store.

        Args:
            settings: Connection settings
        """
        self.settings = settings
        self._engine: AsyncEngine | None = None
        self._conn: AsyncConnection | None = None

    async def __aenter__(self) -> PostgresStore:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    async def connect(self) -> None:
        if self._conn is not None:
            return

        self._engine = create_engine(self.settings)
        try:
            self._conn = await self._engine.connect()
        except DBAPIError as e:
            await self._engine.dispose()
            self._engine = None
            raise ConnectionError(
                f"failed to connect to database: {_describe_failure(e)}",
                address=self.settings.address,
            ) from e
        logger.debug("Connected to %s", self.settings.address)

    async def close(self) -> None:
        conn, engine = self._conn, self._engine
        self._conn = None
        self._engine = None
        try:
            if conn is not None:
                await conn.close()
        finally:
            if engine is not None:
                await engine.dispose()

    async def _fetch_all(
        self, name: str, statement: TextClause, params: Mapping[str, Any]
    ) -> List[Mapping[str, Any]]:
        if self._conn is None:
            raise ConnectionError("not connected", address=self.settings.address)

        logger.debug("Executing %s", name, extra={"statement": name})
        try:
            result = await self._conn.execute(statement, dict(params))
        except DBAPIError as e:
            raise QueryExecutionError(
                f"{name} query failed: {_describe_failure(e)}", statement=name
            ) from e
        return list(result.mappings().all())

    async def _fetch_one(
        self, name: str, statement: TextClause, params: Mapping[str, Any]
    ) -> Optional[Mapping[str, Any]]:
        rows = await self._fetch_all(name, statement, params)
        return rows[0] if rows else None

    async def describe(self, table: TableRef) -> TableInfo:
        rows = await self._fetch_all(
            "describe",
            queries.DESCRIBE_COLUMNS,
            {
                "relation": table.name,
                "key_column": table.key_column,
                "time_column": table.time_column,
            },
        )
        types = {row["column_name"]: row["column_type"] for row in rows}
        for column in (table.key_column, table.time_column):
            if column not in types:
                raise QueryExecutionError(
                    f'column "{column}" of relation "{table.name}" does not exist',
                    statement="describe",
                )
        return TableInfo(key_type=types[table.key_column], time_type=types[table.time_column])

    async def parse_timestamp(self, value: str, info: TableInfo) -> datetime:
        try:
            row = await self._fetch_one(
                "parse_timestamp", queries.parse_timestamp(info), {"value": value}
            )
        except QueryExecutionError as e:
            if isinstance(e.__cause__, DataError):
                raise InvalidTimestampError(value, _describe_failure(e.__cause__)) from e
            raise
        if row is None or row["target"] is None:
            raise InvalidTimestampError(value)
        return row["target"]

    async def histogram_bounds(self, table: TableRef) -> List[str]:
        row = await self._fetch_one(
            "histogram_bounds",
            queries.HISTOGRAM_BOUNDS,
            {"relation": table.name, "column": table.key_column},
        )
        if row is None or row["bounds"] is None:
            return []
        return list(row["bounds"])

    async def sample_times(
        self, table: TableRef, info: TableInfo, keys: Sequence[str]
    ) -> List[Sample]:
        rows = await self._fetch_all(
            "sample_times", queries.sample_times(table, info), {"keys": list(keys)}
        )
        return [Sample(key=row["key"], created_at=row["created_at"]) for row in rows]

    async def first_at_or_after(
        self, table: TableRef, bracket: Bracket, target: datetime
    ) -> Optional[ExceedingRecord]:
        row = await self._fetch_one(
            "first_past_threshold",
            queries.first_at_or_after(table),
            {"min_key": bracket.min_key, "max_key": bracket.max_key, "target": target},
        )
        if row is None:
            return None
        return ExceedingRecord(key=row["key"], created_at=row["created_at"])

    async def last_before(self, table: TableRef, key: Any) -> Optional[BoundaryRecord]:
        row = await self._fetch_one(
            "first_before_threshold", queries.last_before(table), {"key": key}
        )
        if row is None:
            return None
        return BoundaryRecord(key=row["key"], created_at=row["created_at"], xmin=row["xmin"])
