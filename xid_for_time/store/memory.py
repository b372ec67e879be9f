"""
In-memory store implementation for testing.

This module provides a SearchStore that keeps tables as Python lists for:
- Unit tests
- Exercising the search without a running Postgres
- Reproducing stale-statistics scenarios deterministically

Invariants:
    - All data is lost on process exit
    - Statistics only change when analyze() or set_histogram() is called,
      so inserts and deletes after analyze() leave them stale, as in Postgres
    - Query semantics match the statements in queries.py

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with SearchStore protocol
"""

from __future__ import annotations

import bisect
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ..errors import ConnectionError, InvalidTimestampError, QueryExecutionError
from .base import BoundaryRecord, Bracket, ExceedingRecord, Sample, TableInfo, TableRef

logger = logging.getLogger(__name__)

# Postgres' default_statistics_target
DEFAULT_HISTOGRAM_BUCKETS = 100


@dataclass
class InMemoryRow:
    """One stored row."""

    key: Any
    created_at: datetime
    xmin: int


@dataclass
class InMemoryTable:
    """In-memory table storage, kept sorted by key."""

    key_column: str
    time_column: str
    key_type: str
    time_type: str
    rows: List[InMemoryRow] = field(default_factory=list)
    histogram: Optional[List[str]] = None

    def keys(self) -> List[Any]:
        return [row.key for row in self.rows]


class InMemoryStore:
    """In-memory implementation of SearchStore for testing.

    Example:
        >>> store = InMemoryStore()
        >>> store.create_table("events")
        >>> store.insert("events", 1, datetime(2024, 1, 1))
        >>> store.analyze("events")
        >>> async with store:
        ...     bounds = await store.histogram_bounds(TableRef("events"))
    """

    def __init__(self, first_xid: int = 1000) -> None:
        """Initialize in-memory store.

        Args:
            first_xid: Transaction id assigned to the first insert
        """
        self._tables: Dict[str, InMemoryTable] = {}
        self._xids = itertools.count(first_xid)
        self._connected = False
        self.statements: List[str] = []

    async def __aenter__(self) -> InMemoryStore:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def connect(self) -> None:
        self._connected = True

    async def close(self) -> None:
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    # -- data setup ---------------------------------------------------------

    def create_table(
        self,
        name: str,
        key_column: str = "id",
        time_column: str = "created_at",
        key_type: str = "bigint",
        time_type: str = "timestamp without time zone",
    ) -> None:
        self._tables[name] = InMemoryTable(
            key_column=key_column,
            time_column=time_column,
            key_type=key_type,
            time_type=time_type,
        )

    def insert(self, table: str, key: Any, created_at: datetime, xmin: int | None = None) -> int:
        """Insert a row and return the xmin it was written with."""
        data = self._tables[table]
        xid = next(self._xids) if xmin is None else xmin
        index = bisect.bisect_left(data.keys(), key)
        if index < len(data.rows) and data.rows[index].key == key:
            raise QueryExecutionError(f"duplicate key value {key!r} in {table}")
        data.rows.insert(index, InMemoryRow(key=key, created_at=created_at, xmin=xid))
        return xid

    def delete(self, table: str, key: Any) -> None:
        data = self._tables[table]
        data.rows = [row for row in data.rows if row.key != key]

    def analyze(self, table: str, buckets: int = DEFAULT_HISTOGRAM_BUCKETS) -> List[str]:
        """Rebuild equi-depth histogram bounds for the key column.

        Tables with at most buckets + 1 rows keep every key as a bound;
        larger tables get buckets + 1 evenly spaced bounds, the first and
        last being the minimum and maximum key. A table with fewer than two
        rows gets no histogram.
        """
        data = self._tables[table]
        keys = data.keys()
        if len(keys) < 2:
            data.histogram = None
            return []
        if len(keys) <= buckets + 1:
            bounds = keys
        else:
            step = (len(keys) - 1) / buckets
            bounds = [keys[round(i * step)] for i in range(buckets + 1)]
        data.histogram = [str(key) for key in bounds]
        return list(data.histogram)

    def set_histogram(self, table: str, bounds: Optional[Sequence[Any]]) -> None:
        """Install histogram bounds directly, as stale or arbitrary statistics."""
        data = self._tables[table]
        data.histogram = None if bounds is None else [str(key) for key in bounds]

    # -- SearchStore --------------------------------------------------------

    def _table(self, statement: str, table: TableRef) -> InMemoryTable:
        if not self._connected:
            raise ConnectionError("not connected", address="memory")
        self.statements.append(statement)
        data = self._tables.get(table.name)
        if data is None:
            raise QueryExecutionError(
                f'relation "{table.name}" does not exist', statement=statement
            )
        return data

    async def describe(self, table: TableRef) -> TableInfo:
        data = self._table("describe", table)
        for column in (table.key_column, table.time_column):
            if column not in (data.key_column, data.time_column):
                raise QueryExecutionError(
                    f'column "{column}" of relation "{table.name}" does not exist',
                    statement="describe",
                )
        return TableInfo(key_type=data.key_type, time_type=data.time_type)

    async def parse_timestamp(self, value: str, info: TableInfo) -> datetime:
        if not self._connected:
            raise ConnectionError("not connected", address="memory")
        self.statements.append("parse_timestamp")
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError as e:
            raise InvalidTimestampError(value, str(e)) from e

    async def histogram_bounds(self, table: TableRef) -> List[str]:
        data = self._table("histogram_bounds", table)
        return list(data.histogram or [])

    async def sample_times(
        self, table: TableRef, info: TableInfo, keys: Sequence[str]
    ) -> List[Sample]:
        data = self._table("sample_times", table)
        wanted = set(keys)
        samples = [
            Sample(key=row.key, created_at=row.created_at)
            for row in data.rows
            if str(row.key) in wanted
        ]
        samples.sort(key=lambda s: (s.created_at, s.key), reverse=True)
        return samples

    async def first_at_or_after(
        self, table: TableRef, bracket: Bracket, target: datetime
    ) -> Optional[ExceedingRecord]:
        data = self._table("first_past_threshold", table)
        for row in data.rows:
            if row.key <= bracket.min_key:
                continue
            if row.key > bracket.max_key:
                break
            if row.created_at >= target:
                return ExceedingRecord(key=row.key, created_at=row.created_at)
        return None

    async def last_before(self, table: TableRef, key: Any) -> Optional[BoundaryRecord]:
        data = self._table("first_before_threshold", table)
        index = bisect.bisect_left(data.keys(), key)
        if index == 0:
            return None
        row = data.rows[index - 1]
        return BoundaryRecord(key=row.key, created_at=row.created_at, xmin=str(row.xmin))
