"""
Base protocol and types for store access.

This module defines the SearchStore protocol that every backend implements,
along with the read-only records each search stage produces.

Invariants:
    - The key column is totally ordered and increases with insertion order
    - The time column records insertion time
    - Every record is a query result held for one run, never persisted
    - Identifiers are validated before they reach statement text

How to change safely:
    - Protocol changes require updating PostgresStore and InMemoryStore
    - Keep histogram access behind HistogramSource so it can be stubbed
"""

from __future__ import annotations

import re
from abc import abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, List, Optional, Protocol, Sequence, runtime_checkable

from ..errors import InvalidIdentifierError

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")


def validate_identifier(identifier: str, kind: str = "identifier") -> str:
    """Return identifier unchanged if it is a plain SQL identifier.

    Raises:
        InvalidIdentifierError: If it contains anything else
    """
    if not identifier or not _IDENTIFIER.match(identifier):
        raise InvalidIdentifierError(identifier, kind)
    return identifier


@dataclass(frozen=True)
class TableRef:
    """The table to search and the two columns the search relies on.

    Attributes:
        name: Table name, optionally schema-qualified (schema.table)
        key_column: Primary key, strictly increasing with insertion order
        time_column: Insertion/creation timestamp
    """

    name: str
    key_column: str = "id"
    time_column: str = "created_at"

    def __post_init__(self) -> None:
        parts = self.name.split(".") if self.name else [""]
        if len(parts) > 2:
            raise InvalidIdentifierError(self.name, "table")
        for part in parts:
            validate_identifier(part, "table")
        validate_identifier(self.key_column, "key column")
        validate_identifier(self.time_column, "time column")

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class TableInfo:
    """Catalog type names of the key and time columns."""

    key_type: str
    time_type: str


@dataclass(frozen=True)
class Sample:
    """A histogram bound joined against the table for its creation time."""

    key: Any
    created_at: datetime


@dataclass(frozen=True)
class Bracket:
    """Adjacent samples around the target.

    min_created_at < target <= max_created_at holds in expectation only;
    sampling error near bucket edges is possible.
    """

    min_key: Any
    min_created_at: datetime
    max_key: Any
    max_created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "min_id": self.min_key,
            "min_created_at": self.min_created_at,
            "max_id": self.max_key,
            "max_created_at": self.max_created_at,
        }


@dataclass(frozen=True)
class ExceedingRecord:
    """First record in the bracket that is not strictly before the target."""

    key: Any
    created_at: datetime


@dataclass(frozen=True)
class BoundaryRecord:
    """Record immediately preceding the exceeding record in key order.

    Attributes:
        key: Primary key value
        created_at: Creation timestamp
        xmin: Transaction-visibility marker, as text
    """

    key: Any
    created_at: datetime
    xmin: str


@dataclass(frozen=True)
class SearchResult:
    """Final boundary plus the intermediate stage results."""

    table: TableRef
    target: datetime
    bracket: Bracket
    exceeding: ExceedingRecord
    boundary: BoundaryRecord

    @property
    def xmin(self) -> str:
        return self.boundary.xmin

    @property
    def exceeded_by(self) -> timedelta:
        return self.exceeding.created_at - self.target

    @property
    def before_by(self) -> timedelta:
        return self.target - self.boundary.created_at


@runtime_checkable
class HistogramSource(Protocol):
    """Source of key-distribution samples.

    Backed by the store's statistics in production; stubbed in tests.
    """

    @abstractmethod
    async def histogram_bounds(self, table: TableRef) -> List[str]:
        """Return equi-depth histogram bounds for table.key_column, as text.

        Returns an empty list when no statistics exist.
        """
        ...


@runtime_checkable
class SearchStore(HistogramSource, Protocol):
    """Protocol for store backends.

    Each method issues a single statement. Implementations raise
    QueryExecutionError for store-side failures and ConnectionError when
    not connected.

    Example:
        >>> async with PostgresStore(settings) as store:
        ...     info = await store.describe(TableRef("events"))
    """

    @abstractmethod
    async def connect(self) -> None:
        """Acquire the store connection.

        Raises:
            ConnectionError: If connection fails
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the store connection."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether currently connected to the store."""
        ...

    @abstractmethod
    async def describe(self, table: TableRef) -> TableInfo:
        """Look up the key and time column types.

        Raises:
            QueryExecutionError: If the table or either column does not exist
        """
        ...

    @abstractmethod
    async def parse_timestamp(self, value: str, info: TableInfo) -> datetime:
        """Parse value with the store's own parser as info.time_type.

        Raises:
            InvalidTimestampError: If the store rejects the value
        """
        ...

    @abstractmethod
    async def sample_times(
        self, table: TableRef, info: TableInfo, keys: Sequence[str]
    ) -> List[Sample]:
        """Join histogram bounds against the table.

        Returns:
            Samples still present in the table, ordered by creation time
            descending, then key descending
        """
        ...

    @abstractmethod
    async def first_at_or_after(
        self, table: TableRef, bracket: Bracket, target: datetime
    ) -> Optional[ExceedingRecord]:
        """Return the first row by key in (min_key, max_key] with time >= target."""
        ...

    @abstractmethod
    async def last_before(self, table: TableRef, key: Any) -> Optional[BoundaryRecord]:
        """Return the row with the largest key strictly less than key."""
        ...
