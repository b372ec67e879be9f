"""
Error types for xid-for-time.

This module defines every failure the search can surface:
- XidSearchError: Base exception
- ConnectionError: Store connection issues
- InvalidTimestampError: Target time rejected by the store's parser
- InvalidIdentifierError: Table or column name is not a plain identifier
- NoStatisticsAvailableError: No histogram for the key column
- TargetOutOfRangeError: Target outside the sampled key range
- NoExceedingRecordInBracketError: Forward probe found nothing
- NoPriorRecordError: Nothing precedes the exceeding record
- QueryExecutionError: Any other store-side failure

Invariants:
    - All errors inherit from XidSearchError
    - Every error is fatal for the run; nothing is retried
    - details carries enough context (bounds, keys) to diagnose by hand
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class XidSearchError(Exception):
    """Base exception for all search errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
        stage: Pipeline stage the error surfaced in (set by the orchestrator)
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "XID_SEARCH_ERROR"
        self.details = details or {}
        self.stage: Optional[str] = None

    def __str__(self) -> str:
        if self.stage:
            return f"{self.stage}: {self.message}"
        return self.message


class ConnectionError(XidSearchError):
    """Failed to connect to the store.

    Raised when:
    - Server is unreachable
    - Connection times out
    - Authentication fails
    """

    def __init__(
        self,
        message: str,
        address: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="CONNECTION_ERROR",
            details={"address": address},
        )
        self.address = address


class InvalidTimestampError(XidSearchError):
    """The target time could not be parsed by the store."""

    def __init__(self, value: str, reason: Optional[str] = None) -> None:
        msg = f"invalid timestamp for target time: {value!r}"
        if reason:
            msg += f" ({reason})"
        super().__init__(
            msg,
            code="INVALID_TIMESTAMP",
            details={"value": value, "reason": reason},
        )
        self.value = value


class InvalidIdentifierError(XidSearchError):
    """A table or column name is not a plain SQL identifier.

    Identifiers are interpolated into statement text, so anything beyond
    letters, digits, underscores and dollar signs is refused.
    """

    def __init__(self, identifier: str, kind: str = "identifier") -> None:
        super().__init__(
            f"invalid {kind}: {identifier!r}",
            code="INVALID_IDENTIFIER",
            details={"identifier": identifier, "kind": kind},
        )
        self.identifier = identifier
        self.kind = kind


class NoStatisticsAvailableError(XidSearchError):
    """No histogram sample exists for the key column.

    Raised when:
    - The table was never analyzed
    - The table is too small for a histogram
    - None of the sampled keys still exist
    """

    def __init__(self, table: str, column: str, reason: Optional[str] = None) -> None:
        msg = f"no histogram statistics for {table}.{column}"
        if reason:
            msg += f": {reason}"
        super().__init__(
            msg,
            code="NO_STATISTICS",
            details={"table": table, "column": column},
        )
        self.table = table
        self.column = column


class TargetOutOfRangeError(XidSearchError):
    """The target precedes or follows every sampled creation time."""

    def __init__(
        self,
        table: str,
        target: Any,
        earliest: Any = None,
        latest: Any = None,
    ) -> None:
        super().__init__(
            f"target {target} is outside the sampled range [{earliest}, {latest}] of {table}",
            code="TARGET_OUT_OF_RANGE",
            details={
                "table": table,
                "target": target,
                "earliest_sample": earliest,
                "latest_sample": latest,
            },
        )
        self.table = table
        self.target = target


class NoExceedingRecordInBracketError(XidSearchError):
    """No record inside the bracket reaches the target time.

    The bracket was not a valid approximation at query time, usually because
    statistics are stale relative to concurrent writes or deletes.
    """

    def __init__(self, table: str, min_key: Any, max_key: Any, target: Any) -> None:
        super().__init__(
            f"no row of {table} with key in ({min_key}, {max_key}] reaches {target}",
            code="NO_EXCEEDING_RECORD",
            details={
                "table": table,
                "min_id": min_key,
                "max_id": max_key,
                "target": target,
            },
        )
        self.min_key = min_key
        self.max_key = max_key


class NoPriorRecordError(XidSearchError):
    """The exceeding record is the first row of the table."""

    def __init__(self, table: str, key: Any) -> None:
        super().__init__(
            f"no row of {table} precedes key {key}",
            code="NO_PRIOR_RECORD",
            details={"table": table, "key": key},
        )
        self.key = key


class QueryExecutionError(XidSearchError):
    """Malformed statement or store-side failure."""

    def __init__(self, message: str, statement: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="QUERY_FAILED",
            details={"statement": statement},
        )
        self.statement = statement
