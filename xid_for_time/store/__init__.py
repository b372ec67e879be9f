"""
Store access for xid-for-time.

This module provides a pluggable store interface supporting:
- Postgres (pg_stats histograms, xmin markers)
- In-memory (for testing)

Invariants:
    - Every method issues one read-only statement
    - Identifiers are validated; values are always bound
    - Failures are raised, never retried

How to change safely:
    - New backends must implement the SearchStore protocol
    - Keep statement shapes in queries.py in step with InMemoryStore
"""

from .base import (
    BoundaryRecord,
    Bracket,
    ExceedingRecord,
    HistogramSource,
    Sample,
    SearchResult,
    SearchStore,
    TableInfo,
    TableRef,
    validate_identifier,
)
from .memory import InMemoryStore
from .postgres import PostgresStore

__all__ = [
    # Protocols and types
    "SearchStore",
    "HistogramSource",
    "TableRef",
    "TableInfo",
    "Sample",
    "Bracket",
    "ExceedingRecord",
    "BoundaryRecord",
    "SearchResult",
    "validate_identifier",
    # Implementations
    "PostgresStore",
    "InMemoryStore",
]
