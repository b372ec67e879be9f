"""
xid-for-time - Find the last xid that committed before a given time.

Given a table whose primary key increases with insertion order and a
creation-time column, this package finds the last row created strictly
before a target timestamp and reports its xmin, which downstream tools use
to reconstruct "as of" snapshots.

Architecture:
    ┌──────────┐   bounds    ┌───────────┐  bracket  ┌──────────────┐
    │ pg_stats │────────────▶│ Bracketer │──────────▶│ ForwardProbe │
    └──────────┘             └───────────┘           └──────┬───────┘
                                                            │ exceeding row
                                                            ▼
                                                   ┌──────────────────┐
                                                   │ BoundaryResolver │──▶ xmin
                                                   └──────────────────┘

Invariants:
    - Three indexed lookups replace a full-table timestamp scan
    - Strictly sequential, single pass, no retries
    - Read-only; nothing is persisted

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
