"""
xid-for-time Test Suite.

This package contains:
- unit/: Unit tests (no external dependencies, in-memory store)
- integration/: Integration tests (live Postgres, XID_FOR_TIME_PG_TESTS=1)
"""
