"""
Helpers for building in-memory tables.

Times are expressed as seconds after BASE so scenarios read like the
examples they come from: rows (id=1, t=10), (id=2, t=20), ...
"""

from datetime import datetime, timedelta

from xid_for_time.store import InMemoryStore

BASE = datetime(2024, 1, 1, 12, 0, 0)


def at(seconds: float) -> datetime:
    """Timestamp `seconds` after BASE."""
    return BASE + timedelta(seconds=seconds)


def iso(seconds: float) -> str:
    """Target string for `seconds` after BASE."""
    return at(seconds).isoformat(sep=" ")


def populate(store: InMemoryStore, name: str, rows, buckets: int = 100) -> None:
    """Create and analyze a table from (key, seconds) pairs."""
    store.create_table(name)
    for key, seconds in rows:
        store.insert(name, key, at(seconds))
    store.analyze(name, buckets=buckets)
