"""Shared fixtures for unit tests."""

import pytest

from xid_for_time.store import InMemoryStore, TableRef

from .helpers import populate


@pytest.fixture
def table():
    """Reference to the events table."""
    return TableRef("events")


@pytest.fixture
def scenario_store():
    """Rows (1,10) (2,20) (3,30) (4,40), every key a histogram bound."""
    store = InMemoryStore(first_xid=500)
    populate(store, "events", [(1, 10), (2, 20), (3, 30), (4, 40)])
    return store
