"""Boundary resolution: the record just before the exceeding one, with its xmin."""

from __future__ import annotations

from datetime import datetime

from ..errors import NoPriorRecordError
from ..events import EventSink
from ..store.base import BoundaryRecord, ExceedingRecord, SearchStore, TableRef


class BoundaryResolver:
    """Step back one key from the exceeding record."""

    def __init__(self, store: SearchStore, events: EventSink) -> None:
        self.store = store
        self.events = events

    async def resolve(
        self, table: TableRef, exceeding: ExceedingRecord, target: datetime
    ) -> BoundaryRecord:
        """Return the row with the largest key below exceeding.key.

        Args:
            table: Table being searched
            exceeding: Result of the forward probe
            target: Target time, used only to report how far before it the
                boundary lies

        Raises:
            NoPriorRecordError: exceeding is the first row of the table
        """
        boundary = await self.store.last_before(table, exceeding.key)
        if boundary is None:
            raise NoPriorRecordError(table.name, exceeding.key)

        self.events.emit(
            "first_before_threshold",
            before_id=boundary.key,
            before_created_at=boundary.created_at,
            before_xmin=boundary.xmin,
            before_by=target - boundary.created_at,
        )
        return boundary
