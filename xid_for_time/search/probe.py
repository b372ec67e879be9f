"""Forward probe: first record in the bracket that reaches the target."""

from __future__ import annotations

from datetime import datetime

from ..errors import NoExceedingRecordInBracketError
from ..events import EventSink
from ..store.base import Bracket, ExceedingRecord, SearchStore, TableRef


class ForwardProbe:
    """Bounded index range scan inside a bracket."""

    def __init__(self, store: SearchStore, events: EventSink) -> None:
        self.store = store
        self.events = events

    async def probe(
        self, table: TableRef, bracket: Bracket, target: datetime
    ) -> ExceedingRecord:
        """Return the first row by key in (min_key, max_key] not before target.

        Raises:
            NoExceedingRecordInBracketError: The bracket holds no such row,
                typically because statistics are stale
        """
        record = await self.store.first_at_or_after(table, bracket, target)
        if record is None:
            raise NoExceedingRecordInBracketError(
                table.name, bracket.min_key, bracket.max_key, target
            )

        self.events.emit(
            "first_past_threshold",
            exceeded_id=record.key,
            exceeded_created_at=record.created_at,
            exceeded_by=record.created_at - target,
        )
        return record
