"""
Search orchestrator.

Sequences the stages, each feeding the next:

    PENDING -> DESCRIBING -> PARSING -> BRACKETING -> PROBING -> RESOLVING -> DONE

FAILED is reachable from every stage, cancellation included.

Invariants:
    - Single pass: no stage retries, no backward transitions
    - The first failure aborts the run; no partial result is returned
    - Every failure is tagged with the stage it happened in
    - One XidSearch instance runs once
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from ..errors import XidSearchError
from ..events import EventSink
from ..store.base import HistogramSource, SearchResult, SearchStore, TableRef
from .bracketer import Bracketer
from .probe import ForwardProbe
from .resolver import BoundaryResolver

logger = logging.getLogger(__name__)


class SearchState(Enum):
    """Pipeline states."""

    PENDING = "pending"
    DESCRIBING = "describing"
    PARSING = "parsing"
    BRACKETING = "bracketing"
    PROBING = "probing"
    RESOLVING = "resolving"
    DONE = "done"
    FAILED = "failed"


class XidSearch:
    """Find the last xid that committed before a given time.

    The store must already be connected; connection lifetime belongs to
    the caller.

    Attributes:
        store: Connected search store
        events: Sink receiving one event per stage
        state: Current pipeline state

    Example:
        >>> async with PostgresStore(settings) as store:
        ...     search = XidSearch(store, LoggingEventSink())
        ...     result = await search.run(TableRef("events"), "2024-01-01 12:00")
        ...     print(result.xmin)
    """

    def __init__(
        self,
        store: SearchStore,
        events: EventSink,
        histogram: HistogramSource | None = None,
    ) -> None:
        self.store = store
        self.events = events
        self.state = SearchState.PENDING
        self.bracketer = Bracketer(store, events, histogram=histogram)
        self.probe = ForwardProbe(store, events)
        self.resolver = BoundaryResolver(store, events)

    async def run(self, table: TableRef, target: str) -> SearchResult:
        """Run every stage once.

        Args:
            table: Table to search
            target: Target time, parsed by the store

        Returns:
            SearchResult with the boundary record and intermediate results

        Raises:
            XidSearchError: From whichever stage failed
            asyncio.CancelledError: If the run was cancelled mid-query
        """
        if self.state is not SearchState.PENDING:
            raise RuntimeError(f"search already {self.state.value}")

        try:
            self.state = SearchState.DESCRIBING
            info = await self.store.describe(table)
            logger.debug("%s key=%s time=%s", table, info.key_type, info.time_type)

            self.state = SearchState.PARSING
            target_time = await self.store.parse_timestamp(target, info)
            self.events.emit("parsed_target", table=table.name, target=target_time)

            self.state = SearchState.BRACKETING
            bracket = await self.bracketer.bracket(table, info, target_time)

            self.state = SearchState.PROBING
            exceeding = await self.probe.probe(table, bracket, target_time)

            self.state = SearchState.RESOLVING
            boundary = await self.resolver.resolve(table, exceeding, target_time)

        except XidSearchError as e:
            if e.stage is None:
                e.stage = self.state.value
            self.events.emit(
                "search_failed",
                stage=e.stage,
                code=e.code,
                error=e.message,
                **{k: v for k, v in e.details.items() if v is not None and k != "table"},
            )
            self.state = SearchState.FAILED
            raise
        except asyncio.CancelledError:
            logger.warning("Search cancelled while %s", self.state.value)
            self.state = SearchState.FAILED
            raise

        self.state = SearchState.DONE
        return SearchResult(
            table=table,
            target=target_time,
            bracket=bracket,
            exceeding=exceeding,
            boundary=boundary,
        )
