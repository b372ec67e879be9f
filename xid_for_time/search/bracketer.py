"""
Approximate bracketing from key-distribution statistics.

Turns a full-table timestamp scan into a lookup over the k histogram
bounds the store already maintains for the key column: each bound is
joined against the table for its real creation time, and the pair of
adjacent bounds surrounding the target becomes the bracket.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from ..errors import NoStatisticsAvailableError, TargetOutOfRangeError
from ..events import EventSink
from ..store.base import Bracket, HistogramSource, Sample, SearchStore, TableInfo, TableRef

logger = logging.getLogger(__name__)


def select_bracket(samples: List[Sample], target: datetime) -> Optional[Bracket]:
    """Pick the bracket from samples ordered by creation time descending.

    The lower bound is the latest sample strictly before target; the upper
    bound is the sample immediately later than it. Returns None when
    either bound is missing.
    """
    for index, lower in enumerate(samples):
        if lower.created_at < target:
            if index == 0:
                return None
            upper = samples[index - 1]
            return Bracket(
                min_key=lower.key,
                min_created_at=lower.created_at,
                max_key=upper.key,
                max_created_at=upper.created_at,
            )
    return None


class Bracketer:
    """Find a narrow [min, max] key range likely to contain the target.

    Attributes:
        store: Store used to join bounds against the table
        histogram: Source of histogram bounds (the store unless stubbed)
        events: Sink receiving the found_thresholds event
    """

    def __init__(
        self,
        store: SearchStore,
        events: EventSink,
        histogram: HistogramSource | None = None,
    ) -> None:
        self.store = store
        self.events = events
        self.histogram = histogram or store

    async def bracket(self, table: TableRef, info: TableInfo, target: datetime) -> Bracket:
        """Return the bracket around target.

        Raises:
            NoStatisticsAvailableError: No bounds, or none still in the table
            TargetOutOfRangeError: Target precedes or follows every sample
        """
        bounds = await self.histogram.histogram_bounds(table)
        if not bounds:
            raise NoStatisticsAvailableError(
                table.name, table.key_column, "run ANALYZE or wait for autovacuum"
            )
        logger.debug("Loaded %d histogram bounds for %s", len(bounds), table)

        samples = await self.store.sample_times(table, info, bounds)
        if not samples:
            raise NoStatisticsAvailableError(
                table.name, table.key_column, "no sampled key exists in the table"
            )

        bracket = select_bracket(samples, target)
        if bracket is None:
            raise TargetOutOfRangeError(
                table.name,
                target,
                earliest=samples[-1].created_at,
                latest=samples[0].created_at,
            )

        self.events.emit("found_thresholds", **bracket.to_dict())
        return bracket
