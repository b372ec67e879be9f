"""
Structured event sinks.

Each search stage reports its result as one named event with flat fields.
The sink is passed explicitly into the pipeline rather than reached through
a global logger, so tests can record events and the CLI can log them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol, Tuple


class EventSink(Protocol):
    """Receiver for pipeline events."""

    def emit(self, event: str, **fields: Any) -> None:
        ...


class LoggingEventSink:
    """Emit events as log records with the fields attached via extra.

    Example:
        >>> sink = LoggingEventSink()
        >>> sink.emit("found_thresholds", min_id=2, max_id=3)
    """

    def __init__(
        self,
        logger: logging.Logger | None = None,
        level: int = logging.INFO,
    ) -> None:
        self.logger = logger or logging.getLogger("xid_for_time.events")
        self.level = level

    def emit(self, event: str, **fields: Any) -> None:
        self.logger.log(self.level, event, extra={"event": event, **fields})


@dataclass
class RecordingEventSink:
    """Keep events in memory, in emission order."""

    events: List[Tuple[str, Dict[str, Any]]] = field(default_factory=list)

    def emit(self, event: str, **fields: Any) -> None:
        self.events.append((event, fields))

    @property
    def names(self) -> List[str]:
        return [name for name, _ in self.events]

    def get(self, event: str) -> Dict[str, Any]:
        """Fields of the last event with this name."""
        for name, fields in reversed(self.events):
            if name == event:
                return fields
        raise KeyError(event)
