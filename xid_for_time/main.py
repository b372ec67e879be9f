"""
xid-for-time - Main entry point.

Usage:
    xid-for-time [--host H] [--port P] [--database D] [--user U] TABLE TIME

Connection settings default to the PG* environment variables. Events are
logged to stderr; on success the boundary xmin is printed to stdout.

Exit codes:
    0   boundary found
    1   search failed (connection, statistics, range, query errors)
    2   usage or configuration error
    130 cancelled by SIGTERM/SIGINT

Invariants:
    - A signal cancels the in-flight query instead of waiting for it
    - The store connection is released on every exit path
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import signal
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import json_log_formatter

from ._version import __version__
from .config import LOG_FORMATS, ObservabilityConfig, PostgresSettings, SearchConfig
from .errors import XidSearchError
from .events import EventSink, LoggingEventSink
from .search import XidSearch
from .store import PostgresStore, SearchResult, SearchStore, TableRef

logger = logging.getLogger(__name__)

PROG = "xid-for-time"

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_CANCELLED = 130

_RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def _logfmt_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        value = value.isoformat()
    elif isinstance(value, timedelta):
        value = f"{value.total_seconds():g}s"
    elif isinstance(value, bool):
        value = "true" if value else "false"
    else:
        value = str(value)
    if value == "" or any(c in value for c in ' ="\\') or not value.isprintable():
        return json.dumps(value)
    return value


class LogfmtFormatter(logging.Formatter):
    """Render records as logfmt: ts=... level=... event=... key=value.

    Fields passed through extra are appended in insertion order.
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        pairs: list[tuple[str, Any]] = [
            ("ts", ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")),
            ("level", record.levelname.lower()),
        ]
        extra = {k: v for k, v in vars(record).items() if k not in _RESERVED_ATTRS}
        if "event" not in extra:
            pairs.append(("msg", record.getMessage()))
        pairs.extend(extra.items())
        if record.exc_info:
            pairs.append(("exc", self.formatException(record.exc_info)))
        return " ".join(f"{key}={_logfmt_value(value)}" for key, value in pairs)


class JsonFormatter(json_log_formatter.JSONFormatter):
    """JSON lines with level and logger name alongside the extra fields."""

    def json_record(
        self, message: str, extra: dict[str, Any], record: logging.LogRecord
    ) -> dict[str, Any]:
        extra = super().json_record(message, extra, record)
        extra["level"] = record.levelname.lower()
        extra["logger"] = record.name
        return extra


def setup_logging(config: ObservabilityConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Observability configuration
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    formatter: logging.Formatter
    if config.log_format == "json":
        formatter = JsonFormatter()
    elif config.log_format == "logfmt":
        formatter = LogfmtFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("psycopg").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROG,
        description="Find the last xid that committed before time",
    )
    parser.add_argument("table", help="Table to use for estimates")
    parser.add_argument("time", help="Target time to compute xid for")

    db = parser.add_argument_group("database connection")
    db.add_argument("--host", help="Postgres host (env PGHOST, default 127.0.0.1)")
    db.add_argument("--port", type=int, help="Postgres port (env PGPORT, default 5432)")
    db.add_argument(
        "--database", help="Postgres database name (env PGDATABASE, default postgres)"
    )
    db.add_argument("--user", help="Postgres user (env PGUSER, default postgres)")

    parser.add_argument(
        "--key-column", help="Primary key column (env XID_KEY_COLUMN, default id)"
    )
    parser.add_argument(
        "--time-column",
        help="Creation time column (env XID_TIME_COLUMN, default created_at)",
    )
    parser.add_argument("--log-level", help="Log level (env LOG_LEVEL, default INFO)")
    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        help="Log format (env LOG_FORMAT, default logfmt)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def resolve_config(
    args: argparse.Namespace,
) -> tuple[PostgresSettings, SearchConfig, ObservabilityConfig]:
    """Merge command-line flags over environment defaults.

    Raises:
        ValueError: If the merged configuration is invalid
    """
    overrides = {
        name: getattr(args, name)
        for name in ("host", "port", "database", "user")
        if getattr(args, name) is not None
    }
    settings = PostgresSettings(**overrides)

    search = SearchConfig.from_env(args.table, args.time)
    if args.key_column:
        search = dataclasses.replace(search, key_column=args.key_column)
    if args.time_column:
        search = dataclasses.replace(search, time_column=args.time_column)

    observability = ObservabilityConfig.from_env()
    observability = ObservabilityConfig(
        log_level=args.log_level or observability.log_level,
        log_format=args.log_format or observability.log_format,
    )
    observability.validate()
    return settings, search, observability


async def search(
    settings: PostgresSettings,
    table: TableRef,
    target: str,
    events: EventSink,
    store_factory: Callable[[PostgresSettings], SearchStore] = PostgresStore,
) -> SearchResult:
    """Connect, run the search once, and release the connection."""
    events.emit(
        "connect",
        dbname=settings.database,
        host=settings.host,
        port=settings.port,
        user=settings.user,
    )
    store = store_factory(settings)
    try:
        await store.connect()
    except XidSearchError as e:
        e.stage = e.stage or "connecting"
        raise
    try:
        return await XidSearch(store, events).run(table, target)
    finally:
        await store.close()


def run(
    settings: PostgresSettings,
    table: TableRef,
    target: str,
    events: EventSink,
    store_factory: Callable[[PostgresSettings], SearchStore] = PostgresStore,
) -> int:
    """Run the search on a fresh event loop with signal-driven cancellation.

    Returns:
        Process exit code
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    task = loop.create_task(search(settings, table, target, events, store_factory))

    def handle_signal(sig: int) -> None:
        logger.info(
            "received signal, shutting down",
            extra={"signal": signal.Signals(sig).name},
        )
        task.cancel()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        result = loop.run_until_complete(task)
    except asyncio.CancelledError:
        return EXIT_CANCELLED
    except XidSearchError as e:
        print(f"{PROG}: error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    finally:
        loop.close()
        asyncio.set_event_loop(None)

    print(result.xmin)
    return EXIT_OK


def main(
    argv: list[str] | None = None,
    store_factory: Callable[[PostgresSettings], SearchStore] = PostgresStore,
) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings, config, observability = resolve_config(args)
        table = TableRef(config.table, config.key_column, config.time_column)
    except (ValueError, XidSearchError) as e:
        parser.exit(EXIT_USAGE, f"{PROG}: configuration error: {e}\n")

    setup_logging(observability)
    sys.exit(run(settings, table, config.target, LoggingEventSink(), store_factory))


if __name__ == "__main__":
    main()
