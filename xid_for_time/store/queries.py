"""
Parameterized statements for each search stage.

Table and column names are interpolated into statement text because the
store does not accept identifiers as bind parameters. They arrive here
already validated by TableRef. Column type names come from the catalog.
Every value (target time, bracket bounds, keys) is a bind parameter.
"""

from __future__ import annotations

from sqlalchemy import TextClause, text

from .base import TableInfo, TableRef

DESCRIBE_COLUMNS = text(
    """
    SELECT a.attname AS column_name
         , format_type(a.atttypid, a.atttypmod) AS column_type
      FROM pg_attribute a
     WHERE a.attrelid = CAST(:relation AS regclass)
       AND a.attname IN (:key_column, :time_column)
       AND a.attnum > 0
       AND NOT a.attisdropped
    """
)

HISTOGRAM_BOUNDS = text(
    """
    SELECT s.histogram_bounds::text::text[] AS bounds
      FROM pg_stats s
      JOIN pg_namespace n ON n.nspname = s.schemaname
      JOIN pg_class c ON c.relnamespace = n.oid AND c.relname = s.tablename
     WHERE c.oid = CAST(:relation AS regclass)
       AND s.attname = :column
     ORDER BY s.inherited
     LIMIT 1
    """
)


def parse_timestamp(info: TableInfo) -> TextClause:
    """Cast the target with the store's own parser, as the time column type."""
    return text(f"SELECT CAST(:value AS {info.time_type}) AS target")


def sample_times(table: TableRef, info: TableInfo) -> TextClause:
    """Creation times of the histogram bounds, latest first."""
    key, created = table.key_column, table.time_column
    return text(
        f"""
        SELECT {key} AS key
             , {created} AS created_at
          FROM {table.name}
         WHERE {key} = ANY(CAST(:keys AS {info.key_type}[]))
         ORDER BY {created} DESC, {key} DESC
        """
    )


def first_at_or_after(table: TableRef) -> TextClause:
    """First row by key inside the bracket that does not precede the target."""
    key, created = table.key_column, table.time_column
    return text(
        f"""
        SELECT {key} AS key
             , {created} AS created_at
          FROM {table.name}
         WHERE {key} > :min_key
           AND {key} <= :max_key
           AND {created} >= :target
         ORDER BY {key} ASC
         LIMIT 1
        """
    )


def last_before(table: TableRef) -> TextClause:
    """Row immediately before key, with its transaction-visibility marker."""
    key, created = table.key_column, table.time_column
    return text(
        f"""
        SELECT {key} AS key
             , {created} AS created_at
             , xmin::text AS xmin
          FROM {table.name}
         WHERE {key} < :key
         ORDER BY {key} DESC
         LIMIT 1
        """
    )
