"""SQL helpers for MySQL audit tables.

All database-specific query logic is isolated here so it can be tested
independently from the sync orchestration and I/O layers.  Every helper
raises :class:`~cdc_audit_sync.errors.QueryError` when the driver fails.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence, Tuple

from ._constants import AUDIT_PK_COLUMN
from .errors import QueryError

TrimBounds = Tuple[int, Optional[int], Optional[int]]


def quote_identifier(name: str) -> str:
    """Backtick-quote a MySQL identifier, escaping embedded backticks."""
    return "`" + name.replace("`", "``") + "`"


def execute(cursor: Any, sql: str, params: Sequence[Any] = ()) -> None:
    """Run *sql* on *cursor*, wrapping driver errors in ``QueryError``."""
    try:
        if params:
            cursor.execute(sql, tuple(params))
        else:
            cursor.execute(sql)
    except Exception as exc:
        raise QueryError(f"{exc} -- query: {sql}") from exc


def list_tables(cursor: Any) -> List[str]:
    """Return every table name in the connection's current database."""
    execute(cursor, "SHOW TABLES")
    return [row[0] for row in cursor.fetchall()]


def build_export_query(table: str) -> str:
    """Return the SELECT for rows newer than a resume point.

    The query expects a single ``?`` parameter, the last exported
    ``audit_pk``.  Rows come back in ascending ``audit_pk`` order so a
    partially written file always ends on a contiguous prefix.
    """
    pk = quote_identifier(AUDIT_PK_COLUMN)
    return (
        f"SELECT * FROM {quote_identifier(table)} "
        f"WHERE {pk} > ? ORDER BY {pk}"
    )


def build_bounds_query(table: str) -> str:
    """Return the ``COUNT/MIN/MAX`` query over ``audit_pk`` for *table*."""
    pk = quote_identifier(AUDIT_PK_COLUMN)
    return (
        f"SELECT COUNT({pk}), MIN({pk}), MAX({pk}) "
        f"FROM {quote_identifier(table)}"
    )


def build_delete_query(table: str) -> str:
    """Return the half-open range DELETE: ``min <= audit_pk < upper``."""
    pk = quote_identifier(AUDIT_PK_COLUMN)
    return (
        f"DELETE FROM {quote_identifier(table)} "
        f"WHERE {pk} >= ? AND {pk} < ?"
    )


def trim_bounds(cursor: Any, table: str) -> TrimBounds:
    """Return ``(count, min_pk, max_pk)`` for *table*.

    ``min_pk`` and ``max_pk`` are ``None`` for an empty table.
    """
    execute(cursor, build_bounds_query(table))
    row = cursor.fetchone()
    if not row:
        return 0, None, None
    count, lo, hi = row[0], row[1], row[2]
    return (
        int(count or 0),
        int(lo) if lo is not None else None,
        int(hi) if hi is not None else None,
    )


def delete_range(cursor: Any, table: str, lower: int, upper: int) -> int:
    """Delete rows with ``lower <= audit_pk < upper``; return the row count.

    Returns ``-1`` when the driver does not report affected rows.
    """
    execute(cursor, build_delete_query(table), (lower, upper))
    rowcount = getattr(cursor, "rowcount", -1)
    return rowcount if isinstance(rowcount, int) else -1
