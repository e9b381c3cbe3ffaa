"""Incremental trimming of an exported audit table.

Removes every row except the newest one, in small ``DELETE`` batches with a
pause between them.  Other sessions keep inserting while this runs, so:

* bounds (``COUNT/MIN/MAX`` of ``audit_pk``) are re-read before every batch;
* each batch deletes the half-open range ``[min, min(min + batch_size, max))``,
  which never includes the current maximum;
* every batch is committed on its own, keeping locks short.

A failed batch aborts the trim; earlier batches stay deleted and the next run
continues from the new minimum.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from . import queries
from ._constants import DEFAULT_TRIM_BATCH_SIZE, DEFAULT_TRIM_PAUSE_SECONDS
from .errors import QueryError

logger = logging.getLogger(__name__)


def batch_upper_bound(min_pk: int, max_pk: int, batch_size: int) -> int:
    """Exclusive upper bound of the next delete batch."""
    return min(min_pk + batch_size, max_pk)


def _commit(conn: Any) -> None:
    try:
        conn.commit()
    except Exception as exc:
        raise QueryError(f"Commit failed: {exc}") from exc


def trim_table(
    conn: Any,
    table: str,
    *,
    batch_size: int = DEFAULT_TRIM_BATCH_SIZE,
    pause_seconds: float = DEFAULT_TRIM_PAUSE_SECONDS,
) -> Dict[str, Any]:
    """Delete all but the newest row of *table*.

    Returns ``{"batches", "rows_deleted", "preserved_pk"}`` where
    *preserved_pk* is the maximum ``audit_pk`` seen on the final pass
    (``None`` for an empty table).  *rows_deleted* counts only rows the
    driver reported.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")

    logger.info("Wiping audit table: %s", table)
    cur = conn.cursor()
    # bounds must see rows inserted after the export query
    _commit(conn)

    batches = 0
    rows_deleted = 0
    previous_min: Optional[int] = None
    max_pk: Optional[int] = None

    while True:
        count, min_pk, max_pk = queries.trim_bounds(cur, table)
        if count <= 1 or max_pk is None or min_pk is None:
            break
        if min_pk == previous_min:
            logger.warning(
                "Trim of %s made no progress at audit_pk %d; stopping",
                table, min_pk,
            )
            break

        if batches:
            time.sleep(pause_seconds)

        upper = batch_upper_bound(min_pk, max_pk, batch_size)
        logger.info("Wiping audit table rows %d to %d", min_pk, upper)
        deleted = queries.delete_range(cur, table, min_pk, upper)
        _commit(conn)

        batches += 1
        if deleted > 0:
            rows_deleted += deleted
        previous_min = min_pk

    logger.info(
        "%s: trimmed %d row(s) in %d batch(es), kept audit_pk %s",
        table, rows_deleted, batches, max_pk,
    )
    return {"batches": batches, "rows_deleted": rows_deleted, "preserved_pk": max_pk}
