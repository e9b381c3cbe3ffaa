"""Core per-table engine: locate the resume point, export new rows, trim.

Each table maps to one export file, ``output_dir/{table}.csv``.  The file
is both the output and the only record of progress: the next run reads its
last line to find where to resume, so nothing else is persisted.

Stages run in order for one table:

1. resume  -- :func:`cdc_audit_sync.resume.locate` on the export file.
2. export  -- :func:`export_table` appends rows with a larger ``audit_pk``.
3. trim    -- :func:`cdc_audit_sync.trim.trim_table` (only with ``wipe``).

:func:`sync_table` turns any :class:`~cdc_audit_sync.errors.AuditSyncError`
into an error result tagged with its kind and the failing stage, so the
caller decides whether to continue with the next table.
"""

from __future__ import annotations

import csv
import errno
import fcntl
import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Generator, Optional, Tuple

from . import queries, resume, trim
from ._constants import (
    DEFAULT_FETCH_SIZE,
    DEFAULT_TRIM_BATCH_SIZE,
    DEFAULT_TRIM_PAUSE_SECONDS,
    NO_PRIOR_EXPORT,
)
from .errors import AuditSyncError, FileIOError, QueryError, TableLockedError
from .writer import CsvWriter, OutputWriter

logger = logging.getLogger(__name__)

_DEFAULT_WRITER: OutputWriter = CsvWriter()
_LOCK_SUFFIX = ".lock"


class _TableLock:
    """Per-table advisory file lock to prevent concurrent exports.

    Uses ``fcntl.flock`` (POSIX) with ``LOCK_EX | LOCK_NB`` so a second
    process attempting to sync the same table will fail fast rather than
    block indefinitely.
    """

    def __init__(self, output_dir: str, table: str) -> None:
        self._path = os.path.join(output_dir, f".{table}{_LOCK_SUFFIX}")
        self._fd: Optional[int] = None

    def __enter__(self) -> "_TableLock":
        try:
            self._fd = os.open(self._path, os.O_CREAT | os.O_RDWR)
        except OSError as exc:
            raise FileIOError(f"Unable to open lock file {self._path}: {exc}") from exc
        try:
            fcntl.flock(self._fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as exc:
            os.close(self._fd)
            self._fd = None
            if exc.errno in (errno.EACCES, errno.EAGAIN):
                raise TableLockedError(
                    f"Another sync is already running for this table "
                    f"(lock file: {self._path})"
                ) from exc
            raise FileIOError(f"Unable to lock {self._path}: {exc}") from exc
        return self

    def __exit__(self, *_: Any) -> None:
        if self._fd is not None:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
            os.close(self._fd)
            self._fd = None


def _iter_cursor(
    cursor: Any, batch_size: int
) -> Generator[Tuple, None, None]:
    """Yield rows from *cursor* in batches of *batch_size* without
    materialising the entire result set in memory."""
    while True:
        try:
            batch = cursor.fetchmany(batch_size)
        except Exception as exc:
            raise QueryError(f"Failed fetching rows: {exc}") from exc
        if not batch:
            break
        yield from batch


def csv_path(output_dir: str, table: str) -> str:
    """Return the export file path for *table*."""
    return os.path.join(output_dir, f"{table}.csv")


def _has_data_rows(path: str) -> bool:
    """True if *path* holds anything beyond its first (header) line."""
    with open(path, "rb") as f:
        f.readline()
        return bool(f.read(1))


def _first_exported_pk(path: str) -> Optional[int]:
    """Return the ``audit_pk`` of the first data record in *path*, or ``None``."""
    with open(path, newline="", encoding="utf-8", errors="replace") as f:
        reader = csv.reader(f)
        try:
            next(reader, None)
            record = next(reader, None)
        except csv.Error:
            return None
    if not record:
        return None
    tail = record[-1].strip()
    return int(tail) if tail.isascii() and tail.isdigit() else None


def _needs_set_aside(cursor: Any, table: str, path: str) -> bool:
    """True if exporting *table* from scratch could drop rows held in *path*.

    Trimming only ever removes the lowest keys, so the table still covers
    the old file when its ``MIN(audit_pk)`` is at or below the file's first
    exported key.  A first record without a numeric key cannot be checked.
    """
    try:
        if not os.path.isfile(path) or not _has_data_rows(path):
            return False
        first_pk = _first_exported_pk(path)
    except OSError as exc:
        raise FileIOError(f"Unable to open file {path} for reading: {exc}") from exc
    if first_pk is None:
        return True
    _, min_pk, _ = queries.trim_bounds(cursor, table)
    return min_pk is None or min_pk > first_pk


def _backup_path(path: str) -> str:
    """Return an unused ``{path}.{UTC timestamp}[.n].bak`` name.

    Callers hold the table lock, so no other sync can claim the name.
    """
    ts = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
    backup = f"{path}.{ts}.bak"
    n = 1
    while os.path.lexists(backup):
        backup = f"{path}.{ts}.{n}.bak"
        n += 1
    return backup


def _set_aside(path: str) -> str:
    """Move an export file that cannot be resumed out of the way."""
    backup = _backup_path(path)
    logger.warning(
        "%s has no recognisable last row and may hold rows no longer in the table; "
        "moving it to %s and exporting from scratch",
        path, backup,
    )
    try:
        os.replace(path, backup)
    except OSError as exc:
        raise FileIOError(f"Unable to set aside {path}: {exc}") from exc
    return backup


def export_table(
    cursor: Any,
    table: str,
    resume_point: int,
    path: str,
    *,
    writer: Optional[OutputWriter] = None,
    fetch_size: int = DEFAULT_FETCH_SIZE,
) -> int:
    """Write every row of *table* with ``audit_pk > resume_point`` to *path*.

    A *resume_point* of ``-1`` creates the file with a header row; any other
    value appends.  When creating over a file that still holds data rows,
    the file is rewritten in place if the table covers every row in it and
    moved aside to a ``.bak`` first otherwise.  Returns the number of rows
    written.
    """
    if writer is None:
        writer = _DEFAULT_WRITER

    append = resume_point != NO_PRIOR_EXPORT
    set_aside = not append and _needs_set_aside(cursor, table, path)
    queries.execute(cursor, queries.build_export_query(table), (resume_point,))
    if set_aside:
        _set_aside(path)
    elif not append and os.path.exists(path):
        logger.info("%s has no recognisable last row; rewriting it from scratch", path)
    description = cursor.description
    rows = _iter_cursor(cursor, fetch_size)
    return writer.write(rows, description, path, append=append)


def _error_result(
    table: str, exc: AuditSyncError, phase: str, **extra: Any,
) -> dict:
    result = {
        "table": table,
        "status": "error",
        "error_kind": exc.kind,
        "error": str(exc),
        "phase": phase,
    }
    result.update(extra)
    return result


def sync_table(
    conn: Any,
    table: str,
    output_dir: str,
    *,
    wipe: bool = False,
    writer: Optional[OutputWriter] = None,
    fetch_size: int = DEFAULT_FETCH_SIZE,
    trim_batch_size: int = DEFAULT_TRIM_BATCH_SIZE,
    trim_pause_seconds: float = DEFAULT_TRIM_PAUSE_SECONDS,
) -> dict:
    """Export one audit table and optionally trim it.

    Args:
        conn:               Open DB-API connection to the audit database.
        table:              Audit table name.
        output_dir:         Directory holding ``{table}.csv`` (must exist).
        wipe:               Trim the table down to its newest row after a
                            successful export.
        writer:             An ``OutputWriter``; defaults to ``CsvWriter()``.
        fetch_size:         Rows fetched from the database at a time.
        trim_batch_size:    Maximum rows removed per DELETE while trimming.
        trim_pause_seconds: Pause between trim batches.

    Returns:
        Result dict with ``status`` ``"ok"`` or ``"error"``.
    """
    logger.info("Processing table %s", table)
    path = csv_path(output_dir, table)

    try:
        with _TableLock(output_dir, table):
            return _sync_table_locked(
                conn, table, path,
                wipe=wipe, writer=writer, fetch_size=fetch_size,
                trim_batch_size=trim_batch_size,
                trim_pause_seconds=trim_pause_seconds,
            )
    except AuditSyncError as exc:
        return _error_result(table, exc, "lock", file=path)


def _sync_table_locked(
    conn: Any,
    table: str,
    path: str,
    *,
    wipe: bool,
    writer: Optional[OutputWriter],
    fetch_size: int,
    trim_batch_size: int,
    trim_pause_seconds: float,
) -> dict:
    """Inner sync logic, called while holding the per-table lock."""
    t0 = time.monotonic()
    try:
        resume_point = resume.locate(path)
    except AuditSyncError as exc:
        return _error_result(table, exc, "resume", file=path)

    mode = "append" if resume_point != NO_PRIOR_EXPORT else "create"
    cur = conn.cursor()
    try:
        rows = export_table(
            cur, table, resume_point, path,
            writer=writer, fetch_size=fetch_size,
        )
    except AuditSyncError as exc:
        return _error_result(
            table, exc, "export", file=path, resume_point=resume_point, mode=mode,
        )

    logger.info(
        "%s: %d row(s) exported (%s, after audit_pk %d)",
        table, rows, mode, resume_point,
    )

    trim_stats = None
    if wipe:
        try:
            trim_stats = trim.trim_table(
                conn, table,
                batch_size=trim_batch_size,
                pause_seconds=trim_pause_seconds,
            )
        except AuditSyncError as exc:
            return _error_result(
                table, exc, "trim", file=path, resume_point=resume_point,
                mode=mode, rows_exported=rows,
            )

    elapsed = time.monotonic() - t0
    return {
        "table": table,
        "status": "ok",
        "file": path,
        "mode": mode,
        "resume_point": resume_point,
        "rows_exported": rows,
        "trim": trim_stats,
        "duration_seconds": round(elapsed, 2),
    }
