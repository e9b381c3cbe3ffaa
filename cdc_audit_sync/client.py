"""High-level orchestrator for syncing every audit table in a database.

``AuditSync`` is the primary user-facing entry point::

    from cdc_audit_sync import AuditSync, SyncConfig

    cfg = SyncConfig(database="shop", user="exporter", password="secret",
                     output_dir="/var/lib/audit", wipe=True)
    ok = AuditSync(cfg).run()

    # Or from a config file:
    ok = AuditSync.from_config("audit.yaml").run()

A run ensures the output directory exists, connects, lists the database's
tables, keeps the audit tables selected by the config, and syncs them one at
a time in the order the database returns them.  Each table produces a
result dict (see :func:`cdc_audit_sync.sync.sync_table`); a failed table is
logged and, unless ``fail_fast`` is set, the remaining tables still run.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, List, Optional, Union

from . import queries
from .config import SyncConfig
from .connection import MySQLConnection
from .errors import AuditSyncError, DirectoryError
from .sync import sync_table
from .tables import select_tables
from .writer import CsvWriter, OutputWriter

logger = logging.getLogger(__name__)


def ensure_dir_exists(path: str) -> None:
    """Create *path* if missing; raise ``DirectoryError`` if that fails."""
    logger.debug("Checking if path exists: %s", path)
    if os.path.isdir(path):
        return
    logger.debug("Path does not exist.  creating: %s", path)
    try:
        os.makedirs(path, exist_ok=True)
    except OSError as exc:
        raise DirectoryError(f"Cannot mkdir {path}: {exc}") from exc
    logger.info("Path created: %s", path)


class AuditSync:
    """Export (and optionally trim) the audit tables of one database.

    Args:
        config: Immutable run configuration.
        writer: An :class:`~cdc_audit_sync.writer.OutputWriter` instance
                (default ``CsvWriter()``).
    """

    def __init__(
        self,
        config: SyncConfig,
        *,
        writer: Optional[OutputWriter] = None,
    ) -> None:
        self.config = config
        self.writer: OutputWriter = writer or CsvWriter()
        self.results: List[dict] = []

    # -- factory ------------------------------------------------------------

    @classmethod
    def from_config(
        cls,
        config: Union[str, Path, dict],
        **overrides: Any,
    ) -> "AuditSync":
        """Create an ``AuditSync`` from a config file path or parsed dict.

        Keyword *overrides* (e.g. ``output_dir=...``) replace file values
        when not ``None``.
        """
        if isinstance(config, dict):
            cfg = SyncConfig.from_dict(config)
        else:
            cfg = SyncConfig.from_file(config)
        return cls(cfg.with_overrides(**overrides))

    # -- connectivity -------------------------------------------------------

    def _connection(self) -> MySQLConnection:
        cfg = self.config
        return MySQLConnection(
            database=cfg.database,
            host=cfg.host,
            user=cfg.user,
            password=cfg.password,
            port=cfg.port,
            driver=cfg.driver,
            query_timeout=cfg.query_timeout,
        )

    def test_connectivity(self) -> bool:
        """Open a throwaway connection and return ``True`` on success."""
        db = self._connection()
        try:
            return db.test_connectivity()
        finally:
            db.close()

    # -- sync operations ----------------------------------------------------

    def run(self) -> bool:
        """Sync every selected audit table; return ``True`` if all succeeded.

        Directory and connection failures abort the run before any table
        is touched.
        """
        self.results = []
        cfg = self.config
        if not cfg.export_enabled:
            logger.info("Output directory disabled; nothing to sync")
            return True

        try:
            ensure_dir_exists(cfg.output_dir)
            db = self._connection()
            try:
                conn = db.connect()
                logger.info("Connected to mysql. Getting tables.")
                self.results = self.sync(conn)
            finally:
                db.close()
        except (AuditSyncError, ValueError) as exc:
            logger.error("%s", exc)
            return False

        failed = [r for r in self.results if r.get("status") != "ok"]
        if failed:
            logger.error(
                "Failed to sync %d of %d audit table(s)",
                len(failed), len(self.results),
            )
            return False
        logger.info("Successfully synced audit tables to %s", cfg.output_dir)
        return True

    def sync(self, conn: Any, table_names: Optional[List[str]] = None) -> List[dict]:
        """Sync audit tables over an open connection.

        *table_names* defaults to every table in the current database; the
        configured filters apply either way.  Returns per-table result dicts.
        A query failure while listing tables is raised, not returned.
        """
        cfg = self.config
        if table_names is None:
            table_names = queries.list_tables(conn.cursor())
        selected = select_tables(
            table_names,
            tables=cfg.tables,
            exclude=cfg.exclude,
            prefix=cfg.prefix,
            suffix=cfg.suffix,
        )
        logger.info("Selected %d of %d table(s)", len(selected), len(table_names))

        results: List[dict] = []
        for idx, table in enumerate(selected):
            result = self._sync_one(conn, table)
            results.append(result)
            if result.get("status") == "ok":
                continue
            logger.error(
                "Failed to sync %s (%s during %s): %s",
                table, result.get("error_kind"), result.get("phase"),
                result.get("error"),
            )
            if cfg.fail_fast:
                skipped = selected[idx + 1:]
                if skipped:
                    logger.warning(
                        "fail_fast set; skipping %d remaining table(s)", len(skipped),
                    )
                for name in skipped:
                    results.append({"table": name, "status": "skipped"})
                break
        return results

    def _sync_one(self, conn: Any, table: str) -> dict:
        cfg = self.config
        try:
            return sync_table(
                conn,
                table,
                cfg.output_dir,
                wipe=cfg.wipe,
                writer=self.writer,
                fetch_size=cfg.fetch_size,
                trim_batch_size=cfg.trim_batch_size,
                trim_pause_seconds=cfg.trim_pause_seconds,
            )
        except Exception as exc:
            logger.error("Unexpected error syncing %s: %s", table, exc)
            return {
                "table": table,
                "status": "error",
                "error_kind": "unexpected",
                "error": str(exc),
                "phase": None,
            }

    def __repr__(self) -> str:
        return f"AuditSync({self.config!r})"
