"""CLI entry-point:  python -m cdc_audit_sync [OPTIONS] -d <db>

Examples:
    python -m cdc_audit_sync -d shop -u exporter -p secret -m ./audit
    python -m cdc_audit_sync -d shop -t orders_audit,users_audit -w -v 6
    python -m cdc_audit_sync --config audit.yaml -o sync.log
"""

import argparse
import logging
import sys
from typing import List, Optional

from ._constants import DEFAULT_OUTPUT_DIR, DEFAULT_SUFFIX, DEFAULT_VERBOSITY
from .client import AuditSync
from .config import SyncConfig

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def verbosity_to_level(verbosity: int) -> int:
    """Map the syslog-style verbosity integer to a ``logging`` level.

    3 = fatal errors only, 4 = warnings (default), 6 = info, 7 = debug.
    """
    if verbosity >= 7:
        return logging.DEBUG
    if verbosity >= 6:
        return logging.INFO
    if verbosity >= 4:
        return logging.WARNING
    if verbosity == 3:
        return logging.ERROR
    return logging.CRITICAL


def _log_summary(results: List[dict]) -> None:
    """Log a human-readable summary of sync results."""
    total_rows = 0
    errors = []
    skipped = 0

    logger.info("=" * 72)
    logger.info("SYNC SUMMARY")
    logger.info("=" * 72)

    for r in results:
        table = r["table"]
        status = r.get("status")
        if status == "skipped":
            logger.warning("  %-40s  SKIPPED", table)
            skipped += 1
            continue
        if status == "error":
            errors.append(r)
            logger.error(
                "  %-40s  ERROR (%s/%s): %s",
                table, r.get("error_kind"), r.get("phase"), r.get("error", "unknown"),
            )
            continue

        rows = r["rows_exported"]
        total_rows += rows
        trim = r.get("trim")
        trim_str = (
            f" | trimmed {trim['rows_deleted']} in {trim['batches']} batch(es)"
            if trim else ""
        )
        logger.info(
            "  %-40s  %8d rows | %-6s | %6.1fs%s",
            table, rows, r["mode"], r.get("duration_seconds", 0), trim_str,
        )

    logger.info("-" * 72)
    logger.info(
        "Completed: %d table(s) | %d total rows",
        len(results) - len(errors) - skipped, total_rows,
    )
    if errors:
        logger.warning("Failed: %d table(s)", len(errors))
    logger.info("=" * 72)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cdc_audit_sync",
        description="Incrementally export MySQL audit tables to CSV files.",
        add_help=False,
    )
    parser.add_argument(
        "-?", "--help", action="help", help="Print this help message and exit",
    )
    parser.add_argument("-d", "--database", default=None, help="Database name (required)")
    parser.add_argument("-h", "--host", default=None, help="MySQL host (default: localhost)")
    parser.add_argument("-P", "--port", type=int, default=None, help="MySQL port")
    parser.add_argument("-u", "--user", default=None, help="MySQL username (default: root)")
    parser.add_argument("-p", "--password", default=None, help="MySQL password")
    parser.add_argument(
        "-m", "--output-dir", default=None,
        help=f"Directory to write audit files (default: {DEFAULT_OUTPUT_DIR})",
    )
    parser.add_argument(
        "-t", "--tables", default=None,
        help="Comma separated list of tables to sync (default: all audit tables)",
    )
    parser.add_argument(
        "-e", "--exclude", action="store_true", default=None,
        help="Invert -t: exclude the listed tables",
    )
    parser.add_argument(
        "-w", "--wipe", action="store_true", default=None,
        help="Delete all but the newest audit row after syncing",
    )
    parser.add_argument(
        "-A", "--suffix", default=None,
        help=f"Suffix marking audit tables (default: {DEFAULT_SUFFIX!r})",
    )
    parser.add_argument(
        "-a", "--prefix", default=None, help="Prefix marking audit tables",
    )
    parser.add_argument(
        "-o", "--output", default=None,
        help="Send all log output to FILE (default: stderr)",
    )
    parser.add_argument(
        "-v", "--verbosity", type=int, default=DEFAULT_VERBOSITY,
        help="Verbosity: 3 = errors only, 4 = warnings, 6 = info, 7 = debug "
             f"(default: {DEFAULT_VERBOSITY})",
    )
    parser.add_argument("--config", default=None, help="Path to YAML or JSON config file")
    parser.add_argument(
        "--fail-fast", action="store_true", default=None,
        help="Stop at the first table that fails",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    log_kwargs = {"filename": args.output, "filemode": "w"} if args.output else {}
    logging.basicConfig(
        level=verbosity_to_level(args.verbosity),
        format=_LOG_FORMAT,
        **log_kwargs,
    )

    try:
        base = SyncConfig.from_file(args.config) if args.config else SyncConfig()
        config = base.with_overrides(
            database=args.database,
            host=args.host,
            port=args.port,
            user=args.user,
            password=args.password,
            output_dir=args.output_dir,
            tables=args.tables,
            exclude=args.exclude,
            wipe=args.wipe,
            suffix=args.suffix,
            prefix=args.prefix,
            fail_fast=args.fail_fast,
        )
    except Exception as exc:
        logger.error("Failed to load config: %s", exc)
        sys.exit(1)

    if not config.database:
        parser.print_usage(sys.stderr)
        logger.error("A database name is required (-d or connection.database)")
        sys.exit(1)

    sync = AuditSync(config)
    logger.info("Sync: %r", sync)

    try:
        ok = sync.run()
    except Exception as exc:
        logger.error("Sync failed: %s", exc)
        sys.exit(1)

    _log_summary(sync.results)
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
