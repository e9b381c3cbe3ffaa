#!/usr/bin/env python3
"""Sync audit tables using configuration from audit.yaml.

Usage:
    python examples/sync.py
"""

import logging

from cdc_audit_sync import AuditSync

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

if __name__ == "__main__":
    sync = AuditSync.from_config("examples/audit.yaml")
    print(sync)
    ok = sync.run()
    for r in sync.results:
        rows = r.get("rows_exported", 0)
        trimmed = (r.get("trim") or {}).get("rows_deleted", 0)
        print(f"  {r['table']}: {r['status']} ({rows} rows, {trimmed} trimmed)")
    raise SystemExit(0 if ok else 1)
