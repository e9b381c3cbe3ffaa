#!/usr/bin/env python3
"""Example: verify connectivity to the MySQL server holding the audit tables.

Usage:
    # Set MYSQL_* credentials in .env or as environment variables, then:
    python examples/connect.py

Needs a MySQL ODBC driver (e.g. ``MySQL ODBC 8.0 Unicode Driver``) registered
with unixODBC; override the name with ODBC_DRIVER.
"""

import sys

from cdc_audit_sync.connection import MySQLConnection

db = MySQLConnection()

if not db.database:
    print("ERROR: MYSQL_DATABASE is not set in .env or environment.")
    sys.exit(1)

try:
    conn = db.connect()
    cur = conn.cursor()
    cur.execute("SHOW TABLES")
    tables = [row[0] for row in cur.fetchall()]
    print(f"Connected to {db.host}/{db.database} as {db.user}; {len(tables)} table(s).")
except Exception as exc:
    print(f"FAILED to connect to {db.host}/{db.database} as {db.user}.")
    print(f"  Error type : {type(exc).__name__}")
    print(f"  Detail     : {exc}")
    sys.exit(1)
finally:
    db.close()
