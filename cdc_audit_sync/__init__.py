"""cdc_audit_sync -- Incremental export of MySQL audit tables to CSV."""

from .client import AuditSync
from .config import SyncConfig
from .connection import MySQLConnection, get_connection
from .errors import (
    AuditSyncError,
    DatabaseConnectionError,
    DirectoryError,
    FileIOError,
    QueryError,
    TableLockedError,
)
from .resume import locate
from .sync import export_table, sync_table
from .trim import trim_table
from .writer import CsvWriter, OutputWriter

__all__ = [
    "AuditSync",
    "SyncConfig",
    "MySQLConnection",
    "get_connection",
    "locate",
    "export_table",
    "sync_table",
    "trim_table",
    "CsvWriter",
    "OutputWriter",
    "AuditSyncError",
    "DatabaseConnectionError",
    "DirectoryError",
    "FileIOError",
    "QueryError",
    "TableLockedError",
]
