"""Exception types raised by the sync components.

Every error carries a ``kind`` string so the orchestrator can report a
tagged per-table outcome without inspecting exception classes.
"""

from __future__ import annotations


class AuditSyncError(Exception):
    """Base class for all cdc_audit_sync failures."""

    kind = "unexpected"


class DatabaseConnectionError(AuditSyncError):
    """The database could not be reached or rejected the login."""

    kind = "connection"


class DirectoryError(AuditSyncError):
    """The output directory is missing and could not be created."""

    kind = "directory"


class FileIOError(AuditSyncError):
    """An export file could not be opened, read or written."""

    kind = "file_io"


class QueryError(AuditSyncError):
    """A SQL statement failed during export, counting or deleting."""

    kind = "query"


class TableLockedError(AuditSyncError):
    """Another process is already syncing the same table."""

    kind = "locked"
