"""MySQL connection helper.

Provides :class:`MySQLConnection`, a configurable pyodbc connection wrapper
with context-manager support, and a :func:`get_connection` convenience
function.

Configuration is resolved in order: explicit arguments > environment variables >
built-in defaults.  A ``.env`` file is loaded automatically (if present) via
:func:`load_dotenv`.

Env vars:
    MYSQL_HOST      -- MySQL server host (default: localhost)
    MYSQL_PORT      -- MySQL server port (driver default when unset)
    MYSQL_DATABASE  -- Target database
    MYSQL_USER      -- Login (default: root)
    MYSQL_PASSWORD  -- Login password (default: empty)
    ODBC_DRIVER     -- ODBC driver name (default: MySQL ODBC 8.0 Unicode Driver)
"""

from __future__ import annotations

import logging
import os
from types import TracebackType
from typing import Any, Optional, Type

from .errors import DatabaseConnectionError

logger = logging.getLogger(__name__)

_DEFAULT_HOST = "localhost"
_DEFAULT_USER = "root"
_DEFAULT_DRIVER = "MySQL ODBC 8.0 Unicode Driver"


_dotenv_loaded: set = set()


def load_dotenv(path: Optional[str] = None) -> None:
    """Read a simple key=value .env file into ``os.environ``.

    Subsequent calls with the same resolved *path* are no-ops.
    """
    if path is None:
        path = os.path.join(os.getcwd(), ".env")
    resolved = os.path.abspath(path)
    if resolved in _dotenv_loaded:
        return
    if not os.path.isfile(resolved):
        return
    with open(resolved) as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#") and "=" in line:
                k, v = line.split("=", 1)
                os.environ.setdefault(k.strip(), v.strip().strip("'\""))
    _dotenv_loaded.add(resolved)
    logger.debug("Loaded environment from %s", resolved)


def _pyodbc() -> Any:
    """Import pyodbc on first use; it needs the unixODBC runtime at import time."""
    import pyodbc

    return pyodbc


def _odbc_value(value: str) -> str:
    """Brace-quote an ODBC attribute value when it contains separators."""
    if any(ch in value for ch in ";{}=") or value != value.strip():
        return "{" + value.replace("}", "}}") + "}"
    return value


class MySQLConnection:
    """Managed connection to a MySQL database holding audit tables.

    Usage as a context manager::

        with MySQLConnection(database="shop", password="secret") as conn:
            cur = conn.cursor()
            cur.execute("SHOW TABLES")

    Or manually::

        db = MySQLConnection(database="shop")
        conn = db.connect()
        ...
        db.close()

    *query_timeout* (seconds) is applied to every statement run on the
    connection; ``None`` leaves statements unbounded.
    """

    def __init__(
        self,
        database: Optional[str] = None,
        host: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        port: Optional[int] = None,
        driver: Optional[str] = None,
        *,
        query_timeout: Optional[int] = None,
        dotenv_path: Optional[str] = None,
    ) -> None:
        load_dotenv(dotenv_path)

        self.database = database or os.environ.get("MYSQL_DATABASE")
        self.host = host or os.environ.get("MYSQL_HOST", _DEFAULT_HOST)
        self.user = user or os.environ.get("MYSQL_USER", _DEFAULT_USER)
        env_port = os.environ.get("MYSQL_PORT")
        self.port = port or (int(env_port) if env_port else None)
        self.driver = driver or os.environ.get("ODBC_DRIVER", _DEFAULT_DRIVER)
        self.query_timeout = query_timeout
        if password is None:
            password = os.environ.get("MYSQL_PASSWORD", "")
        self._password = password
        self._conn: Any = None

    @property
    def connection_string(self) -> str:
        """Build the ODBC connection string (raises if no database)."""
        if not self.database:
            raise ValueError(
                "No database supplied. Pass -d, set MYSQL_DATABASE in your "
                "environment or .env file, or pass it to the constructor."
            )
        parts = [
            f"Driver={{{self.driver}}}",
            f"Server={_odbc_value(self.host)}",
            f"Database={_odbc_value(self.database)}",
            f"User={_odbc_value(self.user)}",
            f"Password={_odbc_value(self._password)}",
        ]
        if self.port:
            parts.append(f"Port={self.port}")
        parts.append("Charset=utf8mb4")
        return ";".join(parts) + ";"

    def connect(self) -> Any:
        """Open and return a ``pyodbc.Connection``.

        Subsequent calls return the same connection unless :meth:`close` has
        been called.  Driver failures are raised as
        :class:`~cdc_audit_sync.errors.DatabaseConnectionError`.
        """
        if self._conn is not None:
            return self._conn
        conn_str = self.connection_string
        logger.debug("Connecting to mysql. host=%s, database=%s, user=%s",
                     self.host, self.database, self.user)
        pyodbc = _pyodbc()
        try:
            self._conn = pyodbc.connect(conn_str)
        except pyodbc.Error as exc:
            raise DatabaseConnectionError(
                f"Cannot connect to {self.host}/{self.database} as {self.user}: {exc}"
            ) from exc
        if self.query_timeout:
            self._conn.timeout = self.query_timeout
        return self._conn

    def close(self) -> None:
        """Close the underlying connection if open."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def test_connectivity(self) -> bool:
        """Run ``SELECT 1`` and return ``True`` on success, ``False`` on failure."""
        try:
            conn = self.connect()
            cur = conn.cursor()
            cur.execute("SELECT 1")
            cur.fetchone()
            return True
        except Exception:
            return False

    def __enter__(self) -> Any:
        return self.connect()

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"MySQLConnection(host={self.host!r}, "
            f"database={self.database!r}, user={self.user!r})"
        )


def get_connection(
    database: Optional[str] = None,
    host: Optional[str] = None,
    user: Optional[str] = None,
    password: Optional[str] = None,
    port: Optional[int] = None,
    driver: Optional[str] = None,
    *,
    query_timeout: Optional[int] = None,
    dotenv_path: Optional[str] = None,
) -> Any:
    """Convenience wrapper: create a :class:`MySQLConnection` and return
    the open ``pyodbc.Connection``.

    Parameters fall back to environment variables, then to sensible defaults.
    Raises ``ValueError`` if *database* cannot be resolved.
    """
    db = MySQLConnection(
        database=database,
        host=host,
        user=user,
        password=password,
        port=port,
        driver=driver,
        query_timeout=query_timeout,
        dotenv_path=dotenv_path,
    )
    return db.connect()
