"""Shared fixtures for cdc_audit_sync tests."""

from __future__ import annotations

import sqlite3
from typing import Any, Iterable, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest


class FakeCursor:
    """Lightweight stand-in for a DB-API 2.0 cursor.

    Supply ``results`` as a list of lists -- each inner list is a set of rows
    returned by one successive ``execute()`` call.  Every executed statement
    is recorded in ``executed`` as ``(sql, params)``.
    """

    def __init__(
        self,
        results: Optional[List[List[Tuple[Any, ...]]]] = None,
        descriptions: Optional[List[List[Tuple[str, ...]]]] = None,
    ) -> None:
        self._results = list(results or [])
        self._descriptions = list(descriptions or [])
        self._call_idx = -1
        self._rows: List[Tuple[Any, ...]] = []
        self.description: Optional[List[Tuple[str, ...]]] = None
        self.rowcount = -1
        self.executed: List[Tuple[str, Any]] = []

    def execute(self, sql: str, params: Any = None) -> None:
        self.executed.append((sql, params))
        self._call_idx += 1
        if self._call_idx < len(self._results):
            self._rows = list(self._results[self._call_idx])
        else:
            self._rows = []
        if self._call_idx < len(self._descriptions):
            self.description = self._descriptions[self._call_idx]
        else:
            self.description = None

    def fetchall(self) -> List[Tuple[Any, ...]]:
        return self._rows

    def fetchmany(self, size: int = 1) -> List[Tuple[Any, ...]]:
        rows = self._rows[:size]
        self._rows = self._rows[size:]
        return rows

    def fetchone(self) -> Optional[Tuple[Any, ...]]:
        return self._rows[0] if self._rows else None


@pytest.fixture()
def fake_cursor():
    """Return the ``FakeCursor`` *class* so tests can instantiate with custom data."""
    return FakeCursor


@pytest.fixture()
def mock_conn():
    """Return a ``MagicMock`` that looks like a DB-API 2.0 connection."""
    conn = MagicMock()
    return conn


def _create_audit_table(conn: sqlite3.Connection, name: str) -> None:
    conn.execute(
        f'CREATE TABLE "{name}" ('
        "id INTEGER, action TEXT, changed_by TEXT, changed_at TEXT, "
        "payload TEXT, audit_pk INTEGER PRIMARY KEY)"
    )
    conn.commit()


def _insert_audit_rows(
    conn: sqlite3.Connection, name: str, pks: Iterable[int], payload: str = "{}",
) -> None:
    conn.executemany(
        f'INSERT INTO "{name}" VALUES (?, ?, ?, ?, ?, ?)',
        [
            (pk * 10, "update", "alice", f"2024-01-01 00:00:{pk % 60:02d}", payload, pk)
            for pk in pks
        ],
    )
    conn.commit()


def _audit_pks(conn: sqlite3.Connection, name: str) -> List[int]:
    return [r[0] for r in conn.execute(f'SELECT audit_pk FROM "{name}" ORDER BY audit_pk')]


@pytest.fixture()
def audit_db():
    """In-memory sqlite database standing in for MySQL.

    sqlite accepts the backtick identifiers and ``?`` parameters that
    :mod:`cdc_audit_sync.queries` emits, so the real SQL runs end to end.
    """
    conn = sqlite3.connect(":memory:")
    yield conn
    conn.close()


@pytest.fixture()
def audit_table(audit_db):
    """Factory: create an audit table in ``audit_db`` holding *pks*."""

    def _make(name: str = "t_audit", pks: Iterable[int] = (), payload: str = "{}") -> str:
        _create_audit_table(audit_db, name)
        _insert_audit_rows(audit_db, name, pks, payload)
        return name

    return _make


@pytest.fixture()
def insert_rows(audit_db):
    """Factory: append rows with the given *pks* to an audit table."""

    def _insert(name: str, pks: Iterable[int], payload: str = "{}") -> None:
        _insert_audit_rows(audit_db, name, pks, payload)

    return _insert


@pytest.fixture()
def table_pks(audit_db):
    """Factory: return the ``audit_pk`` values currently in a table."""

    def _pks(name: str) -> List[int]:
        return _audit_pks(audit_db, name)

    return _pks
