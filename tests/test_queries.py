"""Tests for cdc_audit_sync.queries -- SQL helpers with fake cursors."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from cdc_audit_sync import queries
from cdc_audit_sync.errors import QueryError


class TestQuoteIdentifier:
    def test_plain(self):
        assert queries.quote_identifier("t_audit") == "`t_audit`"

    def test_escapes_backticks(self):
        assert queries.quote_identifier("we`ird") == "`we``ird`"


class TestExecute:
    def test_passes_params_as_tuple(self, fake_cursor):
        cur = fake_cursor()
        queries.execute(cur, "SELECT ?", [1])
        assert cur.executed == [("SELECT ?", (1,))]

    def test_no_params(self, fake_cursor):
        cur = fake_cursor()
        queries.execute(cur, "SHOW TABLES")
        assert cur.executed == [("SHOW TABLES", None)]

    def test_wraps_driver_errors(self):
        cur = MagicMock()
        cur.execute.side_effect = RuntimeError("table gone")
        with pytest.raises(QueryError, match="table gone -- query: SELECT 1"):
            queries.execute(cur, "SELECT 1")


class TestListTables:
    def test_returns_table_names(self, fake_cursor):
        cur = fake_cursor(results=[[("a_audit",), ("b",)]])
        assert queries.list_tables(cur) == ["a_audit", "b"]
        assert cur.executed[0][0] == "SHOW TABLES"

    def test_returns_empty(self, fake_cursor):
        cur = fake_cursor(results=[[]])
        assert queries.list_tables(cur) == []


class TestBuildQueries:
    def test_export_query(self):
        sql = queries.build_export_query("t_audit")
        assert sql == "SELECT * FROM `t_audit` WHERE `audit_pk` > ? ORDER BY `audit_pk`"

    def test_bounds_query(self):
        sql = queries.build_bounds_query("t_audit")
        assert sql == (
            "SELECT COUNT(`audit_pk`), MIN(`audit_pk`), MAX(`audit_pk`) FROM `t_audit`"
        )

    def test_delete_query_is_half_open(self):
        sql = queries.build_delete_query("t_audit")
        assert sql == "DELETE FROM `t_audit` WHERE `audit_pk` >= ? AND `audit_pk` < ?"


class TestTrimBounds:
    def test_returns_counts(self, fake_cursor):
        cur = fake_cursor(results=[[(3, 1, 3)]])
        assert queries.trim_bounds(cur, "t_audit") == (3, 1, 3)

    def test_empty_table(self, fake_cursor):
        cur = fake_cursor(results=[[(0, None, None)]])
        assert queries.trim_bounds(cur, "t_audit") == (0, None, None)

    def test_no_row(self, fake_cursor):
        cur = fake_cursor(results=[[]])
        assert queries.trim_bounds(cur, "t_audit") == (0, None, None)

    def test_coerces_decimal_like_values(self, fake_cursor):
        cur = fake_cursor(results=[[("5", "10", "20")]])
        assert queries.trim_bounds(cur, "t_audit") == (5, 10, 20)


class TestDeleteRange:
    def test_passes_bounds_and_returns_rowcount(self, fake_cursor):
        cur = fake_cursor()
        cur.rowcount = 100
        assert queries.delete_range(cur, "t_audit", 1, 101) == 100
        assert cur.executed[0][1] == (1, 101)

    def test_unknown_rowcount(self):
        cur = MagicMock()
        assert queries.delete_range(cur, "t_audit", 1, 2) == -1

    def test_real_sqlite_delete(self, audit_db, audit_table, table_pks):
        name = audit_table(pks=range(1, 11))
        deleted = queries.delete_range(audit_db.cursor(), name, 3, 7)
        assert deleted == 4
        assert table_pks(name) == [1, 2, 7, 8, 9, 10]
