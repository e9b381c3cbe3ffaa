"""Tests for cdc_audit_sync.connection -- pyodbc is mocked throughout."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from cdc_audit_sync import connection
from cdc_audit_sync.connection import MySQLConnection, get_connection, load_dotenv
from cdc_audit_sync.errors import DatabaseConnectionError

_ENV_VARS = (
    "MYSQL_HOST", "MYSQL_PORT", "MYSQL_DATABASE", "MYSQL_USER", "MYSQL_PASSWORD", "ODBC_DRIVER",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for var in _ENV_VARS:
        # setenv first so teardown restores values load_dotenv adds
        monkeypatch.setenv(var, "")
        monkeypatch.delenv(var)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def pyodbc_mock():
    mod = MagicMock()
    mod.Error = Exception
    with patch("cdc_audit_sync.connection._pyodbc", return_value=mod):
        yield mod


class TestLoadDotenv:
    def test_reads_without_overriding(self, tmp_path, monkeypatch):
        p = tmp_path / "custom.env"
        p.write_text("# comment\nMYSQL_USER='exporter'\nMYSQL_HOST=envhost\n")
        monkeypatch.setenv("MYSQL_HOST", "already-set")
        load_dotenv(str(p))
        assert connection.os.environ["MYSQL_USER"] == "exporter"
        assert connection.os.environ["MYSQL_HOST"] == "already-set"

    def test_missing_file_is_ignored(self, tmp_path):
        load_dotenv(str(tmp_path / "missing.env"))


class TestMySQLConnection:
    def test_defaults(self):
        db = MySQLConnection(database="shop")
        assert db.host == "localhost"
        assert db.user == "root"
        assert db.port is None
        assert "Password=;" in db.connection_string

    def test_env_fallback(self, monkeypatch):
        monkeypatch.setenv("MYSQL_DATABASE", "envdb")
        monkeypatch.setenv("MYSQL_HOST", "envhost")
        monkeypatch.setenv("MYSQL_PORT", "3307")
        monkeypatch.setenv("MYSQL_PASSWORD", "pw")
        db = MySQLConnection()
        assert (db.database, db.host, db.port) == ("envdb", "envhost", 3307)
        assert "Password=pw;" in db.connection_string

    def test_explicit_args_win(self, monkeypatch):
        monkeypatch.setenv("MYSQL_HOST", "envhost")
        db = MySQLConnection(database="shop", host="arghost", password="")
        assert db.host == "arghost"

    def test_connection_string(self):
        db = MySQLConnection(
            database="shop", host="db", user="u", password="p;w", port=3306,
            driver="MySQL ODBC 8.0 ANSI Driver",
        )
        assert db.connection_string == (
            "Driver={MySQL ODBC 8.0 ANSI Driver};Server=db;Database=shop;"
            "User=u;Password={p;w};Port=3306;Charset=utf8mb4;"
        )

    def test_missing_database(self):
        with pytest.raises(ValueError, match="No database supplied"):
            MySQLConnection().connection_string

    def test_connect_reuses_connection(self, pyodbc_mock):
        db = MySQLConnection(database="shop")
        assert db.connect() is db.connect()
        pyodbc_mock.connect.assert_called_once_with(db.connection_string)

    def test_connect_failure(self, pyodbc_mock):
        pyodbc_mock.connect.side_effect = Exception("Access denied")
        with pytest.raises(DatabaseConnectionError, match="Access denied"):
            MySQLConnection(database="shop").connect()

    def test_query_timeout_applied(self, pyodbc_mock):
        conn = MySQLConnection(database="shop", query_timeout=30).connect()
        assert conn.timeout == 30

    def test_close(self, pyodbc_mock):
        db = MySQLConnection(database="shop")
        conn = db.connect()
        db.close()
        conn.close.assert_called_once()
        db.close()

    def test_context_manager(self, pyodbc_mock):
        with MySQLConnection(database="shop") as conn:
            assert conn is pyodbc_mock.connect.return_value
        conn.close.assert_called_once()

    def test_test_connectivity(self, pyodbc_mock):
        assert MySQLConnection(database="shop").test_connectivity() is True
        pyodbc_mock.connect.side_effect = Exception("down")
        assert MySQLConnection(database="shop").test_connectivity() is False

    def test_repr_hides_password(self):
        assert "hunter2" not in repr(MySQLConnection(database="shop", password="hunter2"))


def test_get_connection(pyodbc_mock):
    conn = get_connection(database="shop", host="db")
    assert conn is pyodbc_mock.connect.return_value
    assert "Server=db;" in pyodbc_mock.connect.call_args[0][0]
