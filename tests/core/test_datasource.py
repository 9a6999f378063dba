"""Unit tests for core.datasource (sources, transaction-bound connections, timeouts)."""

import sqlite3
from collections.abc import Iterator
from unittest.mock import MagicMock, patch

import pytest

from dbtemplate.core.datasource import (
    ConnectionHolder,
    ConnectionSource,
    DataSourceConfig,
    DriverConnectionSource,
    SingleConnectionSource,
    apply_timeout,
    bind_resource,
    connect,
    get_connection,
    get_resource,
    release_connection,
    unbind_resource,
)
from dbtemplate.core.dialect import ProductTypeEnum, SQLiteDialect
from dbtemplate.core.exceptions import CannotGetConnectionError, TransactionTimedOutError


@pytest.fixture
def source() -> Iterator[MagicMock]:
    src = MagicMock()
    yield src
    if get_resource(src) is not None:
        unbind_resource(src)


# ---------------------------------------------------------------------------
# get_connection / release_connection
# ---------------------------------------------------------------------------


def test_get_connection_acquires_without_transaction(source: MagicMock) -> None:
    conn = get_connection(source)
    assert conn is source.acquire.return_value
    release_connection(conn, source)
    source.release.assert_called_once_with(conn)


def test_get_connection_wraps_acquire_failure(source: MagicMock) -> None:
    source.acquire.side_effect = OSError("refused")
    with pytest.raises(CannotGetConnectionError) as exc_info:
        get_connection(source)
    assert isinstance(exc_info.value.__cause__, OSError)


def test_get_connection_rejects_none(source: MagicMock) -> None:
    source.acquire.return_value = None
    with pytest.raises(CannotGetConnectionError):
        get_connection(source)


def test_bound_connection_is_reference_counted(source: MagicMock) -> None:
    tx_conn = MagicMock()
    holder = ConnectionHolder(tx_conn)
    bind_resource(source, holder)

    first = get_connection(source)
    second = get_connection(source)
    assert first is tx_conn and second is tx_conn
    assert holder.reference_count == 2
    source.acquire.assert_not_called()

    release_connection(first, source)
    release_connection(second, source)
    assert holder.reference_count == 0
    assert not holder.is_open
    source.release.assert_not_called()


def test_release_of_other_connection_goes_to_source(source: MagicMock) -> None:
    bind_resource(source, ConnectionHolder(MagicMock()))
    other = MagicMock()
    release_connection(other, source)
    source.release.assert_called_once_with(other)


def test_bind_twice_fails(source: MagicMock) -> None:
    bind_resource(source, ConnectionHolder(MagicMock()))
    with pytest.raises(ValueError):
        bind_resource(source, ConnectionHolder(MagicMock()))


def test_unbind_unknown_fails() -> None:
    with pytest.raises(ValueError):
        unbind_resource(MagicMock())


# ---------------------------------------------------------------------------
# apply_timeout
# ---------------------------------------------------------------------------


class TestApplyTimeout:
    def test_without_transaction(self, source: MagicMock) -> None:
        stmt = MagicMock(query_timeout=0)
        apply_timeout(stmt, source, 30)
        assert stmt.query_timeout == 30

    def test_unset_timeout_left_alone(self, source: MagicMock) -> None:
        stmt = MagicMock(query_timeout=0)
        apply_timeout(stmt, source, -1)
        assert stmt.query_timeout == 0

    def test_transaction_deadline_shortens(self, source: MagicMock) -> None:
        holder = ConnectionHolder(MagicMock())
        holder.set_timeout_seconds(5)
        bind_resource(source, holder)
        stmt = MagicMock(query_timeout=0)
        apply_timeout(stmt, source, 30)
        assert 1 <= stmt.query_timeout <= 5

    def test_configured_timeout_wins_when_smaller(self, source: MagicMock) -> None:
        holder = ConnectionHolder(MagicMock())
        holder.set_timeout_seconds(100)
        bind_resource(source, holder)
        stmt = MagicMock(query_timeout=0)
        apply_timeout(stmt, source, 3)
        assert stmt.query_timeout == 3

    def test_transaction_deadline_without_configured_timeout(self, source: MagicMock) -> None:
        holder = ConnectionHolder(MagicMock())
        holder.set_timeout_seconds(10)
        bind_resource(source, holder)
        stmt = MagicMock(query_timeout=0)
        apply_timeout(stmt, source, -1)
        assert 1 <= stmt.query_timeout <= 10

    def test_expired_deadline_raises(self, source: MagicMock) -> None:
        holder = ConnectionHolder(MagicMock())
        holder.set_timeout_seconds(-1)
        bind_resource(source, holder)
        with pytest.raises(TransactionTimedOutError):
            apply_timeout(MagicMock(), source, 30)


def test_holder_without_timeout() -> None:
    holder = ConnectionHolder(MagicMock())
    assert not holder.has_timeout
    with pytest.raises(ValueError):
        holder.time_to_live_seconds()
    holder.set_timeout_seconds(2)
    assert holder.has_timeout
    holder.clear_timeout()
    assert not holder.has_timeout


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


def test_single_connection_source_keeps_connection_open() -> None:
    conn = MagicMock()
    src = SingleConnectionSource(conn, "sqlite")
    assert isinstance(src, ConnectionSource)
    assert isinstance(src.dialect, SQLiteDialect)
    assert src.acquire() is conn
    src.release(conn)
    conn.close.assert_not_called()
    src.close()
    conn.close.assert_called_once()


def test_driver_connection_source_sqlite_roundtrip() -> None:
    src = DriverConnectionSource({"product_type": "sqlite", "database": ":memory:"})
    assert src.product_type == ProductTypeEnum.SQLITE
    conn = src.acquire()
    assert isinstance(conn, sqlite3.Connection)
    src.release(conn)
    with pytest.raises(sqlite3.ProgrammingError):
        conn.execute("SELECT 1")


@patch("psycopg.connect")
def test_connect_postgres_uses_settings_timeout(mock_connect: MagicMock) -> None:
    ds = DataSourceConfig(
        product_type=ProductTypeEnum.POSTGRES,
        host="localhost",
        database="db",
        username="u",
        password="p",
    )
    connect(ds)
    kwargs = mock_connect.call_args.kwargs
    assert kwargs["host"] == "localhost"
    assert kwargs["port"] == 5432
    assert kwargs["dbname"] == "db"
    assert kwargs["connect_timeout"] == 10


@patch("pymysql.connect")
def test_connect_mysql_from_dict(mock_connect: MagicMock) -> None:
    connect({"product_type": "mysql", "host": "h", "database": "d", "username": "u"})
    kwargs = mock_connect.call_args.kwargs
    assert kwargs["port"] == 3306
    assert kwargs["password"] == ""


def test_connect_requires_host() -> None:
    with pytest.raises(ValueError, match="host"):
        connect({"product_type": "postgres", "database": "d", "username": "u"})


def test_connect_trino_ssl_requires_password() -> None:
    with pytest.raises(ValueError, match="Password is required"):
        connect(
            {
                "product_type": "trino",
                "host": "h",
                "database": "hive",
                "username": "u",
                "use_ssl": True,
            }
        )
