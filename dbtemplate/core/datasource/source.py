"""
ConnectionSource implementations.

A ConnectionSource hands out connections (acquire) and takes them back
(release); pooling, if any, lives behind it. SqlTemplate never closes a
connection itself.
"""

import logging
from typing import Any, Protocol, runtime_checkable

from dbtemplate.core.dialect import Dialect, get_dialect

from .connect import connect, resolve_product_type

_log = logging.getLogger(__name__)


@runtime_checkable
class ConnectionSource(Protocol):
    dialect: Dialect

    def acquire(self) -> Any: ...

    def release(self, conn: Any) -> None: ...


def _close_quiet(conn: Any) -> None:
    try:
        conn.close()
    except Exception as e:
        _log.debug("Could not close connection: %s", e)


class DriverConnectionSource:
    """Opens a new driver connection per acquire and closes it on release."""

    def __init__(self, datasource: Any) -> None:
        self.datasource = datasource
        self.product_type = resolve_product_type(datasource)
        self.dialect = get_dialect(self.product_type)

    def acquire(self) -> Any:
        return connect(self.datasource)

    def release(self, conn: Any) -> None:
        try:
            conn.rollback()
        except Exception as e:
            _log.debug("Rollback before close failed: %s", e)
        _close_quiet(conn)

    def __repr__(self) -> str:
        return f"DriverConnectionSource({self.product_type.value})"


class SingleConnectionSource:
    """
    Shares one existing connection. release() keeps it open; close() closes it.
    Not for concurrent use from several threads.
    """

    def __init__(self, connection: Any, dialect: Dialect | str | None = None) -> None:
        self.connection = connection
        self.dialect = dialect if isinstance(dialect, Dialect) else get_dialect(dialect)

    def acquire(self) -> Any:
        return self.connection

    def release(self, conn: Any) -> None:
        pass

    def close(self) -> None:
        _close_quiet(self.connection)
