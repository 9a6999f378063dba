"""
Connection acquire/release that honours a transaction-bound connection,
and the transaction-aware statement timeout.
"""

import logging
from typing import Any

from dbtemplate.core.exceptions import CannotGetConnectionError, DataAccessError

from .transaction import get_resource

_log = logging.getLogger(__name__)


def get_connection(source: Any) -> Any:
    """
    Connection for *source*: the transaction-bound one (reference-counted) or
    a fresh one from source.acquire(). Failures become CannotGetConnectionError.
    """
    holder = get_resource(source)
    if holder is not None and holder.connection is not None:
        holder.requested()
        return holder.connection
    try:
        conn = source.acquire()
    except DataAccessError:
        raise
    except Exception as e:
        raise CannotGetConnectionError(f"Failed to obtain connection: {e}") from e
    if conn is None:
        raise CannotGetConnectionError(f"{source!r} returned no connection")
    return conn


def release_connection(conn: Any, source: Any) -> None:
    """Give *conn* back: decrement a transaction-bound holder, else source.release()."""
    if conn is None:
        return
    holder = get_resource(source)
    if holder is not None and holder.connection is conn:
        holder.released()
        return
    try:
        source.release(conn)
    except Exception as e:
        _log.debug("Could not release connection: %s", e)


def apply_timeout(stmt: Any, source: Any, timeout: int) -> None:
    """
    Set stmt.query_timeout to *timeout* seconds (<= 0: none), shortened to the
    time left in a surrounding transaction with a deadline.
    """
    holder = get_resource(source)
    if holder is not None and holder.has_timeout:
        ttl = holder.time_to_live_seconds()
        stmt.query_timeout = min(timeout, ttl) if timeout > 0 else ttl
    elif timeout >= 0:
        stmt.query_timeout = timeout
