"""
Statement creators and parameter binders.

A creator turns a ConnectionHandle into exactly one statement; the optional
``sql`` attribute is used for logging and error messages. A binder sets
parameter values on a prepared statement and may hold resources (streamed
LOB values) that cleanup_parameters() releases once, after execution.
"""

import datetime
import decimal
import logging
from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any

from dbtemplate.core.exceptions import InvalidDataAccessApiUsageError

_log = logging.getLogger(__name__)


class SqlType(str, Enum):
    """Type hints for typed parameter binding (ArgumentTypeBinder)."""

    VARCHAR = "VARCHAR"
    CHAR = "CHAR"
    CLOB = "CLOB"
    INTEGER = "INTEGER"
    BIGINT = "BIGINT"
    NUMERIC = "NUMERIC"
    DECIMAL = "DECIMAL"
    DOUBLE = "DOUBLE"
    BOOLEAN = "BOOLEAN"
    DATE = "DATE"
    TIMESTAMP = "TIMESTAMP"
    BINARY = "BINARY"
    BLOB = "BLOB"
    REF_CURSOR = "REF_CURSOR"
    OTHER = "OTHER"


class SimplePreparedStatementCreator:
    def __init__(self, sql: str) -> None:
        if not sql:
            raise InvalidDataAccessApiUsageError("SQL must not be empty")
        self.sql = sql

    def create_statement(self, con: Any) -> Any:
        return con.prepare_statement(self.sql)


class SimpleCallableStatementCreator:
    def __init__(self, procedure_name: str) -> None:
        if not procedure_name:
            raise InvalidDataAccessApiUsageError("Procedure name must not be empty")
        self.procedure_name = procedure_name
        self.sql = f"CALL {procedure_name}"

    def create_statement(self, con: Any) -> Any:
        return con.prepare_call(self.procedure_name)


class ArgumentBinder:
    """Binds positional args (or a mapping for named placeholders) as given."""

    def __init__(self, args: Sequence[Any] | Mapping[str, Any] | None) -> None:
        self.args = args

    def bind(self, ps: Any) -> None:
        if self.args is None:
            return
        if isinstance(self.args, Mapping):
            ps.set_parameters(self.args)
            return
        for i, value in enumerate(self.args):
            ps.set_parameter(i, value)

    def cleanup_parameters(self) -> None:
        pass


def _coerce(value: Any, sql_type: SqlType | None) -> Any:
    if value is None or sql_type is None:
        return value
    if sql_type in (SqlType.INTEGER, SqlType.BIGINT) and not isinstance(value, int):
        return int(value)
    if sql_type in (SqlType.NUMERIC, SqlType.DECIMAL) and not isinstance(value, decimal.Decimal):
        return decimal.Decimal(str(value))
    if sql_type == SqlType.DOUBLE and not isinstance(value, float):
        return float(value)
    if sql_type == SqlType.BOOLEAN and not isinstance(value, bool):
        return bool(value)
    if sql_type in (SqlType.VARCHAR, SqlType.CHAR, SqlType.CLOB) and not isinstance(value, str):
        return value.decode() if isinstance(value, (bytes, bytearray)) else str(value)
    if sql_type in (SqlType.BINARY, SqlType.BLOB) and isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if sql_type == SqlType.DATE and isinstance(value, datetime.datetime):
        return value.date()
    if sql_type == SqlType.DATE and isinstance(value, str):
        return datetime.date.fromisoformat(value)
    if sql_type == SqlType.TIMESTAMP and isinstance(value, str):
        return datetime.datetime.fromisoformat(value)
    return value


class ArgumentTypeBinder:
    """
    Binds positional args with SqlType hints.

    File-like values (streams for BLOB/CLOB columns) are read at bind time
    and closed by cleanup_parameters().
    """

    def __init__(self, args: Sequence[Any], arg_types: Sequence[SqlType | None]) -> None:
        if args is None or arg_types is None or len(args) != len(arg_types):
            raise InvalidDataAccessApiUsageError("args and arg_types length must match")
        self.args = list(args)
        self.arg_types = list(arg_types)
        self._streams: list[Any] = []

    def bind(self, ps: Any) -> None:
        for i, (value, sql_type) in enumerate(zip(self.args, self.arg_types, strict=True)):
            if hasattr(value, "read") and callable(value.read):
                self._streams.append(value)
                value = value.read()
            ps.set_parameter(i, _coerce(value, sql_type))

    def cleanup_parameters(self) -> None:
        streams, self._streams = self._streams, []
        for s in streams:
            try:
                s.close()
            except Exception as e:
                _log.debug("Could not close parameter stream: %s", e)


def new_binder(
    args: Sequence[Any] | Mapping[str, Any] | None,
    arg_types: Sequence[SqlType | None] | None = None,
) -> ArgumentBinder | ArgumentTypeBinder:
    if arg_types is not None:
        if isinstance(args, Mapping):
            raise InvalidDataAccessApiUsageError("arg_types require positional args")
        return ArgumentTypeBinder(args or [], arg_types)
    return ArgumentBinder(args)
