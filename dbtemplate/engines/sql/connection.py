"""
ConnectionHandle: the connection as seen by callbacks.

close() is suppressed (SqlTemplate releases the connection itself) and, while
settings are attached, every statement or cursor created through the handle
gets fetch size, max rows and timeout applied before it is returned.
Statements created through the handle are remembered and closed by
close_statements() before the connection is released; raw cursors from
cursor() are left to the caller. All other attributes are forwarded to the
driver connection.
"""

import logging
from typing import Any

from dbtemplate.core.dialect import Dialect
from dbtemplate.core.statement import CallableStatement, PreparedStatement, Statement

_log = logging.getLogger(__name__)


class ConnectionHandle:
    def __init__(self, target: Any, dialect: Dialect) -> None:
        self._target = target
        self.dialect = dialect
        self._applier: Any = None
        self._statements: list[Statement] = []

    def attach_settings(self, applier: Any) -> None:
        self._applier = applier

    def detach_settings(self) -> None:
        self._applier = None

    def unwrap(self) -> Any:
        return self._target

    def _prepare(self, stmt: Statement) -> Statement:
        self._statements.append(stmt)
        if self._applier is not None:
            self._applier.apply(stmt)
        return stmt

    def create_statement(self) -> Statement:
        return self._prepare(Statement(self, self._target.cursor()))

    def prepare_statement(self, sql: str) -> PreparedStatement:
        return self._prepare(PreparedStatement(self, self._target.cursor(), sql))

    def prepare_call(self, procedure_name: str) -> CallableStatement:
        return self._prepare(CallableStatement(self, self._target.cursor(), procedure_name))

    def cursor(self, *args: Any, **kwargs: Any) -> Any:
        cur = self._target.cursor(*args, **kwargs)
        if self._applier is not None:
            self._applier.apply_to_cursor(cur)
        return cur

    def supports_batch_updates(self) -> bool:
        return self.dialect.supports_batch_updates(self._target)

    def close_statements(self) -> None:
        statements, self._statements = self._statements, []
        for stmt in statements:
            try:
                stmt.close()
            except Exception as e:
                _log.debug("Could not close statement: %s", e)

    def close(self) -> None:
        pass

    def __getattr__(self, name: str) -> Any:
        return getattr(self._target, name)

    def __repr__(self) -> str:
        return f"ConnectionHandle({self._target!r})"
