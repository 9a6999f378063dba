"""
ExecutionCore: the execute() primitives every SqlTemplate operation is built on.

For each call:
1. get a connection from the ConnectionSource (CannotGetConnectionError on failure)
2. build the statement with the creator (driver errors translated as PREPARE)
3. apply fetch size / max rows / timeout
4. run the callback; statements it creates through the handle get the same settings
5. on success, apply the warning policy
6. always: dispose binder resources, close the statement (and those the
   callback created through the handle), release the connection

Driver errors from steps 2-5 are translated by ErrorTranslator; other
exceptions raised by callbacks propagate unchanged.
"""

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from dbtemplate.core.config import ExecutionConfig
from dbtemplate.core.datasource import get_connection, release_connection
from dbtemplate.core.sql_warning import WarningPolicy
from dbtemplate.core.translate import ErrorTranslator, Phase

from .binders import SimpleCallableStatementCreator, SimplePreparedStatementCreator
from .connection import ConnectionHandle
from .settings import StatementSettingsApplier

_log = logging.getLogger(__name__)

T = TypeVar("T")


def get_sql(obj: Any) -> str | None:
    """SQL exposed by a creator or callback (``sql`` attribute), if any."""
    sql = getattr(obj, "sql", None)
    return sql if isinstance(sql, str) else None


def _as_creator(creator: Any, simple: type) -> tuple[Callable[[Any], Any], str | None, Any]:
    """(create function, sql, object that may own cleanup_parameters)."""
    if isinstance(creator, str):
        creator = simple(creator)
    create = getattr(creator, "create_statement", None)
    if create is None:
        if not callable(creator):
            raise TypeError(f"Not a statement creator: {creator!r}")
        create = creator
    return create, get_sql(creator), creator


def _disposers(*owners: Any) -> list[Callable[[], None]]:
    seen: list[Any] = []
    out = []
    for owner in owners:
        if owner is None or any(owner is s for s in seen):
            continue
        seen.append(owner)
        cleanup = getattr(owner, "cleanup_parameters", None)
        if callable(cleanup):
            out.append(cleanup)
    return out


def _close_statement(stmt: Any) -> None:
    try:
        stmt.close()
    except Exception as e:
        _log.debug("Could not close statement: %s", e)


class ExecutionCore:
    def __init__(
        self,
        source: Any,
        config: ExecutionConfig | None = None,
        *,
        translator: ErrorTranslator | None = None,
    ) -> None:
        self.source = source
        self._config = config or ExecutionConfig.from_settings()
        self.translator = translator or ErrorTranslator(source.dialect)

    @property
    def config(self) -> ExecutionConfig:
        return self._config

    def configure(self, **changes: Any) -> ExecutionConfig:
        """Replace the configuration; only safe between operations."""
        self._config = ExecutionConfig(**{**self._config.model_dump(), **changes})
        return self._config

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    def execute_connection(self, action: Callable[[ConnectionHandle], T]) -> T:
        """Run *action* with a close-suppressing handle on a managed connection."""
        config = self._config
        con = get_connection(self.source)
        handle = ConnectionHandle(con, self.source.dialect)
        handle.attach_settings(StatementSettingsApplier(config, self.source))
        try:
            return action(handle)
        except Exception as ex:
            if not self.translator.is_driver_error(ex):
                raise
            raise self.translator.translate("ConnectionCallback", get_sql(action), ex) from ex
        finally:
            handle.detach_settings()
            handle.close_statements()
            release_connection(con, self.source)

    def execute_statement(
        self, action: Callable[[Any], T], *, sql: str | None = None
    ) -> T:
        """Run *action* with a plain Statement."""
        if sql is not None:
            _log.debug("Executing SQL statement [%s]", sql)
        return self._execute(
            "StatementCallback",
            lambda con: con.create_statement(),
            sql or get_sql(action),
            action,
        )

    def execute_prepared(
        self, creator: Any, action: Callable[[Any], T], *, binder: Any = None
    ) -> T:
        """Run *action* with the PreparedStatement from *creator* (SQL text or creator)."""
        create, sql, owner = _as_creator(creator, SimplePreparedStatementCreator)
        _log.debug("Executing prepared SQL statement%s", f" [{sql}]" if sql else "")
        return self._execute(
            "PreparedStatementCallback", create, sql, action, owner, binder
        )

    def execute_callable(
        self, creator: Any, action: Callable[[Any], T], *, binder: Any = None
    ) -> T:
        """Run *action* with the CallableStatement from *creator* (procedure name or creator)."""
        create, sql, owner = _as_creator(creator, SimpleCallableStatementCreator)
        _log.debug("Calling stored procedure%s", f" [{sql}]" if sql else "")
        return self._execute(
            "CallableStatementCallback", create, sql, action, owner, binder
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _execute(
        self,
        task: str,
        create: Callable[[Any], Any],
        sql: str | None,
        action: Callable[[Any], T],
        *disposable: Any,
    ) -> T:
        config = self._config
        applier = StatementSettingsApplier(config, self.source)
        disposers = _disposers(*disposable)
        con = None
        handle = None
        stmt = None
        try:
            con = get_connection(self.source)
            handle = ConnectionHandle(con, self.source.dialect)
            try:
                stmt = create(handle)
            except Exception as ex:
                if not self.translator.is_driver_error(ex):
                    raise
                raise self.translator.translate(task, sql, ex, Phase.PREPARE) from ex
            try:
                applier.apply(stmt)
                handle.attach_settings(applier)
                try:
                    result = action(stmt)
                finally:
                    handle.detach_settings()
                WarningPolicy(config.ignore_warnings).handle(stmt)
                return result
            except Exception as ex:
                if not self.translator.is_driver_error(ex):
                    raise
                raise self.translator.translate(task, get_sql(action) or sql, ex) from ex
        finally:
            for cleanup in disposers:
                try:
                    cleanup()
                except Exception as e:
                    _log.warning("Parameter cleanup failed: %s", e)
            if stmt is not None:
                _close_statement(stmt)
            if handle is not None:
                handle.close_statements()
            if con is not None:
                release_connection(con, self.source)
