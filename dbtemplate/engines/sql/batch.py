"""
BatchExecutor: many statements per round trip.

When the driver supports batching, statements are queued and flushed with
execute_batch(); otherwise they run one by one and the counts are returned in
the same shape. A failing batch is re-raised (translated into
BatchPartialFailureError by ExecutionCore) after the index and SQL of the
first failing statement have been recorded on it.
"""

import logging
from collections.abc import Callable, Iterable, Sequence
from typing import Any

from dbtemplate.core.exceptions import InvalidDataAccessApiUsageError
from dbtemplate.core.statement import EXECUTE_FAILED, BatchUpdateError, first_failed

from .binders import SqlType, new_binder

_log = logging.getLogger(__name__)


def _append_sql(sql: str | None, statement: str) -> str:
    return statement if not sql else f"{sql}; {statement}"


class _StatementBatchCallback:
    """Independent SQL statements on one plain Statement."""

    def __init__(self, statements: Sequence[str]) -> None:
        self.statements = list(statements)
        self.sql: str | None = None

    def __call__(self, stmt: Any) -> list[int]:
        if stmt.connection.supports_batch_updates():
            for s in self.statements:
                self.sql = _append_sql(self.sql, s)
                stmt.add_batch(s)
            try:
                return stmt.execute_batch()
            except BatchUpdateError as ex:
                failed_sql = None
                for i, n in enumerate(ex.update_counts):
                    if n == EXECUTE_FAILED:
                        failed_sql = _append_sql(failed_sql, self.statements[i])
                if failed_sql:
                    self.sql = failed_sql
                ex.failed_index = first_failed(ex.update_counts)
                ex.failed_sql = failed_sql
                raise
        counts = []
        for s in self.statements:
            self.sql = s
            if stmt.execute(s):
                raise InvalidDataAccessApiUsageError(f"Invalid batch SQL statement: {s}")
            counts.append(stmt.get_update_count())
        return counts


class BatchExecutor:
    def __init__(self, core: Any) -> None:
        self.core = core

    def _run_single(self, ps: Any, index: int, counts: list[int]) -> None:
        """executeUpdate for one already-bound row, recording *index* on failure."""
        try:
            counts.append(ps.execute_update())
        except Exception as ex:
            if not self.core.translator.is_driver_error(ex):
                raise
            err = BatchUpdateError(str(ex), counts + [EXECUTE_FAILED])
            err.failed_index = index
            err.failed_sql = ps.sql
            raise err from ex

    def batch_update(self, *sql: str) -> list[int]:
        """Run independent SQL statements; a statement returning rows is an error."""
        if not sql:
            raise InvalidDataAccessApiUsageError("SQL array must not be empty")
        _log.debug("Executing SQL batch update of %d statements", len(sql))
        return self.core.execute_statement(_StatementBatchCallback(sql))

    def batch_update_with(self, sql: str, setter: Any) -> list[int]:
        """
        Run *sql* once per value set supplied by *setter*:
        ``setter.batch_size``, ``setter.set_values(ps, i)`` and optionally
        ``setter.is_batch_exhausted(i)`` to stop early.
        """
        _log.debug("Executing SQL batch update [%s]", sql)
        exhausted = getattr(setter, "is_batch_exhausted", None)

        def action(ps: Any) -> list[int]:
            size = setter.batch_size
            if ps.connection.supports_batch_updates():
                for i in range(size):
                    setter.set_values(ps, i)
                    if exhausted is not None and exhausted(i):
                        break
                    ps.add_batch()
                try:
                    return ps.execute_batch()
                except BatchUpdateError as ex:
                    ex.failed_index = first_failed(ex.update_counts)
                    ex.failed_sql = sql
                    raise
            counts: list[int] = []
            for i in range(size):
                setter.set_values(ps, i)
                if exhausted is not None and exhausted(i):
                    break
                self._run_single(ps, i, counts)
            return counts

        return self.core.execute_prepared(sql, action, binder=setter)

    def batch_update_args(
        self,
        sql: str,
        batch_args: Sequence[Sequence[Any]],
        arg_types: Sequence[SqlType | None] | None = None,
    ) -> list[int]:
        """Run *sql* once per argument list in *batch_args*."""
        return self.batch_update_with(sql, _ArgsBatchSetter(batch_args, arg_types))

    def batch_update_chunked(
        self,
        sql: str,
        rows: Iterable[Any],
        chunk_size: int,
        binder: Callable[[Any, Any], None],
    ) -> list[list[int]]:
        """
        Run *sql* for every row, flushing a batch every *chunk_size* rows.

        Returns one list of counts per chunk. Without driver batch support the
        rows run one at a time and the counts are grouped the same way.
        """
        if chunk_size <= 0:
            raise InvalidDataAccessApiUsageError("chunk_size must be > 0")
        rows = list(rows)
        _log.debug("Executing SQL batch update [%s] with a batch size of %d", sql, chunk_size)

        def action(ps: Any) -> list[list[int]]:
            supported = ps.connection.supports_batch_updates()
            if not supported:
                _log.warning(
                    "Driver does not support batch updates; resorting to single statement execution"
                )
            result: list[list[int]] = []
            chunk_count = (len(rows) + chunk_size - 1) // chunk_size
            for chunk_no in range(chunk_count):
                start = chunk_no * chunk_size
                chunk = rows[start : start + chunk_size]
                if supported:
                    for row in chunk:
                        binder(ps, row)
                        ps.add_batch()
                    _log.debug(
                        "Sending SQL batch update #%d of %d with %d items",
                        chunk_no + 1,
                        chunk_count,
                        len(chunk),
                    )
                    try:
                        result.append(ps.execute_batch())
                    except BatchUpdateError as ex:
                        ex.failed_index = start + first_failed(ex.update_counts)
                        ex.failed_sql = sql
                        raise
                else:
                    counts: list[int] = []
                    for offset, row in enumerate(chunk):
                        binder(ps, row)
                        self._run_single(ps, start + offset, counts)
                    result.append(counts)
            return result

        return self.core.execute_prepared(sql, action, binder=binder)


class _ArgsBatchSetter:
    def __init__(
        self,
        batch_args: Sequence[Sequence[Any]],
        arg_types: Sequence[SqlType | None] | None,
    ) -> None:
        self.batch_args = list(batch_args)
        self.arg_types = arg_types
        self._binders: list[Any] = []

    @property
    def batch_size(self) -> int:
        return len(self.batch_args)

    def set_values(self, ps: Any, i: int) -> None:
        binder = new_binder(self.batch_args[i], self.arg_types)
        self._binders.append(binder)
        binder.bind(ps)

    def cleanup_parameters(self) -> None:
        binders, self._binders = self._binders, []
        for b in binders:
            b.cleanup_parameters()
