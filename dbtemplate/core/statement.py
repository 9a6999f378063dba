"""
Statement wrappers over DB-API cursors.

Statement runs static SQL, PreparedStatement binds parameters to one SQL
text, CallableStatement invokes a stored procedure. Each wrapper owns its
cursor and carries the settings applied by StatementSettingsApplier
(fetch_size, max_rows, query_timeout).

Batch sentinels follow the usual driver convention: SUCCESS_NO_INFO when a
row succeeded without a count, EXECUTE_FAILED for a row that failed.
"""

import logging
from collections import deque
from collections.abc import Mapping, Sequence
from typing import Any

from dbtemplate.core.sql_warning import SQLWarning

_log = logging.getLogger(__name__)

SUCCESS_NO_INFO = -2
EXECUTE_FAILED = -3


class BatchUpdateError(Exception):
    """
    Driver-level batch failure.

    update_counts holds one entry per statement that the driver reported on
    (EXECUTE_FAILED for failed ones). Batch callbacks may set failed_index
    and failed_sql before the error is translated.
    """

    def __init__(self, message: str, update_counts: list[int]) -> None:
        super().__init__(message)
        self.update_counts = list(update_counts)
        self.failed_index: int | None = None
        self.failed_sql: str | None = None


def first_failed(update_counts: list[int]) -> int:
    """Index of the first EXECUTE_FAILED entry, else len(update_counts)."""
    for i, n in enumerate(update_counts):
        if n == EXECUTE_FAILED:
            return i
    # drivers that stop at the first failure report only the successful rows
    return len(update_counts)


def _rowcount(cursor: Any) -> int:
    rc = getattr(cursor, "rowcount", -1)
    return rc if isinstance(rc, int) and rc >= 0 else 0


def _is_cursor(value: Any) -> bool:
    return hasattr(value, "description") and callable(getattr(value, "fetchmany", None))


class ResultSet:
    """
    Forward-only view of the current cursor result.

    Rows are fetched in blocks of the statement fetch size (everything at once
    when unset) and iteration stops after max_rows rows when max_rows > 0.
    """

    def __init__(self, statement: "Statement", cursor: Any = None) -> None:
        self.statement = statement
        self.cursor = cursor if cursor is not None else statement.cursor
        desc = self.cursor.description
        self.columns: list[str] = [d[0] for d in desc] if desc else []
        self._index = {c.lower(): i for i, c in reversed(list(enumerate(self.columns)))}
        self._buffer: deque = deque()
        self._exhausted = desc is None
        self._row: tuple | None = None
        self.row_number = 0
        self.closed = False

    def _fill(self) -> None:
        size = self.statement.fetch_size
        rows = self.cursor.fetchmany(size) if size > 0 else self.cursor.fetchall()
        if not rows:
            self._exhausted = True
            return
        self._buffer.extend(rows)
        if size <= 0:
            self._exhausted = True

    def next(self) -> bool:
        """Advance to the next row; False once the rows (or max_rows) are used up."""
        if self.closed:
            return False
        max_rows = self.statement.max_rows
        if max_rows > 0 and self.row_number >= max_rows:
            self._row = None
            return False
        if not self._buffer and not self._exhausted:
            self._fill()
        if not self._buffer:
            self._row = None
            return False
        self._row = tuple(self._buffer.popleft())
        self.row_number += 1
        return True

    @property
    def row(self) -> tuple:
        if self._row is None:
            raise IndexError("ResultSet is not positioned on a row")
        return self._row

    def __getitem__(self, key: int | str) -> Any:
        if isinstance(key, str):
            try:
                key = self._index[key.lower()]
            except KeyError:
                raise KeyError(f"No column named {key!r}; columns: {self.columns}") from None
        return self.row[key]

    def get(self, key: int | str, default: Any = None) -> Any:
        try:
            return self[key]
        except (KeyError, IndexError):
            return default

    def values(self) -> tuple:
        return self.row

    def close(self) -> None:
        self.closed = True
        self._buffer.clear()
        if self.cursor is not self.statement.cursor:
            try:
                self.cursor.close()
            except Exception as e:
                _log.debug("Could not close result cursor: %s", e)


class Statement:
    def __init__(self, connection: Any, cursor: Any) -> None:
        self.connection = connection
        self.dialect = connection.dialect
        self.cursor = cursor
        self.fetch_size = 0
        self.max_rows = 0
        self.query_timeout = 0
        self.executed = False
        self.notices: list[SQLWarning] = []
        self.notice_handler: Any = None
        self.closed = False
        self._has_result_set = False
        self._update_count = -1
        self._batch: list[str] = []
        self.dialect.on_statement_created(self)

    def _run(self, operation: Any, *args: Any) -> Any:
        timeout = self.query_timeout
        raw = self.connection.unwrap()
        if timeout > 0:
            self.dialect.set_timeout(raw, timeout)
        try:
            return operation(*args)
        finally:
            self.executed = True
            if timeout > 0:
                self.dialect.reset_timeout(raw)

    def _after_execute(self) -> bool:
        self._has_result_set = self.cursor.description is not None
        self._update_count = -1 if self._has_result_set else _rowcount(self.cursor)
        return self._has_result_set

    def _execute(self, sql: str, params: Any = None) -> bool:
        if params is None:
            self._run(self.cursor.execute, sql)
        else:
            self._run(self.cursor.execute, sql, params)
        return self._after_execute()

    def execute(self, sql: str) -> bool:
        """Run *sql*; True if it produced a result set."""
        return self._execute(sql)

    def execute_query(self, sql: str) -> ResultSet:
        self._execute(sql)
        return ResultSet(self)

    def execute_update(self, sql: str) -> int:
        self._execute(sql)
        return max(self._update_count, 0)

    def get_result_set(self) -> ResultSet | None:
        return ResultSet(self) if self._has_result_set else None

    def get_update_count(self) -> int:
        """Row count of the current result; -1 for a result set or no more results."""
        return self._update_count

    def get_more_results(self) -> bool:
        """Move to the next result (DB-API nextset); True if it is a result set."""
        nextset = getattr(self.cursor, "nextset", None)
        more = nextset() if callable(nextset) else None
        if not more:
            self._has_result_set = False
            self._update_count = -1
            return False
        return self._after_execute()

    def add_batch(self, sql: str) -> None:
        self._batch.append(sql)

    def clear_batch(self) -> None:
        self._batch = []

    def execute_batch(self) -> list[int]:
        """Run the queued SQL statements in order, stopping at the first failure."""
        batch, self._batch = self._batch, []
        counts: list[int] = []
        for sql in batch:
            try:
                has_rs = self._execute(sql)
            except Exception as ex:
                raise BatchUpdateError(str(ex), counts + [EXECUTE_FAILED]) from ex
            if has_rs:
                raise BatchUpdateError(
                    f"Batch statement returned a result set: {sql}",
                    counts + [EXECUTE_FAILED],
                )
            counts.append(self._update_count)
        return counts

    def get_warnings(self) -> SQLWarning | None:
        return self.dialect.collect_warnings(self)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self.dialect.on_statement_closed(self)
        finally:
            self.cursor.close()


class PreparedStatement(Statement):
    """One SQL text with positional (0-based) or named parameters."""

    def __init__(self, connection: Any, cursor: Any, sql: str) -> None:
        super().__init__(connection, cursor)
        self.sql = sql
        self._params: list[Any] | dict[str, Any] = []
        self._param_batch: list[Any] = []

    def set_parameter(self, index: int, value: Any) -> None:
        if isinstance(self._params, dict):
            raise TypeError("Statement is bound by name; use set_parameters()")
        if index < 0:
            raise IndexError(f"Parameter index must be >= 0, got {index}")
        if len(self._params) <= index:
            self._params.extend([None] * (index + 1 - len(self._params)))
        self._params[index] = value

    def set_parameters(self, params: Sequence[Any] | Mapping[str, Any]) -> None:
        if isinstance(params, Mapping):
            self._params = dict(params)
        else:
            self._params = list(params)

    def clear_parameters(self) -> None:
        self._params = []

    @property
    def parameters(self) -> list[Any] | dict[str, Any] | None:
        """Bound values, or None when nothing is bound (no driver-side formatting)."""
        if not self._params:
            return None
        return dict(self._params) if isinstance(self._params, dict) else list(self._params)

    def execute(self) -> bool:  # type: ignore[override]
        return self._execute(self.sql, self.parameters)

    def execute_query(self) -> ResultSet:  # type: ignore[override]
        self._execute(self.sql, self.parameters)
        return ResultSet(self)

    def execute_update(self) -> int:  # type: ignore[override]
        self._execute(self.sql, self.parameters)
        return max(self._update_count, 0)

    def add_batch(self) -> None:  # type: ignore[override]
        self._param_batch.append(self.parameters or [])
        self.clear_parameters()

    def clear_batch(self) -> None:
        self._param_batch = []

    def execute_batch(self) -> list[int]:
        """executemany() over the queued parameter sets."""
        batch, self._param_batch = self._param_batch, []
        if not batch:
            return []
        try:
            self._run(self.cursor.executemany, self.sql, batch)
        except Exception as ex:
            # executemany does not say which row failed
            raise BatchUpdateError(str(ex), [EXECUTE_FAILED] * len(batch)) from ex
        self._after_execute()
        # rowcount is the total over all rows; it only says something per row
        # for a single row or when nothing was touched
        total = getattr(self.cursor, "rowcount", -1)
        if not isinstance(total, int) or total < 0:
            return [SUCCESS_NO_INFO] * len(batch)
        if len(batch) == 1:
            return [total]
        if total == 0:
            return [0] * len(batch)
        return [SUCCESS_NO_INFO] * len(batch)

    @property
    def last_row_id(self) -> Any:
        return getattr(self.cursor, "lastrowid", None)


class CallableStatement(PreparedStatement):
    """Stored procedure call; OUT values are read after the results are consumed."""

    def __init__(self, connection: Any, cursor: Any, procedure_name: str) -> None:
        super().__init__(connection, cursor, f"CALL {procedure_name}")
        self.procedure_name = procedure_name
        self.returned_parameters: Sequence[Any] | None = None
        self.out_values: dict[int, Any] | None = None
        self._out: dict[int, tuple[Any, str | None]] = {}

    def register_out_parameter(
        self, index: int, sql_type: Any = None, type_name: str | None = None
    ) -> None:
        self._out[index] = (sql_type, type_name)
        if isinstance(self._params, list) and len(self._params) <= index:
            self.set_parameter(index, None)

    @property
    def out_indices(self) -> list[int]:
        return sorted(self._out)

    def execute(self) -> bool:  # type: ignore[override]
        params = self.parameters
        if params is None:
            params = []
        if isinstance(params, dict):
            raise TypeError("Stored procedure parameters must be positional")
        pending = self._run(self.dialect.call, self, params)
        if not pending:
            self._has_result_set = False
            self._update_count = -1
            return False
        has_result_set = self._after_execute()
        if not has_result_set and getattr(self.cursor, "rowcount", -1) < 0:
            # no count reported: the call returned nothing
            self._update_count = -1
        return has_result_set

    def get_object(self, index: int) -> Any:
        """Value of the OUT parameter at *index* (result cursors are wrapped in a ResultSet)."""
        if self.out_values is None:
            self.out_values = self.dialect.read_out_values(self)
        value = self.out_values.get(index)
        if _is_cursor(value):
            return ResultSet(self, cursor=value)
        return value
