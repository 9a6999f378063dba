"""Scriptable in-memory DB-API driver for tests."""

import sqlite3
from collections.abc import Callable
from typing import Any

from dbtemplate.core.datasource import SingleConnectionSource


class FakeResult:
    """One result of an execute(): rows with columns, or an update count."""

    def __init__(
        self,
        columns: list[str] | None = None,
        rows: list[tuple] | None = None,
        rowcount: int = -1,
        lastrowid: Any = None,
        warnings: list[tuple[str, str | None]] | None = None,
    ) -> None:
        self.columns = columns
        self.rows = list(rows or [])
        self.rowcount = rowcount
        self.lastrowid = lastrowid
        self.warnings = warnings or []


class FakeWarning(sqlite3.Warning):
    def __init__(self, message: str, sqlstate: str | None = None) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


Response = FakeResult | list[FakeResult] | BaseException | Callable[[Any], Any]


class FakeCursor:
    def __init__(self, connection: "FakeConnection") -> None:
        self.connection = connection
        self.description: list[tuple] | None = None
        self.rowcount = -1
        self.lastrowid: Any = None
        self.arraysize = 1
        self.messages: list[tuple[type, Any]] = []
        self.closed = False
        self._rows: list[tuple] = []
        self._pending: list[FakeResult] = []

    def _load(self, result: FakeResult) -> None:
        if result.columns is not None:
            self.description = [(c, None, None, None, None, None, None) for c in result.columns]
            self._rows = list(result.rows)
        else:
            self.description = None
            self._rows = []
        self.rowcount = result.rowcount
        if result.lastrowid is not None:
            self.lastrowid = result.lastrowid
        for message, state in result.warnings:
            self.messages.append((FakeWarning, FakeWarning(message, state)))

    def _respond(self, sql: str, params: Any) -> None:
        response = self.connection.responses.get(sql, self.connection.default)
        if callable(response) and not isinstance(response, (FakeResult, BaseException)):
            response = response(params)
        if isinstance(response, BaseException):
            raise response
        results = response if isinstance(response, list) else [response]
        self._load(results[0])
        self._pending = list(results[1:])

    def execute(self, sql: str, params: Any = None) -> None:
        if self.closed:
            raise sqlite3.ProgrammingError("Cannot operate on a closed cursor")
        self.messages = []
        self.connection.executed.append((sql, params))
        self._respond(sql, params)

    def executemany(self, sql: str, seq_of_params: list[Any]) -> None:
        self.messages = []
        total = 0
        for params in seq_of_params:
            self.connection.executed.append((sql, params))
            self._respond(sql, params)
            total += max(self.rowcount, 0)
        self.rowcount = total if self.connection.report_batch_counts else -1

    def callproc(self, name: str, params: list[Any]) -> list[Any]:
        self.messages = []
        self.connection.executed.append((f"CALL {name}", list(params)))
        self._respond(f"CALL {name}", params)
        return self.connection.out_values.get(name, list(params))

    def nextset(self) -> bool | None:
        if not self._pending:
            self.description = None
            self.rowcount = -1
            return None
        self._load(self._pending.pop(0))
        return True

    def fetchone(self) -> tuple | None:
        return self._rows.pop(0) if self._rows else None

    def fetchmany(self, size: int | None = None) -> list[tuple]:
        size = size or self.arraysize
        self.connection.fetch_sizes.append(size)
        out, self._rows = self._rows[:size], self._rows[size:]
        return out

    def fetchall(self) -> list[tuple]:
        out, self._rows = self._rows, []
        return out

    def close(self) -> None:
        self.closed = True


class BatchlessCursor(FakeCursor):
    """A cursor whose driver does not implement executemany."""

    executemany = None  # type: ignore[assignment]


class FakeConnection:
    def __init__(
        self,
        responses: dict[str, Response] | None = None,
        *,
        default: Response | None = None,
        batch_support: bool = True,
        report_batch_counts: bool = True,
    ) -> None:
        self.responses: dict[str, Response] = dict(responses or {})
        self.default = default if default is not None else FakeResult(rowcount=1)
        self.batch_support = batch_support
        self.report_batch_counts = report_batch_counts
        self.out_values: dict[str, list[Any]] = {}
        self.executed: list[tuple[str, Any]] = []
        self.fetch_sizes: list[int] = []
        self.cursors: list[FakeCursor] = []
        self.closed = False
        self.rollbacks = 0

    def cursor(self) -> FakeCursor:
        cur = FakeCursor(self) if self.batch_support else BatchlessCursor(self)
        self.cursors.append(cur)
        return cur

    def commit(self) -> None:
        pass

    def rollback(self) -> None:
        self.rollbacks += 1

    def close(self) -> None:
        self.closed = True

    @property
    def statements(self) -> list[str]:
        return [sql for sql, _ in self.executed]


class RecordingSource(SingleConnectionSource):
    """SingleConnectionSource that records every acquire and release."""

    def __init__(self, connection: Any, dialect: Any = None) -> None:
        super().__init__(connection, dialect)
        self.acquired: list[Any] = []
        self.released: list[Any] = []

    def acquire(self) -> Any:
        conn = super().acquire()
        self.acquired.append(conn)
        return conn

    def release(self, conn: Any) -> None:
        self.released.append(conn)
