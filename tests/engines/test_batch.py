"""Unit tests for engines.sql.batch (driver batches and sequential fallback)."""

import logging
import sqlite3
from typing import Any
from unittest.mock import patch

import pytest

from dbtemplate.core.config import ExecutionConfig
from dbtemplate.core.datasource import SingleConnectionSource
from dbtemplate.core.dialect import Dialect, SQLiteDialect
from dbtemplate.core.exceptions import (
    BatchPartialFailureError,
    DataIntegrityViolationError,
    InvalidDataAccessApiUsageError,
)
from dbtemplate.core.statement import EXECUTE_FAILED, SUCCESS_NO_INFO
from dbtemplate.engines.sql import SqlTemplate
from tests.utils.driver import FakeConnection, FakeResult, RecordingSource

INSERT = "INSERT INTO t (a) VALUES (%s)"
NO_INFO = [SUCCESS_NO_INFO] * 3


def _template(conn: FakeConnection) -> tuple[SqlTemplate, RecordingSource]:
    source = RecordingSource(conn, Dialect())
    return SqlTemplate(source, ExecutionConfig()), source


def _bind(ps: Any, row: Any) -> None:
    ps.set_parameter(0, row)


def _fail_on(value: int) -> Any:
    def respond(params: Any) -> Any:
        if params == [value]:
            return sqlite3.IntegrityError(f"duplicate {value}")
        return FakeResult(rowcount=1)

    return respond


# ---------------------------------------------------------------------------
# batch_update_chunked
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("batch_support", "expected"),
    [
        (True, [NO_INFO, NO_INFO, [1]]),
        (False, [[1, 1, 1], [1, 1, 1], [1]]),
    ],
)
def test_chunked_shape_is_independent_of_driver_support(
    batch_support: bool, expected: list[list[int]]
) -> None:
    conn = FakeConnection(batch_support=batch_support)
    template, source = _template(conn)
    grid = template.batch_update_chunked(INSERT, range(7), 3, _bind)
    assert grid == expected
    assert [p for _, p in conn.executed] == [[i] for i in range(7)]
    assert len(source.released) == 1


def test_chunked_exact_multiple_has_no_empty_chunk() -> None:
    template, _ = _template(FakeConnection())
    assert template.batch_update_chunked(INSERT, range(6), 3, _bind) == [NO_INFO, NO_INFO]


def test_chunked_empty_rows() -> None:
    template, _ = _template(FakeConnection())
    assert template.batch_update_chunked(INSERT, [], 3, _bind) == []


def test_chunked_invalid_chunk_size() -> None:
    template, _ = _template(FakeConnection())
    with pytest.raises(InvalidDataAccessApiUsageError):
        template.batch_update_chunked(INSERT, range(3), 0, _bind)


def test_chunked_logs_fallback_warning(caplog: pytest.LogCaptureFixture) -> None:
    template, _ = _template(FakeConnection(batch_support=False))
    with caplog.at_level(logging.WARNING, logger="dbtemplate.engines.sql.batch"):
        template.batch_update_chunked(INSERT, range(2), 5, _bind)
    assert "does not support batch updates" in caplog.text


def test_chunked_batch_failure_reports_chunk_start() -> None:
    conn = FakeConnection({INSERT: _fail_on(4)})
    template, source = _template(conn)
    with pytest.raises(BatchPartialFailureError) as exc_info:
        template.batch_update_chunked(INSERT, range(7), 3, _bind)
    err = exc_info.value
    # executemany cannot say which row failed: the whole second chunk is marked
    assert err.index == 3
    assert err.update_counts == [EXECUTE_FAILED] * 3
    assert err.failed_sql == INSERT
    assert isinstance(err.translated, DataIntegrityViolationError)
    assert [p for _, p in conn.executed][-1] == [4]
    assert len(source.released) == 1


def test_chunked_sequential_failure_reports_row() -> None:
    conn = FakeConnection({INSERT: _fail_on(4)}, batch_support=False)
    template, _ = _template(conn)
    with pytest.raises(BatchPartialFailureError) as exc_info:
        template.batch_update_chunked(INSERT, range(7), 3, _bind)
    err = exc_info.value
    assert err.index == 4
    assert err.update_counts == [1, EXECUTE_FAILED]
    assert err.failed_sql == INSERT
    assert [p for _, p in conn.executed] == [[0], [1], [2], [3], [4]]


# ---------------------------------------------------------------------------
# batch_update_args / batch_update_with
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("batch_support", "expected"), [(True, NO_INFO), (False, [1, 1, 1])]
)
def test_batch_update_args(batch_support: bool, expected: list[int]) -> None:
    conn = FakeConnection(batch_support=batch_support)
    template, _ = _template(conn)
    assert template.batch_update_args(INSERT, [[1], [2], [3]]) == expected


def test_batch_update_args_without_driver_counts() -> None:
    template, _ = _template(FakeConnection(report_batch_counts=False))
    assert template.batch_update_args(INSERT, [[1], [2]]) == [SUCCESS_NO_INFO] * 2


def test_batch_update_with_interruptible_setter() -> None:
    conn = FakeConnection()
    template, _ = _template(conn)

    class Setter:
        batch_size = 10

        def set_values(self, ps: Any, i: int) -> None:
            ps.set_parameter(0, i)

        def is_batch_exhausted(self, i: int) -> bool:
            return i >= 3

    assert template.batch_update_with(INSERT, Setter()) == NO_INFO
    assert [p for _, p in conn.executed] == [[0], [1], [2]]


def test_batch_update_args_with_sqlite() -> None:
    conn = sqlite3.connect(":memory:")
    template = SqlTemplate(SingleConnectionSource(conn, "sqlite"), ExecutionConfig())
    template.execute("CREATE TABLE t (a INTEGER PRIMARY KEY)")
    assert template.batch_update_args("INSERT INTO t (a) VALUES (?)", [[1], [2], [3]]) == NO_INFO
    with pytest.raises(BatchPartialFailureError) as exc_info:
        template.batch_update_args("INSERT INTO t (a) VALUES (?)", [[4], [2]])
    assert isinstance(exc_info.value.translated, DataIntegrityViolationError)
    conn.close()


UPDATE_KV = "UPDATE kv SET v = 1 WHERE k = ?"


def test_batch_counts_agree_with_sequential_counts_with_sqlite() -> None:
    conn = sqlite3.connect(":memory:")
    template = SqlTemplate(SingleConnectionSource(conn, "sqlite"), ExecutionConfig())
    template.execute("CREATE TABLE kv (k TEXT, v INTEGER)")
    template.batch_update_args("INSERT INTO kv (k, v) VALUES (?, 0)", [["a"], ["a"], ["b"]])

    with patch.object(SQLiteDialect, "supports_batch_updates", return_value=False):
        sequential = template.batch_update_args(UPDATE_KV, [["a"], ["zzz"]])
    batched = template.batch_update_args(UPDATE_KV, [["a"], ["zzz"]])

    assert sequential == [2, 0]
    # the driver only reports the total (2), which cannot be split per row
    assert batched == [SUCCESS_NO_INFO, SUCCESS_NO_INFO]
    assert template.batch_update_args(UPDATE_KV, [["a"]]) == [2]
    assert template.batch_update_args(UPDATE_KV, [["x"], ["y"]]) == [0, 0]
    conn.close()


# ---------------------------------------------------------------------------
# batch_update (independent statements)
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("batch_support", [True, False])
def test_batch_update_statements(batch_support: bool) -> None:
    conn = FakeConnection(
        {"DELETE FROM a": FakeResult(rowcount=2), "DELETE FROM b": FakeResult(rowcount=0)},
        batch_support=batch_support,
    )
    template, _ = _template(conn)
    assert template.batch_update("DELETE FROM a", "DELETE FROM b") == [2, 0]


def test_batch_update_statement_failure_collects_failed_sql() -> None:
    conn = FakeConnection({"UPDATE b": sqlite3.IntegrityError("constraint")})
    template, source = _template(conn)
    with pytest.raises(BatchPartialFailureError) as exc_info:
        template.batch_update("UPDATE a", "UPDATE b", "UPDATE c")
    err = exc_info.value
    assert err.index == 1
    assert err.failed_sql == "UPDATE b"
    assert err.sql == "UPDATE b"
    assert err.update_counts == [1, EXECUTE_FAILED]
    assert "UPDATE c" not in conn.statements
    assert len(source.released) == 1


def test_batch_update_rejects_select_without_driver_batching() -> None:
    conn = FakeConnection(
        {"SELECT 1": FakeResult(columns=["x"], rows=[(1,)])}, batch_support=False
    )
    template, _ = _template(conn)
    with pytest.raises(InvalidDataAccessApiUsageError, match="Invalid batch SQL statement: SELECT 1"):
        template.batch_update("UPDATE a", "SELECT 1")


def test_batch_update_rejects_select_with_driver_batching() -> None:
    conn = FakeConnection({"SELECT 1": FakeResult(columns=["x"], rows=[(1,)])})
    template, _ = _template(conn)
    with pytest.raises(BatchPartialFailureError) as exc_info:
        template.batch_update("UPDATE a", "SELECT 1")
    assert exc_info.value.index == 1


def test_batch_update_requires_statements() -> None:
    template, _ = _template(FakeConnection())
    with pytest.raises(InvalidDataAccessApiUsageError):
        template.batch_update()
