"""
Result set consumers: extractors, row mappers and row handlers.

- extractor(rs) -> value: reads the result set however it likes
- row_mapper(rs, row_num) -> value: one value per row, collected in a list
- row_handler(rs) -> None: called for every row for its side effects
"""

from collections.abc import Callable
from typing import Any

from dbtemplate.core.exceptions import (
    EmptyResultError,
    IncorrectResultSetColumnCountError,
    NonUniqueResultError,
)
from dbtemplate.core.results import ResultBag
from dbtemplate.core.statement import ResultSet


class RowMapperResultSetExtractor:
    """Maps every row; with ``limit`` stops after that many rows."""

    def __init__(self, row_mapper: Callable[[ResultSet, int], Any], limit: int | None = None) -> None:
        if limit is not None and limit < 0:
            raise ValueError("limit must be >= 0")
        self.row_mapper = row_mapper
        self.limit = limit

    def __call__(self, rs: ResultSet) -> list[Any]:
        results: list[Any] = []
        row_num = 0
        while (self.limit is None or row_num < self.limit) and rs.next():
            results.append(self.row_mapper(rs, row_num))
            row_num += 1
        return results


class RowCallbackHandlerResultSetExtractor:
    def __init__(self, row_handler: Callable[[ResultSet], None]) -> None:
        self.row_handler = row_handler

    def __call__(self, rs: ResultSet) -> None:
        while rs.next():
            self.row_handler(rs)
        return None


class ColumnMapRowMapper:
    """Row -> ResultBag keyed by column name."""

    def __init__(self, case_insensitive: bool = False) -> None:
        self.case_insensitive = case_insensitive

    def __call__(self, rs: ResultSet, row_num: int) -> ResultBag:
        bag = ResultBag(case_insensitive=self.case_insensitive)
        for name, value in zip(rs.columns, rs.values(), strict=True):
            bag[name] = value
        return bag


class SingleColumnRowMapper:
    """Row with exactly one column -> its value, converted to required_type if given."""

    def __init__(self, required_type: type | None = None) -> None:
        self.required_type = required_type

    def __call__(self, rs: ResultSet, row_num: int) -> Any:
        if len(rs.columns) != 1:
            raise IncorrectResultSetColumnCountError(1, len(rs.columns))
        value = rs[0]
        rt = self.required_type
        if value is None or rt is None or isinstance(value, rt):
            return value
        if rt is str and isinstance(value, (bytes, bytearray)):
            return value.decode()
        try:
            return rt(value)
        except (TypeError, ValueError) as e:
            raise TypeError(
                f"Column value of type {type(value).__name__} cannot be converted to {rt.__name__}"
            ) from e


def single_result(results: list[Any]) -> Any:
    """The only element of *results*; EmptyResultError / NonUniqueResultError otherwise."""
    if not results:
        raise EmptyResultError(1)
    if len(results) > 1:
        raise NonUniqueResultError(1, len(results))
    return results[0]


class GeneratedKeyHolder:
    """Keys generated by update_with_keys (DB-API lastrowid)."""

    def __init__(self) -> None:
        self.keys: list[Any] = []

    @property
    def key(self) -> Any:
        if not self.keys:
            return None
        if len(self.keys) > 1:
            raise NonUniqueResultError(1, len(self.keys))
        return self.keys[0]


class RowSet:
    """
    Disconnected copy of a result set.

    Filled while the connection is open and readable after it has been
    released. Navigation and column access mirror ResultSet (next(), rs[0],
    rs["name"]); before_first() rewinds.
    """

    def __init__(self, columns: list[str], rows: list[tuple]) -> None:
        self.columns = list(columns)
        self.rows = rows
        self._index = {c.lower(): i for i, c in reversed(list(enumerate(self.columns)))}
        self.row_number = 0

    def next(self) -> bool:
        if self.row_number >= len(self.rows):
            self.row_number = len(self.rows) + 1
            return False
        self.row_number += 1
        return True

    def before_first(self) -> None:
        self.row_number = 0

    @property
    def row(self) -> tuple:
        if not 0 < self.row_number <= len(self.rows):
            raise IndexError("RowSet is not positioned on a row")
        return self.rows[self.row_number - 1]

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

    def __len__(self) -> int:
        return len(self.rows)

    def __repr__(self) -> str:
        return f"RowSet(columns={self.columns!r}, rows={len(self.rows)})"


def row_set_extractor(rs: ResultSet) -> RowSet:
    """Read every row of *rs* (max_rows still applies) into a RowSet."""
    rows = []
    while rs.next():
        rows.append(rs.values())
    return RowSet(rs.columns, rows)
