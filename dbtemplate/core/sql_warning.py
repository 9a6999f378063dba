"""
Driver warnings attached to a statement after it ran.

SQLWarning is a linked chain; WarningPolicy either logs the whole chain or
raises SQLWarningError for the first entry.
"""

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from dbtemplate.core.exceptions import SQLWarningError

_log = logging.getLogger(__name__)


@dataclass
class SQLWarning:
    message: str
    sql_state: str | None = None
    error_code: int | None = None
    next_warning: "SQLWarning | None" = None

    def __iter__(self) -> Iterator["SQLWarning"]:
        w: SQLWarning | None = self
        while w is not None:
            yield w
            w = w.next_warning

    def __str__(self) -> str:
        return (
            f"SQL state '{self.sql_state}', error code '{self.error_code}', "
            f"message [{self.message}]"
        )

    @classmethod
    def chain(cls, warnings: list["SQLWarning"]) -> "SQLWarning | None":
        """Link warnings in order and return the head (None for an empty list)."""
        head: SQLWarning | None = None
        for w in reversed(warnings):
            w.next_warning = head
            head = w
        return head


class WarningPolicy:
    def __init__(self, ignore_warnings: bool = True) -> None:
        self.ignore_warnings = ignore_warnings

    def handle(self, statement: Any) -> None:
        warning = statement.get_warnings()
        if self.ignore_warnings:
            if warning is not None:
                for w in warning:
                    _log.debug("SQLWarning ignored: %s", w)
            return
        self.raise_first(warning)

    @staticmethod
    def raise_first(warning: SQLWarning | None) -> None:
        if warning is not None:
            raise SQLWarningError("Warning not ignored", warning)
