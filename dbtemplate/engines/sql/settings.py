"""
StatementSettingsApplier: ExecutionConfig -> statement.

fetch_size and max_rows are passed through unless they are -1 (unset), so
driver-specific negative sentinels still reach the statement. The timeout
goes through apply_timeout, which honours a surrounding transaction deadline.
"""

from typing import Any

from dbtemplate.core.config import ExecutionConfig
from dbtemplate.core.datasource import apply_timeout


class StatementSettingsApplier:
    def __init__(self, config: ExecutionConfig, source: Any) -> None:
        self.config = config
        self.source = source

    def apply(self, stmt: Any) -> None:
        fetch_size = self.config.fetch_size
        if fetch_size != -1:
            stmt.fetch_size = fetch_size
        max_rows = self.config.max_rows
        if max_rows != -1:
            stmt.max_rows = max_rows
        apply_timeout(stmt, self.source, self.config.query_timeout)

    def apply_to_cursor(self, cursor: Any) -> None:
        """Raw DB-API cursors only know a fetch size (arraysize)."""
        if self.config.fetch_size > 0:
            cursor.arraysize = self.config.fetch_size
