"""
Settings for dbtemplate.

Values come from the environment (or a ``.env`` file) and seed the default
ExecutionConfig used by SqlTemplate.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    # Driver connect timeout in seconds (DriverConnectionSource)
    EXTERNAL_DB_CONNECT_TIMEOUT: int = 10

    # Statement defaults; -1 leaves the driver default in place
    DB_TEMPLATE_FETCH_SIZE: int = -1
    DB_TEMPLATE_MAX_ROWS: int = -1
    DB_TEMPLATE_QUERY_TIMEOUT: int = -1
    DB_TEMPLATE_IGNORE_WARNINGS: bool = True
    DB_TEMPLATE_SKIP_RESULTS_PROCESSING: bool = False
    DB_TEMPLATE_SKIP_UNDECLARED_RESULTS: bool = False
    DB_TEMPLATE_RESULTS_MAP_CASE_INSENSITIVE: bool = False


settings = Settings()


class ExecutionConfig(BaseModel):
    """
    Statement behaviour flags shared by every operation of one SqlTemplate.

    Frozen: SqlTemplate.configure() swaps in a new instance between operations.
    """

    model_config = ConfigDict(frozen=True)

    fetch_size: int = -1
    max_rows: int = -1
    query_timeout: int = -1
    ignore_warnings: bool = True
    skip_results_processing: bool = False
    skip_undeclared_results: bool = False
    results_map_case_insensitive: bool = False

    @classmethod
    def from_settings(cls, s: Any = None) -> "ExecutionConfig":
        s = s or settings
        return cls(
            fetch_size=s.DB_TEMPLATE_FETCH_SIZE,
            max_rows=s.DB_TEMPLATE_MAX_ROWS,
            query_timeout=s.DB_TEMPLATE_QUERY_TIMEOUT,
            ignore_warnings=s.DB_TEMPLATE_IGNORE_WARNINGS,
            skip_results_processing=s.DB_TEMPLATE_SKIP_RESULTS_PROCESSING,
            skip_undeclared_results=s.DB_TEMPLATE_SKIP_UNDECLARED_RESULTS,
            results_map_case_insensitive=s.DB_TEMPLATE_RESULTS_MAP_CASE_INSENSITIVE,
        )
