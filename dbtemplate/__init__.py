"""
dbtemplate: resource-safe SQL execution over DB-API drivers.
"""

from dbtemplate.core.config import ExecutionConfig, settings
from dbtemplate.core.datasource import (
    DataSourceConfig,
    DriverConnectionSource,
    SingleConnectionSource,
)
from dbtemplate.engines.sql import SqlTemplate

__all__ = [
    "ExecutionConfig",
    "settings",
    "DataSourceConfig",
    "DriverConnectionSource",
    "SingleConnectionSource",
    "SqlTemplate",
]
