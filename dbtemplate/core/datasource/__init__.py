"""
Connection sources and transaction-bound connection handling.

No pooling here: pools are supplied externally behind ConnectionSource.
"""

from .connect import DataSourceConfig, connect
from .source import ConnectionSource, DriverConnectionSource, SingleConnectionSource
from .transaction import ConnectionHolder, bind_resource, get_resource, unbind_resource
from .utils import apply_timeout, get_connection, release_connection

__all__ = [
    "DataSourceConfig",
    "connect",
    "ConnectionSource",
    "DriverConnectionSource",
    "SingleConnectionSource",
    "ConnectionHolder",
    "bind_resource",
    "unbind_resource",
    "get_resource",
    "get_connection",
    "release_connection",
    "apply_timeout",
]
