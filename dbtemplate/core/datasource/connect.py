"""
Driver connections for configured data sources.

Uses psycopg (PostgreSQL), pymysql (MySQL), trino (Trino) or sqlite3 based on
product_type. DataSourceConfig (product_type, host, ...) or a plain dict is
enough.
"""

import sqlite3
from typing import Any

import psycopg
import pymysql
from pydantic import BaseModel
from trino.auth import BasicAuthentication
from trino.dbapi import connect as trino_connect

from dbtemplate.core.config import settings
from dbtemplate.core.dialect import ProductTypeEnum

_DEFAULT_PORTS = {
    ProductTypeEnum.POSTGRES: 5432,
    ProductTypeEnum.MYSQL: 3306,
    ProductTypeEnum.TRINO: 8080,
}


class DataSourceConfig(BaseModel):
    product_type: ProductTypeEnum
    host: str | None = None
    port: int | None = None
    database: str
    username: str | None = None
    password: str | None = None
    use_ssl: bool = False


def _get(datasource: Any, key: str) -> Any:
    """Get attribute or dict key from DataSourceConfig, dict, or any object."""
    if isinstance(datasource, dict):
        return datasource.get(key)
    return getattr(datasource, key, None)


def resolve_product_type(
    datasource: Any, product_type: ProductTypeEnum | None = None
) -> ProductTypeEnum:
    pt = product_type or _get(datasource, "product_type")
    if pt is None:
        raise ValueError("product_type is required (from datasource or argument)")
    if isinstance(pt, str):
        return ProductTypeEnum(pt)
    return pt


def connect(
    datasource: Any,
    *,
    product_type: ProductTypeEnum | None = None,
) -> Any:
    """
    Open a driver connection from a DataSourceConfig or connection dict.

    - datasource: host, port, database, username, password and product_type
      (or pass product_type=). For sqlite only ``database`` (a path or
      ``:memory:``) is used.
    """
    pt = resolve_product_type(datasource, product_type)
    database = _get(datasource, "database")
    if database is None:
        raise ValueError("datasource must provide database")

    if pt == ProductTypeEnum.SQLITE:
        return sqlite3.connect(database, check_same_thread=False)

    host = _get(datasource, "host")
    port = _get(datasource, "port") or _DEFAULT_PORTS.get(pt)
    username = _get(datasource, "username")
    password = _get(datasource, "password")
    for name, val in [("host", host), ("username", username)]:
        if val is None:
            raise ValueError(f"datasource must provide {name}")
    password = password if password is not None else ""

    timeout = settings.EXTERNAL_DB_CONNECT_TIMEOUT

    if pt == ProductTypeEnum.POSTGRES:
        return psycopg.connect(
            host=host,
            port=int(port),
            dbname=database,
            user=username,
            password=password,
            connect_timeout=timeout,
        )
    if pt == ProductTypeEnum.MYSQL:
        return pymysql.connect(
            host=host,
            port=int(port),
            database=database,
            user=username,
            password=password,
            connect_timeout=timeout,
        )
    if pt == ProductTypeEnum.TRINO:
        use_ssl = _get(datasource, "use_ssl") in (True, "true", "1")
        if use_ssl and not (password and password.strip()):
            raise ValueError("Password is required for Trino when using SSL/HTTPS.")
        return trino_connect(
            host=host,
            port=int(port),
            user=username,
            auth=BasicAuthentication(username, password) if use_ssl else None,
            catalog=database,
            schema="default",
            source="dbtemplate",
            http_scheme="https" if use_ssl else "http",
            request_timeout=timeout,
        )
    raise ValueError(f"Unsupported product_type: {pt}")
