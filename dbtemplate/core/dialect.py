"""
Driver-specific behaviour behind the DB-API boundary.

One Dialect per product type: batch capability, statement timeout, warning
collection, stored-procedure invocation and the vendor error-code table used
by core.translate.
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from dbtemplate.core.sql_warning import SQLWarning

if TYPE_CHECKING:
    from dbtemplate.core.statement import CallableStatement, Statement

_log = logging.getLogger(__name__)


class ProductTypeEnum(str, Enum):
    """Supported database product types."""

    POSTGRES = "postgres"
    MYSQL = "mysql"
    TRINO = "trino"
    SQLITE = "sqlite"
    GENERIC = "generic"


@dataclass(frozen=True)
class ErrorCodes:
    """Vendor error codes (or SQLSTATE values) grouped by error kind."""

    bad_sql_grammar: frozenset = field(default_factory=frozenset)
    duplicate_key: frozenset = field(default_factory=frozenset)
    data_integrity_violation: frozenset = field(default_factory=frozenset)
    resource_failure: frozenset = field(default_factory=frozenset)
    query_timeout: frozenset = field(default_factory=frozenset)
    cannot_acquire_lock: frozenset = field(default_factory=frozenset)
    deadlock_loser: frozenset = field(default_factory=frozenset)
    permission_denied: frozenset = field(default_factory=frozenset)
    # error codes are matched on the SQLSTATE instead of the numeric code
    use_sql_state: bool = False


def _close_quiet(cur: Any) -> None:
    try:
        cur.close()
    except Exception as e:
        _log.debug("Could not close cursor: %s", e)


class Dialect:
    product_type = ProductTypeEnum.GENERIC
    placeholder = "%s"
    error_codes = ErrorCodes()

    def supports_batch_updates(self, conn: Any) -> bool:
        """True if cursors of *conn* implement executemany."""
        try:
            cur = conn.cursor()
        except Exception:
            return False
        try:
            return callable(getattr(cur, "executemany", None))
        finally:
            _close_quiet(cur)

    # --- statement timeout ---

    def timeout_statements(self, seconds: int) -> tuple[str, str] | None:
        """(set, reset) SQL for a session statement timeout, or None if unsupported."""
        return None

    def set_timeout(self, conn: Any, seconds: int) -> None:
        stmts = self.timeout_statements(seconds)
        if stmts is None:
            return
        cur = conn.cursor()
        try:
            cur.execute(stmts[0])
        finally:
            _close_quiet(cur)

    def reset_timeout(self, conn: Any) -> None:
        stmts = self.timeout_statements(0)
        if stmts is None:
            return
        try:
            cur = conn.cursor()
            cur.execute(stmts[1])
            cur.close()
        except Exception as e:
            _log.debug("Could not reset statement timeout: %s", e)

    # --- statement lifecycle hooks ---

    def on_statement_created(self, stmt: "Statement") -> None:
        pass

    def on_statement_closed(self, stmt: "Statement") -> None:
        pass

    # --- warnings ---

    def collect_warnings(self, stmt: "Statement") -> SQLWarning | None:
        """Read warnings from the PEP 249 ``cursor.messages`` extension."""
        messages = getattr(stmt.cursor, "messages", None)
        if not isinstance(messages, list):
            return None
        found = []
        for entry in messages:
            try:
                cls, value = entry
            except (TypeError, ValueError):
                continue
            if not _is_warning_class(cls):
                continue
            found.append(
                SQLWarning(
                    message=str(value),
                    sql_state=getattr(value, "sqlstate", None),
                    error_code=getattr(value, "errno", None),
                )
            )
        return SQLWarning.chain(found)

    # --- stored procedures ---

    def call(self, stmt: "CallableStatement", params: list[Any]) -> bool:
        """
        Invoke the procedure. Returns False when no further results are pending
        on the cursor (e.g. the OUT row was already consumed).
        """
        stmt.returned_parameters = stmt.cursor.callproc(stmt.procedure_name, params)
        return True

    def read_out_values(self, stmt: "CallableStatement") -> dict[int, Any]:
        returned = stmt.returned_parameters or []
        return {
            i: returned[i] if i < len(returned) else None for i in stmt.out_indices
        }

    # --- errors ---

    def error_info(self, ex: BaseException) -> tuple[str | None, int | None]:
        """Extract (SQLSTATE, vendor code) from a driver error."""
        sql_state = (
            getattr(ex, "sqlstate", None)
            or getattr(ex, "pgcode", None)
            or getattr(ex, "sql_state", None)
        )
        code = getattr(ex, "sqlite_errorcode", None)
        if code is None:
            code = getattr(ex, "error_code", None)
        if code is None and ex.args and isinstance(ex.args[0], int):
            code = ex.args[0]
        if not isinstance(code, int) or isinstance(code, bool):
            code = None
        if sql_state is not None and not isinstance(sql_state, str):
            sql_state = None
        return sql_state, code


def _is_warning_class(cls: Any) -> bool:
    if not isinstance(cls, type):
        return False
    if issubclass(cls, Warning):
        return True
    return any(c.__name__ == "Warning" for c in cls.__mro__)


class PostgresDialect(Dialect):
    product_type = ProductTypeEnum.POSTGRES
    error_codes = ErrorCodes(
        bad_sql_grammar=frozenset(
            {"03000", "42000", "42601", "42602", "42622", "42804", "42P01"}
        ),
        duplicate_key=frozenset({"23505"}),
        data_integrity_violation=frozenset({"23000", "23502", "23503", "23514"}),
        resource_failure=frozenset({"53000", "53100", "53200", "53300"}),
        query_timeout=frozenset({"57014"}),
        cannot_acquire_lock=frozenset({"55P03"}),
        deadlock_loser=frozenset({"40P01"}),
        permission_denied=frozenset({"42501"}),
        use_sql_state=True,
    )

    def timeout_statements(self, seconds: int) -> tuple[str, str]:
        return (f"SET statement_timeout = {int(seconds) * 1000}", "RESET statement_timeout")

    def on_statement_created(self, stmt: "Statement") -> None:
        raw = stmt.connection.unwrap()
        add = getattr(raw, "add_notice_handler", None)
        if add is None:
            return

        def _on_notice(diag: Any) -> None:
            if (getattr(diag, "severity", "") or "").upper() == "WARNING":
                stmt.notices.append(
                    SQLWarning(
                        message=getattr(diag, "message_primary", None) or "",
                        sql_state=getattr(diag, "sqlstate", None),
                    )
                )

        stmt.notice_handler = _on_notice
        add(_on_notice)

    def on_statement_closed(self, stmt: "Statement") -> None:
        handler = getattr(stmt, "notice_handler", None)
        if handler is None:
            return
        try:
            stmt.connection.unwrap().remove_notice_handler(handler)
        except Exception as e:
            _log.debug("Could not remove notice handler: %s", e)

    def collect_warnings(self, stmt: "Statement") -> SQLWarning | None:
        return SQLWarning.chain(list(stmt.notices))

    def call(self, stmt: "CallableStatement", params: list[Any]) -> bool:
        marks = ", ".join([self.placeholder] * len(params))
        stmt.cursor.execute(f"CALL {stmt.procedure_name}({marks})", params or None)
        if stmt.out_indices and stmt.cursor.description is not None:
            row = stmt.cursor.fetchone() or ()
            stmt.returned_parameters = None
            stmt.out_values = {
                idx: row[pos] if pos < len(row) else None
                for pos, idx in enumerate(stmt.out_indices)
            }
            return False
        return True


class MySQLDialect(Dialect):
    product_type = ProductTypeEnum.MYSQL
    error_codes = ErrorCodes(
        bad_sql_grammar=frozenset({1054, 1064, 1146}),
        duplicate_key=frozenset({1062}),
        data_integrity_violation=frozenset({630, 839, 840, 893, 1169, 1215, 1216, 1217, 1364, 1451, 1452, 1557}),
        resource_failure=frozenset({1, 1040, 2002, 2003, 2006, 2013}),
        query_timeout=frozenset({3024}),
        cannot_acquire_lock=frozenset({1205, 3572}),
        deadlock_loser=frozenset({1213}),
        permission_denied=frozenset({1044, 1045, 1142}),
    )

    def timeout_statements(self, seconds: int) -> tuple[str, str]:
        return (
            f"SET SESSION max_execution_time = {int(seconds) * 1000}",
            "SET SESSION max_execution_time = DEFAULT",
        )

    def collect_warnings(self, stmt: "Statement") -> SQLWarning | None:
        show = getattr(stmt.connection.unwrap(), "show_warnings", None)
        if show is None or not stmt.executed:
            return None
        found = []
        for level, code, message in show() or ():
            if str(level).lower() == "note":
                continue
            found.append(SQLWarning(message=str(message), error_code=code))
        return SQLWarning.chain(found)

    def read_out_values(self, stmt: "CallableStatement") -> dict[int, Any]:
        # pymysql keeps OUT/INOUT values in @_<proc>_<n> server variables
        if not stmt.out_indices:
            return {}
        names = ", ".join(f"@_{stmt.procedure_name}_{i}" for i in stmt.out_indices)
        cur = stmt.connection.unwrap().cursor()
        try:
            cur.execute(f"SELECT {names}")
            row = cur.fetchone() or ()
        finally:
            _close_quiet(cur)
        return {
            idx: row[pos] if pos < len(row) else None
            for pos, idx in enumerate(stmt.out_indices)
        }


class TrinoDialect(Dialect):
    product_type = ProductTypeEnum.TRINO
    placeholder = "?"
    # trino reports symbolic error names; error_info returns them in the SQLSTATE slot
    error_codes = ErrorCodes(
        bad_sql_grammar=frozenset(
            {
                "SYNTAX_ERROR",
                "TABLE_NOT_FOUND",
                "COLUMN_NOT_FOUND",
                "SCHEMA_NOT_FOUND",
                "CATALOG_NOT_FOUND",
                "FUNCTION_NOT_FOUND",
                "TYPE_MISMATCH",
            }
        ),
        data_integrity_violation=frozenset({"CONSTRAINT_VIOLATION", "INVALID_CAST_ARGUMENT"}),
        resource_failure=frozenset(
            {"REMOTE_HOST_GONE", "NO_NODES_AVAILABLE", "SERVER_SHUTTING_DOWN"}
        ),
        query_timeout=frozenset({"EXCEEDED_TIME_LIMIT"}),
        permission_denied=frozenset({"PERMISSION_DENIED"}),
        use_sql_state=True,
    )

    def supports_batch_updates(self, conn: Any) -> bool:
        return False

    def error_info(self, ex: BaseException) -> tuple[str | None, int | None]:
        name = getattr(ex, "error_name", None)
        code = getattr(ex, "error_code", None)
        return (
            name if isinstance(name, str) else None,
            code if isinstance(code, int) else None,
        )

    def timeout_statements(self, seconds: int) -> tuple[str, str]:
        return (
            f"SET SESSION query_max_execution_time = '{int(seconds)}s'",
            "RESET SESSION query_max_execution_time",
        )

    def collect_warnings(self, stmt: "Statement") -> SQLWarning | None:
        found = []
        for w in getattr(stmt.cursor, "warnings", None) or []:
            code = (w.get("warningCode") or {}) if isinstance(w, dict) else {}
            found.append(
                SQLWarning(
                    message=str(w.get("message", "")) if isinstance(w, dict) else str(w),
                    sql_state=code.get("name"),
                    error_code=code.get("code"),
                )
            )
        return SQLWarning.chain(found)

    def call(self, stmt: "CallableStatement", params: list[Any]) -> bool:
        marks = ", ".join([self.placeholder] * len(params))
        stmt.cursor.execute(f"CALL {stmt.procedure_name}({marks})", params or None)
        stmt.returned_parameters = None
        return True


class SQLiteDialect(Dialect):
    product_type = ProductTypeEnum.SQLITE
    placeholder = "?"
    error_codes = ErrorCodes(
        # SQLITE_ERROR: syntax errors and missing tables
        bad_sql_grammar=frozenset({1}),
        duplicate_key=frozenset({1555, 2067}),
        data_integrity_violation=frozenset({19, 275, 531, 787, 1043, 1299, 1811, 2835, 3091}),
        resource_failure=frozenset({10, 11, 13, 14, 26}),
        cannot_acquire_lock=frozenset({5, 6, 261, 517}),
        permission_denied=frozenset({3, 8, 23}),
    )

    def call(self, stmt: "CallableStatement", params: list[Any]) -> bool:
        raise sqlite3.NotSupportedError("SQLite does not support stored procedures")


_DIALECTS: dict[ProductTypeEnum, type[Dialect]] = {
    ProductTypeEnum.POSTGRES: PostgresDialect,
    ProductTypeEnum.MYSQL: MySQLDialect,
    ProductTypeEnum.TRINO: TrinoDialect,
    ProductTypeEnum.SQLITE: SQLiteDialect,
    ProductTypeEnum.GENERIC: Dialect,
}


def get_dialect(product_type: ProductTypeEnum | str | None) -> Dialect:
    if product_type is None:
        return Dialect()
    if isinstance(product_type, str):
        product_type = ProductTypeEnum(product_type)
    return _DIALECTS[product_type]()
