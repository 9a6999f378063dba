"""
Driver error translation.

ErrorTranslator.translate(task, sql, error, phase) never returns None. It tries,
in order: the dialect error-code table, the SQLSTATE class, the PEP 249
exception class, and finally falls back to UncategorizedSQLError
(StatementPreparationError while preparing). The driver error is always
kept as ``__cause__``.
"""

import logging
import sqlite3
from enum import Enum

import psycopg
import pymysql
from trino.exceptions import TrinoExternalError, TrinoQueryError, TrinoUserError

from dbtemplate.core.dialect import Dialect
from dbtemplate.core.exceptions import (
    BadSqlGrammarError,
    BatchPartialFailureError,
    CannotAcquireLockError,
    ConcurrencyFailureError,
    DataAccessResourceFailureError,
    DataIntegrityViolationError,
    DeadlockLoserError,
    DuplicateKeyError,
    PermissionDeniedError,
    QueryTimeoutError,
    SQLExecutionError,
    StatementPreparationError,
    UncategorizedSQLError,
)
from dbtemplate.core.statement import BatchUpdateError, first_failed

_log = logging.getLogger(__name__)

# Errors raised by the supported drivers; anything else from a callback propagates as is.
DRIVER_ERRORS: tuple[type[BaseException], ...] = (
    BatchUpdateError,
    sqlite3.Error,
    psycopg.Error,
    pymysql.Error,
    TrinoQueryError,
    TrinoUserError,
    TrinoExternalError,
)


class Phase(str, Enum):
    PREPARE = "prepare"
    EXECUTE = "execute"


# SQLSTATE class (first two characters) -> error kind
_SQL_STATE_CLASSES: dict[str, type[SQLExecutionError]] = {
    "07": BadSqlGrammarError,  # dynamic SQL error
    "21": BadSqlGrammarError,  # cardinality violation
    "2A": BadSqlGrammarError,
    "37": BadSqlGrammarError,
    "42": BadSqlGrammarError,  # syntax error or access rule violation
    "65": BadSqlGrammarError,
    "22": DataIntegrityViolationError,  # data exception
    "23": DataIntegrityViolationError,  # integrity constraint violation
    "27": DataIntegrityViolationError,
    "44": DataIntegrityViolationError,
    "08": DataAccessResourceFailureError,  # connection exception
    "53": DataAccessResourceFailureError,  # insufficient resources
    "54": DataAccessResourceFailureError,
    "57": DataAccessResourceFailureError,  # operator intervention
    "58": DataAccessResourceFailureError,
    "40": ConcurrencyFailureError,  # transaction rollback
    "61": ConcurrencyFailureError,
}

_SQL_STATES: dict[str, type[SQLExecutionError]] = {
    "23505": DuplicateKeyError,
    "40P01": DeadlockLoserError,
    "57014": QueryTimeoutError,
    "HYT00": QueryTimeoutError,
    "HYT01": QueryTimeoutError,
    "55P03": CannotAcquireLockError,
    "42501": PermissionDeniedError,
}

# PEP 249 exception class names, most specific first
_DBAPI_CLASSES: list[tuple[str, type[SQLExecutionError]]] = [
    ("IntegrityError", DataIntegrityViolationError),
    ("DataError", DataIntegrityViolationError),
    ("ProgrammingError", BadSqlGrammarError),
    ("OperationalError", DataAccessResourceFailureError),
    ("InterfaceError", DataAccessResourceFailureError),
]


class ErrorTranslator:
    def __init__(self, dialect: Dialect | None = None) -> None:
        self.dialect = dialect or Dialect()

    def is_driver_error(self, ex: BaseException) -> bool:
        return isinstance(ex, DRIVER_ERRORS)

    def translate(
        self,
        task: str,
        sql: str | None,
        ex: BaseException,
        phase: Phase = Phase.EXECUTE,
    ) -> SQLExecutionError:
        if isinstance(ex, BatchUpdateError):
            return self._translate_batch(task, sql, ex, phase)
        cls = self.classify(ex)
        if cls is None:
            cls = StatementPreparationError if phase == Phase.PREPARE else UncategorizedSQLError
            _log.debug("Unable to classify %s during %s", type(ex).__name__, task)
        sql_state, code = self.dialect.error_info(ex)
        return cls(task, sql, ex, sql_state=sql_state, error_code=code)

    def classify(self, ex: BaseException) -> type[SQLExecutionError] | None:
        sql_state, code = self.dialect.error_info(ex)
        return (
            self._by_error_code(sql_state, code)
            or self._by_sql_state(sql_state)
            or self._by_exception_class(ex)
        )

    def _by_error_code(
        self, sql_state: str | None, code: int | None
    ) -> type[SQLExecutionError] | None:
        codes = self.dialect.error_codes
        key = sql_state if codes.use_sql_state else code
        if key is None:
            return None
        for attr, cls in (
            ("duplicate_key", DuplicateKeyError),
            ("bad_sql_grammar", BadSqlGrammarError),
            ("data_integrity_violation", DataIntegrityViolationError),
            ("permission_denied", PermissionDeniedError),
            ("resource_failure", DataAccessResourceFailureError),
            ("query_timeout", QueryTimeoutError),
            ("cannot_acquire_lock", CannotAcquireLockError),
            ("deadlock_loser", DeadlockLoserError),
        ):
            if key in getattr(codes, attr):
                return cls
        return None

    @staticmethod
    def _by_sql_state(sql_state: str | None) -> type[SQLExecutionError] | None:
        if not sql_state or len(sql_state) < 2:
            return None
        return _SQL_STATES.get(sql_state) or _SQL_STATE_CLASSES.get(sql_state[:2])

    @staticmethod
    def _by_exception_class(ex: BaseException) -> type[SQLExecutionError] | None:
        names = {c.__name__ for c in type(ex).__mro__}
        for name, cls in _DBAPI_CLASSES:
            if name in names:
                return cls
        return None

    def _translate_batch(
        self, task: str, sql: str | None, ex: BatchUpdateError, phase: Phase
    ) -> BatchPartialFailureError:
        cause = ex.__cause__
        translated = self.translate(task, sql, cause, phase) if cause is not None else None
        index = ex.failed_index
        if index is None:
            index = first_failed(ex.update_counts)
        sql_state, code = self.dialect.error_info(cause) if cause is not None else (None, None)
        return BatchPartialFailureError(
            task,
            sql,
            ex,
            index=index,
            failed_sql=ex.failed_sql or sql,
            update_counts=ex.update_counts,
            translated=translated,
            sql_state=sql_state,
            error_code=code,
        )

