"""
Portable data access errors.

Driver errors never leave SqlTemplate untranslated: they are mapped onto the
classes below (see core.translate) and chained as ``__cause__``.
"""

from typing import Any


class DataAccessError(Exception):
    """Root of every error raised by dbtemplate."""

    pass


class CannotGetConnectionError(DataAccessError):
    """The ConnectionSource could not hand out a connection."""

    pass


class TransactionTimedOutError(DataAccessError):
    """The surrounding transaction deadline has already passed."""

    pass


class InvalidDataAccessApiUsageError(DataAccessError):
    """The caller used the API incorrectly (e.g. a SELECT inside a batch)."""

    pass


class InvalidConfigurationError(InvalidDataAccessApiUsageError):
    """Detected before any statement runs, e.g. an anonymous OUT parameter."""

    pass


class IncorrectResultSizeError(DataAccessError):
    def __init__(self, expected: int, actual: int, message: str | None = None) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            message or f"Incorrect result size: expected {expected}, actual {actual}"
        )


class EmptyResultError(IncorrectResultSizeError):
    def __init__(self, expected: int = 1) -> None:
        super().__init__(expected, 0, f"Incorrect result size: expected {expected}, actual 0")


class NonUniqueResultError(IncorrectResultSizeError):
    pass


class IncorrectResultSetColumnCountError(DataAccessError):
    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Incorrect column count: expected {expected}, actual {actual}"
        )


class SQLWarningError(DataAccessError):
    """Raised for the first driver warning when warnings are not ignored."""

    def __init__(self, message: str, warning: Any) -> None:
        self.warning = warning
        super().__init__(f"{message}: {warning}")


class SQLExecutionError(DataAccessError):
    """
    A driver error translated for a given task.

    - task: readable description of what was attempted
    - sql: offending SQL text, when known
    - sql_state / error_code: as reported by the driver (may be None)
    """

    def __init__(
        self,
        task: str,
        sql: str | None,
        cause: BaseException,
        *,
        sql_state: str | None = None,
        error_code: int | None = None,
    ) -> None:
        self.task = task
        self.sql = sql
        self.sql_state = sql_state
        self.error_code = error_code
        msg = f"{task}"
        if sql:
            msg += f"; SQL [{sql}]"
        if sql_state or error_code is not None:
            msg += f"; SQL state [{sql_state}]; error code [{error_code}]"
        msg += f"; {cause}"
        super().__init__(msg)
        self.__cause__ = cause


class BadSqlGrammarError(SQLExecutionError):
    pass


class DataIntegrityViolationError(SQLExecutionError):
    pass


class DuplicateKeyError(DataIntegrityViolationError):
    pass


class DataAccessResourceFailureError(SQLExecutionError):
    pass


class QueryTimeoutError(SQLExecutionError):
    pass


class ConcurrencyFailureError(SQLExecutionError):
    pass


class CannotAcquireLockError(ConcurrencyFailureError):
    pass


class DeadlockLoserError(ConcurrencyFailureError):
    pass


class PermissionDeniedError(SQLExecutionError):
    pass


class UncategorizedSQLError(SQLExecutionError):
    pass


class StatementPreparationError(UncategorizedSQLError):
    pass


class BatchPartialFailureError(SQLExecutionError):
    """
    A batch failed part-way.

    - index: position (across all chunks) of the first failing statement.
      Exact on the sequential path and for statement batches; after an
      executemany failure it is the first row of the failing chunk, since
      the driver does not say which row failed
    - failed_sql: SQL of the failing statement(s), ``; ``-joined
    - update_counts: counts reported by the driver for the failing batch
    - translated: the classification of the underlying driver error
    """

    def __init__(
        self,
        task: str,
        sql: str | None,
        cause: BaseException,
        *,
        index: int | None,
        failed_sql: str | None,
        update_counts: list[int],
        translated: SQLExecutionError | None = None,
        sql_state: str | None = None,
        error_code: int | None = None,
    ) -> None:
        self.index = index
        self.failed_sql = failed_sql
        self.update_counts = update_counts
        self.translated = translated
        super().__init__(
            task, sql, cause, sql_state=sql_state, error_code=error_code
        )
