"""
SqlTemplate: query / update / batch / call operations.

Every operation is a thin composition over the ExecutionCore primitives:
without args a plain Statement is used, with args a PreparedStatement bound
by ArgumentBinder (or ArgumentTypeBinder when SqlType hints are given).
"""

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from dbtemplate.core.config import ExecutionConfig
from dbtemplate.core.results import ResultBag
from dbtemplate.core.statement import ResultSet
from dbtemplate.core.translate import ErrorTranslator

from .batch import BatchExecutor
from .binders import SqlType, new_binder
from .executor import ExecutionCore
from .extract import (
    ColumnMapRowMapper,
    GeneratedKeyHolder,
    RowCallbackHandlerResultSetExtractor,
    RowMapperResultSetExtractor,
    RowSet,
    SingleColumnRowMapper,
    row_set_extractor,
    single_result,
)
from .procedure import (
    CallableStatementCreator,
    SqlParameter,
    StoredProcedureResultProcessor,
    validate_parameters,
)

_log = logging.getLogger(__name__)

Args = Sequence[Any] | Mapping[str, Any] | None
ArgTypes = Sequence[SqlType | None] | None


def _extract(rs: ResultSet, extractor: Callable[[ResultSet], Any]) -> Any:
    try:
        return extractor(rs)
    finally:
        rs.close()


class SqlTemplate(ExecutionCore):
    def __init__(
        self,
        source: Any,
        config: ExecutionConfig | None = None,
        *,
        translator: ErrorTranslator | None = None,
    ) -> None:
        super().__init__(source, config, translator=translator)
        self.batch = BatchExecutor(self)

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def execute(self, sql: str) -> None:
        """Run a static statement, typically DDL."""
        self.execute_statement(lambda stmt: stmt.execute(sql), sql=sql)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def query_extract(
        self,
        sql: str,
        extractor: Callable[[ResultSet], Any],
        args: Args = None,
        *,
        arg_types: ArgTypes = None,
    ) -> Any:
        """Run a query and hand the open result set to *extractor*."""
        if args is None and arg_types is None:
            return self.execute_statement(
                lambda stmt: _extract(stmt.execute_query(sql), extractor), sql=sql
            )
        binder = new_binder(args, arg_types)

        def action(ps: Any) -> Any:
            binder.bind(ps)
            return _extract(ps.execute_query(), extractor)

        return self.execute_prepared(sql, action, binder=binder)

    def query(
        self,
        sql: str,
        row_mapper: Callable[[ResultSet, int], Any],
        args: Args = None,
        *,
        arg_types: ArgTypes = None,
        limit: int | None = None,
    ) -> list[Any]:
        return self.query_extract(
            sql, RowMapperResultSetExtractor(row_mapper, limit), args, arg_types=arg_types
        )

    def query_each(
        self,
        sql: str,
        row_handler: Callable[[ResultSet], None],
        args: Args = None,
        *,
        arg_types: ArgTypes = None,
    ) -> None:
        self.query_extract(
            sql, RowCallbackHandlerResultSetExtractor(row_handler), args, arg_types=arg_types
        )

    def query_for_object(
        self,
        sql: str,
        mapper_or_type: Callable[[ResultSet, int], Any] | type | None = None,
        args: Args = None,
        *,
        arg_types: ArgTypes = None,
    ) -> Any:
        """
        Exactly one row. A type (or None) maps a single-column row to its
        value; anything else is used as a row mapper.
        """
        if mapper_or_type is None or isinstance(mapper_or_type, type):
            row_mapper: Callable[[ResultSet, int], Any] = SingleColumnRowMapper(mapper_or_type)
        else:
            row_mapper = mapper_or_type
        return single_result(self.query(sql, row_mapper, args, arg_types=arg_types))

    def query_for_map(
        self, sql: str, args: Args = None, *, arg_types: ArgTypes = None
    ) -> ResultBag:
        return self.query_for_object(
            sql,
            ColumnMapRowMapper(self.config.results_map_case_insensitive),
            args,
            arg_types=arg_types,
        )

    def query_for_list(
        self,
        sql: str,
        args: Args = None,
        *,
        element_type: type | None = None,
        arg_types: ArgTypes = None,
    ) -> list[Any]:
        """Rows as ResultBags, or single column values when element_type is given."""
        if element_type is not None:
            row_mapper: Callable[[ResultSet, int], Any] = SingleColumnRowMapper(element_type)
        else:
            row_mapper = ColumnMapRowMapper(self.config.results_map_case_insensitive)
        return self.query(sql, row_mapper, args, arg_types=arg_types)

    def query_for_row_set(
        self, sql: str, args: Args = None, *, arg_types: ArgTypes = None
    ) -> RowSet:
        """All rows copied into a RowSet that stays usable after the connection is released."""
        return self.query_extract(sql, row_set_extractor, args, arg_types=arg_types)

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def update(self, sql: str, args: Args = None, *, arg_types: ArgTypes = None) -> int:
        if args is None and arg_types is None:
            rows = self.execute_statement(lambda stmt: stmt.execute_update(sql), sql=sql)
        else:
            binder = new_binder(args, arg_types)

            def action(ps: Any) -> int:
                binder.bind(ps)
                return ps.execute_update()

            rows = self.execute_prepared(sql, action, binder=binder)
        _log.debug("SQL update affected %d rows", rows)
        return rows

    def update_with_keys(
        self, sql: str, args: Args = None, *, key_holder: GeneratedKeyHolder
    ) -> int:
        """update() that stores the generated key (DB-API lastrowid) in *key_holder*."""
        binder = new_binder(args)

        def action(ps: Any) -> int:
            binder.bind(ps)
            rows = ps.execute_update()
            key_holder.keys.clear()
            key = ps.last_row_id
            if key is not None:
                key_holder.keys.append(key)
            _log.debug("SQL update affected %d rows and returned %d keys", rows, len(key_holder.keys))
            return rows

        return self.execute_prepared(sql, action, binder=binder)

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def batch_update(self, *sql: str) -> list[int]:
        return self.batch.batch_update(*sql)

    def batch_update_with(self, sql: str, setter: Any) -> list[int]:
        return self.batch.batch_update_with(sql, setter)

    def batch_update_args(
        self,
        sql: str,
        batch_args: Sequence[Sequence[Any]],
        arg_types: ArgTypes = None,
    ) -> list[int]:
        return self.batch.batch_update_args(sql, batch_args, arg_types)

    def batch_update_chunked(
        self,
        sql: str,
        rows: Iterable[Any],
        chunk_size: int,
        binder: Callable[[Any, Any], None],
    ) -> list[list[int]]:
        return self.batch.batch_update_chunked(sql, rows, chunk_size, binder)

    # ------------------------------------------------------------------
    # Stored procedures
    # ------------------------------------------------------------------

    def call(self, creator: Any, declared: Sequence[SqlParameter]) -> ResultBag:
        """Run a callable statement and collect returned results and OUT values."""
        validate_parameters(declared)
        processor = StoredProcedureResultProcessor(self.config)
        return self.execute_callable(creator, lambda cs: processor.process(cs, declared))

    def call_procedure(
        self,
        name: str,
        declared: Sequence[SqlParameter],
        in_params: Mapping[str, Any] | None = None,
    ) -> ResultBag:
        return self.call(CallableStatementCreator(name, declared, in_params), declared)
