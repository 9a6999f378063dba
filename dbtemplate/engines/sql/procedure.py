"""
Stored procedure support: declared parameters, the callable statement
creator built from them, and the processor that turns the driver's
interleaved results into one ResultBag.

Declared parameter kinds:
- SqlParameter: IN value, bound by name from the caller's input mapping
- SqlOutParameter / SqlInOutParameter: registered as OUT, read back after the call
- SqlReturnResultSet / SqlReturnUpdateCount: take the next returned result
  set / update count instead of a parameter position
"""

import logging
from collections.abc import Callable, Mapping, Sequence
from enum import Enum
from typing import Any

from dbtemplate.core.config import ExecutionConfig
from dbtemplate.core.exceptions import (
    InvalidConfigurationError,
    InvalidDataAccessApiUsageError,
)
from dbtemplate.core.results import ResultBag
from dbtemplate.core.statement import ResultSet

from .binders import SqlType
from .extract import (
    ColumnMapRowMapper,
    RowCallbackHandlerResultSetExtractor,
    RowMapperResultSetExtractor,
)

_log = logging.getLogger(__name__)

RETURN_RESULT_SET_PREFIX = "#result-set-"
RETURN_UPDATE_COUNT_PREFIX = "#update-count-"
ROW_HANDLER_PROCESSED = "ResultSet returned from stored procedure was processed"


class SqlParameter:
    is_input = True
    is_results_parameter = False

    def __init__(
        self,
        name: str | None = None,
        sql_type: SqlType | None = None,
        type_name: str | None = None,
    ) -> None:
        self.name = name
        self.sql_type = sql_type
        self.type_name = type_name

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class ResultSetSupportingParameter(SqlParameter):
    """Parameter that may carry a result set, read by exactly one of the three consumers."""

    def __init__(
        self,
        name: str | None = None,
        sql_type: SqlType | None = None,
        type_name: str | None = None,
        *,
        row_mapper: Callable[[ResultSet, int], Any] | None = None,
        extractor: Callable[[ResultSet], Any] | None = None,
        row_handler: Callable[[ResultSet], None] | None = None,
    ) -> None:
        super().__init__(name, sql_type, type_name)
        given = [c for c in (row_mapper, extractor, row_handler) if c is not None]
        if len(given) > 1:
            raise InvalidConfigurationError(
                f"Parameter '{name}' takes only one of row_mapper, extractor, row_handler"
            )
        self.row_mapper = row_mapper
        self.extractor = extractor
        self.row_handler = row_handler

    @property
    def supports_result_set(self) -> bool:
        return (
            self.row_mapper is not None
            or self.extractor is not None
            or self.row_handler is not None
        )


class SqlOutParameter(ResultSetSupportingParameter):
    is_input = False


class SqlInOutParameter(SqlOutParameter):
    is_input = True


class SqlReturnResultSet(ResultSetSupportingParameter):
    is_results_parameter = True

    def __init__(
        self,
        name: str,
        row_mapper: Callable[[ResultSet, int], Any] | None = None,
        *,
        extractor: Callable[[ResultSet], Any] | None = None,
        row_handler: Callable[[ResultSet], None] | None = None,
    ) -> None:
        if not name:
            raise InvalidConfigurationError("SqlReturnResultSet requires a name")
        super().__init__(
            name, row_mapper=row_mapper, extractor=extractor, row_handler=row_handler
        )


class SqlReturnUpdateCount(SqlParameter):
    is_results_parameter = True

    def __init__(self, name: str) -> None:
        if not name:
            raise InvalidConfigurationError("SqlReturnUpdateCount requires a name")
        super().__init__(name, SqlType.INTEGER)


def validate_parameters(declared: Sequence[SqlParameter]) -> None:
    """Reject anonymous OUT or result parameters before anything is executed."""
    for param in declared:
        if not isinstance(param, SqlParameter):
            raise InvalidConfigurationError(f"Not a declared parameter: {param!r}")
        if (isinstance(param, SqlOutParameter) or param.is_results_parameter) and not param.name:
            raise InvalidConfigurationError(
                f"Anonymous {type(param).__name__} found: output and result "
                "parameters must have a name"
            )


def _lookup(in_params: Mapping[str, Any], name: str | None) -> tuple[bool, Any]:
    if name is None:
        return False, None
    if name in in_params:
        return True, in_params[name]
    lowered = name.lower()
    for key, value in in_params.items():
        if isinstance(key, str) and key.lower() == lowered:
            return True, value
    return False, None


class CallableStatementCreator:
    """
    Creates the CallableStatement for *procedure_name* from the declared
    parameters: OUT parameters are registered, IN values are bound by name.
    """

    def __init__(
        self,
        procedure_name: str,
        declared: Sequence[SqlParameter],
        in_params: Mapping[str, Any] | None = None,
    ) -> None:
        if not procedure_name:
            raise InvalidDataAccessApiUsageError("Procedure name must not be empty")
        validate_parameters(declared)
        self.procedure_name = procedure_name
        self.declared = list(declared)
        self.in_params = dict(in_params or {})
        self.sql = f"CALL {procedure_name}"
        for param in self.declared:
            if param.is_results_parameter or isinstance(param, SqlOutParameter):
                continue
            found, _ = _lookup(self.in_params, param.name)
            if not found:
                raise InvalidDataAccessApiUsageError(
                    f"Required input parameter '{param.name}' is missing"
                )

    def create_statement(self, con: Any) -> Any:
        cs = con.prepare_call(self.procedure_name)
        index = 0
        for param in self.declared:
            if param.is_results_parameter:
                continue
            if isinstance(param, SqlOutParameter):
                cs.register_out_parameter(index, param.sql_type, param.type_name)
            if param.is_input:
                found, value = _lookup(self.in_params, param.name)
                cs.set_parameter(index, value if found else None)
            index += 1
        return cs


class _State(Enum):
    AWAITING_RESULT = "awaiting_result"
    PROCESSING_RESULT_SET = "processing_result_set"
    PROCESSING_UPDATE_COUNT = "processing_update_count"
    DONE = "done"


class StoredProcedureResultProcessor:
    """
    Collects everything a procedure call returned.

    Returned results are walked in driver order: each result set goes to the
    next declared SqlReturnResultSet (or a synthesized ``#result-set-N``),
    each update count to the next SqlReturnUpdateCount (or
    ``#update-count-N``). OUT values follow in declaration order.
    """

    def __init__(self, config: ExecutionConfig) -> None:
        self.config = config

    def new_bag(self) -> ResultBag:
        return ResultBag(case_insensitive=self.config.results_map_case_insensitive)

    def process(self, cs: Any, declared: Sequence[SqlParameter]) -> ResultBag:
        """Execute *cs* and gather returned results plus OUT values."""
        has_result_set = cs.execute()
        update_count = cs.get_update_count()
        result = self.new_bag()
        if has_result_set or update_count != -1:
            result.update(self.extract_returned_results(cs, declared, update_count))
        result.update(self.extract_output_parameters(cs, declared))
        return result

    def extract_returned_results(
        self, cs: Any, declared: Sequence[SqlParameter], update_count: int
    ) -> ResultBag:
        results = self.new_bag()
        if self.config.skip_results_processing:
            return results
        rs_params = [p for p in declared if isinstance(p, SqlReturnResultSet)]
        uc_params = [p for p in declared if isinstance(p, SqlReturnUpdateCount)]
        rs_index = 0
        uc_index = 0
        state = _State.AWAITING_RESULT
        while state is not _State.DONE:
            if state is _State.AWAITING_RESULT:
                if update_count == -1:
                    state = _State.PROCESSING_RESULT_SET
                else:
                    state = _State.PROCESSING_UPDATE_COUNT
                continue

            if state is _State.PROCESSING_RESULT_SET:
                param: SqlParameter | None = None
                if rs_index < len(rs_params):
                    param = rs_params[rs_index]
                elif not self.config.skip_undeclared_results:
                    name = f"{RETURN_RESULT_SET_PREFIX}{rs_index + 1}"
                    param = SqlReturnResultSet(name, self._column_map_mapper())
                    _log.debug("Added default SqlReturnResultSet parameter named '%s'", name)
                if param is not None:
                    results.update(self.process_result_set(cs.get_result_set(), param))
                    rs_index += 1
            else:
                if uc_index < len(uc_params):
                    results[uc_params[uc_index].name] = update_count
                    uc_index += 1
                elif not self.config.skip_undeclared_results:
                    name = f"{RETURN_UPDATE_COUNT_PREFIX}{uc_index + 1}"
                    _log.debug("Added default SqlReturnUpdateCount parameter named '%s'", name)
                    results[name] = update_count
                    uc_index += 1

            more_results = cs.get_more_results()
            update_count = cs.get_update_count()
            if more_results or update_count != -1:
                state = _State.AWAITING_RESULT
            else:
                state = _State.DONE
        return results

    def extract_output_parameters(
        self, cs: Any, parameters: Sequence[SqlParameter]
    ) -> ResultBag:
        results = self.new_bag()
        index = 0
        for param in parameters:
            if param.is_results_parameter:
                continue
            if isinstance(param, SqlOutParameter):
                value = cs.get_object(index)
                if isinstance(value, ResultSet):
                    if param.supports_result_set:
                        results.update(self.process_result_set(value, param))
                    else:
                        undeclared = SqlReturnResultSet(param.name, self._column_map_mapper())
                        _log.debug(
                            "Added default SqlReturnResultSet parameter named '%s'", param.name
                        )
                        results.update(self.process_result_set(value, undeclared))
                else:
                    results[param.name] = value
            index += 1
        return results

    def process_result_set(
        self, rs: ResultSet | None, param: ResultSetSupportingParameter
    ) -> dict[str, Any]:
        if rs is None:
            return {}
        try:
            if param.row_mapper is not None:
                return {param.name: RowMapperResultSetExtractor(param.row_mapper)(rs)}
            if param.row_handler is not None:
                RowCallbackHandlerResultSetExtractor(param.row_handler)(rs)
                return {param.name: ROW_HANDLER_PROCESSED}
            if param.extractor is not None:
                return {param.name: param.extractor(rs)}
            return {}
        finally:
            rs.close()

    def _column_map_mapper(self) -> ColumnMapRowMapper:
        return ColumnMapRowMapper(self.config.results_map_case_insensitive)
