"""
SQL execution template over DB-API connections.

Exports: SqlTemplate, ExecutionCore, row mappers / extractors, binders and
stored procedure parameter types.
"""

from dbtemplate.engines.sql.batch import BatchExecutor
from dbtemplate.engines.sql.binders import (
    ArgumentBinder,
    ArgumentTypeBinder,
    SimpleCallableStatementCreator,
    SimplePreparedStatementCreator,
    SqlType,
)
from dbtemplate.engines.sql.connection import ConnectionHandle
from dbtemplate.engines.sql.executor import ExecutionCore
from dbtemplate.engines.sql.extract import (
    ColumnMapRowMapper,
    GeneratedKeyHolder,
    RowCallbackHandlerResultSetExtractor,
    RowMapperResultSetExtractor,
    RowSet,
    SingleColumnRowMapper,
)
from dbtemplate.engines.sql.procedure import (
    CallableStatementCreator,
    SqlInOutParameter,
    SqlOutParameter,
    SqlParameter,
    SqlReturnResultSet,
    SqlReturnUpdateCount,
    StoredProcedureResultProcessor,
)
from dbtemplate.engines.sql.settings import StatementSettingsApplier
from dbtemplate.engines.sql.template import SqlTemplate

__all__ = [
    "SqlTemplate",
    "ExecutionCore",
    "BatchExecutor",
    "ConnectionHandle",
    "StatementSettingsApplier",
    "SqlType",
    "ArgumentBinder",
    "ArgumentTypeBinder",
    "SimplePreparedStatementCreator",
    "SimpleCallableStatementCreator",
    "ColumnMapRowMapper",
    "SingleColumnRowMapper",
    "RowMapperResultSetExtractor",
    "RowCallbackHandlerResultSetExtractor",
    "RowSet",
    "GeneratedKeyHolder",
    "SqlParameter",
    "SqlOutParameter",
    "SqlInOutParameter",
    "SqlReturnResultSet",
    "SqlReturnUpdateCount",
    "CallableStatementCreator",
    "StoredProcedureResultProcessor",
]
