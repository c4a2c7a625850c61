"""DB package: query helpers with error-table logging over one connection.

Public surface
--------------
- :class:`DatabaseManager`: connection wrapper with the query helpers.
- :class:`ReturnShape`: row shapes (object, assoc, num).
- :class:`QueryFailure`: failure sentinel returned by the helpers.
- :func:`is_failure`: canonical check for :class:`QueryFailure`.
- :class:`SQLiteDriver`: driver adapter over ``sqlite3``.
- :func:`create_error_table` and :func:`fetch_logged_errors`: error table helpers.
"""

from db_manager.db.connection import DatabaseDriver, SQLiteDriver, StatementHandle
from db_manager.db.errors import (
    ConfigurationError,
    DatabaseError,
    ExecutionError,
    LoggingSinkFailure,
    QueryFailure,
    ShapeContractError,
    StatementPreparationError,
    is_failure,
)
from db_manager.db.manager import DatabaseManager
from db_manager.db.schema import count_logged_errors, create_error_table, fetch_logged_errors
from db_manager.db.types import CallSite, ErrorRecord, ReturnShape

__all__ = [
    "CallSite",
    "ConfigurationError",
    "DatabaseDriver",
    "DatabaseError",
    "DatabaseManager",
    "ErrorRecord",
    "ExecutionError",
    "LoggingSinkFailure",
    "QueryFailure",
    "ReturnShape",
    "SQLiteDriver",
    "ShapeContractError",
    "StatementHandle",
    "StatementPreparationError",
    "count_logged_errors",
    "create_error_table",
    "fetch_logged_errors",
    "is_failure",
]
