"""Error table DDL and read-back helpers.

The error table layout is fixed; records are inserted positionally in the
column order of :data:`~db_manager.db.constants.ERROR_TABLE_COLUMNS`.
"""

from __future__ import annotations

from typing import Any

from db_manager.db.errors import QueryFailure, is_failure
from db_manager.db.manager import DatabaseManager
from db_manager.db.types import CallSite, ReturnShape

_ERROR_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS {table} (
    query TEXT NOT NULL,          -- Statement text that failed
    error_code INTEGER,           -- Driver error code
    error_message TEXT,           -- Driver error message
    file TEXT,                    -- Calling source file
    line INTEGER,                 -- Calling line
    function TEXT,                -- Calling function
    class TEXT                    -- Enclosing class of the caller ('' for module level)
)
"""


def error_table_ddl(table: str) -> str:
    return _ERROR_TABLE_DDL.format(table=table)


def create_error_table(db: DatabaseManager, *, call_site: CallSite | None = None) -> bool:
    """Create the manager's error table if it does not exist yet."""
    result = db.execute(
        error_table_ddl(db.errors_table), call_site=call_site or CallSite.caller()
    )
    return not is_failure(result)


def fetch_logged_errors(
    db: DatabaseManager, *, limit: int | None = None, call_site: CallSite | None = None
) -> list[dict[str, Any]] | QueryFailure:
    """Logged error rows as dicts, oldest first.

    A failing read is attributed to ``call_site``, which defaults to the
    function calling this one.
    """
    statement = f"SELECT * FROM {db.errors_table} ORDER BY rowid"
    params: tuple[Any, ...] = ()
    if limit is not None:
        statement += " LIMIT ?"
        params = (limit,)
    return db.query_all(
        statement, params, shape=ReturnShape.ASSOC, call_site=call_site or CallSite.caller()
    )


def count_logged_errors(
    db: DatabaseManager, *, call_site: CallSite | None = None
) -> int | QueryFailure:
    return db.query_value(
        f"SELECT COUNT(*) FROM {db.errors_table}",
        default=0,
        call_site=call_site or CallSite.caller(),
    )
