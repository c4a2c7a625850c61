"""Driver capability surface and the SQLite adapter behind it.

The query layer never talks to a DB-API module directly. It goes through the
two protocols below, which describe the narrow set of operations it needs:
prepare a statement, execute it with positional parameters, fetch rows as
tuples, read column metadata, read error state, and drive a transaction.

:class:`SQLiteDriver` implements them on top of the standard library
``sqlite3`` module. The connection is opened in autocommit mode
(``isolation_level=None``) so ``in_transaction`` is only true between an
explicit ``BEGIN`` and the matching commit or rollback.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Protocol

from db_manager.db.constants import (
    SQLSTATE_GENERAL_ERROR,
    SQLSTATE_INTEGRITY_VIOLATION,
    SQLSTATE_OK,
)
from db_manager.db.errors import DatabaseOperationContext, ExecutionError
from db_manager.db.types import ColumnMeta, ErrorInfo

NO_ERROR = ErrorInfo(sqlstate=SQLSTATE_OK, code=None, message=None)


class StatementHandle(Protocol):
    """Driver-side prepared statement holding cursor state."""

    statement: str

    @property
    def prepared(self) -> bool:
        """False once the driver rejected the statement while compiling it."""
        ...

    @property
    def row_count(self) -> int: ...

    def execute(self, params: Sequence[Any]) -> bool: ...

    def fetch_one(self) -> tuple[Any, ...] | None:
        """Next row, or None when exhausted.

        Raises:
            ExecutionError: If the driver fails while stepping to the row.
                ``error_info()`` describes the failure afterwards.
        """
        ...

    def fetch_all(self) -> list[tuple[Any, ...]]:
        """Remaining rows. Raises like :meth:`fetch_one`."""
        ...

    def column_count(self) -> int: ...

    def column_meta(self, index: int) -> ColumnMeta: ...

    def error_info(self) -> ErrorInfo: ...

    def close(self) -> None: ...


class DatabaseDriver(Protocol):
    """Connection-level operations the query layer relies on."""

    @property
    def in_transaction(self) -> bool: ...

    def prepare(self, statement: str) -> StatementHandle | None: ...

    def error_info(self) -> ErrorInfo: ...

    def begin(self) -> bool: ...

    def commit(self) -> bool: ...

    def rollback(self) -> bool: ...

    def close(self) -> None: ...


# =============================================================================
# SQLITE ADAPTER
# =============================================================================


def error_info_from_exception(exc: sqlite3.Error) -> ErrorInfo:
    """Map a sqlite3 exception to ``(sqlstate, code, message)``.

    The code is the SQLite primary result code. Exceptions raised by the
    Python module itself (bad bindings, unsupported types) carry no code and
    are reported as SQLITE_MISUSE.
    """
    code = getattr(exc, "sqlite_errorcode", None)
    if code is None:
        if isinstance(exc, (sqlite3.ProgrammingError, sqlite3.InterfaceError)):
            code = sqlite3.SQLITE_MISUSE
        else:
            code = sqlite3.SQLITE_ERROR
    sqlstate = (
        SQLSTATE_INTEGRITY_VIOLATION
        if isinstance(exc, sqlite3.IntegrityError)
        else SQLSTATE_GENERAL_ERROR
    )
    return ErrorInfo(sqlstate=sqlstate, code=code & 0xFF, message=str(exc))


def _is_compile_error(exc: sqlite3.Error) -> bool:
    """True when SQLite refused the statement before running it."""
    if isinstance(exc, sqlite3.OperationalError):
        return getattr(exc, "sqlite_errorcode", None) == sqlite3.SQLITE_ERROR
    if isinstance(exc, sqlite3.ProgrammingError):
        return "one statement at a time" in str(exc)
    return False


def configure_connection(
    connection: sqlite3.Connection, *, busy_timeout_ms: int = 5000
) -> sqlite3.Connection:
    """Apply connection-level SQLite pragmas required by the manager.

    Notes:
        - ``foreign_keys=ON`` is required because SQLite does not enforce
          foreign-key constraints by default.
        - ``busy_timeout`` reduces transient lock failures during short-lived
          concurrent writes in tests and local multi-process development.
    """
    connection.execute("PRAGMA foreign_keys = ON")
    connection.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
    return connection


class SQLiteStatement:
    """Statement handle over one ``sqlite3.Cursor``."""

    def __init__(self, driver: SQLiteDriver, cursor: sqlite3.Cursor, statement: str) -> None:
        self.statement = statement
        self._driver = driver
        self._cursor = cursor
        self._error = NO_ERROR
        self._prepared = True
        self._closed = False

    @property
    def prepared(self) -> bool:
        return self._prepared

    @property
    def row_count(self) -> int:
        # sqlite3 reports -1 for statements that do not modify rows.
        return max(self._cursor.rowcount, 0)

    def execute(self, params: Sequence[Any]) -> bool:
        try:
            self._cursor.execute(self.statement, tuple(params))
        except sqlite3.Error as exc:
            if self._driver.closed:
                raise
            self._error = error_info_from_exception(exc)
            if _is_compile_error(exc):
                self._prepared = False
                self._driver.record_error(self._error)
            return False
        self._error = NO_ERROR
        return True

    def fetch_one(self) -> tuple[Any, ...] | None:
        try:
            return self._cursor.fetchone()
        except sqlite3.Error as exc:
            if self._driver.closed:
                raise
            raise self._fetch_failed(exc) from exc

    def fetch_all(self) -> list[tuple[Any, ...]]:
        try:
            return self._cursor.fetchall()
        except sqlite3.Error as exc:
            if self._driver.closed:
                raise
            raise self._fetch_failed(exc) from exc

    def _fetch_failed(self, exc: sqlite3.Error) -> ExecutionError:
        # execute() only steps the first row; later rows can still fail.
        self._error = error_info_from_exception(exc)
        return ExecutionError(
            context=DatabaseOperationContext(
                operation="statement.fetch", details=self._error.message
            ),
            cause=exc,
        )

    def column_count(self) -> int:
        return len(self._cursor.description or ())

    def column_meta(self, index: int) -> ColumnMeta:
        description = self._cursor.description or ()
        return ColumnMeta(name=description[index][0])

    def error_info(self) -> ErrorInfo:
        return self._error

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._cursor.close()


class SQLiteDriver:
    """:class:`DatabaseDriver` over a ``sqlite3.Connection``.

    Ordinary failures (bad SQL, constraint violations, transaction misuse)
    are recorded in :meth:`error_info` and reported as ``None``/``False``.
    Calls on a closed connection raise ``sqlite3.ProgrammingError``.
    """

    def __init__(self, connection: sqlite3.Connection) -> None:
        connection.isolation_level = None
        self._connection = connection
        self._error = NO_ERROR
        self._closed = False

    @classmethod
    def open(cls, path: Path | str, *, busy_timeout_ms: int = 5000) -> SQLiteDriver:
        """Open (creating if needed) the SQLite database at ``path``."""
        connection = sqlite3.connect(str(path), isolation_level=None)
        return cls(configure_connection(connection, busy_timeout_ms=busy_timeout_ms))

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connection

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def in_transaction(self) -> bool:
        return not self._closed and self._connection.in_transaction

    def record_error(self, info: ErrorInfo) -> None:
        self._error = info

    def error_info(self) -> ErrorInfo:
        return self._error

    def prepare(self, statement: str) -> SQLiteStatement | None:
        cursor = self._connection.cursor()
        self._error = NO_ERROR
        # The newline keeps a trailing "--" comment from swallowing the ";".
        if not statement.strip() or not sqlite3.complete_statement(statement + "\n;"):
            cursor.close()
            self._error = ErrorInfo(
                sqlstate=SQLSTATE_GENERAL_ERROR,
                code=sqlite3.SQLITE_ERROR,
                message="incomplete input",
            )
            return None
        return SQLiteStatement(self, cursor, statement)

    def _run_transaction_command(self, command: str) -> bool:
        try:
            self._connection.execute(command)
        except sqlite3.Error as exc:
            if self._closed:
                raise
            self._error = error_info_from_exception(exc)
            return False
        self._error = NO_ERROR
        return True

    def begin(self) -> bool:
        return self._run_transaction_command("BEGIN")

    def commit(self) -> bool:
        return self._run_transaction_command("COMMIT")

    def rollback(self) -> bool:
        return self._run_transaction_command("ROLLBACK")

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._connection.close()
