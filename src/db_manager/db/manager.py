"""Connection wrapper exposing the query helpers and transaction control.

:class:`DatabaseManager` owns one driver connection together with the error
logger, statement executor and result shaper that work on it. Every helper
follows the same path::

    executor.run(statement, params)      prepare, bind, execute
        failure -> QueryFailure           (error captured by the logger)
        success -> shaper.<shape>(handle) (handle closed on every path)
            fetch fails -> QueryFailure   (error captured by the logger)

Helpers never raise for ordinary query failures; they return a
:class:`~db_manager.db.errors.QueryFailure`, which callers detect with
:func:`~db_manager.db.errors.is_failure`.

Usage::

    from db_manager.db import DatabaseManager, ReturnShape, is_failure

    with DatabaseManager.connect("data/shop.db", error_logging=True) as db:
        labels = db.query_column("SELECT label FROM products ORDER BY label")
        if is_failure(labels):
            ...
        with db.transaction():
            db.execute("UPDATE products SET stock = ? WHERE id = ?", (50, 3))
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import closing, contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from db_manager.db.connection import DatabaseDriver, SQLiteDriver, StatementHandle
from db_manager.db.constants import DEFAULT_ERRORS_TABLE
from db_manager.db.error_log import ErrorLogger
from db_manager.db.errors import (
    ConfigurationError,
    DatabaseOperationContext,
    ExecutionError,
    QueryFailure,
    ShapeContractError,
    is_failure,
)
from db_manager.db.executor import StatementExecutor
from db_manager.db.shaping import ResultShaper
from db_manager.db.types import CallSite, ReturnShape, UseDefaultShape, validate_return_shape

if TYPE_CHECKING:
    from db_manager.config import ManagerConfig

logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Query helpers, error-table logging and transactions over one connection.

    Args:
        driver: Open driver connection. The manager owns it and closes it.
        error_logging: Write failed statements to the error table.
        errors_table: Error table name. Fixed for the manager's lifetime.
        default_shape: Row shape used when a helper is not given one.

    Raises:
        ConfigurationError: For an invalid table name or default shape.

    Not safe for concurrent use from several threads.
    """

    def __init__(
        self,
        driver: DatabaseDriver,
        *,
        error_logging: bool = False,
        errors_table: str = DEFAULT_ERRORS_TABLE,
        default_shape: ReturnShape | str = ReturnShape.OBJECT,
    ) -> None:
        validation = validate_return_shape(default_shape)
        if isinstance(validation, UseDefaultShape):
            raise ConfigurationError(f"Invalid default return shape: {default_shape!r}")

        self._driver = driver
        self._error_log = ErrorLogger(
            driver, self._write_error_record, enabled=error_logging, table=errors_table
        )
        self._executor = StatementExecutor(driver, self._error_log)
        self._shaper = ResultShaper(validation.shape)

    @classmethod
    def connect(
        cls,
        path: Path | str | None = None,
        *,
        settings: ManagerConfig | None = None,
        error_logging: bool | None = None,
    ) -> DatabaseManager:
        """
        Open a SQLite database and wrap it.

        Args:
            path: Database file (or ``":memory:"``). Defaults to the
                configured ``database.path``.
            settings: Configuration to read defaults from. Defaults to the
                module-level ``config`` singleton.
            error_logging: Overrides ``error_log.enabled`` when given.
        """
        if settings is None:
            from db_manager.config import config as settings

        if path is None:
            path = settings.database.absolute_path
        if error_logging is None:
            error_logging = settings.error_log.enabled

        driver = SQLiteDriver.open(path, busy_timeout_ms=settings.database.busy_timeout_ms)
        try:
            return cls(
                driver,
                error_logging=error_logging,
                errors_table=settings.error_log.table,
                default_shape=settings.query.default_shape,
            )
        except ConfigurationError:
            driver.close()
            raise

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def driver(self) -> DatabaseDriver:
        return self._driver

    @property
    def error_log(self) -> ErrorLogger:
        return self._error_log

    @property
    def errors_table(self) -> str:
        return self._error_log.table

    @property
    def in_transaction(self) -> bool:
        return self._driver.in_transaction

    @property
    def default_shape(self) -> ReturnShape:
        return self._shaper.default_shape

    def set_default_shape(self, value: ReturnShape | str) -> bool:
        """Change the default row shape. Returns False (keeping the old one) if invalid."""
        return self._shaper.set_default_shape(value)

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    def query(
        self, statement: str, params: Any = (), *, call_site: CallSite | None = None
    ) -> StatementHandle | QueryFailure:
        """
        Execute ``statement`` and hand back the live statement handle.

        The caller owns the handle and must close it. Its fetch methods raise
        :class:`ExecutionError` if the driver fails while stepping rows; such
        failures are not written to the error table.
        """
        return self._run(statement, params, call_site or CallSite.caller(), "manager.query")

    def execute(
        self, statement: str, params: Any = (), *, call_site: CallSite | None = None
    ) -> int | QueryFailure:
        """Run a statement and return the number of affected rows."""
        handle = self._run(statement, params, call_site or CallSite.caller(), "manager.execute")
        if is_failure(handle):
            return handle
        with closing(handle):
            return handle.row_count

    def query_all(
        self,
        statement: str,
        params: Any = (),
        *,
        shape: ReturnShape | str | None = None,
        call_site: CallSite | None = None,
    ) -> list[Any] | QueryFailure:
        """All rows in ``shape``; an empty list when nothing matches."""
        call_site = call_site or CallSite.caller()
        handle = self._run(statement, params, call_site, "manager.query_all")
        if is_failure(handle):
            return handle
        try:
            return self._shaper.all_rows(handle, shape)
        except ExecutionError as exc:
            return self._fetch_failure(statement, handle, call_site, "manager.query_all", exc)

    def query_column(
        self, statement: str, params: Any = (), *, call_site: CallSite | None = None
    ) -> list[Any] | QueryFailure:
        """Values of the first column across all rows."""
        call_site = call_site or CallSite.caller()
        handle = self._run(statement, params, call_site, "manager.query_column")
        if is_failure(handle):
            return handle
        try:
            return self._shaper.column(handle)
        except ExecutionError as exc:
            return self._fetch_failure(statement, handle, call_site, "manager.query_column", exc)

    def query_row(
        self,
        statement: str,
        params: Any = (),
        *,
        shape: ReturnShape | str | None = None,
        call_site: CallSite | None = None,
    ) -> Any | None | QueryFailure:
        """First row in ``shape``, or None when nothing matches."""
        call_site = call_site or CallSite.caller()
        handle = self._run(statement, params, call_site, "manager.query_row")
        if is_failure(handle):
            return handle
        try:
            return self._shaper.first_row(handle, shape)
        except ExecutionError as exc:
            return self._fetch_failure(statement, handle, call_site, "manager.query_row", exc)

    def query_value(
        self,
        statement: str,
        params: Any = (),
        *,
        default: Any = None,
        call_site: CallSite | None = None,
    ) -> Any:
        """
        First column of the first row.

        Returns ``default`` when nothing matches. Pass a sentinel as
        ``default`` to tell "no rows" apart from a NULL value.
        """
        call_site = call_site or CallSite.caller()
        handle = self._run(statement, params, call_site, "manager.query_value")
        if is_failure(handle):
            return handle
        try:
            return self._shaper.scalar(handle, default)
        except ExecutionError as exc:
            return self._fetch_failure(statement, handle, call_site, "manager.query_value", exc)

    def query_pairs(
        self, statement: str, params: Any = (), *, call_site: CallSite | None = None
    ) -> dict[Any, Any] | QueryFailure:
        """Map first-column values to second-column values (last duplicate wins)."""
        call_site = call_site or CallSite.caller()
        handle = self._run(statement, params, call_site, "manager.query_pairs")
        if is_failure(handle):
            return handle
        try:
            return self._shaper.pairs(handle)
        except ShapeContractError as exc:
            return self._shape_failure(statement, exc)
        except ExecutionError as exc:
            return self._fetch_failure(statement, handle, call_site, "manager.query_pairs", exc)

    def query_indexed(
        self,
        statement: str,
        key_field: str,
        params: Any = (),
        *,
        shape: ReturnShape | str | None = None,
        call_site: CallSite | None = None,
    ) -> dict[Any, Any] | QueryFailure:
        """Map each row's ``key_field`` value to the row (last duplicate wins)."""
        call_site = call_site or CallSite.caller()
        handle = self._run(statement, params, call_site, "manager.query_indexed")
        if is_failure(handle):
            return handle
        try:
            return self._shaper.indexed(handle, key_field, shape)
        except ShapeContractError as exc:
            return self._shape_failure(statement, exc)
        except ExecutionError as exc:
            return self._fetch_failure(statement, handle, call_site, "manager.query_indexed", exc)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def begin(self) -> bool:
        """Open a transaction. Errors captured from now on are buffered."""
        started = self._driver.begin()
        if not started:
            logger.warning("BEGIN failed: %s", self._driver.error_info().message)
        return started

    def commit(self) -> bool:
        """Commit, then write the errors buffered during the transaction."""
        try:
            committed = self._driver.commit()
        finally:
            self._error_log.flush()
        if not committed:
            logger.warning("COMMIT failed: %s", self._driver.error_info().message)
        return committed

    def rollback(self) -> bool:
        """Roll back, then write the errors buffered during the transaction."""
        try:
            rolled_back = self._driver.rollback()
        finally:
            self._error_log.flush()
        if not rolled_back:
            logger.warning("ROLLBACK failed: %s", self._driver.error_info().message)
        return rolled_back

    @contextmanager
    def transaction(self) -> Iterator[DatabaseManager]:
        """
        Run a block inside a transaction.

        Commits when the block succeeds, rolls back and re-raises when it
        raises. Query helpers inside the block still return QueryFailure
        values rather than raising, so check them to decide whether to raise.

        Raises:
            ExecutionError: If the transaction cannot be opened or committed.
        """
        if not self.begin():
            raise ExecutionError(
                context=DatabaseOperationContext(
                    operation="manager.transaction",
                    details=self._driver.error_info().message,
                )
            )
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        if not self.commit():
            raise ExecutionError(
                context=DatabaseOperationContext(
                    operation="manager.transaction",
                    details=self._driver.error_info().message,
                )
            )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the connection, rolling back (and flushing) an open transaction."""
        if self._driver.in_transaction:
            self.rollback()
        self._driver.close()

    def __enter__(self) -> DatabaseManager:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
        return None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(
        self, statement: str, params: Any, call_site: CallSite | None, operation: str
    ) -> StatementHandle | QueryFailure:
        result = self._executor.run(
            statement, params, call_site=call_site, operation=operation
        )
        # A transaction closed by plain SQL (e.g. "COMMIT") leaves no one to flush.
        if self._error_log.pending and not self._driver.in_transaction:
            self._error_log.flush()
        return result

    def _shape_failure(self, statement: str, exc: ShapeContractError) -> QueryFailure:
        logger.warning("%s", exc)
        return QueryFailure(exc, statement)

    def _fetch_failure(
        self,
        statement: str,
        handle: StatementHandle,
        call_site: CallSite | None,
        operation: str,
        exc: ExecutionError,
    ) -> QueryFailure:
        info = handle.error_info()
        logger.warning("%s failed while fetching [%s]: %s", operation, info.code, info.message)
        self._error_log.capture(statement, handle, call_site)
        return QueryFailure(
            ExecutionError(
                context=DatabaseOperationContext(operation=operation, details=info.message),
                cause=exc,
            ),
            statement,
        )

    def _write_error_record(self, sql: str, params: Any) -> int | QueryFailure:
        handle = self._executor.run(sql, params, operation="error_log.insert")
        if is_failure(handle):
            return handle
        with closing(handle):
            return handle.row_count
