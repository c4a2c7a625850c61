"""Best-effort logging of failed statements into a database table.

Overview
--------
:class:`ErrorLogger` turns a failed statement into an :class:`ErrorRecord`
and writes it to the error table. While the connection is inside a
transaction the records are buffered and written only after the transaction
concludes, so a rollback cannot take the diagnostics down with it::

    capture() outside a transaction   -> one INSERT, immediately
    capture() inside a transaction    -> appended to the buffer
    commit() / rollback()             -> driver first, then flush()

Records are written through a *sink* callable taking ``(sql, params)``. The
manager routes the sink through its own statement executor, so a failing
insert comes back into :meth:`ErrorLogger.capture`. The re-entrancy guard
makes that nested capture a no-op: no secondary record, no recursion.

Failure isolation
-----------------
The error table is a diagnostic channel. A sink failure is logged through
Python logging at WARNING and otherwise ignored; it never replaces the
failure being reported and is never raised to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

from db_manager.config import is_valid_table_name
from db_manager.db.connection import DatabaseDriver, StatementHandle
from db_manager.db.constants import DEFAULT_ERRORS_TABLE
from db_manager.db.errors import (
    ConfigurationError,
    DatabaseOperationContext,
    LoggingSinkFailure,
    is_failure,
)
from db_manager.db.types import CallSite, CaptureState, ErrorRecord

logger = logging.getLogger(__name__)

ErrorSink = Callable[[str, Sequence[Any]], Any]


class ErrorLogger:
    """
    Capture, buffer and flush error records for one connection.

    Args:
        driver: Connection the errors come from. Read for error state and
            transaction status only.
        sink: Callable that executes ``(sql, params)``. A ``QueryFailure``
            return value or an exception both count as a failed write.
        enabled: Feature flag. When False, :meth:`capture` returns at once.
        table: Error table name, fixed for the lifetime of the logger.

    Raises:
        ConfigurationError: If ``table`` is not a plain SQL identifier.
    """

    def __init__(
        self,
        driver: DatabaseDriver,
        sink: ErrorSink,
        *,
        enabled: bool = False,
        table: str = DEFAULT_ERRORS_TABLE,
    ) -> None:
        if not is_valid_table_name(table):
            raise ConfigurationError(f"Invalid error table name: {table!r}")
        self._driver = driver
        self._sink = sink
        self._enabled = enabled
        self._table = table
        self._insert_sql = f"INSERT INTO {table} VALUES (?, ?, ?, ?, ?, ?, ?)"
        self._buffer: list[ErrorRecord] = []
        self._logging_in_progress = False
        self._state = CaptureState.IDLE

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def table(self) -> str:
        return self._table

    @property
    def logging_in_progress(self) -> bool:
        return self._logging_in_progress

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def pending(self) -> tuple[ErrorRecord, ...]:
        """Records buffered for the open transaction, in capture order."""
        return tuple(self._buffer)

    def capture(
        self,
        statement: str,
        handle: StatementHandle | None = None,
        call_site: CallSite | None = None,
    ) -> ErrorRecord | None:
        """
        Record a failed statement.

        Error code and message come from ``handle`` when given, else from the
        driver's connection-level error state. Without a ``call_site`` the
        capture is abandoned silently.

        Returns:
            The record that was buffered or written, or ``None`` when nothing
            was captured (disabled, re-entrant call, unknown call site).
        """
        if not self._enabled or self._logging_in_progress:
            return None
        self._logging_in_progress = True
        try:
            info = handle.error_info() if handle is not None else self._driver.error_info()
            if call_site is None:
                return None

            record = ErrorRecord.build(statement, info, call_site)
            if self._driver.in_transaction:
                self._state = CaptureState.BUFFERED
                self._buffer.append(record)
                logger.debug("Buffered error record (%d pending)", len(self._buffer))
            else:
                self._state = CaptureState.UNBUFFERED
                self._write(record)
            return record
        finally:
            self._state = CaptureState.IDLE
            self._logging_in_progress = False

    def flush(self) -> int:
        """
        Write every buffered record, oldest first, then clear the buffer.

        Returns:
            Number of records handed to the sink.
        """
        records, self._buffer = self._buffer, []
        # Failed inserts re-enter capture() through the sink; keep them out.
        self._logging_in_progress = True
        try:
            for record in records:
                self._write(record)
        finally:
            self._logging_in_progress = False
        if records:
            logger.debug("Flushed %d error record(s) to %s", len(records), self._table)
        return len(records)

    def _write(self, record: ErrorRecord) -> None:
        try:
            result = self._sink(self._insert_sql, record.as_row())
        except Exception as exc:
            failure = LoggingSinkFailure(
                context=DatabaseOperationContext(
                    operation="error_log.write", details=f"{type(exc).__name__}: {exc}"
                ),
                cause=exc,
            )
            logger.warning("Could not write error record: %s", failure, exc_info=True)
            return
        if is_failure(result):
            logger.warning(
                "Could not write error record to %s: %s", self._table, result.error
            )
