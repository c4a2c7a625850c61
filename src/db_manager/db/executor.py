"""Uniform prepare -> bind -> execute pipeline shared by every query helper."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from db_manager.db.connection import DatabaseDriver, StatementHandle
from db_manager.db.error_log import ErrorLogger
from db_manager.db.errors import (
    DatabaseOperationContext,
    ExecutionError,
    QueryFailure,
    StatementPreparationError,
)
from db_manager.db.types import CallSite

logger = logging.getLogger(__name__)


def normalize_params(params: Any) -> tuple[Any, ...]:
    """
    Turn the caller's bind values into one ordered tuple.

    ``None`` means no parameters, a list or tuple is taken as the full
    parameter list, and any other single value (strings and bytes included)
    is bound as the only parameter.

    Raises:
        TypeError: For mappings. Only positional placeholders are supported.
    """
    if params is None:
        return ()
    if isinstance(params, Mapping):
        raise TypeError("Named parameters are not supported; pass an ordered sequence")
    if isinstance(params, (str, bytes, bytearray)) or not isinstance(params, Sequence):
        return (params,)
    return tuple(params)


class StatementExecutor:
    """
    Prepare, bind and execute statements, reporting failures to the error log.

    On success the caller receives the live statement handle and owns it (it
    must be closed). On failure the handle is already closed and a
    :class:`QueryFailure` is returned.
    """

    def __init__(self, driver: DatabaseDriver, error_log: ErrorLogger) -> None:
        self._driver = driver
        self._error_log = error_log

    def run(
        self,
        statement: str,
        params: Any = (),
        *,
        call_site: CallSite | None = None,
        operation: str = "execute",
    ) -> StatementHandle | QueryFailure:
        args = normalize_params(params)
        logger.debug("%s: %s %r", operation, statement, args)

        handle = self._driver.prepare(statement)
        if handle is None:
            return self._preparation_failed(statement, call_site, operation)

        try:
            executed = handle.execute(args)
        except BaseException:
            handle.close()
            raise

        if executed:
            return handle

        if not handle.prepared:
            handle.close()
            return self._preparation_failed(statement, call_site, operation)

        info = handle.error_info()
        logger.warning("%s failed [%s]: %s", operation, info.code, info.message)
        self._error_log.capture(statement, handle, call_site)
        handle.close()
        return QueryFailure(
            ExecutionError(
                context=DatabaseOperationContext(operation=operation, details=info.message)
            ),
            statement,
        )

    def _preparation_failed(
        self, statement: str, call_site: CallSite | None, operation: str
    ) -> QueryFailure:
        info = self._driver.error_info()
        logger.warning("%s could not be prepared [%s]: %s", operation, info.code, info.message)
        self._error_log.capture(statement, None, call_site)
        return QueryFailure(
            StatementPreparationError(
                context=DatabaseOperationContext(operation=operation, details=info.message)
            ),
            statement,
        )
