"""Render executed statements into the result shapes offered by the manager.

Every method takes ownership of the statement handle it is given and closes
it before returning, whether rows were found, none were, or the requested
shape could not be produced. An :class:`ExecutionError` raised by the handle
while fetching rows propagates to the caller after the handle is closed.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from contextlib import closing
from types import SimpleNamespace
from typing import Any

from db_manager.db.connection import StatementHandle
from db_manager.db.errors import DatabaseOperationContext, ShapeContractError
from db_manager.db.types import ReturnShape, UseDefaultShape, ValidShape, validate_return_shape

logger = logging.getLogger(__name__)


def materialize_row(names: Sequence[str], values: Sequence[Any], shape: ReturnShape) -> Any:
    """Build one row in ``shape`` from column names and positional values."""
    if shape is ReturnShape.NUM:
        return tuple(values)
    mapping = dict(zip(names, values))
    if shape is ReturnShape.ASSOC:
        return mapping
    return SimpleNamespace(**mapping)


def column_names(handle: StatementHandle) -> list[str]:
    return [handle.column_meta(i).name for i in range(handle.column_count())]


class ResultShaper:
    """
    Turn successful statement handles into rows, columns, scalars and maps.

    Args:
        default_shape: Shape used when a caller passes none, or passes a value
            that is not a :class:`ReturnShape`.
    """

    def __init__(self, default_shape: ReturnShape = ReturnShape.OBJECT) -> None:
        self._default_shape = default_shape

    @property
    def default_shape(self) -> ReturnShape:
        return self._default_shape

    def set_default_shape(self, value: Any) -> bool:
        """Change the default shape. Invalid values are refused, keeping the old one."""
        validation = validate_return_shape(value)
        if isinstance(validation, UseDefaultShape):
            logger.warning("Refusing invalid default return shape %r", validation.rejected)
            return False
        self._default_shape = validation.shape
        return True

    def resolve_shape(self, value: Any = None) -> ReturnShape:
        """Validated shape for ``value``; the default when ``value`` is None or invalid."""
        if value is None:
            return self._default_shape
        validation = validate_return_shape(value)
        if isinstance(validation, ValidShape):
            return validation.shape
        logger.warning(
            "Unrecognised return shape %r; using %s",
            validation.rejected,
            self._default_shape.value,
        )
        return self._default_shape

    def all_rows(self, handle: StatementHandle, shape: Any = None) -> list[Any]:
        resolved = self.resolve_shape(shape)
        with closing(handle):
            names = column_names(handle)
            return [materialize_row(names, values, resolved) for values in handle.fetch_all()]

    def first_row(self, handle: StatementHandle, shape: Any = None) -> Any | None:
        """First row in ``shape``, or ``None`` when the result is empty."""
        resolved = self.resolve_shape(shape)
        with closing(handle):
            values = handle.fetch_one()
            if values is None:
                return None
            return materialize_row(column_names(handle), values, resolved)

    def column(self, handle: StatementHandle) -> list[Any]:
        with closing(handle):
            return [values[0] for values in handle.fetch_all()]

    def scalar(self, handle: StatementHandle, default: Any = None) -> Any:
        """First column of the first row, or ``default`` when there is no row."""
        with closing(handle):
            values = handle.fetch_one()
            if values is None:
                return default
            return values[0]

    def pairs(self, handle: StatementHandle) -> dict[Any, Any]:
        """
        Map each row's first column to its second column.

        Later rows overwrite earlier ones that share a key.

        Raises:
            ShapeContractError: If the result has fewer than two columns.
        """
        with closing(handle):
            count = handle.column_count()
            if count < 2:
                raise ShapeContractError(
                    context=DatabaseOperationContext(
                        operation="shape.pairs",
                        details=f"key/value pairs need two columns, got {count}",
                    )
                )
            return {values[0]: values[1] for values in handle.fetch_all()}

    def indexed(self, handle: StatementHandle, key_field: str, shape: Any = None) -> dict[Any, Any]:
        """
        Map the value of ``key_field`` in each row to the full row.

        The key column is matched case-sensitively against the column names
        reported by the driver. Rows sharing a key overwrite earlier ones, so
        callers that need every row must select a unique key.

        Raises:
            ShapeContractError: If no result column is named ``key_field``.
        """
        resolved = self.resolve_shape(shape)
        with closing(handle):
            names = column_names(handle)
            try:
                key_index = names.index(key_field)
            except ValueError:
                raise ShapeContractError(
                    context=DatabaseOperationContext(
                        operation="shape.indexed",
                        details=f"key field {key_field!r} not in result columns {names}",
                    )
                ) from None

            results: dict[Any, Any] = {}
            for values in handle.fetch_all():
                results[values[key_index]] = materialize_row(names, values, resolved)
            return results
