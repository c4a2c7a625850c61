"""Typed database exceptions and the query failure sentinel.

This module defines a small, explicit exception hierarchy for the failure
modes of the query layer, plus :class:`QueryFailure`, the value every public
helper returns instead of raising for ordinary query failures.

Design intent:
    - Domain outcomes like "no rows" are represented by ``None``/``[]`` or a
      caller-supplied default, never by a failure.
    - Statement and shape failures are returned as ``QueryFailure`` so callers
      branch on a value. The typed error travels inside it and can be
      re-raised with :meth:`QueryFailure.raise_error`.
    - Only driver faults that are not ordinary query failures propagate.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NoReturn, TypeGuard


@dataclass(slots=True)
class DatabaseOperationContext:
    """Structured operation metadata carried by DB-layer exceptions.

    Attributes:
        operation: Stable operation identifier (for example
            ``"manager.query_pairs"``).
        details: Optional human-readable context for logs and debugging.
    """

    operation: str
    details: str | None = None


class DatabaseError(RuntimeError):
    """Base exception for DB-layer failures."""


class DatabaseOperationError(DatabaseError):
    """Base exception for failures tied to one operation.

    Args:
        context: Structured operation metadata.
        cause: Optional underlying exception.
    """

    def __init__(
        self,
        *,
        context: DatabaseOperationContext,
        cause: Exception | None = None,
    ) -> None:
        message = context.operation
        if context.details:
            message = f"{message}: {context.details}"
        super().__init__(message)
        self.context = context
        self.cause = cause


class StatementPreparationError(DatabaseOperationError):
    """Malformed statement or driver rejection at prepare time."""


class ExecutionError(DatabaseOperationError):
    """Binding or runtime failure while executing a prepared statement."""


class ShapeContractError(DatabaseOperationError):
    """Result cannot be rendered in the requested shape.

    Raised for a key/value request on fewer than two columns, or an indexed
    request whose key field is not among the result columns.
    """


class LoggingSinkFailure(DatabaseOperationError):
    """Writing an error record to the error table failed. Never surfaced."""


class ConfigurationError(DatabaseError):
    """Invalid manager configuration (table name, default shape)."""


@dataclass(frozen=True, slots=True)
class QueryFailure:
    """Failure sentinel returned by query helpers.

    Instances are falsy. Because an empty result list and a ``0`` scalar are
    falsy too, use :func:`is_failure` rather than truthiness when a helper can
    legitimately return such values.
    """

    error: DatabaseOperationError
    statement: str

    def __bool__(self) -> bool:
        return False

    def raise_error(self) -> NoReturn:
        """Raise the carried error."""
        raise self.error


def is_failure(value: Any) -> TypeGuard[QueryFailure]:
    """Return True when ``value`` is a :class:`QueryFailure`."""
    return isinstance(value, QueryFailure)
