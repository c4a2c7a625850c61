"""Shared DB-layer dataclasses and enums."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from enum import Enum
from types import FrameType
from typing import Any


class ReturnShape(Enum):
    """In-memory representation of a fetched row."""

    OBJECT = "object"  # attribute access (types.SimpleNamespace)
    ASSOC = "assoc"  # dict keyed by column name
    NUM = "num"  # tuple by column position


class CaptureState(Enum):
    """Error logger state. Non-idle only while a capture is running."""

    IDLE = "idle"
    UNBUFFERED = "unbuffered"
    BUFFERED = "buffered"


@dataclass(frozen=True, slots=True)
class ValidShape:
    """Validation outcome: the value names a supported shape."""

    shape: ReturnShape


@dataclass(frozen=True, slots=True)
class UseDefaultShape:
    """Validation outcome: the value was rejected; the caller uses its default."""

    rejected: Any


ShapeValidation = ValidShape | UseDefaultShape


def validate_return_shape(value: Any) -> ShapeValidation:
    """
    Validate a requested return shape.

    Accepts :class:`ReturnShape` members and their string values
    (case-insensitive). Anything else, including ``None``, is rejected and
    never coerced to some other shape.
    """
    if isinstance(value, ReturnShape):
        return ValidShape(value)
    if isinstance(value, str):
        try:
            return ValidShape(ReturnShape(value.lower()))
        except ValueError:
            pass
    return UseDefaultShape(value)


@dataclass(frozen=True, slots=True)
class ErrorInfo:
    """Driver error state: ``(sqlstate, code, message)``."""

    sqlstate: str
    code: int | None
    message: str | None


@dataclass(frozen=True, slots=True)
class ColumnMeta:
    """Metadata reported by the driver for one result column."""

    name: str
    declared_type: str | None = None


@dataclass(frozen=True, slots=True)
class CallSite:
    """
    Where a failing query was issued from.

    Attributes:
        file: Source file of the calling code.
        line: Line number of the call.
        function: Name of the calling function.
        component: Enclosing class of the calling function, or "" for
            module-level functions.
    """

    file: str
    line: int
    function: str
    component: str

    @classmethod
    def from_frame(cls, frame: FrameType) -> CallSite:
        code = frame.f_code
        qualname = getattr(code, "co_qualname", code.co_name)
        component = qualname.rpartition(".")[0].replace(".<locals>", "")
        return cls(
            file=code.co_filename,
            line=frame.f_lineno,
            function=code.co_name,
            component=component,
        )

    @classmethod
    def caller(cls, depth: int = 1) -> CallSite | None:
        """
        Describe the frame ``depth`` levels above the function calling this.

        ``depth=1`` is the caller of the function that calls ``caller()``.
        Returns ``None`` when the stack is not that deep.
        """
        try:
            frame = sys._getframe(depth + 1)
        except ValueError:
            return None
        return cls.from_frame(frame)


@dataclass(frozen=True, slots=True)
class ErrorRecord:
    """One captured statement failure, as written to the error table."""

    statement: str
    error_code: int | None
    error_message: str | None
    source_file: str
    source_line: int
    source_function: str
    source_component: str

    @classmethod
    def build(cls, statement: str, info: ErrorInfo, call_site: CallSite) -> ErrorRecord:
        return cls(
            statement=statement,
            error_code=info.code,
            error_message=info.message,
            source_file=call_site.file,
            source_line=call_site.line,
            source_function=call_site.function,
            source_component=call_site.component,
        )

    def as_row(self) -> tuple[Any, ...]:
        """Values in error-table column order."""
        return (
            self.statement,
            self.error_code,
            self.error_message,
            self.source_file,
            self.source_line,
            self.source_function,
            self.source_component,
        )
