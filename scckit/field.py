"""Field paths and validation errors that point at a place in an object."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union


class ErrorType(enum.Enum):
    """The kind of a validation error."""

    INVALID = "FieldValueInvalid"
    REQUIRED = "FieldValueRequired"
    FORBIDDEN = "FieldValueForbidden"

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]


_DESCRIPTIONS = {
    ErrorType.INVALID: "Invalid value",
    ErrorType.REQUIRED: "Required value",
    ErrorType.FORBIDDEN: "Forbidden",
}

_Segment = Tuple[str, Union[str, int]]


class Path:
    """An immutable path to a field, such as ``spec.containers[0].name``."""

    __slots__ = ("_segments",)

    def __init__(self, *names: str) -> None:
        self._segments: Tuple[_Segment, ...] = tuple(("name", name) for name in names)

    @classmethod
    def _from_segments(cls, segments: Tuple[_Segment, ...]) -> "Path":
        path = cls()
        path._segments = segments
        return path

    def child(self, *args: str) -> "Path":
        """Return a new path with the given field names appended."""
        return self._from_segments(self._segments + tuple(("name", name) for name in args))

    def index(self, i: int) -> "Path":
        """Return a new path pointing at element ``i`` of this field."""
        return self._from_segments(self._segments + (("index", i),))

    def key(self, k: str) -> "Path":
        """Return a new path pointing at key ``k`` of this field."""
        return self._from_segments(self._segments + (("key", k),))

    def __bool__(self) -> bool:
        return bool(self._segments)

    def __str__(self) -> str:
        parts = []
        for kind, value in self._segments:
            if kind == "name":
                if parts:
                    parts.append(".")
                parts.append(str(value))
            else:
                parts.append(f"[{value}]")
        return "".join(parts)

    def __repr__(self) -> str:
        return f"Path({str(self)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Path):
            return NotImplemented
        return self._segments == other._segments

    def __hash__(self) -> int:
        return hash(self._segments)


def _format_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, enum.Enum):
        value = value.value
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


@dataclass(frozen=True)
class FieldError:
    """A single validation problem found at a field path."""

    type: ErrorType
    field: str
    bad_value: Any = None
    detail: str = ""

    @property
    def body(self) -> str:
        if self.type is ErrorType.INVALID:
            text = f"{self.type.description}: {_format_value(self.bad_value)}"
        else:
            text = self.type.description
        if self.detail:
            text += f": {self.detail}"
        return text

    def __str__(self) -> str:
        if not self.field:
            return self.body
        return f"{self.field}: {self.body}"


def _field_name(path: Optional[Path]) -> str:
    return str(path) if path is not None else ""


def invalid(path: Optional[Path], value: Any, detail: str) -> FieldError:
    """An error for a value that is not acceptable."""
    return FieldError(ErrorType.INVALID, _field_name(path), value, detail)


def required(path: Optional[Path], detail: str) -> FieldError:
    """An error for a value that is missing."""
    return FieldError(ErrorType.REQUIRED, _field_name(path), None, detail)


def forbidden(path: Optional[Path], detail: str) -> FieldError:
    """An error for a value that may not be set."""
    return FieldError(ErrorType.FORBIDDEN, _field_name(path), None, detail)