"""Structured error objects for the atomica verifier.

Every diagnostic is machine-readable — no raw strings. Declaration and type
errors are collected by the semantic analyser, verification errors are
produced by back-translating backend failures, and internal errors signal a
defect in the translator itself.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ErrorKind(Enum):
    DECLARATION_ERROR = "declaration_error"
    TYPE_ERROR = "type_error"
    VERIFICATION_ERROR = "verification_error"
    INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True)
class SourceLocation:
    line: int
    column: int
    file: str = "<stdin>"

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"


@dataclass
class AtomicaError:
    kind: ErrorKind
    message: str
    location: Optional[SourceLocation] = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "kind": self.kind.value,
            "message": self.message,
        }
        if self.location:
            d["location"] = {
                "file": self.location.file,
                "line": self.location.line,
                "column": self.location.column,
            }
        if self.details:
            d["details"] = self.details
        return d

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def __str__(self) -> str:
        loc = f" at {self.location}" if self.location else ""
        return f"[{self.kind.value}]{loc}: {self.message}"


def declaration_error(
    name: str,
    message: str,
    location: Optional[SourceLocation] = None,
) -> AtomicaError:
    return AtomicaError(
        kind=ErrorKind.DECLARATION_ERROR,
        message=message,
        location=location,
        details={"name": name},
    )


def type_error(
    message: str,
    location: Optional[SourceLocation] = None,
    expected_type: Optional[str] = None,
    actual_type: Optional[str] = None,
) -> AtomicaError:
    details: dict[str, Any] = {}
    if expected_type is not None:
        details["expected_type"] = expected_type
    if actual_type is not None:
        details["actual_type"] = actual_type
    return AtomicaError(
        kind=ErrorKind.TYPE_ERROR,
        message=message,
        location=location,
        details=details,
    )


class CompileError(Exception):
    """Exception wrapping one or more AtomicaErrors."""

    def __init__(self, errors: list[AtomicaError] | AtomicaError):
        if isinstance(errors, AtomicaError):
            errors = [errors]
        self.errors = errors
        super().__init__(self._format())

    def _format(self) -> str:
        return "\n".join(str(e) for e in self.errors)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps([e.to_dict() for e in self.errors], indent=indent)


class InternalError(Exception):
    """A broken translator invariant. Never user-facing; aborts the run."""

    def __init__(self, message: str, location: Optional[SourceLocation] = None):
        self.error = AtomicaError(
            kind=ErrorKind.INTERNAL_ERROR,
            message=message,
            location=location,
        )
        super().__init__(str(self.error))
