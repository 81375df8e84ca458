# narrowtype/errors.py
"""
Error types for the narrowtype analysis pipeline.

Error Hierarchy
───────────────
┌───────────────────────────────────────────────────────────────────┐
│  NarrowTypeError (base)                                           │
│  ├── ModelSyntaxError   - program model text failed to parse      │
│  ├── ModelError         - parsed model is inconsistent            │
│  ├── UsageError         - host integration misuse                 │
│  └── InvariantViolation - internal contract broken                │
└───────────────────────────────────────────────────────────────────┘

Error Codes
───────────
Each error carries a code of the form ``NT-XXXX``:
  - 1000-1999: Model syntax errors
  - 2000-2999: Model consistency errors
  - 3000-3999: Usage errors (lifecycle misuse)
  - 9000-9999: Invariant violations

The inference core itself never raises for unresolvable symbols or
types; such contributions are dropped.  Only the model loader and the
lifecycle checks raise.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Optional


@dataclass(frozen=True)
class ErrorCode:
    """A structured error code with a short default message."""
    code: str
    title: str

    def __str__(self) -> str:
        return self.code


class ErrorCodes:
    """Registry of every error code the package can raise."""

    # 1000-1999: model syntax
    MODEL_PARSE_FAILED = ErrorCode("NT-1001", "program model could not be parsed")
    MODEL_INCOMPLETE = ErrorCode("NT-1002", "program model has trailing text")

    # 2000-2999: model consistency
    UNKNOWN_TYPE = ErrorCode("NT-2001", "unknown type name")
    DUPLICATE_TYPE = ErrorCode("NT-2002", "type defined twice")
    DUPLICATE_SYMBOL = ErrorCode("NT-2003", "symbol declared twice")
    UNKNOWN_SYMBOL = ErrorCode("NT-2004", "unknown symbol")
    BAD_BASE_TYPE = ErrorCode("NT-2005", "invalid base type")

    # 3000-3999: usage
    SYMBOL_FINALIZED = ErrorCode("NT-3001", "symbol already finalized")
    UNIT_CLOSED = ErrorCode("NT-3002", "analysis unit already closed")
    COMPILATION_COMPLETE = ErrorCode("NT-3003", "compilation already complete")
    UNEXPECTED_EVENT = ErrorCode("NT-3004", "unexpected operation event")
    SYMBOL_NOT_FINALIZED = ErrorCode("NT-3005", "symbol not finalized yet")

    # 9000-9999: invariants
    HIERARCHY_TOO_DEEP = ErrorCode("NT-9001", "type hierarchy exceeds depth bound")


@dataclass(frozen=True)
class SourceSpan:
    """Position inside a program model file."""
    file: str = ""
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        if self.column:
            return f"{self.file or '<model>'}:{self.line}:{self.column}"
        return f"{self.file or '<model>'}:{self.line}"


class NarrowTypeError(Exception):
    """Base class for all narrowtype errors."""

    default_code: ClassVar[ErrorCode] = ErrorCode("NT-0000", "narrowtype error")

    def __init__(
        self,
        message: str,
        *,
        code: Optional[ErrorCode] = None,
        span: Optional[SourceSpan] = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.span = span
        super().__init__(self.format())

    def format(self) -> str:
        text = f"[{self.code}] {self.message}"
        if self.span is not None:
            text = f"{self.span}: {text}"
        return text


class ModelSyntaxError(NarrowTypeError):
    """The textual program model violates the grammar."""
    default_code = ErrorCodes.MODEL_PARSE_FAILED


class ModelError(NarrowTypeError):
    """The program model parsed but refers to unknown or duplicate names."""
    default_code = ErrorCodes.UNKNOWN_TYPE


class UsageError(NarrowTypeError):
    """
    Programmer error in the host integration.

    Raised when evidence is recorded for a symbol that has already been
    finalized, when a symbol is finalized twice, or when an event of an
    unknown kind is delivered.
    """
    default_code = ErrorCodes.SYMBOL_FINALIZED


class InvariantViolation(NarrowTypeError):
    """An internal contract was broken (e.g. a cyclic type hierarchy)."""
    default_code = ErrorCodes.HIERARCHY_TOO_DEEP


__all__ = [
    "ErrorCode",
    "ErrorCodes",
    "SourceSpan",
    "NarrowTypeError",
    "ModelSyntaxError",
    "ModelError",
    "UsageError",
    "InvariantViolation",
]
