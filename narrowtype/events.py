"""
narrowtype/events.py
════════════════════

Symbols, value expressions and the operation events delivered by the
event source.

Events form a closed set; the analysis dispatches on them exhaustively
and rejects anything else with a ``UsageError``:

    Event ::= Assignment(target, value)           x = v, x += v
            | IncrementDecrement(target, type)    x++, --x
            | OutRefBinding(target, param_type)   f(out x), f(ref x)
            | Invocation(arguments)               f(a, ref b, out c)
            | Initializer(symbols, value)         T a = v, b = v
            | FieldInitializer(fields, value)     T F = v  (at type level)

Values are a tagged variant as well:

    Value ::= TypedValue(type)                    any expression
            | Literal(type, value)                numeric literal
            | Conversion(kind, operand, type)     implicit or explicit cast
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Iterator, List, Optional, Tuple, Union

from narrowtype.type_model import NamedType, TypeCatalog


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — SYMBOLS
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SourceLocation:
    """A specific point in source code."""
    file: str = ""
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        if self.column:
            return f"{self.file}:{self.line}:{self.column}"
        return f"{self.file}:{self.line}"


class SymbolKind(Enum):
    LOCAL = auto()     # scoped to one analysis unit
    FIELD = auto()     # scoped to the whole compilation


@dataclass(eq=False)
class Symbol:
    """
    A storage location with an immutable declared type.

    ``declared_type`` is ``None`` when the catalog could not resolve the
    declaration; contributions to such symbols are dropped.  Symbols hash
    and compare by identity.
    """
    name: str
    kind: SymbolKind
    declared_type: Optional[NamedType]
    location: SourceLocation = field(default_factory=SourceLocation)
    container: str = ""

    @property
    def is_local(self) -> bool:
        return self.kind == SymbolKind.LOCAL

    @property
    def is_field(self) -> bool:
        return self.kind == SymbolKind.FIELD

    @property
    def display_name(self) -> str:
        if self.is_field and self.container:
            return f"{self.container}.{self.name}"
        return self.name

    def __str__(self) -> str:
        return self.display_name

    def __repr__(self) -> str:
        declared = self.declared_type.name if self.declared_type else "?"
        return f"<{self.kind.name.lower()} {self.display_name}: {declared}>"


def local(
    name: str,
    declared_type: Optional[NamedType],
    location: Optional[SourceLocation] = None,
    container: str = "",
) -> Symbol:
    return Symbol(name, SymbolKind.LOCAL, declared_type,
                  location or SourceLocation(), container)


def field_symbol(
    name: str,
    declared_type: Optional[NamedType],
    location: Optional[SourceLocation] = None,
    container: str = "",
) -> Symbol:
    return Symbol(name, SymbolKind.FIELD, declared_type,
                  location or SourceLocation(), container)


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — VALUE EXPRESSIONS
# ═════════════════════════════════════════════════════════════════════════

class ConversionKind(Enum):
    IMPLICIT = auto()   # inserted by the compiler (upcast, boxing)
    EXPLICIT = auto()   # written in the source as a cast


@dataclass(frozen=True)
class TypedValue:
    """Any expression, known only by its static type."""
    type: Optional[NamedType]


@dataclass(frozen=True)
class Literal:
    """A constant; increments are modelled as ``x = x + 1``."""
    type: Optional[NamedType]
    value: Any = 1


@dataclass(frozen=True)
class Conversion:
    """A conversion of *operand* to *type*."""
    kind: ConversionKind
    operand: Value
    type: Optional[NamedType]

    @property
    def is_implicit(self) -> bool:
        return self.kind == ConversionKind.IMPLICIT

    @classmethod
    def implicit(cls, operand: Value, to: Optional[NamedType]) -> Conversion:
        return cls(ConversionKind.IMPLICIT, operand, to)

    @classmethod
    def explicit(cls, operand: Value, to: Optional[NamedType]) -> Conversion:
        return cls(ConversionKind.EXPLICIT, operand, to)


Value = Union[TypedValue, Literal, Conversion]


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — OPERATION EVENTS
# ═════════════════════════════════════════════════════════════════════════

class RefKind(Enum):
    NONE = auto()
    REF = auto()
    OUT = auto()
    IN = auto()


@dataclass(frozen=True)
class Assignment:
    """Simple or compound assignment; ``target`` is ``None`` for non-symbols."""
    target: Optional[Symbol]
    value: Value
    compound: bool = False


@dataclass(frozen=True)
class IncrementDecrement:
    target: Optional[Symbol]
    type: Optional[NamedType]
    decrement: bool = False


@dataclass(frozen=True)
class OutRefBinding:
    """A symbol passed to an ``out`` or ``ref`` parameter of *parameter_type*."""
    target: Optional[Symbol]
    parameter_type: Optional[NamedType]


@dataclass(frozen=True)
class Argument:
    target: Optional[Symbol]
    parameter_type: Optional[NamedType]
    ref_kind: RefKind = RefKind.NONE


@dataclass(frozen=True)
class Invocation:
    """A call; ``arguments`` are in evaluation order."""
    arguments: Tuple[Argument, ...] = ()

    def out_ref_bindings(self) -> Iterator[OutRefBinding]:
        for arg in self.arguments:
            if arg.ref_kind in (RefKind.OUT, RefKind.REF):
                yield OutRefBinding(arg.target, arg.parameter_type)


@dataclass(frozen=True)
class Initializer:
    """A local declaration with an initializer, possibly for several locals."""
    symbols: Tuple[Symbol, ...]
    value: Value


@dataclass(frozen=True)
class FieldInitializer:
    fields: Tuple[Symbol, ...]
    value: Value


Event = Union[
    Assignment,
    IncrementDecrement,
    OutRefBinding,
    Invocation,
    Initializer,
    FieldInitializer,
]

EVENT_TYPES = (
    Assignment,
    IncrementDecrement,
    OutRefBinding,
    Invocation,
    Initializer,
    FieldInitializer,
)


# ═════════════════════════════════════════════════════════════════════════
#  PART 4 — UNITS AND COMPILATIONS
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class AnalysisUnit:
    """
    One operation block, normally a method body.

    Non-method units (type-level initializer blocks) only contribute
    ``FieldInitializer`` events.
    """
    name: str
    events: List[Event] = field(default_factory=list)
    locals: List[Symbol] = field(default_factory=list)
    is_method: bool = True

    def __repr__(self) -> str:
        return f"<AnalysisUnit {self.name!r} events={len(self.events)}>"


@dataclass
class Compilation:
    """Everything the event source delivers for one compilation."""
    catalog: TypeCatalog
    units: List[AnalysisUnit] = field(default_factory=list)
    fields: List[Symbol] = field(default_factory=list)
    name: str = ""

    def field_named(self, display_name: str) -> Optional[Symbol]:
        for f in self.fields:
            if f.display_name == display_name:
                return f
        return None


__all__ = [
    "SourceLocation",
    "SymbolKind",
    "Symbol",
    "local",
    "field_symbol",
    "ConversionKind",
    "TypedValue",
    "Literal",
    "Conversion",
    "Value",
    "RefKind",
    "Assignment",
    "IncrementDecrement",
    "OutRefBinding",
    "Argument",
    "Invocation",
    "Initializer",
    "FieldInitializer",
    "Event",
    "EVENT_TYPES",
    "AnalysisUnit",
    "Compilation",
]
