"""
narrowtype/evidence.py
══════════════════════

Evidence collection: which types flow into which symbols.

Three pieces:

  1. **effective_type(value)** — the type a value contributes.  Implicit
     conversions are looked through (an upcast or a boxing conversion hides
     the type that was actually constructed); explicit casts are respected
     as the programmer's intended type.

  2. **is_eligible(declared, contributed)** — suppresses contributions for
     which a narrower declaration would be nonsensical:

         declared        contributed            recorded?
         ──────────────  ─────────────────────  ─────────
         class           class                  yes
         interface       interface              yes
         object (root)   struct / interface     yes   (boxing)
         anything else                          no

  3. **EvidenceSet / EvidenceRecorder** — per-symbol, insertion-ordered,
     duplicate-free type sets.  The field-level set is shared by every
     analysis unit of a compilation and is guarded by a lock so units can
     run concurrently.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, Iterator, Optional, Set, Tuple

from narrowtype.errors import ErrorCodes, UsageError
from narrowtype.events import Conversion, Literal, Symbol, TypedValue, Value
from narrowtype.type_model import NamedType, TypeKind

_log = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — CONTRIBUTION EXTRACTOR
# ═════════════════════════════════════════════════════════════════════════

def effective_type(value: Value) -> Optional[NamedType]:
    """Return the type *value* contributes to its assignment target."""
    if isinstance(value, Conversion):
        if value.is_implicit:
            return value.operand.type
        return value.type
    return value.type


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — ELIGIBILITY FILTER
# ═════════════════════════════════════════════════════════════════════════

_SAME_KIND_ELIGIBLE = frozenset({TypeKind.CLASS, TypeKind.INTERFACE})
_BOXED_KINDS = frozenset({TypeKind.STRUCTURE, TypeKind.INTERFACE})


def is_eligible(
    declared: Optional[NamedType],
    contributed: Optional[NamedType],
) -> bool:
    """Decide whether *contributed* counts as evidence for a *declared* symbol."""
    if declared is None or contributed is None:
        return False
    declared_kind = declared.kind
    contributed_kind = contributed.kind

    # Don't suggest an interface in place of a class, or vice versa.
    if declared_kind == contributed_kind and declared_kind in _SAME_KIND_ELIGIBLE:
        return True
    return (
        declared_kind == TypeKind.CLASS
        and declared.is_root
        and contributed_kind in _BOXED_KINDS
    )


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — EVIDENCE SET
# ═════════════════════════════════════════════════════════════════════════

class EvidenceSet:
    """
    Symbol → ordered set of contributed types.

    Sets only grow.  Once a symbol is sealed (finalized) further additions
    raise ``UsageError``.  All operations take an internal lock, so one
    instance may be shared between threads; concurrent additions to the
    same symbol merge without lost updates.
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._lock = threading.Lock()
        # dict keys preserve insertion order and collapse duplicates
        self._types: Dict[Symbol, Dict[NamedType, None]] = {}
        self._sealed: Set[Symbol] = set()

    def add(self, symbol: Symbol, contributed: NamedType) -> None:
        with self._lock:
            if symbol in self._sealed:
                raise UsageError(
                    f"cannot record evidence for {symbol.display_name!r}: "
                    f"it has already been finalized",
                    code=ErrorCodes.SYMBOL_FINALIZED,
                )
            self._types.setdefault(symbol, {})[contributed] = None

    def seal(self, symbol: Symbol) -> Tuple[NamedType, ...]:
        """Mark *symbol* finalized and return its evidence."""
        with self._lock:
            if symbol in self._sealed:
                raise UsageError(
                    f"{symbol.display_name!r} has already been finalized",
                    code=ErrorCodes.SYMBOL_FINALIZED,
                )
            self._sealed.add(symbol)
            return tuple(self._types.get(symbol, ()))

    def is_sealed(self, symbol: Symbol) -> bool:
        with self._lock:
            return symbol in self._sealed

    def types_for(self, symbol: Symbol) -> Tuple[NamedType, ...]:
        with self._lock:
            return tuple(self._types.get(symbol, ()))

    def symbols(self) -> Tuple[Symbol, ...]:
        """Symbols with at least one recorded contribution, in first-seen order."""
        with self._lock:
            return tuple(self._types)

    def __contains__(self, symbol: object) -> bool:
        with self._lock:
            return symbol in self._types

    def __len__(self) -> int:
        with self._lock:
            return len(self._types)

    def __iter__(self) -> Iterator[Symbol]:
        return iter(self.symbols())

    def __repr__(self) -> str:
        return f"<EvidenceSet {self.name!r} symbols={len(self)}>"


# ═════════════════════════════════════════════════════════════════════════
#  PART 4 — EVIDENCE RECORDER
# ═════════════════════════════════════════════════════════════════════════

class EvidenceRecorder:
    """
    Routes contributions to the local or field evidence set.

    One recorder exists per analysis unit.  Its ``locals`` set is private to
    the unit; its ``fields`` set is the compilation-wide shared one.
    """

    def __init__(
        self,
        fields: EvidenceSet,
        locals: Optional[EvidenceSet] = None,
    ) -> None:
        self.fields = fields
        self.locals = locals if locals is not None else EvidenceSet("locals")

    def record(
        self,
        symbol: Optional[Symbol],
        declared: Optional[NamedType],
        contributed: Optional[NamedType],
    ) -> bool:
        """
        Record *contributed* for *symbol* if it passes the eligibility filter.

        Returns whether anything was recorded.
        """
        if symbol is None:
            return False
        if not is_eligible(declared, contributed):
            self._check_open(symbol)
            _log.debug(
                "Dropped %s contribution to %s (declared %s)",
                contributed, symbol.display_name, declared,
            )
            return False
        self._set_for(symbol).add(symbol, contributed)  # type: ignore[arg-type]
        return True

    # ── Contribution entry points ────────────────────────────────────

    def assign(self, target: Optional[Symbol], value: Value) -> bool:
        if target is None:
            return False
        return self.record(target, target.declared_type, effective_type(value))

    def increment(
        self,
        target: Optional[Symbol],
        static_type: Optional[NamedType],
    ) -> bool:
        return self.assign(target, Literal(static_type, 1))

    def bind_out_ref(
        self,
        target: Optional[Symbol],
        parameter_type: Optional[NamedType],
    ) -> bool:
        # the callee may store any value of the parameter's type
        return self.assign(target, TypedValue(parameter_type))

    def initialize(self, symbols: Iterable[Symbol], value: Value) -> int:
        contributed = effective_type(value)
        return sum(
            1 for symbol in symbols
            if self.record(symbol, symbol.declared_type, contributed)
        )

    # ── Internals ────────────────────────────────────────────────────

    def _set_for(self, symbol: Symbol) -> EvidenceSet:
        return self.fields if symbol.is_field else self.locals

    def _check_open(self, symbol: Symbol) -> None:
        if self._set_for(symbol).is_sealed(symbol):
            raise UsageError(
                f"cannot record evidence for {symbol.display_name!r}: "
                f"it has already been finalized",
                code=ErrorCodes.SYMBOL_FINALIZED,
            )


__all__ = [
    "effective_type",
    "is_eligible",
    "EvidenceSet",
    "EvidenceRecorder",
]
