"""
narrowtype/judge.py
═══════════════════

Per-symbol verdicts.

A symbol moves through three states:

    UNOBSERVED ──record──► ACCUMULATING ──finalize──► FINALIZED
         │                                               ▲
         └──────────────────finalize─────────────────────┘

Finalizing computes ``common_type`` over the symbol's evidence and suggests
it when it strictly derives from the declared type.  The verdict is fixed
from then on: ``verdict()`` returns the stored value, while a second
``finalize()`` or any later recording raises ``UsageError``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, Iterable, Optional

from narrowtype.errors import ErrorCodes, UsageError
from narrowtype.events import Symbol
from narrowtype.evidence import EvidenceSet
from narrowtype.hierarchy import DEFAULT_MAX_DEPTH, common_type, derives_from
from narrowtype.type_model import NamedType

_log = logging.getLogger(__name__)


class SymbolState(Enum):
    UNOBSERVED = auto()
    ACCUMULATING = auto()
    FINALIZED = auto()


@dataclass(frozen=True)
class Verdict:
    """Either "no suggestion" (``suggested_type is None``) or "suggest T"."""
    symbol: Symbol
    suggested_type: Optional[NamedType] = None

    @property
    def suggests(self) -> bool:
        return self.suggested_type is not None

    def __str__(self) -> str:
        if self.suggested_type is None:
            return f"{self.symbol.display_name}: no suggestion"
        return f"{self.symbol.display_name}: suggest {self.suggested_type.name}"


class NarrowingJudge:
    """
    Decides, per symbol of one evidence set, whether a narrower declared
    type is justified.
    """

    def __init__(
        self,
        evidence: EvidenceSet,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self.evidence = evidence
        self.max_depth = max_depth
        self._lock = threading.Lock()
        self._verdicts: Dict[Symbol, Verdict] = {}

    def evaluate(
        self,
        symbol: Symbol,
        declared: Optional[NamedType],
        types: Iterable[NamedType],
    ) -> Verdict:
        """Pure verdict computation; does not change any state."""
        if declared is None:
            return Verdict(symbol)
        common = common_type(types, self.max_depth)
        if common is not None and derives_from(common, declared, self.max_depth):
            return Verdict(symbol, common)
        return Verdict(symbol)

    def state(self, symbol: Symbol) -> SymbolState:
        if self.evidence.is_sealed(symbol):
            return SymbolState.FINALIZED
        if symbol in self.evidence:
            return SymbolState.ACCUMULATING
        return SymbolState.UNOBSERVED

    def finalize(self, symbol: Symbol) -> Verdict:
        """Fix the verdict for *symbol*; may be called once per symbol."""
        types = self.evidence.seal(symbol)
        verdict = self.evaluate(symbol, symbol.declared_type, types)
        with self._lock:
            self._verdicts[symbol] = verdict
        if verdict.suggests:
            _log.info("%s", verdict)
        else:
            _log.debug("%s (evidence: %s)", verdict, ", ".join(t.name for t in types) or "none")
        return verdict

    def verdict(self, symbol: Symbol) -> Verdict:
        """Return the fixed verdict of an already finalized symbol."""
        with self._lock:
            verdict = self._verdicts.get(symbol)
        if verdict is None:
            raise UsageError(
                f"{symbol.display_name!r} has not been finalized yet",
                code=ErrorCodes.SYMBOL_NOT_FINALIZED,
            )
        return verdict


__all__ = ["SymbolState", "Verdict", "NarrowingJudge"]
