"""
narrowtype/analysis.py
══════════════════════

Drives the evidence recorder and the narrowing judge over a compilation.

Lifecycle
─────────

    CompilationAnalysis                 (field evidence, shared)
      ├── UnitAnalysis  unit₁           (local evidence, private)
      │     observe(e₁) … observe(eₙ)
      │     close()  ──► local verdicts
      ├── UnitAnalysis  unit₂ …         (may run concurrently)
      └── complete()   ──► field verdicts   (after every unit closed)

Units are independent: each owns its local evidence and only writes to the
shared, lock-guarded field evidence.  ``complete()`` is the compilation-end
barrier; the caller must only invoke it after every unit has been
analysed.  ``analyze_units`` and ``analyze_compilation`` take care of that.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set

from narrowtype.config import AnalysisConfig
from narrowtype.errors import ErrorCodes, UsageError
from narrowtype.events import (
    AnalysisUnit,
    Assignment,
    Compilation,
    EVENT_TYPES,
    Event,
    FieldInitializer,
    IncrementDecrement,
    Invocation,
    OutRefBinding,
    Symbol,
)
from narrowtype.evidence import EvidenceRecorder, EvidenceSet
from narrowtype.judge import NarrowingJudge, Verdict
from narrowtype.type_model import NamedType

_log = logging.getLogger(__name__)

VerdictCallback = Callable[[Symbol, NamedType], None]
ClaimCallback = Callable[[str, Iterable[Symbol]], None]


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — PER-UNIT ANALYSIS
# ═════════════════════════════════════════════════════════════════════════

class UnitAnalysis:
    """
    Evidence collection for one analysis unit (method body).

    Created through :meth:`CompilationAnalysis.begin_unit`; must not be
    shared between threads.
    """

    def __init__(
        self,
        unit: AnalysisUnit,
        fields: EvidenceSet,
        config: AnalysisConfig,
        report: Optional[VerdictCallback] = None,
        claim: Optional[ClaimCallback] = None,
    ) -> None:
        self.unit = unit
        self.config = config
        self.recorder = EvidenceRecorder(fields, EvidenceSet(f"locals:{unit.name}"))
        self.judge = NarrowingJudge(self.recorder.locals, config.max_hierarchy_depth)
        self._report = report
        self._claim = claim
        self._closed = False
        self._observed = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def observe(self, event: Event) -> None:
        """Feed one operation event into the unit's evidence."""
        if self._closed:
            raise UsageError(
                f"unit {self.unit.name!r} is closed; no further events accepted",
                code=ErrorCodes.UNIT_CLOSED,
            )
        self._observed += 1
        recorder = self.recorder

        if not isinstance(event, EVENT_TYPES):
            raise UsageError(
                f"unexpected operation event {event!r}",
                code=ErrorCodes.UNEXPECTED_EVENT,
            )

        if isinstance(event, FieldInitializer):
            recorder.initialize(event.fields, event.value)
            return

        if not self.unit.is_method:
            # only methods track assignments and locals
            _log.debug("Ignoring %s in non-method unit %s",
                       type(event).__name__, self.unit.name)
            return

        if isinstance(event, Assignment):
            recorder.assign(event.target, event.value)
        elif isinstance(event, IncrementDecrement):
            recorder.increment(event.target, event.type)
        elif isinstance(event, OutRefBinding):
            recorder.bind_out_ref(event.target, event.parameter_type)
        elif isinstance(event, Invocation):
            for binding in event.out_ref_bindings():
                recorder.bind_out_ref(binding.target, binding.parameter_type)
        else:
            recorder.initialize(event.symbols, event.value)

    def close(self) -> List[Verdict]:
        """Finalize every local that received evidence and return verdicts."""
        if self._closed:
            raise UsageError(
                f"unit {self.unit.name!r} has already been closed",
                code=ErrorCodes.UNIT_CLOSED,
            )
        self._closed = True
        symbols = self.recorder.locals.symbols()
        if self._claim is not None:
            self._claim(self.unit.name, symbols)
        verdicts = [self.judge.finalize(sym) for sym in symbols]
        if self._report is not None:
            for verdict in verdicts:
                if verdict.suggested_type is not None:
                    self._report(verdict.symbol, verdict.suggested_type)
        _log.debug(
            "Closed unit %s: %d events, %d locals with evidence",
            self.unit.name, self._observed, len(verdicts),
        )
        return verdicts

    def run(self) -> List[Verdict]:
        """Observe every event of the unit, then close it."""
        for event in self.unit.events:
            self.observe(event)
        return self.close()


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — COMPILATION-WIDE ANALYSIS
# ═════════════════════════════════════════════════════════════════════════

class CompilationAnalysis:
    """
    Owns the field evidence shared by every unit of one compilation.

    ``on_verdict(symbol, suggested_type)`` is called once for every finalized
    symbol (local or field) that receives a suggestion.  Calls are
    serialised even when units run on several threads.
    """

    def __init__(
        self,
        config: Optional[AnalysisConfig] = None,
        on_verdict: Optional[VerdictCallback] = None,
    ) -> None:
        self.config = config or AnalysisConfig()
        self.fields = EvidenceSet("fields")
        self.field_judge = NarrowingJudge(self.fields, self.config.max_hierarchy_depth)
        self._on_verdict = on_verdict
        self._report_lock = threading.Lock()
        self._locals_lock = threading.Lock()
        self._finalized_locals: Set[Symbol] = set()
        self._complete = False

    @property
    def is_complete(self) -> bool:
        return self._complete

    def begin_unit(self, unit: AnalysisUnit) -> UnitAnalysis:
        if self._complete:
            raise UsageError(
                f"cannot begin unit {unit.name!r}: the compilation is complete",
                code=ErrorCodes.COMPILATION_COMPLETE,
            )
        return UnitAnalysis(unit, self.fields, self.config, self._report, self._claim_locals)

    def analyze_unit(self, unit: AnalysisUnit) -> List[Verdict]:
        return self.begin_unit(unit).run()

    def analyze_units(self, units: Sequence[AnalysisUnit]) -> List[Verdict]:
        """
        Analyse *units*, concurrently when ``config.max_workers > 1``.

        Local verdicts are returned in unit order regardless of scheduling.
        """
        workers = self.config.max_workers
        if workers <= 1 or len(units) <= 1:
            per_unit = [self.analyze_unit(u) for u in units]
        else:
            with ThreadPoolExecutor(max_workers=workers,
                                    thread_name_prefix="narrowtype") as pool:
                per_unit = list(pool.map(self.analyze_unit, units))
        return [v for verdicts in per_unit for v in verdicts]

    def complete(self) -> List[Verdict]:
        """Compilation-end barrier: finalize every field with evidence."""
        if self._complete:
            raise UsageError(
                "the compilation has already been completed",
                code=ErrorCodes.COMPILATION_COMPLETE,
            )
        self._complete = True
        verdicts = [self.field_judge.finalize(sym) for sym in self.fields.symbols()]
        for verdict in verdicts:
            if verdict.suggested_type is not None:
                self._report(verdict.symbol, verdict.suggested_type)
        return verdicts

    def _claim_locals(self, unit_name: str, symbols: Iterable[Symbol]) -> None:
        """Reserve *symbols* for finalization by one unit; a local is finalized once."""
        symbols = tuple(symbols)
        with self._locals_lock:
            taken = [s for s in symbols if s in self._finalized_locals]
            if taken:
                raise UsageError(
                    f"unit {unit_name!r} cannot finalize "
                    f"{', '.join(s.display_name for s in taken)}: "
                    f"already finalized by another unit",
                    code=ErrorCodes.SYMBOL_FINALIZED,
                )
            self._finalized_locals.update(symbols)

    def _report(self, symbol: Symbol, suggested: NamedType) -> None:
        if self._on_verdict is None:
            return
        with self._report_lock:
            self._on_verdict(symbol, suggested)


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — CONVENIENCE DRIVER
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class AnalysisResult:
    """Verdicts of one compilation, locals in unit order, then fields."""
    local_verdicts: List[Verdict] = field(default_factory=list)
    field_verdicts: List[Verdict] = field(default_factory=list)
    stats: Dict[str, float] = field(default_factory=dict)

    @property
    def verdicts(self) -> List[Verdict]:
        return self.local_verdicts + self.field_verdicts

    @property
    def suggestions(self) -> List[Verdict]:
        return [v for v in self.verdicts if v.suggests]

    def suggestion_for(self, symbol: Symbol) -> Optional[NamedType]:
        for verdict in self.verdicts:
            if verdict.symbol is symbol:
                return verdict.suggested_type
        return None


def analyze_compilation(
    compilation: Compilation,
    config: Optional[AnalysisConfig] = None,
    on_verdict: Optional[VerdictCallback] = None,
) -> AnalysisResult:
    """Analyse every unit of *compilation*, then finalize its fields."""
    analysis = CompilationAnalysis(config, on_verdict)
    t0 = time.monotonic()
    result = AnalysisResult()
    result.local_verdicts = analysis.analyze_units(compilation.units)
    result.field_verdicts = analysis.complete()
    result.stats["elapsed_ms"] = (time.monotonic() - t0) * 1000.0
    result.stats["units"] = float(len(compilation.units))
    _log.info(
        "Analysed %s: %d units, %d suggestions",
        compilation.name or "<compilation>",
        len(compilation.units), len(result.suggestions),
    )
    return result


__all__ = [
    "VerdictCallback",
    "UnitAnalysis",
    "CompilationAnalysis",
    "AnalysisResult",
    "analyze_compilation",
]
