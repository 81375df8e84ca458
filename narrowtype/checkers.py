"""
narrowtype/checkers.py
══════════════════════

Checker framework that turns narrowing verdicts into diagnostics.

Architecture
────────────

  ┌─────────────────────────────────────────────────────────┐
  │                   CheckerRunner                         │
  │  ┌──────────────────────────────────────────────────┐   │
  │  │          MoreSpecificTypeChecker                 │   │
  │  └──────────────────────┬───────────────────────────┘   │
  │                         │                               │
  │  ┌──────────────────────▼───────────────────────────┐   │
  │  │              Evidence Collection                 │   │
  │  │   analysis │ evidence │ judge │ hierarchy        │   │
  │  └──────────────────────┬───────────────────────────┘   │
  │                         │                               │
  │  ┌──────────────────────▼───────────────────────────┐   │
  │  │           SuppressionManager                     │   │
  │  │   inline  │  file-level  │  global               │   │
  │  └──────────────────────┬───────────────────────────┘   │
  │                         │                               │
  │  ┌──────────────────────▼───────────────────────────┐   │
  │  │        Diagnostic Formatter (JSON / text)        │   │
  │  └──────────────────────────────────────────────────┘   │
  └─────────────────────────────────────────────────────────┘

Each Checker follows a four-phase lifecycle:

  1. **configure()**        — read options, set thresholds
  2. **collect_evidence()** — run analyses, gather verdicts
  3. **diagnose()**         — turn verdicts into diagnostics
  4. **report()**           — emit Diagnostics (filtered by suppressions)
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from fnmatch import fnmatch
from typing import (
    Any,
    ClassVar,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Optional,
    Sequence,
    Set,
    Tuple,
    Type,
)

from narrowtype.analysis import AnalysisResult, analyze_compilation
from narrowtype.config import AnalysisConfig
from narrowtype.errors import NarrowTypeError
from narrowtype.events import Compilation, SourceLocation

_log = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — DIAGNOSTIC MODEL
# ═════════════════════════════════════════════════════════════════════════

class DiagnosticSeverity(Enum):
    """cppcheck-compatible severity levels."""
    ERROR = "error"
    WARNING = "warning"
    STYLE = "style"
    PERFORMANCE = "performance"
    PORTABILITY = "portability"
    INFORMATION = "information"


@dataclass(frozen=True)
class DiagnosticDescriptor:
    """Static description of one kind of diagnostic."""
    id: str
    title: str
    message_format: str
    category: str
    default_severity: DiagnosticSeverity

    def format_message(self, *args: Any) -> str:
        return self.message_format.format(*args)


@dataclass(frozen=True)
class Diagnostic:
    """
    A single diagnostic finding.

    Attributes
    ----------
    error_id     : Descriptor identifier (e.g. "LocalCouldHaveMoreSpecificType")
    message      : Human-readable description
    severity     : DiagnosticSeverity
    location     : Declaration site of the reported symbol
    checker_name : Name of the checker that produced this
    evidence     : Machine-readable evidence dict for downstream tooling
    """
    error_id: str
    message: str
    severity: DiagnosticSeverity
    location: SourceLocation
    checker_name: str = ""
    tool: str = "narrowtype"
    evidence: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "file": self.location.file,
            "linenr": self.location.line,
            "column": self.location.column,
            "severity": self.severity.value,
            "message": self.message,
            "tool": self.tool,
            "errorId": self.error_id,
        }
        if self.evidence:
            result["evidence"] = self.evidence
        return result

    def to_json_str(self) -> str:
        """Single-line JSON string."""
        return json.dumps(self.to_json())

    def to_gcc_format(self) -> str:
        """GCC-style diagnostic string: file:line:col: severity: message."""
        sev = self.severity.value
        return f"{self.location}: {sev}: {self.message} [{self.error_id}]"


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — SUPPRESSION MANAGER
# ═════════════════════════════════════════════════════════════════════════

class SuppressionManager:
    """
    Manages diagnostic suppressions from multiple sources.

    Sources:
      1. Inline suppressions at a (file, line) declaration site
      2. File-level suppressions (exact path, suffix, or fnmatch pattern)
      3. Global suppressions (command-line or config)

    ``"*"`` in place of an error id suppresses everything at that scope.
    """

    def __init__(self) -> None:
        # {(file, line)} → set of error_ids suppressed at that location
        self._inline: Dict[Tuple[str, int], Set[str]] = defaultdict(set)
        # file pattern → set of error_ids
        self._file_level: Dict[str, Set[str]] = defaultdict(set)
        # globally suppressed error_ids
        self._global: Set[str] = set()

    def add_inline_suppression(self, error_id: str, file: str, line: int) -> None:
        self._inline[(file, line)].add(error_id)

    def add_file_suppression(self, error_id: str, file_pattern: str) -> None:
        """Suppress ``error_id`` in files matching ``file_pattern``."""
        self._file_level[file_pattern].add(error_id)

    def add_global_suppression(self, error_id: str) -> None:
        """Globally suppress ``error_id``."""
        self._global.add(error_id)

    def is_suppressed(self, diag: Diagnostic) -> bool:
        eid = diag.error_id

        if eid in self._global or "*" in self._global:
            return True

        loc = diag.location

        # exact line, or the line before the declaration
        for line_offset in (0, 1):
            suppressed_ids = self._inline.get((loc.file, loc.line - line_offset), set())
            if eid in suppressed_ids or "*" in suppressed_ids:
                return True

        for pattern, ids in self._file_level.items():
            if eid in ids or "*" in ids:
                if pattern == loc.file or loc.file.endswith(pattern):
                    return True
                if fnmatch(loc.file, pattern):
                    return True

        return False

    def filter_diagnostics(
        self, diagnostics: Iterable[Diagnostic]
    ) -> List[Diagnostic]:
        """Return only non-suppressed diagnostics."""
        return [d for d in diagnostics if not self.is_suppressed(d)]


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — CHECKER BASE CLASS
# ═════════════════════════════════════════════════════════════════════════

class Checker(ABC):
    """
    Abstract base class for all checkers.

    Subclass Contract
    ─────────────────
      - Override ``name``, ``description``, ``descriptors``
      - Implement ``collect_evidence()`` and ``diagnose()``
      - Optionally override ``configure()`` for custom setup
    """

    name: ClassVar[str] = "base-checker"
    description: ClassVar[str] = ""
    descriptors: ClassVar[Tuple[DiagnosticDescriptor, ...]] = ()

    def __init__(self) -> None:
        self._diagnostics: List[Diagnostic] = []

    @classmethod
    def error_ids(cls) -> FrozenSet[str]:
        return frozenset(d.id for d in cls.descriptors)

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return list(self._diagnostics)

    def configure(self, ctx: CheckerContext) -> None:
        """Called before evidence collection; default does nothing."""

    @abstractmethod
    def collect_evidence(self, ctx: CheckerContext) -> None:
        """Run analyses and gather evidence."""

    @abstractmethod
    def diagnose(self, ctx: CheckerContext) -> None:
        """Correlate evidence into Diagnostic objects."""

    def report(self, ctx: CheckerContext) -> List[Diagnostic]:
        """Return final diagnostics, filtered by suppressions."""
        return ctx.suppressions.filter_diagnostics(self._diagnostics)

    def _emit(
        self,
        descriptor: DiagnosticDescriptor,
        location: SourceLocation,
        *message_args: Any,
        severity: Optional[DiagnosticSeverity] = None,
        evidence: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Helper to create and store a diagnostic."""
        self._diagnostics.append(Diagnostic(
            error_id=descriptor.id,
            message=descriptor.format_message(*message_args),
            severity=severity or descriptor.default_severity,
            location=location,
            checker_name=self.name,
            evidence=evidence or {},
        ))

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} '{self.name}'>"


@dataclass
class CheckerContext:
    """
    Shared context passed to every checker during execution.

    Attributes
    ----------
    compilation  : the program model being checked
    suppressions : SuppressionManager
    analyses     : dict of pre-computed analysis results (keyed by name)
    options      : user-provided options dict (see ``AnalysisConfig``)
    stats        : mutable dict for timing / counting statistics
    """
    compilation: Compilation
    suppressions: SuppressionManager = field(default_factory=SuppressionManager)
    analyses: Dict[str, Any] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)
    stats: Dict[str, Any] = field(default_factory=dict)

    def get_analysis(self, name: str) -> Any:
        return self.analyses.get(name)

    def set_analysis(self, name: str, result: Any) -> None:
        """Store an analysis result for sharing between checkers."""
        self.analyses[name] = result


# ═════════════════════════════════════════════════════════════════════════
#  PART 4 — CHECKER REGISTRY
# ═════════════════════════════════════════════════════════════════════════

class CheckerRegistry:
    """Registry of available checkers with discovery and filtering."""

    def __init__(self) -> None:
        self._checkers: Dict[str, Type[Checker]] = {}
        self._disabled: Set[str] = set()

    def register(self, checker_cls: Type[Checker]) -> None:
        self._checkers[checker_cls.name] = checker_cls

    def disable(self, name: str) -> None:
        self._disabled.add(name)

    def enable(self, name: str) -> None:
        self._disabled.discard(name)

    def get_all(self) -> List[Type[Checker]]:
        return list(self._checkers.values())

    def get_enabled(self) -> List[Type[Checker]]:
        return [
            cls for name, cls in self._checkers.items()
            if name not in self._disabled
        ]

    def get_by_name(self, name: str) -> Optional[Type[Checker]]:
        return self._checkers.get(name)

    def filter_by_error_id(self, error_id: str) -> List[Type[Checker]]:
        """Return checkers that can produce the given error_id."""
        return [
            cls for cls in self._checkers.values()
            if error_id in cls.error_ids()
        ]

    @property
    def names(self) -> List[str]:
        return sorted(self._checkers.keys())


# ═════════════════════════════════════════════════════════════════════════
#  PART 5 — MORE-SPECIFIC-TYPE CHECKER
# ═════════════════════════════════════════════════════════════════════════

SYSTEM_CATEGORY = "System"

LOCAL_COULD_HAVE_MORE_SPECIFIC_TYPE = DiagnosticDescriptor(
    id="LocalCouldHaveMoreSpecificType",
    title="Local Could Have More Specific Type",
    message_format="Local variable {0} could be declared with more specific type {1}.",
    category=SYSTEM_CATEGORY,
    default_severity=DiagnosticSeverity.WARNING,
)

FIELD_COULD_HAVE_MORE_SPECIFIC_TYPE = DiagnosticDescriptor(
    id="FieldCouldHaveMoreSpecificType",
    title="Field Could Have More Specific Type",
    message_format="Field {0} could be declared with more specific type {1}.",
    category=SYSTEM_CATEGORY,
    default_severity=DiagnosticSeverity.WARNING,
)


class MoreSpecificTypeChecker(Checker):
    """
    Reports locals and fields whose every observed value shares a type
    strictly more specific than the declared one.

    The analysis is flow-insensitive and heuristic: a suggestion means no
    observed assignment contradicts it, not that it is provably safe.
    """

    name: ClassVar[str] = "more-specific-type"
    description: ClassVar[str] = (
        "Locals and fields that could be declared with a more specific type"
    )
    descriptors: ClassVar[Tuple[DiagnosticDescriptor, ...]] = (
        LOCAL_COULD_HAVE_MORE_SPECIFIC_TYPE,
        FIELD_COULD_HAVE_MORE_SPECIFIC_TYPE,
    )

    def __init__(self) -> None:
        super().__init__()
        self.config = AnalysisConfig()

    def configure(self, ctx: CheckerContext) -> None:
        self.config = AnalysisConfig.from_options(ctx.options)
        problems = self.config.validate()
        if problems:
            raise NarrowTypeError("invalid analysis options: " + "; ".join(problems))

    def collect_evidence(self, ctx: CheckerContext) -> None:
        result = analyze_compilation(ctx.compilation, self.config)
        ctx.set_analysis("narrowing", result)
        ctx.stats["narrowing_elapsed_ms"] = result.stats.get("elapsed_ms", 0.0)

    def diagnose(self, ctx: CheckerContext) -> None:
        result: AnalysisResult = ctx.get_analysis("narrowing")
        severity = DiagnosticSeverity(self.config.severity)
        # locals in unit order, then fields
        for verdict in result.suggestions:
            symbol, suggested = verdict.symbol, verdict.suggested_type
            if symbol.is_local:
                if not self.config.report_locals:
                    continue
                descriptor = LOCAL_COULD_HAVE_MORE_SPECIFIC_TYPE
            else:
                if not self.config.report_fields:
                    continue
                descriptor = FIELD_COULD_HAVE_MORE_SPECIFIC_TYPE
            declared = symbol.declared_type.name if symbol.declared_type else "?"
            self._emit(
                descriptor,
                symbol.location,
                symbol.display_name,
                suggested.name,
                severity=severity,
                evidence={
                    "symbol": symbol.display_name,
                    "declaredType": declared,
                    "suggestedType": suggested.name,
                },
            )


# ═════════════════════════════════════════════════════════════════════════
#  PART 6 — CHECKER RUNNER
# ═════════════════════════════════════════════════════════════════════════

_DEFAULT_REGISTRY = CheckerRegistry()
_DEFAULT_REGISTRY.register(MoreSpecificTypeChecker)


def default_registry() -> CheckerRegistry:
    return _DEFAULT_REGISTRY


@dataclass
class CheckerRunResults:
    """
    Aggregate results from running a suite of checkers.

    Attributes
    ----------
    diagnostics            : All diagnostics from all checkers
    diagnostics_by_checker : Diagnostics grouped by checker name
    stats                  : Timing and counting statistics
    checker_names          : Names of checkers that were run
    """
    diagnostics: List[Diagnostic] = field(default_factory=list)
    diagnostics_by_checker: Dict[str, List[Diagnostic]] = field(
        default_factory=lambda: defaultdict(list)
    )
    stats: Dict[str, Any] = field(default_factory=dict)
    checker_names: List[str] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return sum(
            1 for d in self.diagnostics
            if d.severity == DiagnosticSeverity.ERROR
        )

    @property
    def warning_count(self) -> int:
        return sum(
            1 for d in self.diagnostics
            if d.severity == DiagnosticSeverity.WARNING
        )

    @property
    def total_count(self) -> int:
        return len(self.diagnostics)

    def by_file(self, file: str) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.location.file == file]

    def by_error_id(self, error_id: str) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.error_id == error_id]

    def to_json_lines(self) -> str:
        return "\n".join(d.to_json_str() for d in self.diagnostics)

    def to_gcc_format(self) -> str:
        return "\n".join(d.to_gcc_format() for d in self.diagnostics)

    def summary(self) -> str:
        """Human-readable summary."""
        lines = [
            f"Checker run complete: {self.total_count} diagnostics "
            f"({self.error_count} errors, {self.warning_count} warnings)",
        ]
        for name in self.checker_names:
            count = len(self.diagnostics_by_checker.get(name, []))
            elapsed = self.stats.get(f"{name}_elapsed_ms", 0)
            lines.append(f"  {name}: {count} findings ({elapsed:.1f}ms)")
        return "\n".join(lines)

    def merge(self, other: CheckerRunResults) -> None:
        self.diagnostics.extend(other.diagnostics)
        for name, diags in other.diagnostics_by_checker.items():
            self.diagnostics_by_checker[name].extend(diags)
        for key, val in other.stats.items():
            self.stats[key] = self.stats.get(key, 0) + val
        for name in other.checker_names:
            if name not in self.checker_names:
                self.checker_names.append(name)


class CheckerRunner:
    """
    Runs a suite of checkers against compilations.

    Usage
    -----
    >>> runner = CheckerRunner(options={"max_workers": 4})
    >>> results = runner.run(compilation)
    >>> print(results.summary())
    """

    def __init__(
        self,
        registry: Optional[CheckerRegistry] = None,
        suppressions: Optional[SuppressionManager] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.registry = registry or _DEFAULT_REGISTRY
        self.suppressions = suppressions or SuppressionManager()
        self.options = options or {}

    def run(
        self,
        compilation: Compilation,
        checkers: Optional[Sequence[str]] = None,
    ) -> CheckerRunResults:
        """Run checkers (``None`` = all enabled) against one compilation."""
        results = CheckerRunResults()
        ctx = CheckerContext(
            compilation=compilation,
            suppressions=self.suppressions,
            options=self.options,
        )

        if checkers is not None:
            checker_classes: List[Type[Checker]] = []
            for name in checkers:
                cls = self.registry.get_by_name(name)
                if cls is None:
                    _log.warning("Unknown checker %r ignored", name)
                    continue
                checker_classes.append(cls)
        else:
            checker_classes = self.registry.get_enabled()

        for cls in checker_classes:
            checker = cls()
            checker_name = cls.name
            results.checker_names.append(checker_name)

            t0 = time.monotonic()
            try:
                checker.configure(ctx)
                checker.collect_evidence(ctx)
                checker.diagnose(ctx)
                diags = checker.report(ctx)
            except Exception as exc:
                # report the failure instead of aborting the whole run
                _log.exception("Checker %s failed", checker_name)
                diags = [Diagnostic(
                    error_id="checkerInternalError",
                    message=f"Checker '{checker_name}' failed: {exc}",
                    severity=DiagnosticSeverity.INFORMATION,
                    location=SourceLocation(),
                    checker_name=checker_name,
                )]
            elapsed_ms = (time.monotonic() - t0) * 1000.0

            results.diagnostics.extend(diags)
            results.diagnostics_by_checker[checker_name] = diags
            results.stats[f"{checker_name}_elapsed_ms"] = elapsed_ms

        return results

    def run_all(
        self,
        compilations: Iterable[Compilation],
        checkers: Optional[Sequence[str]] = None,
    ) -> CheckerRunResults:
        combined = CheckerRunResults()
        for compilation in compilations:
            combined.merge(self.run(compilation, checkers=checkers))
        return combined


__all__ = [
    "DiagnosticSeverity",
    "DiagnosticDescriptor",
    "Diagnostic",
    "SourceLocation",
    "SuppressionManager",
    "Checker",
    "CheckerContext",
    "CheckerRegistry",
    "MoreSpecificTypeChecker",
    "LOCAL_COULD_HAVE_MORE_SPECIFIC_TYPE",
    "FIELD_COULD_HAVE_MORE_SPECIFIC_TYPE",
    "default_registry",
    "CheckerRunner",
    "CheckerRunResults",
]
