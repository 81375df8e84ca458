"""
narrowtype: flow-insensitive type-narrowing inference
======================================================

For every local variable and field, this package collects the types of all
values observed flowing into it and suggests a strictly more specific
declared type when all of them share a single most-specific member.

Core modules
------------
type_model
    Named types (class / structure / interface) and the type catalog.
hierarchy
    Strict derivation and most-specific common member of a type set.
events
    Symbols, value expressions, and the operation events that feed the
    analysis.
evidence
    Effective contributed type, eligibility filter, evidence recording.
judge
    Per-symbol verdicts and the Unobserved → Accumulating → Finalized
    lifecycle.
analysis
    Unit and compilation drivers, with concurrent units.
checkers
    Diagnostics, the checker framework and the more-specific-type checker.
model_dsl
    Textual program models parsed with parsimonious.

Quick start
-----------
>>> from narrowtype import TypeCatalog, common_type
>>> catalog = TypeCatalog()
>>> animal = catalog.define_class("Animal")
>>> dog = catalog.define_class("Dog", base="Animal")
>>> common_type([animal, dog]) is animal
True
"""

from __future__ import annotations

import importlib
import sys
from typing import TYPE_CHECKING, List

# ---------------------------------------------------------------------------
# Package metadata
# ---------------------------------------------------------------------------

__version__ = "0.2.0"
__all__: List[str] = []          # populated incrementally below

# ---------------------------------------------------------------------------
# Internal registry: (module_name, list_of_names_to_import)
#
# Every module is imported eagerly; a failure is fatal.
# ---------------------------------------------------------------------------

_CORE_MODULES = {
    "errors": [
        "NarrowTypeError",
        "ModelSyntaxError",
        "ModelError",
        "UsageError",
        "InvariantViolation",
    ],
    "config": [
        "AnalysisConfig",
    ],
    "type_model": [
        "TypeKind",
        "NamedType",
        "TypeCatalog",
    ],
    "hierarchy": [
        "derives_from",
        "common_type",
    ],
    "events": [
        "SourceLocation",
        "SymbolKind",
        "Symbol",
        "ConversionKind",
        "TypedValue",
        "Literal",
        "Conversion",
        "RefKind",
        "Assignment",
        "IncrementDecrement",
        "OutRefBinding",
        "Argument",
        "Invocation",
        "Initializer",
        "FieldInitializer",
        "AnalysisUnit",
        "Compilation",
    ],
    "evidence": [
        "effective_type",
        "is_eligible",
        "EvidenceSet",
        "EvidenceRecorder",
    ],
    "judge": [
        "SymbolState",
        "Verdict",
        "NarrowingJudge",
    ],
    "analysis": [
        "UnitAnalysis",
        "CompilationAnalysis",
        "AnalysisResult",
        "analyze_compilation",
    ],
    "checkers": [
        "Diagnostic",
        "DiagnosticSeverity",
        "MoreSpecificTypeChecker",
        "CheckerRunner",
        "CheckerRunResults",
        "SuppressionManager",
    ],
    "model_dsl": [
        "load_model",
        "load_model_file",
    ],
}

# ---------------------------------------------------------------------------
# Import helper
# ---------------------------------------------------------------------------

def _import_names(module_rel_name: str, names: List[str]) -> None:
    """Import *names* from a submodule and bind them in the package namespace.

    Parameters
    ----------
    module_rel_name:
        Module name relative to this package (e.g. ``"hierarchy"``).
    names:
        Public symbols to re-export.
    """
    fq_name = f"{__name__}.{module_rel_name}"
    try:
        mod = importlib.import_module(fq_name)
    except ImportError as exc:
        raise ImportError(
            f"narrowtype: required submodule '{module_rel_name}' "
            f"failed to import: {exc}"
        ) from exc

    current_module = sys.modules[__name__]
    for name in names:
        obj = getattr(mod, name, None)
        if obj is None:
            raise AttributeError(f"narrowtype.{module_rel_name} does not export '{name}'")
        setattr(current_module, name, obj)
        __all__.append(name)

    if module_rel_name not in __all__:
        __all__.append(module_rel_name)


for _mod, _names in _CORE_MODULES.items():
    _import_names(_mod, _names)

del _mod, _names


# ---------------------------------------------------------------------------
# Package-level utilities
# ---------------------------------------------------------------------------

def list_submodules() -> List[str]:
    """Return the names of all submodules in the package."""
    return sorted(_CORE_MODULES)


def substrate_info() -> dict:
    """Return a dict of metadata about the loaded package, for logging."""
    loaded = []
    missing = []
    for mod_name in list_submodules():
        if f"{__name__}.{mod_name}" in sys.modules:
            loaded.append(mod_name)
        else:
            missing.append(mod_name)

    return {
        "package": __name__,
        "version": __version__,
        "python": sys.version,
        "loaded_submodules": loaded,
        "missing_submodules": missing,
        "all_exports": list(__all__),
    }


__all__ += ["list_submodules", "substrate_info", "__version__"]

if TYPE_CHECKING:
    from .errors import (
        NarrowTypeError as NarrowTypeError,
        ModelSyntaxError as ModelSyntaxError,
        ModelError as ModelError,
        UsageError as UsageError,
        InvariantViolation as InvariantViolation,
    )
    from .config import AnalysisConfig as AnalysisConfig
    from .type_model import (
        TypeKind as TypeKind,
        NamedType as NamedType,
        TypeCatalog as TypeCatalog,
    )
    from .hierarchy import (
        derives_from as derives_from,
        common_type as common_type,
    )
    from .evidence import (
        effective_type as effective_type,
        is_eligible as is_eligible,
        EvidenceSet as EvidenceSet,
        EvidenceRecorder as EvidenceRecorder,
    )
    from .judge import (
        SymbolState as SymbolState,
        Verdict as Verdict,
        NarrowingJudge as NarrowingJudge,
    )
    from .analysis import (
        UnitAnalysis as UnitAnalysis,
        CompilationAnalysis as CompilationAnalysis,
        AnalysisResult as AnalysisResult,
        analyze_compilation as analyze_compilation,
    )
    from .checkers import (
        Diagnostic as Diagnostic,
        DiagnosticSeverity as DiagnosticSeverity,
        MoreSpecificTypeChecker as MoreSpecificTypeChecker,
        CheckerRunner as CheckerRunner,
        CheckerRunResults as CheckerRunResults,
        SuppressionManager as SuppressionManager,
    )
    from .model_dsl import (
        load_model as load_model,
        load_model_file as load_model_file,
    )
