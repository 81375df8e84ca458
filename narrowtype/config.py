"""
narrowtype/config.py
════════════════════

Tuning knobs for the more-specific-type analysis.

The checker receives options as a plain dict through
``CheckerContext.options``; :meth:`AnalysisConfig.from_options` turns
that dict into a typed configuration.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any, List, Mapping

_log = logging.getLogger(__name__)

_SEVERITIES = frozenset({
    "error", "warning", "style", "performance", "portability", "information",
})


@dataclass
class AnalysisConfig:
    """Tuning knobs for the narrowing analysis."""
    max_hierarchy_depth: int = 256
    max_workers: int = 1
    report_locals: bool = True
    report_fields: bool = True
    severity: str = "warning"

    def validate(self) -> List[str]:
        """Return a list of validation problems (empty if valid)."""
        problems: List[str] = []
        if self.max_hierarchy_depth <= 0:
            problems.append("max_hierarchy_depth must be positive")
        if self.max_workers <= 0:
            problems.append("max_workers must be positive")
        if self.severity not in _SEVERITIES:
            problems.append(
                f"severity must be one of {', '.join(sorted(_SEVERITIES))}"
            )
        return problems

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> AnalysisConfig:
        """Build a config from an options mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in options.items():
            if key in known:
                kwargs[key] = value
            else:
                _log.debug("Ignoring unknown analysis option %r", key)
        return cls(**kwargs)


__all__ = ["AnalysisConfig"]
