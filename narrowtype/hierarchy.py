"""
narrowtype/hierarchy.py
═══════════════════════

Subtyping queries over the nominal type hierarchy.

Two operations:

  1. **derives_from(derived, base)** — strict derivation.  Classes and
     structures walk their base-type chain; interfaces walk the extended
     interfaces and additionally derive from the universal root.  A type
     never derives from itself.

  2. **common_type(types)** — the unique member of *types* from which every
     other member derives, or ``None``.  The result is always one of the
     inputs; nothing is synthesised.

Both assume a well-formed (acyclic) hierarchy.  A recursion-depth bound
turns a malformed cyclic hierarchy into an ``InvariantViolation`` instead of
a ``RecursionError``.
"""

from __future__ import annotations

from typing import Iterable, Optional

from narrowtype.errors import ErrorCodes, InvariantViolation
from narrowtype.type_model import NamedType, TypeKind

DEFAULT_MAX_DEPTH = 256


def derives_from(
    derived: NamedType,
    base: NamedType,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> bool:
    """
    Return ``True`` iff *derived* strictly derives from *base*.

    The walk is bounded by *max_depth* (256 by default, set from
    ``AnalysisConfig.max_hierarchy_depth`` by the analysis driver); a longer
    or cyclic chain raises ``InvariantViolation``.
    """
    return _derives_from(derived, base, max_depth, 0)


def _derives_from(derived: NamedType, base: NamedType, max_depth: int, depth: int) -> bool:
    if depth > max_depth:
        raise InvariantViolation(
            f"type hierarchy above {derived.name!r} is deeper than {max_depth} "
            f"levels; it is probably cyclic",
            code=ErrorCodes.HIERARCHY_TOO_DEEP,
        )

    if derived.kind in (TypeKind.CLASS, TypeKind.STRUCTURE):
        derived_base = derived.base_type
        return derived_base is not None and (
            derived_base is base
            or _derives_from(derived_base, base, max_depth, depth + 1)
        )

    if derived.kind == TypeKind.INTERFACE:
        if any(iface is base for iface in derived.interfaces):
            return True
        for iface in derived.interfaces:
            if _derives_from(iface, base, max_depth, depth + 1):
                return True
        # every interface is assignable to the root object type
        return base.kind == TypeKind.CLASS and base.is_root

    return False


def common_type(
    types: Iterable[NamedType],
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Optional[NamedType]:
    """
    Return the member of *types* that every other member derives from.

    Candidates are tried in iteration order and the first qualifying one is
    returned, so callers must pass an ordered collection for reproducible
    results.  A singleton yields its element; an empty input yields ``None``.
    """
    members = list(types)
    for candidate in members:
        if all(
            other is candidate or derives_from(other, candidate, max_depth)
            for other in members
        ):
            return candidate
    return None


__all__ = ["derives_from", "common_type", "DEFAULT_MAX_DEPTH"]
