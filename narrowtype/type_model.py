"""
narrowtype/type_model.py
════════════════════════

Nominal type representation and the type catalog.

We model the types of a managed, single-rooted object system:

    τ ::= class C : B, I₁ … Iₙ        (at most one base class)
        | struct S : I₁ … Iₙ           (implicit base ValueType)
        | interface I : I₁ … Iₙ        (no base type, extends interfaces)
        | enum E                       (implicit base Enum)
        | delegate D                   (implicit base Delegate)

Exactly one class is flagged as the universal root (``object``).  Every
class without an explicit base derives from it.

Types are compared by identity: the catalog hands out exactly one
``NamedType`` per name, so ``a is b`` and ``a == b`` coincide.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from narrowtype.errors import ErrorCodes, ModelError

_log = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — TYPE REPRESENTATION
# ═════════════════════════════════════════════════════════════════════════

class TypeKind(Enum):
    """Discriminant for named types."""
    CLASS = auto()
    STRUCTURE = auto()
    INTERFACE = auto()
    ENUM = auto()
    DELEGATE = auto()


@dataclass(eq=False)
class NamedType:
    """
    A node in the single-rooted type hierarchy.

      - CLASS / STRUCTURE / ENUM / DELEGATE: ``base_type`` is the direct base
(``None`` only for the root)
      - INTERFACE: ``base_type`` is always ``None``; ``interfaces`` holds the
        directly extended interfaces
    """

    name: str
    kind: TypeKind
    base_type: Optional[NamedType] = None
    interfaces: Tuple[NamedType, ...] = ()
    is_root: bool = False

    @property
    def is_class(self) -> bool:
        return self.kind == TypeKind.CLASS

    @property
    def is_structure(self) -> bool:
        return self.kind == TypeKind.STRUCTURE

    @property
    def is_interface(self) -> bool:
        return self.kind == TypeKind.INTERFACE

    def ancestors(self) -> Iterator[NamedType]:
        """Yield the base-type chain, nearest first."""
        current = self.base_type
        while current is not None:
            yield current
            current = current.base_type

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"NamedType({self.name!r}, {self.kind.name})"


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — TYPE CATALOG
# ═════════════════════════════════════════════════════════════════════════

ROOT_TYPE_NAME = "object"

_BUILTIN_STRUCTS = (
    "bool", "byte", "sbyte", "char", "short", "ushort", "int", "uint",
    "long", "ulong", "float", "double", "decimal",
)


class TypeCatalog:
    """
    Owns every named type of one compilation.

    Usage
    -----
    >>> catalog = TypeCatalog()
    >>> animal = catalog.define_class("Animal")
    >>> dog = catalog.define_class("Dog", base="Animal")
    >>> catalog.get("Dog") is dog
    True
    >>> catalog.get("Cat") is None
    True
    """

    def __init__(self, *, with_builtins: bool = True) -> None:
        self._types: Dict[str, NamedType] = {}
        self._root = self._add(NamedType(ROOT_TYPE_NAME, TypeKind.CLASS, is_root=True))
        self._value_type = self._add(
            NamedType("ValueType", TypeKind.CLASS, base_type=self._root)
        )
        self._enum_base = self._add(
            NamedType("Enum", TypeKind.CLASS, base_type=self._value_type)
        )
        self._delegate_base = self._add(
            NamedType("Delegate", TypeKind.CLASS, base_type=self._root)
        )
        if with_builtins:
            for name in _BUILTIN_STRUCTS:
                self.define_struct(name)
            self.define_class("string")

    # ── Lookup ───────────────────────────────────────────────────────

    @property
    def root(self) -> NamedType:
        """The universal root object type."""
        return self._root

    def get(self, name: str) -> Optional[NamedType]:
        """Return the type called *name*, or ``None`` when unknown."""
        return self._types.get(name)

    def resolve(self, name: str) -> NamedType:
        """Return the type called *name*; raise ``ModelError`` when unknown."""
        t = self._types.get(name)
        if t is None:
            raise ModelError(
                f"unknown type {name!r}",
                code=ErrorCodes.UNKNOWN_TYPE,
            )
        return t

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __iter__(self) -> Iterator[NamedType]:
        return iter(self._types.values())

    def __len__(self) -> int:
        return len(self._types)

    # ── Definition ───────────────────────────────────────────────────

    def define_class(
        self,
        name: str,
        base: Optional[str] = None,
        interfaces: Sequence[str] = (),
    ) -> NamedType:
        base_type = self.resolve(base) if base else self._root
        if base_type.kind != TypeKind.CLASS:
            raise ModelError(
                f"class {name!r} cannot derive from {base_type.kind.name.lower()} "
                f"{base_type.name!r}",
                code=ErrorCodes.BAD_BASE_TYPE,
            )
        return self._add(NamedType(
            name, TypeKind.CLASS,
            base_type=base_type,
            interfaces=self._interfaces(name, interfaces),
        ))

    def define_struct(self, name: str, interfaces: Sequence[str] = ()) -> NamedType:
        return self._add(NamedType(
            name, TypeKind.STRUCTURE,
            base_type=self._value_type,
            interfaces=self._interfaces(name, interfaces),
        ))

    def define_interface(self, name: str, extends: Sequence[str] = ()) -> NamedType:
        return self._add(NamedType(
            name, TypeKind.INTERFACE,
            interfaces=self._interfaces(name, extends),
        ))

    def define_enum(self, name: str) -> NamedType:
        return self._add(NamedType(name, TypeKind.ENUM, base_type=self._enum_base))

    def define_delegate(self, name: str) -> NamedType:
        return self._add(NamedType(name, TypeKind.DELEGATE, base_type=self._delegate_base))

    def define(
        self,
        kind: TypeKind,
        name: str,
        supertypes: Sequence[str] = (),
    ) -> NamedType:
        """
        Define a type from a kind and an ordered list of supertype names.

        For classes the first supertype that names a class becomes the base
        type; every other supertype must be an interface.
        """
        if kind == TypeKind.CLASS:
            base: Optional[str] = None
            rest: List[str] = []
            for sup in supertypes:
                if base is None and not rest and self.resolve(sup).kind == TypeKind.CLASS:
                    base = sup
                else:
                    rest.append(sup)
            return self.define_class(name, base=base, interfaces=rest)
        if kind == TypeKind.STRUCTURE:
            return self.define_struct(name, interfaces=supertypes)
        if kind == TypeKind.INTERFACE:
            return self.define_interface(name, extends=supertypes)
        if kind == TypeKind.ENUM:
            return self.define_enum(name)
        if kind == TypeKind.DELEGATE:
            return self.define_delegate(name)
        raise ModelError(f"cannot define type {name!r} of kind {kind.name}")

    # ── Internals ────────────────────────────────────────────────────

    def _interfaces(self, owner: str, names: Iterable[str]) -> Tuple[NamedType, ...]:
        result = []
        for n in names:
            t = self.resolve(n)
            if t.kind != TypeKind.INTERFACE:
                raise ModelError(
                    f"{owner!r} lists {n!r} as an interface but it is a "
                    f"{t.kind.name.lower()}",
                    code=ErrorCodes.BAD_BASE_TYPE,
                )
            result.append(t)
        return tuple(result)

    def _add(self, t: NamedType) -> NamedType:
        if t.name in self._types:
            raise ModelError(
                f"type {t.name!r} is defined twice",
                code=ErrorCodes.DUPLICATE_TYPE,
            )
        self._types[t.name] = t
        _log.debug("Defined %s %s", t.kind.name.lower(), t.name)
        return t


__all__ = [
    "TypeKind",
    "NamedType",
    "TypeCatalog",
    "ROOT_TYPE_NAME",
]
