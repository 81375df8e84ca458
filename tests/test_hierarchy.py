# tests/test_hierarchy.py
"""
Tests for the type catalog, strict derivation and the common-type resolver.
"""

import pytest

from narrowtype.errors import ErrorCodes, InvariantViolation, ModelError
from narrowtype.hierarchy import common_type, derives_from
from narrowtype.type_model import NamedType, TypeCatalog, TypeKind


class TestTypeCatalog:

    def test_root_is_unique_class(self, catalog):
        roots = [t for t in catalog if t.is_root]
        assert roots == [catalog.root]
        assert catalog.root.name == "object"
        assert catalog.root.is_class

    def test_class_defaults_to_root_base(self, catalog):
        assert catalog.get("Plant").base_type is catalog.root

    def test_struct_base_is_value_type(self, catalog):
        point = catalog.get("Point")
        assert point.is_structure
        assert point.base_type is catalog.get("ValueType")

    def test_builtin_int_is_struct(self, catalog):
        assert catalog.get("int").kind == TypeKind.STRUCTURE

    def test_unknown_lookup(self, catalog):
        assert catalog.get("Unicorn") is None
        with pytest.raises(ModelError) as exc:
            catalog.resolve("Unicorn")
        assert exc.value.code is ErrorCodes.UNKNOWN_TYPE

    def test_duplicate_type_rejected(self, catalog):
        with pytest.raises(ModelError) as exc:
            catalog.define_class("Dog")
        assert exc.value.code is ErrorCodes.DUPLICATE_TYPE

    def test_class_cannot_derive_from_struct(self, catalog):
        with pytest.raises(ModelError) as exc:
            catalog.define_class("Bad", base="Point")
        assert exc.value.code is ErrorCodes.BAD_BASE_TYPE

    def test_define_picks_class_base_first(self, catalog):
        t = catalog.define(TypeKind.CLASS, "Kitten", ["Cat", "IShape"])
        assert t.base_type is catalog.get("Cat")
        assert t.interfaces == (catalog.get("IShape"),)

    def test_ancestors_nearest_first(self, catalog):
        names = [t.name for t in catalog.get("Puppy").ancestors()]
        assert names == ["Dog", "Animal", "object"]

    def test_without_builtins(self):
        c = TypeCatalog(with_builtins=False)
        assert c.get("int") is None
        assert c.root is c.get("object")


class TestDerivesFrom:

    def test_no_self_derivation(self, catalog):
        for t in catalog:
            assert not derives_from(t, t)

    def test_class_chain(self, catalog):
        assert derives_from(catalog.get("Puppy"), catalog.get("Animal"))
        assert derives_from(catalog.get("Dog"), catalog.root)
        assert not derives_from(catalog.get("Animal"), catalog.get("Dog"))

    def test_siblings_unrelated(self, catalog):
        assert not derives_from(catalog.get("Dog"), catalog.get("Cat"))

    def test_struct_derives_from_root_through_value_type(self, catalog):
        assert derives_from(catalog.get("Point"), catalog.root)
        assert derives_from(catalog.get("int"), catalog.get("ValueType"))

    def test_class_does_not_derive_from_implemented_interface(self, catalog):
        assert not derives_from(catalog.get("Animal"), catalog.get("IPet"))

    def test_interface_extends(self, catalog):
        assert derives_from(catalog.get("IRound"), catalog.get("IShape"))
        assert not derives_from(catalog.get("IShape"), catalog.get("IRound"))

    def test_interface_derives_from_root(self, catalog):
        assert derives_from(catalog.get("IShape"), catalog.root)
        assert not derives_from(catalog.get("IShape"), catalog.get("Animal"))

    def test_multi_level_interface_chain(self, catalog):
        ball = catalog.define_interface("IBall", extends=["IRound"])
        assert derives_from(ball, catalog.get("IRound"))
        assert derives_from(ball, catalog.get("IShape"))
        assert derives_from(ball, catalog.root)
        assert not derives_from(catalog.get("IShape"), ball)

    def test_enum_never_derives(self, catalog):
        color = catalog.define_enum("Color")
        assert not derives_from(color, catalog.root)

    def test_cycle_hits_depth_bound(self):
        a = NamedType("A", TypeKind.CLASS)
        b = NamedType("B", TypeKind.CLASS, base_type=a)
        a.base_type = b
        target = NamedType("Z", TypeKind.CLASS, is_root=True)
        with pytest.raises(InvariantViolation) as exc:
            derives_from(a, target, max_depth=16)
        assert exc.value.code is ErrorCodes.HIERARCHY_TOO_DEEP


class TestCommonType:

    def test_chain_most_derived_wins(self, catalog):
        puppy, dog, animal = (catalog.get(n) for n in ("Puppy", "Dog", "Animal"))
        assert common_type([puppy, dog, animal]) is animal
        assert common_type([animal, dog, puppy]) is animal

    def test_disjoint_branches(self, catalog):
        assert common_type([catalog.get("Dog"), catalog.get("Cat")]) is None
        assert common_type([catalog.get("Animal"), catalog.get("Plant")]) is None

    def test_singleton_and_empty(self, catalog):
        dog = catalog.get("Dog")
        assert common_type([dog]) is dog
        assert common_type([]) is None

    def test_never_synthesises_a_type(self, catalog):
        # Animal is the shared base but is not a member
        assert common_type([catalog.get("Dog"), catalog.get("Cat")]) is None

    def test_includes_root_member(self, catalog):
        assert common_type([catalog.get("Point"), catalog.root]) is catalog.root
