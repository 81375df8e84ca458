# tests/conftest.py
"""Shared fixtures: a small zoo hierarchy and symbol factories."""

import pytest

from narrowtype.events import SourceLocation, field_symbol, local
from narrowtype.type_model import TypeCatalog


@pytest.fixture
def catalog():
    """
    object
      ├── Animal : IPet
      │     ├── Dog
      │     │     └── Puppy
      │     └── Cat
      └── Plant
    interface IShape        interface IPet
    interface IRound : IShape
    struct Point : IShape
    """
    c = TypeCatalog()
    c.define_interface("IShape")
    c.define_interface("IRound", extends=["IShape"])
    c.define_interface("IPet")
    c.define_class("Animal", interfaces=["IPet"])
    c.define_class("Dog", base="Animal")
    c.define_class("Puppy", base="Dog")
    c.define_class("Cat", base="Animal")
    c.define_class("Plant")
    c.define_struct("Point", interfaces=["IShape"])
    return c


@pytest.fixture
def make_local():
    def _make(name, declared, line=1):
        return local(name, declared, SourceLocation("zoo.cs", line, 9), "Zoo.Run")
    return _make


@pytest.fixture
def make_field():
    def _make(name, declared, line=1):
        return field_symbol(name, declared, SourceLocation("zoo.cs", line, 5), "Zoo")
    return _make
