# tests/test_model_dsl.py
"""
Tests for the textual program-model grammar and the compilation builder.
"""

import pytest

from narrowtype.analysis import analyze_compilation
from narrowtype.errors import ErrorCodes, ModelError, ModelSyntaxError
from narrowtype.events import (
    Assignment,
    ConversionKind,
    FieldInitializer,
    IncrementDecrement,
    Initializer,
    Invocation,
    OutRefBinding,
    RefKind,
)
from narrowtype.model_dsl import MODEL_GRAMMAR, load_model, load_model_file, parse_model
from narrowtype.type_model import TypeKind


ZOO = """\
# a small zoo
class Animal;
class Dog : Animal;
class Cat : Animal;
interface IShape;
struct Point : IShape;

field Zoo.keeper : object @ 4:12;
field Zoo.pet : Animal;

method Zoo.Run {
    local x : Animal @ 10:9;
    local y : Animal;
    init x = new Dog;
    assign x = implicit Animal(new Dog);
    assign keeper += new Point;
    assign y = (Animal) new Dog;
    increment keeper : int;
    call Swap(ref y : Dog, x : Animal, 42 : int);
}

initializer Zoo {
    field-init pet = new Cat;
}
"""


class TestGrammar:

    def test_records(self):
        records = parse_model(ZOO, "zoo.ntm")
        kinds = [type(r).__name__ for r in records]
        assert kinds == ["TypeDecl"] * 5 + ["FieldDecl"] * 2 + ["UnitDecl"] * 2

    def test_type_decl_supertypes(self):
        decl = parse_model("struct Point : IShape, IRound;")[0]
        assert decl.kind is TypeKind.STRUCTURE
        assert decl.supertypes == ["IShape", "IRound"]

    def test_empty_model(self):
        assert parse_model("  # nothing here\n") == []

    def test_statement_args(self):
        unit = parse_model(ZOO)[-2]
        call = unit.stmts[-1]
        assert call.keyword == "call"
        assert call.args["callee"] == "Swap"
        assert call.args["args"] == [
            ("ref", "y", "Dog"), ("", "x", "Animal"), ("", "42", "int"),
        ]

    def test_empty_call(self):
        unit = parse_model("method M { call f(); }")[0]
        assert unit.stmts[0].args["args"] == []

    def test_syntax_error_has_position(self):
        with pytest.raises(ModelSyntaxError) as exc:
            parse_model("class Animal;\nclas Dog;\n", "bad.ntm")
        assert exc.value.span.file == "bad.ntm"
        assert exc.value.span.line == 2
        assert exc.value.code in (ErrorCodes.MODEL_PARSE_FAILED, ErrorCodes.MODEL_INCOMPLETE)

    def test_missing_semicolon(self):
        with pytest.raises(ModelSyntaxError):
            parse_model("class Animal")

    def test_comment_and_whitespace_rules(self):
        assert MODEL_GRAMMAR["comment"].parse("# trailing \\ note").text == "# trailing \\ note"
        assert MODEL_GRAMMAR["meaningless"].parse("\t \n").text == "\t \n"
        assert parse_model("class A; # one\n\t# two\nclass B;\n")[1].name == "B"


class TestBuilder:

    def test_catalog_and_fields(self):
        comp = load_model(ZOO, "zoo.ntm")
        dog = comp.catalog.get("Dog")
        assert dog.base_type is comp.catalog.get("Animal")
        keeper = comp.field_named("Zoo.keeper")
        assert keeper.declared_type is comp.catalog.root
        assert (keeper.location.line, keeper.location.column) == (4, 12)
        assert comp.field_named("Zoo.pet").location.line == 9

    def test_unit_events(self):
        comp = load_model(ZOO, "zoo.ntm")
        run, init = comp.units
        assert run.is_method and not init.is_method
        assert [type(e) for e in run.events] == [
            Initializer, Assignment, Assignment, Assignment, IncrementDecrement, Invocation,
        ]
        assert [s.name for s in run.locals] == ["x", "y"]
        assert isinstance(init.events[0], FieldInitializer)

    def test_values(self):
        comp = load_model(ZOO, "zoo.ntm")
        events = comp.units[0].events
        assert events[1].value.kind is ConversionKind.IMPLICIT
        assert events[2].compound
        assert events[2].target is comp.field_named("Zoo.keeper")
        assert events[3].value.kind is ConversionKind.EXPLICIT
        assert events[4].type is comp.catalog.get("int")

    def test_call_arguments(self):
        comp = load_model(ZOO, "zoo.ntm")
        call = comp.units[0].events[-1]
        ref_arg, by_value, literal = call.arguments
        assert ref_arg.ref_kind is RefKind.REF
        assert ref_arg.target.name == "y"
        assert by_value.ref_kind is RefKind.NONE
        assert literal.target is None

    def test_bind_statement(self):
        comp = load_model(
            "class A; class B : A;\n"
            "method M { local a : A; bind out a : B; bind in a : B; }"
        )
        out, inbound = comp.units[0].events
        assert isinstance(out, OutRefBinding)
        assert isinstance(inbound, Invocation)
        assert list(inbound.out_ref_bindings()) == []

    def test_supertype_declared_later(self):
        comp = load_model("class Dog : Animal; class Animal;")
        assert comp.catalog.get("Dog").base_type is comp.catalog.get("Animal")

    def test_unresolved_type_marker(self):
        comp = load_model("method M { local x : ?; assign x = new ?; }")
        x = comp.units[0].locals[0]
        assert x.declared_type is None

    def test_discard_target(self):
        comp = load_model("class A; method M { assign _ = new A; }")
        assert comp.units[0].events[0].target is None

    def test_unknown_type(self):
        with pytest.raises(ModelError) as exc:
            load_model("field Z.f : Unicorn;", "z.ntm")
        assert exc.value.code is ErrorCodes.UNKNOWN_TYPE
        assert exc.value.span.line == 1

    def test_unknown_supertype(self):
        with pytest.raises(ModelError) as exc:
            load_model("class Dog : Animal;")
        assert exc.value.code is ErrorCodes.UNKNOWN_TYPE

    def test_unknown_symbol(self):
        with pytest.raises(ModelError) as exc:
            load_model("class A; method M { assign nope = new A; }")
        assert exc.value.code is ErrorCodes.UNKNOWN_SYMBOL

    def test_duplicate_local(self):
        with pytest.raises(ModelError) as exc:
            load_model("class A; method M { local a : A; local a : A; }")
        assert exc.value.code is ErrorCodes.DUPLICATE_SYMBOL

    def test_duplicate_field(self):
        with pytest.raises(ModelError) as exc:
            load_model("field Z.f : object; field Z.f : object;")
        assert exc.value.code is ErrorCodes.DUPLICATE_SYMBOL

    def test_duplicate_type(self):
        with pytest.raises(ModelError) as exc:
            load_model("class A; class A;")
        assert exc.value.code is ErrorCodes.DUPLICATE_TYPE


class TestModelAnalysis:

    def test_zoo_verdicts(self):
        comp = load_model(ZOO, "zoo.ntm")
        result = analyze_compilation(comp)
        x, y = comp.units[0].locals
        assert result.suggestion_for(x) is comp.catalog.get("Dog")
        assert result.suggestion_for(y) is None
        # keeper sees Point and int
        assert result.suggestion_for(comp.field_named("Zoo.keeper")) is None
        assert result.suggestion_for(comp.field_named("Zoo.pet")) is comp.catalog.get("Cat")

    def test_load_model_file(self, tmp_path):
        path = tmp_path / "zoo.ntm"
        path.write_text(ZOO, encoding="utf-8")
        comp = load_model_file(path)
        assert comp.name == str(path)
        assert comp.field_named("Zoo.keeper").location.file == str(path)
