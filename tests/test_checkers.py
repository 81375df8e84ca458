# tests/test_checkers.py
"""
Tests for the diagnostic model, suppressions and the checker runner.
"""

import json

import pytest
from unittest.mock import MagicMock

from narrowtype.checkers import (
    FIELD_COULD_HAVE_MORE_SPECIFIC_TYPE,
    LOCAL_COULD_HAVE_MORE_SPECIFIC_TYPE,
    Checker,
    CheckerContext,
    CheckerRegistry,
    CheckerRunner,
    CheckerRunResults,
    Diagnostic,
    DiagnosticSeverity,
    MoreSpecificTypeChecker,
    SuppressionManager,
    default_registry,
)
from narrowtype.errors import NarrowTypeError
from narrowtype.events import (
    AnalysisUnit,
    Assignment,
    Compilation,
    SourceLocation,
    TypedValue,
    local,
)
from narrowtype.model_dsl import load_model
from narrowtype.type_model import TypeCatalog


MODEL = """\
class Animal;
class Dog : Animal;
struct Point;

field Zoo.keeper : object @ 3:12;

method Zoo.Run {
    local pet : Animal @ 8:16;
    init pet = new Dog;
    assign keeper = new Point;
}
"""


def _diag(error_id="LocalCouldHaveMoreSpecificType", file="zoo.cs", line=8,
          severity=DiagnosticSeverity.WARNING):
    return Diagnostic(
        error_id=error_id,
        message="msg",
        severity=severity,
        location=SourceLocation(file, line, 5),
    )


class TestDiagnostic:

    def test_to_json(self):
        d = Diagnostic(
            error_id="FieldCouldHaveMoreSpecificType",
            message="Field Zoo.keeper could be declared with more specific type Point.",
            severity=DiagnosticSeverity.WARNING,
            location=SourceLocation("zoo.ntm", 3, 12),
            evidence={"suggestedType": "Point"},
        )
        payload = json.loads(d.to_json_str())
        assert payload["file"] == "zoo.ntm"
        assert payload["linenr"] == 3
        assert payload["column"] == 12
        assert payload["severity"] == "warning"
        assert payload["errorId"] == "FieldCouldHaveMoreSpecificType"
        assert payload["tool"] == "narrowtype"
        assert payload["evidence"] == {"suggestedType": "Point"}

    def test_gcc_format(self):
        assert _diag().to_gcc_format() == \
            "zoo.cs:8:5: warning: msg [LocalCouldHaveMoreSpecificType]"

    def test_descriptor_messages(self):
        assert LOCAL_COULD_HAVE_MORE_SPECIFIC_TYPE.format_message("x", "Dog") == \
            "Local variable x could be declared with more specific type Dog."
        assert FIELD_COULD_HAVE_MORE_SPECIFIC_TYPE.format_message("Zoo.f", "int") == \
            "Field Zoo.f could be declared with more specific type int."
        assert FIELD_COULD_HAVE_MORE_SPECIFIC_TYPE.category == "System"


class TestSuppressionManager:

    def test_global(self):
        sm = SuppressionManager()
        sm.add_global_suppression("LocalCouldHaveMoreSpecificType")
        assert sm.is_suppressed(_diag())
        assert not sm.is_suppressed(_diag("FieldCouldHaveMoreSpecificType"))

    def test_global_wildcard(self):
        sm = SuppressionManager()
        sm.add_global_suppression("*")
        assert sm.is_suppressed(_diag("FieldCouldHaveMoreSpecificType"))

    def test_inline_same_or_previous_line(self):
        sm = SuppressionManager()
        sm.add_inline_suppression("LocalCouldHaveMoreSpecificType", "zoo.cs", 7)
        assert sm.is_suppressed(_diag(line=8))
        assert not sm.is_suppressed(_diag(line=10))

    def test_file_pattern(self):
        sm = SuppressionManager()
        sm.add_file_suppression("*", "generated/*.cs")
        assert sm.is_suppressed(_diag(file="generated/a.cs"))
        assert not sm.is_suppressed(_diag(file="src/a.cs"))

    def test_filter(self):
        sm = SuppressionManager()
        sm.add_file_suppression("LocalCouldHaveMoreSpecificType", "zoo.cs")
        kept = sm.filter_diagnostics([_diag(), _diag(file="other.cs")])
        assert [d.location.file for d in kept] == ["other.cs"]


class TestRegistry:

    def test_default_registry_has_checker(self):
        assert default_registry().get_by_name("more-specific-type") is MoreSpecificTypeChecker

    def test_filter_by_error_id(self):
        reg = CheckerRegistry()
        reg.register(MoreSpecificTypeChecker)
        assert reg.filter_by_error_id("FieldCouldHaveMoreSpecificType") == [MoreSpecificTypeChecker]
        assert reg.filter_by_error_id("nullPointer") == []

    def test_disable(self):
        reg = CheckerRegistry()
        reg.register(MoreSpecificTypeChecker)
        reg.disable("more-specific-type")
        assert reg.get_enabled() == []
        reg.enable("more-specific-type")
        assert reg.names == ["more-specific-type"]


class TestMoreSpecificTypeChecker:

    def test_lifecycle(self):
        comp = load_model(MODEL, "zoo.ntm")
        ctx = CheckerContext(compilation=comp)
        checker = MoreSpecificTypeChecker()
        checker.configure(ctx)
        checker.collect_evidence(ctx)
        checker.diagnose(ctx)
        diags = checker.report(ctx)
        assert [d.error_id for d in diags] == [
            "LocalCouldHaveMoreSpecificType", "FieldCouldHaveMoreSpecificType",
        ]
        local_diag, field_diag = diags
        assert local_diag.message == \
            "Local variable pet could be declared with more specific type Dog."
        assert (local_diag.location.line, local_diag.location.column) == (8, 16)
        assert field_diag.message == \
            "Field Zoo.keeper could be declared with more specific type Point."
        assert field_diag.evidence["declaredType"] == "object"
        assert ctx.get_analysis("narrowing") is not None

    def test_report_toggles(self):
        comp = load_model(MODEL, "zoo.ntm")
        ctx = CheckerContext(compilation=comp, options={"report_locals": False})
        checker = MoreSpecificTypeChecker()
        for phase in (checker.configure, checker.collect_evidence, checker.diagnose):
            phase(ctx)
        assert [d.error_id for d in checker.report(ctx)] == ["FieldCouldHaveMoreSpecificType"]

    def test_invalid_options(self):
        ctx = CheckerContext(compilation=MagicMock(), options={"max_workers": 0})
        with pytest.raises(NarrowTypeError):
            MoreSpecificTypeChecker().configure(ctx)


class TestCheckerRunner:

    def test_run(self):
        results = CheckerRunner().run(load_model(MODEL, "zoo.ntm"))
        assert results.total_count == 2
        assert results.warning_count == 2
        assert results.error_count == 0
        assert results.checker_names == ["more-specific-type"]
        assert len(results.by_file("zoo.ntm")) == 2
        assert "2 diagnostics" in results.summary()

    def test_severity_option(self):
        results = CheckerRunner(options={"severity": "error"}).run(load_model(MODEL, "zoo.ntm"))
        assert results.error_count == 2

    def test_suppressions_applied(self):
        sm = SuppressionManager()
        sm.add_global_suppression("FieldCouldHaveMoreSpecificType")
        results = CheckerRunner(suppressions=sm).run(load_model(MODEL, "zoo.ntm"))
        assert [d.error_id for d in results.diagnostics] == ["LocalCouldHaveMoreSpecificType"]

    def test_output_formats(self):
        results = CheckerRunner().run(load_model(MODEL, "zoo.ntm"))
        lines = results.to_json_lines().splitlines()
        assert len(lines) == 2
        assert json.loads(lines[0])["errorId"] == "LocalCouldHaveMoreSpecificType"
        assert results.to_gcc_format().startswith("zoo.ntm:8:16: warning:")

    def test_crashing_checker_degrades_gracefully(self):
        class Boom(Checker):
            name = "boom"

            def collect_evidence(self, ctx):
                raise RuntimeError("kaboom")

            def diagnose(self, ctx):
                pass

        reg = CheckerRegistry()
        reg.register(Boom)
        results = CheckerRunner(registry=reg).run(load_model(MODEL))
        (diag,) = results.diagnostics
        assert diag.error_id == "checkerInternalError"
        assert diag.severity is DiagnosticSeverity.INFORMATION
        assert "kaboom" in diag.message

    def test_unknown_checker_name_ignored(self):
        results = CheckerRunner().run(load_model(MODEL), checkers=["nope"])
        assert results.total_count == 0

    def test_run_all_merges(self):
        comps = [load_model(MODEL, "a.ntm"), load_model(MODEL, "b.ntm")]
        results = CheckerRunner().run_all(comps)
        assert results.total_count == 4
        assert len(results.by_error_id("FieldCouldHaveMoreSpecificType")) == 2
        assert isinstance(results, CheckerRunResults)

    def test_parallel_diagnostics_follow_unit_order(self):
        catalog = TypeCatalog()
        animal = catalog.define_class("Animal")
        dog = catalog.define_class("Dog", base="Animal")
        units = []
        for i in range(8):
            x = local(f"x{i}", animal, SourceLocation("zoo.cs", i + 1, 9), f"Zoo.M{i}")
            events = [Assignment(x, TypedValue(dog))]
            if i == 0:
                # first unit finishes last
                events += [Assignment(x, TypedValue(dog))] * 20000
            units.append(AnalysisUnit(f"Zoo.M{i}", events, [x]))
        comp = Compilation(catalog, units, name="zoo.cs")
        results = CheckerRunner(options={"max_workers": 8}).run(comp)
        assert [d.location.line for d in results.diagnostics] == list(range(1, 9))
