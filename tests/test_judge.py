# tests/test_judge.py
"""
Tests for the narrowing judge and the per-symbol lifecycle.
"""

import pytest

from narrowtype.errors import ErrorCodes, UsageError
from narrowtype.evidence import EvidenceSet
from narrowtype.judge import NarrowingJudge, SymbolState, Verdict


class TestEvaluate:

    def test_suggests_strictly_derived_common_type(self, catalog, make_local):
        x = make_local("x", catalog.get("Animal"))
        judge = NarrowingJudge(EvidenceSet())
        verdict = judge.evaluate(x, x.declared_type, [catalog.get("Dog")])
        assert verdict == Verdict(x, catalog.get("Dog"))
        assert verdict.suggests

    def test_same_as_declared_is_no_suggestion(self, catalog, make_local):
        x = make_local("x", catalog.get("Animal"))
        judge = NarrowingJudge(EvidenceSet())
        assert not judge.evaluate(x, x.declared_type, [catalog.get("Animal")]).suggests

    def test_unrelated_common_type_is_no_suggestion(self, catalog, make_local):
        x = make_local("x", catalog.get("Dog"))
        judge = NarrowingJudge(EvidenceSet())
        assert not judge.evaluate(x, x.declared_type, [catalog.get("Cat")]).suggests

    def test_empty_evidence(self, catalog, make_local):
        x = make_local("x", catalog.get("Animal"))
        judge = NarrowingJudge(EvidenceSet())
        assert not judge.evaluate(x, x.declared_type, []).suggests

    def test_unresolved_declared_type(self, catalog, make_local):
        x = make_local("x", None)
        judge = NarrowingJudge(EvidenceSet())
        assert not judge.evaluate(x, None, [catalog.get("Dog")]).suggests

    def test_verdict_str(self, catalog, make_field):
        f = make_field("keeper", catalog.root)
        assert str(Verdict(f, catalog.get("int"))) == "Zoo.keeper: suggest int"
        assert str(Verdict(f)) == "Zoo.keeper: no suggestion"


class TestLifecycle:

    def test_state_transitions(self, catalog, make_local):
        x = make_local("x", catalog.get("Animal"))
        ev = EvidenceSet()
        judge = NarrowingJudge(ev)
        assert judge.state(x) is SymbolState.UNOBSERVED
        ev.add(x, catalog.get("Dog"))
        assert judge.state(x) is SymbolState.ACCUMULATING
        judge.finalize(x)
        assert judge.state(x) is SymbolState.FINALIZED

    def test_unobserved_can_be_finalized(self, catalog, make_local):
        x = make_local("x", catalog.get("Animal"))
        judge = NarrowingJudge(EvidenceSet())
        assert not judge.finalize(x).suggests
        assert judge.state(x) is SymbolState.FINALIZED

    def test_verdict_is_idempotent(self, catalog, make_local):
        x = make_local("x", catalog.get("Animal"))
        ev = EvidenceSet()
        ev.add(x, catalog.get("Dog"))
        judge = NarrowingJudge(ev)
        first = judge.finalize(x)
        assert judge.verdict(x) is first
        assert judge.verdict(x) is first

    def test_second_finalize_raises(self, catalog, make_local):
        x = make_local("x", catalog.get("Animal"))
        judge = NarrowingJudge(EvidenceSet())
        judge.finalize(x)
        with pytest.raises(UsageError) as exc:
            judge.finalize(x)
        assert exc.value.code is ErrorCodes.SYMBOL_FINALIZED

    def test_verdict_before_finalize_raises(self, catalog, make_local):
        x = make_local("x", catalog.get("Animal"))
        judge = NarrowingJudge(EvidenceSet())
        with pytest.raises(UsageError) as exc:
            judge.verdict(x)
        assert exc.value.code is ErrorCodes.SYMBOL_NOT_FINALIZED

    def test_record_after_finalize_raises(self, catalog, make_local):
        x = make_local("x", catalog.get("Animal"))
        ev = EvidenceSet()
        judge = NarrowingJudge(ev)
        judge.finalize(x)
        with pytest.raises(UsageError):
            ev.add(x, catalog.get("Dog"))
