"""
Tests for outcome composition.

These tests pin down the three-valued combination table, the way child
details are merged and re-tagged, and short-circuit evaluation.
"""

import itertools

import pytest

from odatavalidator.engine.compose import (
    combine_verdicts,
    compose,
    merge_details,
    short_circuit,
)
from odatavalidator.engine.types import (
    CombinationPolicy,
    Outcome,
    ResultDetail,
    Verdict,
)


def detail(owner: str, message: str = "") -> ResultDetail:
    return ResultDetail(rule_name=owner, url="http://example.org/odata", error_message=message)


def expected_verdict(verdicts):
    if Verdict.FAIL in verdicts:
        return Verdict.FAIL
    if Verdict.INCONCLUSIVE in verdicts or not verdicts:
        return Verdict.INCONCLUSIVE
    return Verdict.PASS


ALL_COMBINATIONS = [
    list(combo)
    for size in range(1, 4)
    for combo in itertools.product(list(Verdict), repeat=size)
]


# =============================================================================
# Combination table
# =============================================================================


class TestCombineVerdicts:
    """Tests for the three-valued combination of child verdicts."""

    @pytest.mark.parametrize("verdicts", ALL_COMBINATIONS)
    @pytest.mark.parametrize("policy", list(CombinationPolicy))
    def test_truth_table(self, verdicts, policy):
        """Every policy reduces every combination with the same table."""
        assert combine_verdicts(verdicts, policy) == expected_verdict(verdicts)

    def test_pass_and_inconclusive_is_inconclusive(self):
        """An unverified child keeps the parent from passing."""
        assert combine_verdicts([Verdict.PASS, Verdict.INCONCLUSIVE]) == Verdict.INCONCLUSIVE

    def test_fail_outranks_inconclusive(self):
        """A failing child fails the parent even next to an unverified one."""
        assert combine_verdicts([Verdict.FAIL, Verdict.INCONCLUSIVE]) == Verdict.FAIL

    @pytest.mark.parametrize("policy", list(CombinationPolicy))
    def test_empty_is_inconclusive(self, policy):
        """No children means no evidence, never a pass."""
        assert combine_verdicts([], policy) == Verdict.INCONCLUSIVE

    def test_accepts_generator(self):
        """Verdicts may be supplied lazily."""
        verdicts = (v for v in [Verdict.PASS, Verdict.PASS])
        assert combine_verdicts(verdicts) == Verdict.PASS

    def test_unknown_policy_rejected(self):
        """Policies outside the enum are a programming error."""
        with pytest.raises(ValueError):
            combine_verdicts([Verdict.PASS], "anyPass")


# =============================================================================
# Detail merging
# =============================================================================


class TestMergeDetails:
    """Tests for concatenating and re-tagging child details."""

    def test_order_preserved_and_retagged(self):
        """Details keep child order and are all owned by the parent."""
        d1, d2, d3 = detail("C1", "one"), detail("C1", "two"), detail("C2", "three")
        merged = merge_details("P", [Outcome(Verdict.PASS, (d1, d2)), Outcome(Verdict.PASS, (d3,))])

        assert [d.error_message for d in merged] == ["one", "two", "three"]
        assert all(d.rule_name == "P" for d in merged)

    def test_children_untouched(self):
        """Re-tagging copies; the child's own details keep their owner."""
        child = Outcome(Verdict.FAIL, (detail("C", "broken"),))
        merge_details("P", [child])

        assert child.details[0].rule_name == "C"

    def test_shared_child_under_two_parents(self):
        """Two parents merging the same child see only their own name."""
        child = Outcome(Verdict.FAIL, (detail("C", "broken"),))
        first = compose("P1", [child])
        second = compose("P2", [child])

        assert first.details[0].rule_name == "P1"
        assert second.details[0].rule_name == "P2"
        assert child.details[0].rule_name == "C"

    def test_outermost_owner_wins(self):
        """A detail merged through two composite levels ends up with the top-level name."""
        leaf = Outcome(Verdict.FAIL, (detail("Leaf", "broken"),))
        middle = compose("Middle", [leaf])
        top = compose("Top", [middle])

        assert top.details[0].rule_name == "Top"
        assert middle.details[0].rule_name == "Middle"

    def test_inconclusive_details_kept(self):
        """A child that could not be verified still contributes its details."""
        skipped = Outcome(Verdict.INCONCLUSIVE, (detail("C", "no entity type"),))
        result = compose("P", [Outcome(Verdict.PASS), skipped])

        assert result.verdict == Verdict.INCONCLUSIVE
        assert [d.error_message for d in result.details] == ["no entity type"]

    def test_duplicates_kept(self):
        """Identical details are not collapsed."""
        same = detail("C", "twice")
        merged = merge_details("P", [Outcome(Verdict.PASS, (same,)), Outcome(Verdict.PASS, (same,))])
        assert len(merged) == 2


# =============================================================================
# Composition
# =============================================================================


class TestCompose:
    """Tests for composing a parent outcome from its children."""

    def test_scenario(self):
        """Pass, fail and inconclusive children give a failing parent with two details."""
        a = Outcome(Verdict.PASS)
        b = Outcome(Verdict.FAIL, (detail("B", "B failed: X"),))
        c = Outcome(Verdict.INCONCLUSIVE, (detail("C", "C skipped: Y"),))

        result = compose("P", [a, b, c], CombinationPolicy.ALL_PASS)

        assert result.verdict == Verdict.FAIL
        assert [(d.error_message, d.rule_name) for d in result.details] == [
            ("B failed: X", "P"),
            ("C skipped: Y", "P"),
        ]

    def test_no_children(self):
        """A composite over nothing is inconclusive with no details."""
        result = compose("P", [])
        assert result.verdict == Verdict.INCONCLUSIVE
        assert result.details == ()

    def test_all_pass(self):
        """Only passing children give a passing parent."""
        result = compose("P", [Outcome(Verdict.PASS, (detail("A"),)), Outcome(Verdict.PASS)])
        assert result.passed
        assert [d.rule_name for d in result.details] == ["P"]


# =============================================================================
# Short circuit
# =============================================================================


class Counter:
    """Check that returns a fixed outcome and counts its invocations."""

    def __init__(self, outcome: Outcome):
        self.outcome = outcome
        self.calls = 0

    def __call__(self) -> Outcome:
        self.calls += 1
        return self.outcome


class TestShortCircuit:
    """Tests for sequential evaluation of dependent checks."""

    def test_stops_after_failure(self):
        """A check after a failing one is never invoked."""
        first = Counter(Outcome(Verdict.FAIL, (detail("X", "missing"),)))
        second = Counter(Outcome(Verdict.PASS))

        result = short_circuit([first, second])

        assert result.verdict == Verdict.FAIL
        assert first.calls == 1
        assert second.calls == 0

    def test_stops_after_inconclusive(self):
        """An inconclusive check also stops the sequence."""
        first = Counter(Outcome(Verdict.INCONCLUSIVE))
        second = Counter(Outcome(Verdict.PASS))

        assert short_circuit([first, second]).verdict == Verdict.INCONCLUSIVE
        assert second.calls == 0

    def test_all_pass_returns_last(self):
        """When every check passes, the last outcome is the result."""
        first = Counter(Outcome(Verdict.PASS, (detail("X", ""),)))
        last = Outcome(Verdict.PASS, (detail("Y", ""), detail("Y", "")))

        result = short_circuit([first, Counter(last)])

        assert result == last

    def test_owner_retags(self):
        """An owner re-tags the details of the returned outcome."""
        result = short_circuit([Counter(Outcome(Verdict.FAIL, (detail("", "bad"),)))], owner="Rule")
        assert result.details[0].rule_name == "Rule"

    def test_no_checks(self):
        """An empty sequence is inconclusive."""
        assert short_circuit([]).verdict == Verdict.INCONCLUSIVE
