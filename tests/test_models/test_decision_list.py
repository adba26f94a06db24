"""Tests for Rule, ConstantModel and DecisionList: construction, single and batch evaluation."""

from __future__ import annotations

from typing import Any

import polars as pl
import pytest
from pydantic import ValidationError
from pytest_check import check

from symkit.dataset import InterpretationSet
from symkit.logic import TOP, Conjunction, NumericThreshold, ScalarCondition, VariableValue
from symkit.models import ConstantModel, DecisionList, ModelInfo, Rule


def _at_least(name: str, value: float) -> Conjunction:
    return Conjunction.of(
        ScalarCondition(feature=VariableValue(name=name), operator=">=", threshold=NumericThreshold(value=value))
    )


def _one_hot_list(n_rules: int) -> DecisionList:
    """Build a list whose rule k fires on `v{k} >= 1` and predicts `L{k}`.

    Args:
        n_rules (int): Number of rules.

    Returns:
        DecisionList: Rules `L1..Ln` and default `default`.
    """
    rules = tuple(Rule(antecedent=_at_least(f"v{k}", 1.0), consequent=f"L{k}") for k in range(1, n_rules + 1))
    return DecisionList(rulebase=rules, default_consequent="default")


def _one_hot_interpretation(n_rules: int, hot: set[int]) -> dict[str, float]:
    return {f"v{k}": 1.0 if k in hot else 0.0 for k in range(1, n_rules + 1)}


class TestConstruction:
    """Tests for model construction and wrapping of bare outcomes."""

    def test_bare_outcomes_are_wrapped_into_constant_models(self) -> None:
        """Rule consequents and defaults given as values should become ConstantModels."""
        # Act
        model = _one_hot_list(2)

        # Assert
        with check:
            assert model.rulebase[0].consequent == ConstantModel(outcome="L1")
        with check:
            assert model.default_consequent == ConstantModel(outcome="default")
        with check:
            assert model.nrules == 2

    def test_default_consequent_is_required(self) -> None:
        """A decision list without a default consequent should be rejected."""
        # Act / Assert
        with pytest.raises(ValidationError):
            DecisionList(rulebase=())  # type: ignore[call-arg]

    def test_rulebase_only_accepts_rules(self) -> None:
        """Non-rule entries in the rulebase should be rejected."""
        # Act / Assert
        with pytest.raises(ValidationError):
            DecisionList(rulebase=(ConstantModel(outcome="A"),), default_consequent="B")  # type: ignore[arg-type]

    def test_models_are_immutable(self) -> None:
        """Assigning to a field of a built list should fail."""
        # Arrange
        model = _one_hot_list(1)

        # Act / Assert
        with pytest.raises(ValidationError):
            model.default_consequent = ConstantModel(outcome="other")  # type: ignore[misc]

    def test_info_keeps_unrecognized_keys(self) -> None:
        """ModelInfo should accept and return auxiliary keys alongside typed ones."""
        # Act
        info = ModelInfo(orange_evaluation=-0.5, source="cn2", n_samples=10)

        # Assert
        with check:
            assert info.orange_evaluation == -0.5
        with check:
            assert info.auxiliary() == {"source": "cn2", "n_samples": 10}

    def test_submodels_lists_rules_consequents_and_default(self) -> None:
        """submodels() should enumerate every reachable model in pre-order."""
        # Arrange
        model = _one_hot_list(2)

        # Act
        submodels = model.submodels()

        # Assert
        assert [type(submodel).__name__ for submodel in submodels] == [
            "Rule",
            "ConstantModel",
            "Rule",
            "ConstantModel",
            "ConstantModel",
        ]

    def test_fold_last_rule_builds_a_new_list(self) -> None:
        """fold_last_rule() should drop the last rule, reuse its consequent, and leave the original intact."""
        # Arrange
        model = _one_hot_list(3)

        # Act
        folded = model.fold_last_rule()

        # Assert
        with check:
            assert folded.nrules == 2
        with check:
            assert folded.default_consequent == ConstantModel(outcome="L3")
        with check:
            assert model.nrules == 3

    def test_fold_last_rule_of_empty_list_raises(self) -> None:
        """Folding an empty rulebase should raise ValueError."""
        # Arrange
        model = DecisionList(rulebase=(), default_consequent="A")

        # Act / Assert
        with pytest.raises(ValueError, match="empty rulebase"):
            model.fold_last_rule()

    def test_str_renders_rules_and_default(self) -> None:
        """str() should list each rule with its position and the default last."""
        # Arrange
        model = _one_hot_list(2)

        # Act
        rendered = str(model)

        # Assert
        assert rendered == "\n".join([
            "▣",
            "├[1/2]┐(v1 >= 1.0)",
            "│└ L1",
            "├[2/2]┐(v2 >= 1.0)",
            "│└ L2",
            "└✘ default",
        ])


class TestRule:
    """Tests for a Rule used as a model on its own."""

    def test_check_antecedent_single_and_batch(self) -> None:
        """check_antecedent should accept a single interpretation or a batch."""
        # Arrange
        rule = Rule(antecedent=_at_least("x", 1.0), consequent="A")
        data = InterpretationSet(pl.DataFrame({"x": [0.0, 2.0]}))

        # Act / Assert
        with check:
            assert rule.check_antecedent({"x": 2.0}) is True
        with check:
            assert rule.check_antecedent(data) == [False, True]

    def test_unsatisfied_rule_yields_none(self) -> None:
        """A rule is an open model: unsatisfied interpretations yield None."""
        # Arrange
        rule = Rule(antecedent=_at_least("x", 1.0), consequent="A")
        data = InterpretationSet(pl.DataFrame({"x": [0.0, 2.0, 3.0]}))

        # Act / Assert
        with check:
            assert rule.apply({"x": 0.0}) is None
        with check:
            assert rule.apply({"x": 2.0}) == "A"
        with check:
            assert rule.apply(data) == [None, "A", "A"]


class TestSingleInterpretationApply:
    """Tests for first-match semantics on one interpretation."""

    @pytest.mark.parametrize("k", [1, 2, 3, 4])
    def test_only_kth_rule_satisfied_returns_kth_consequent(self, k: int) -> None:
        """An interpretation satisfying only rule k should yield rule k's outcome.

        Args:
            k (int): The rule to satisfy.
        """
        # Arrange
        model = _one_hot_list(4)

        # Act / Assert
        assert model.apply(_one_hot_interpretation(4, {k})) == f"L{k}"

    def test_first_satisfied_rule_wins(self) -> None:
        """When several rules are satisfied, the earliest one decides."""
        # Arrange
        model = _one_hot_list(4)

        # Act / Assert
        assert model.apply(_one_hot_interpretation(4, {2, 3, 4})) == "L2"

    def test_no_satisfied_rule_returns_default(self) -> None:
        """With no satisfied rule, the default outcome is returned."""
        # Arrange
        model = _one_hot_list(4)

        # Act / Assert
        assert model.apply(_one_hot_interpretation(4, set())) == "default"

    def test_rules_after_the_match_are_not_checked(self) -> None:
        """Evaluation should stop at the first match; later rules may reference missing variables."""
        # Arrange
        model = DecisionList(
            rulebase=(
                Rule(antecedent=_at_least("x", 1.0), consequent="A"),
                Rule(antecedent=_at_least("not_present", 1.0), consequent="B"),
            ),
            default_consequent="C",
        )

        # Act / Assert
        assert model.apply({"x": 5.0}) == "A"

    def test_empty_rulebase_always_returns_default(self) -> None:
        """A list with no rules behaves as its default consequent."""
        # Arrange
        model = DecisionList(rulebase=(), default_consequent="only")

        # Act / Assert
        assert model.apply({"x": 1.0}) == "only"

    def test_top_antecedent_always_fires(self) -> None:
        """A rule guarded by TOP should shadow everything after it."""
        # Arrange
        model = DecisionList(
            rulebase=(Rule(antecedent=TOP, consequent="always"), Rule(antecedent=_at_least("x", 0.0), consequent="B")),
            default_consequent="C",
        )

        # Act / Assert
        assert model.apply({"x": 1.0}) == "always"

    def test_nested_decision_list_consequent(self) -> None:
        """A rule's consequent may itself be a decision list."""
        # Arrange
        inner = DecisionList(
            rulebase=(Rule(antecedent=_at_least("y", 1.0), consequent="inner-A"),), default_consequent="inner-B"
        )
        model = DecisionList(
            rulebase=(Rule(antecedent=_at_least("x", 1.0), consequent=inner),), default_consequent="outer"
        )

        # Act / Assert
        with check:
            assert model.apply({"x": 1.0, "y": 1.0}) == "inner-A"
        with check:
            assert model.apply({"x": 1.0, "y": 0.0}) == "inner-B"
        with check:
            assert model.apply({"x": 0.0, "y": 1.0}) == "outer"


class TestBatchApply:
    """Tests for evaluation over an InterpretationSet."""

    def test_batch_matches_single_apply(self) -> None:
        """Batch outcomes should equal per-instance outcomes, in order."""
        # Arrange
        model = _one_hot_list(3)
        rows = [
            _one_hot_interpretation(3, {1}),
            _one_hot_interpretation(3, set()),
            _one_hot_interpretation(3, {3}),
            _one_hot_interpretation(3, {2, 3}),
            _one_hot_interpretation(3, {1, 2, 3}),
            _one_hot_interpretation(3, {2}),
        ]
        data = InterpretationSet.from_records(rows)

        # Act
        batch = model.apply(data)

        # Assert
        with check:
            assert batch == [model.apply(row) for row in rows]
        with check:
            assert batch == ["L1", "default", "L3", "L2", "L1", "L2"]

    def test_every_instance_gets_exactly_one_outcome(self) -> None:
        """The output should be aligned with the input and contain no gaps."""
        # Arrange
        model = _one_hot_list(2)
        data = InterpretationSet.from_records([_one_hot_interpretation(2, set())] * 4)

        # Act
        batch = model.apply(data)

        # Assert
        assert batch == ["default"] * 4

    def test_empty_set_yields_empty_list(self) -> None:
        """An empty batch should produce no outcomes."""
        # Arrange
        model = _one_hot_list(2)
        data = InterpretationSet(pl.DataFrame({"v1": [], "v2": []}, schema={"v1": pl.Float64, "v2": pl.Float64}))

        # Act / Assert
        assert model.apply(data) == []

    def test_matched_instances_are_not_checked_against_later_rules(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Each rule should only see the instances left uncovered by earlier rules.

        Args:
            monkeypatch (pytest.MonkeyPatch): Used to spy on InterpretationSet.check.
        """
        # Arrange
        model = _one_hot_list(3)
        data = InterpretationSet.from_records([
            _one_hot_interpretation(3, {1}),
            _one_hot_interpretation(3, {1, 2}),
            _one_hot_interpretation(3, {2}),
            _one_hot_interpretation(3, set()),
        ])
        checked_sizes: list[int] = []
        original_check = InterpretationSet.check

        def spy(self: InterpretationSet, formula: Any) -> list[bool]:
            checked_sizes.append(self.ninstances)
            return original_check(self, formula)

        monkeypatch.setattr(InterpretationSet, "check", spy)

        # Act
        batch = model.apply(data)

        # Assert
        with check:
            assert batch == ["L1", "L1", "L2", "default"]
        with check:
            assert checked_sizes == [4, 2, 1]

    def test_rule_loop_stops_once_everything_is_covered(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """No further rule should be checked once every instance has matched.

        Args:
            monkeypatch (pytest.MonkeyPatch): Used to spy on InterpretationSet.check.
        """
        # Arrange
        model = _one_hot_list(3)
        data = InterpretationSet.from_records([_one_hot_interpretation(3, {1})] * 3)
        checked_sizes: list[int] = []
        original_check = InterpretationSet.check

        def spy(self: InterpretationSet, formula: Any) -> list[bool]:
            checked_sizes.append(self.ninstances)
            return original_check(self, formula)

        monkeypatch.setattr(InterpretationSet, "check", spy)

        # Act
        model.apply(data)

        # Assert
        assert checked_sizes == [3]

    def test_nested_consequent_in_batch(self) -> None:
        """Non-constant consequents should be evaluated on the matched rows only."""
        # Arrange
        inner = DecisionList(
            rulebase=(Rule(antecedent=_at_least("y", 1.0), consequent="inner-A"),), default_consequent="inner-B"
        )
        model = DecisionList(
            rulebase=(Rule(antecedent=_at_least("x", 1.0), consequent=inner),), default_consequent="outer"
        )
        rows = [{"x": 1.0, "y": 1.0}, {"x": 0.0, "y": 1.0}, {"x": 1.0, "y": 0.0}]

        # Act
        batch = model.apply(InterpretationSet.from_records(rows))

        # Assert
        assert batch == ["inner-A", "outer", "inner-B"]

    def test_nan_values_fall_through_in_batch_and_single(self) -> None:
        """A NaN value should not satisfy a threshold rule on either evaluation path."""
        # Arrange
        model = DecisionList(rulebase=(Rule(antecedent=_at_least("x", 1.0), consequent="A"),), default_consequent="B")
        rows = [{"x": float("nan")}, {"x": 2.0}]

        # Act
        batch = model.apply(InterpretationSet.from_records(rows))

        # Assert
        with check:
            assert batch == ["B", "A"]
        with check:
            assert batch == [model.apply(row) for row in rows]
