"""Symbolic models: constants, rules, branches, decision lists, trees, forests and mixed models.

Every model shares one evaluation contract, `apply`, over either a single
interpretation (a mapping from variable name to value) or an
`InterpretationSet`. Batch evaluation returns one outcome per interpretation,
aligned with the set's row order, and always equals calling `apply` on each
interpretation in turn.

All models are frozen pydantic models. Derived models (e.g. a decision list
with its last rule folded into the default) are built as new objects.
"""

from __future__ import annotations

import warnings
from collections import Counter
from collections.abc import Callable, Iterator, Sequence
from typing import Any, overload

import numpy as np
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from symkit.dataset import InterpretationSet
from symkit.exceptions import EmptyForestError, ModelConstraintError, ParityWarning
from symkit.logic import Formula, Interpretation, check
from symkit.settings import get_settings

# ---------------------------------------------------------------------------
# Model metadata
# ---------------------------------------------------------------------------


class ModelInfo(BaseModel):
    """Annotations attached to a model node.

    Recognized keys are typed fields; any other keyword is kept as-is and can
    be read back through `auxiliary()` or attribute access.

    Attributes:
        supporting_labels (tuple[int, ...] | None): Per-class counts of the
            examples reaching this outcome.
        uncovered_distribution (tuple[int, ...] | None): Per-class counts of the
            examples not yet explained by earlier rules, snapshotted when the
            rule was considered.
        orange_evaluation (float | None): Quality score reported by the rule
            induction tool.
        apply_postprocess (Callable[[Any], Any] | None): Applied by
            `DecisionTree.apply` to every raw prediction.

    Examples:
        >>> info = ModelInfo(orange_evaluation=-0.0, n_samples=12)
        >>> info.auxiliary()
        {'n_samples': 12}
    """

    model_config = ConfigDict(frozen=True, extra="allow", arbitrary_types_allowed=True)

    supporting_labels: tuple[int, ...] | None = None
    uncovered_distribution: tuple[int, ...] | None = None
    orange_evaluation: float | None = None
    apply_postprocess: Callable[[Any], Any] | None = None

    def auxiliary(self) -> dict[str, Any]:
        """Return the unrecognized annotations.

        Returns:
            dict[str, Any]: Extra keys passed at construction.
        """
        return dict(self.model_extra or {})


# ---------------------------------------------------------------------------
# Base model
# ---------------------------------------------------------------------------


class SymbolicModel(BaseModel):
    """Base class of every symbolic model; subclasses form a closed set (see `AnyModel`)."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    info: ModelInfo = Field(default_factory=ModelInfo)

    @overload
    def apply(self, data: InterpretationSet) -> list[Any]: ...

    @overload
    def apply(self, data: Interpretation) -> Any: ...

    def apply(self, data: Interpretation | InterpretationSet) -> Any | list[Any]:
        """Evaluate the model on one interpretation or on a batch.

        Args:
            data (Interpretation | InterpretationSet): A single interpretation or a batch.

        Returns:
            Any | list[Any]: The outcome, or one outcome per interpretation.
        """
        if isinstance(data, InterpretationSet):
            return self._apply_batch(data)
        return self._apply_single(data)

    @property
    def is_open(self) -> bool:
        """Whether some interpretations may yield `None` instead of an outcome."""
        return False

    def _apply_single(self, interpretation: Interpretation) -> Any:
        raise NotImplementedError

    def _apply_batch(self, data: InterpretationSet) -> list[Any]:
        raise NotImplementedError

    def immediate_submodels(self) -> tuple[SymbolicModel, ...]:
        """Return the models directly nested in this one.

        Returns:
            tuple[SymbolicModel, ...]: Children, in evaluation order.
        """
        return ()

    def submodels(self) -> list[SymbolicModel]:
        """Return every model reachable from this one, excluding itself, in pre-order.

        Returns:
            list[SymbolicModel]: All descendants.
        """
        descendants: list[SymbolicModel] = []
        for child in self.immediate_submodels():
            descendants.append(child)
            descendants.extend(child.submodels())
        return descendants

    def leaf_models(self) -> list[ConstantModel]:
        """Return every constant outcome reachable from this model.

        Returns:
            list[ConstantModel]: Leaves in pre-order.
        """
        return [model for model in (self, *self.submodels()) if isinstance(model, ConstantModel)]

    def subtree_height(self) -> int:
        """Return the length of the longest path from this model to a leaf.

        Returns:
            int: 0 for a model without children.
        """
        children = self.immediate_submodels()
        if not children:
            return 0
        return 1 + max(child.subtree_height() for child in children)


def _wrap(value: Any) -> Any:
    """Wrap a bare outcome into a ConstantModel; pass models through.

    Args:
        value (Any): A model or an outcome value.

    Returns:
        Any: A symbolic model.
    """
    if isinstance(value, SymbolicModel):
        return value
    return ConstantModel(outcome=value)


def _scatter(
    model: SymbolicModel,
    data: InterpretationSet,
    indices: Sequence[int],
    predictions: list[Any],
) -> None:
    """Write `model`'s outcomes for the rows `indices` of `data` into `predictions`.

    Args:
        model (SymbolicModel): The model to evaluate.
        data (InterpretationSet): The full batch.
        indices (Sequence[int]): Rows of `data` to evaluate.
        predictions (list[Any]): Output list aligned with `data`; updated in place.
    """
    if not indices:
        return
    if isinstance(model, ConstantModel):
        for index in indices:
            predictions[index] = model.outcome
        return
    outcomes = model.apply(data.slice(indices))
    for index, outcome in zip(indices, outcomes, strict=True):
        predictions[index] = outcome


# ---------------------------------------------------------------------------
# Leaves, rules and branches
# ---------------------------------------------------------------------------


class ConstantModel(SymbolicModel):
    """A model that always returns the same outcome (a leaf, or a rule's consequent).

    Attributes:
        outcome (Any): Class label or numeric value.
    """

    outcome: Any

    def __str__(self) -> str:
        return str(self.outcome)

    def _apply_single(self, interpretation: Interpretation) -> Any:
        return self.outcome

    def _apply_batch(self, data: InterpretationSet) -> list[Any]:
        return [self.outcome] * data.ninstances


class Rule(SymbolicModel):
    """An IF-THEN rule: the consequent applies when the antecedent holds.

    On its own a rule is an open model: interpretations that do not satisfy
    the antecedent yield `None`.

    Attributes:
        antecedent (Formula): The guarding formula.
        consequent (AnyModel): The model applied when the antecedent holds.
            Bare values are wrapped into a `ConstantModel`.
    """

    antecedent: Formula
    consequent: AnyModel

    @field_validator("consequent", mode="before")
    @classmethod
    def _wrap_consequent(cls, value: Any) -> Any:
        return _wrap(value)

    def __str__(self) -> str:
        return f"{self.antecedent} ⟶ {self.consequent}"

    @property
    def is_open(self) -> bool:
        """Always True: a rule has no outcome when its antecedent fails."""
        return True

    def check_antecedent(self, data: Interpretation | InterpretationSet) -> bool | list[bool]:
        """Check the antecedent against one interpretation or a batch.

        Args:
            data (Interpretation | InterpretationSet): What to check against.

        Returns:
            bool | list[bool]: Satisfaction, per interpretation for a batch.
        """
        if isinstance(data, InterpretationSet):
            return data.check(self.antecedent)
        return check(self.antecedent, data)

    def immediate_submodels(self) -> tuple[SymbolicModel, ...]:
        return (self.consequent,)

    def _apply_single(self, interpretation: Interpretation) -> Any:
        if check(self.antecedent, interpretation):
            return self.consequent.apply(interpretation)
        return None

    def _apply_batch(self, data: InterpretationSet) -> list[Any]:
        predictions: list[Any] = [None] * data.ninstances
        satisfied = data.check(self.antecedent)
        _scatter(self.consequent, data, [i for i, sat in enumerate(satisfied) if sat], predictions)
        return predictions


class Branch(SymbolicModel):
    """An IF-THEN-ELSE node: `positive` when the antecedent holds, `negative` otherwise.

    Attributes:
        antecedent (Formula): The guarding formula.
        positive (AnyModel): Model applied when the antecedent holds.
        negative (AnyModel): Model applied otherwise.
    """

    antecedent: Formula
    positive: AnyModel
    negative: AnyModel

    @field_validator("positive", "negative", mode="before")
    @classmethod
    def _wrap_consequents(cls, value: Any) -> Any:
        return _wrap(value)

    def __str__(self) -> str:
        return "\n".join([
            f"┐{self.antecedent}",
            *_indent(str(self.positive), first="├✔ ", rest="│  "),
            *_indent(str(self.negative), first="└✘ ", rest="   "),
        ])

    @property
    def is_open(self) -> bool:
        """Open when either side is open."""
        return self.positive.is_open or self.negative.is_open

    def immediate_submodels(self) -> tuple[SymbolicModel, ...]:
        return (self.positive, self.negative)

    def _apply_single(self, interpretation: Interpretation) -> Any:
        if check(self.antecedent, interpretation):
            return self.positive.apply(interpretation)
        return self.negative.apply(interpretation)

    def _apply_batch(self, data: InterpretationSet) -> list[Any]:
        predictions: list[Any] = [None] * data.ninstances
        satisfied = data.check(self.antecedent)
        _scatter(self.positive, data, [i for i, sat in enumerate(satisfied) if sat], predictions)
        _scatter(self.negative, data, [i for i, sat in enumerate(satisfied) if not sat], predictions)
        return predictions


# ---------------------------------------------------------------------------
# Decision lists
# ---------------------------------------------------------------------------


class DecisionList(SymbolicModel):
    """An IF-ELSEIF-ELSE block: the first rule whose antecedent holds decides.

        IF (antecedent_1)     THEN (consequent_1)
        ELSEIF (antecedent_2) THEN (consequent_2)
        ...
        ELSE (default_consequent) END

    Rules are evaluated in rulebase order, which is never changed.

    Attributes:
        rulebase (tuple[Rule, ...]): Rules in evaluation order.
        default_consequent (AnyModel): Model applied when no rule fires.
            Bare values are wrapped into a `ConstantModel`.

    Examples:
        >>> from symkit.logic import Conjunction, NumericThreshold, ScalarCondition, VariableValue
        >>> x_ge_1 = ScalarCondition(
        ...     feature=VariableValue(name="x"), operator=">=", threshold=NumericThreshold(value=1.0)
        ... )
        >>> model = DecisionList(
        ...     rulebase=(Rule(antecedent=Conjunction.of(x_ge_1), consequent="A"),),
        ...     default_consequent="B",
        ... )
        >>> model.apply({"x": 2.0}), model.apply({"x": 0.0})
        ('A', 'B')
    """

    rulebase: tuple[Rule, ...] = ()
    default_consequent: AnyModel

    @field_validator("default_consequent", mode="before")
    @classmethod
    def _wrap_default(cls, value: Any) -> Any:
        return _wrap(value)

    def __str__(self) -> str:
        nrules = len(self.rulebase)
        lines = ["▣"]
        for position, rule in enumerate(self.rulebase, start=1):
            lines.append(f"├[{position}/{nrules}]┐{rule.antecedent}")
            lines.extend(_indent(str(rule.consequent), first="│└ ", rest="│  "))
        lines.extend(_indent(str(self.default_consequent), first="└✘ ", rest="   "))
        return "\n".join(lines)

    @property
    def nrules(self) -> int:
        """Number of rules, excluding the default consequent."""
        return len(self.rulebase)

    @property
    def is_open(self) -> bool:
        """Open when the default consequent is open."""
        return self.default_consequent.is_open

    def immediate_submodels(self) -> tuple[SymbolicModel, ...]:
        return (*self.rulebase, self.default_consequent)

    def fold_last_rule(self) -> DecisionList:
        """Return a new list whose default is the last rule's consequent, without that rule.

        Returns:
            DecisionList: The shrunk list; this list is left unchanged.

        Raises:
            ValueError: If the rulebase is empty.
        """
        if not self.rulebase:
            raise ValueError("Cannot fold the last rule of an empty rulebase into the default consequent")
        *kept, last = self.rulebase
        return DecisionList(rulebase=tuple(kept), default_consequent=last.consequent, info=self.info)

    def _apply_single(self, interpretation: Interpretation) -> Any:
        for rule in self.rulebase:
            if rule.check_antecedent(interpretation):
                return rule.consequent.apply(interpretation)
        return self.default_consequent.apply(interpretation)

    def _apply_batch(self, data: InterpretationSet) -> list[Any]:
        predictions: list[Any] = [None] * data.ninstances
        uncovered = list(range(data.ninstances))

        for rule in self.rulebase:
            if not uncovered:
                break
            satisfied = rule.check_antecedent(data.slice(uncovered))
            matched = [index for index, sat in zip(uncovered, satisfied, strict=True) if sat]
            _scatter(rule.consequent, data, matched, predictions)
            uncovered = [index for index, sat in zip(uncovered, satisfied, strict=True) if not sat]

        _scatter(self.default_consequent, data, uncovered, predictions)
        return predictions


# ---------------------------------------------------------------------------
# Decision trees and forests
# ---------------------------------------------------------------------------


class DecisionTree(SymbolicModel):
    """A nested structure of IF-THEN-ELSE blocks rooted at a leaf or a `Branch`.

    When `info.apply_postprocess` is set, it is applied to every raw prediction.

    Attributes:
        root (ConstantModel | Branch): The root node.
    """

    root: ConstantModel | Branch

    @field_validator("root", mode="before")
    @classmethod
    def _wrap_root(cls, value: Any) -> Any:
        return _wrap(value)

    @classmethod
    def from_branch(
        cls,
        antecedent: Formula,
        positive: Any,
        negative: Any,
        info: ModelInfo | None = None,
    ) -> DecisionTree:
        """Build a tree whose root branches on `antecedent`.

        Subtrees given as DecisionTree are unwrapped into their roots.

        Args:
            antecedent (Formula): The root's formula.
            positive (Any): Subtree, model or outcome for satisfied interpretations.
            negative (Any): Subtree, model or outcome for the others.
            info (ModelInfo | None): Annotations of the new tree.

        Returns:
            DecisionTree: The new tree.
        """
        if isinstance(positive, DecisionTree):
            positive = positive.root
        if isinstance(negative, DecisionTree):
            negative = negative.root
        root = Branch(antecedent=antecedent, positive=positive, negative=negative)
        return cls(root=root, info=info or ModelInfo())

    def __str__(self) -> str:
        return str(self.root)

    @property
    def nnodes(self) -> int:
        """Number of nodes, leaves included."""
        return 1 + len(self.root.submodels())

    @property
    def nleaves(self) -> int:
        """Number of leaves."""
        return len(self.root.leaf_models())

    @property
    def height(self) -> int:
        """Length of the longest root-to-leaf path; 0 for a single leaf."""
        return self.root.subtree_height()

    def immediate_submodels(self) -> tuple[SymbolicModel, ...]:
        return (self.root,)

    def _postprocess(self, prediction: Any) -> Any:
        postprocess = self.info.apply_postprocess
        return prediction if postprocess is None else postprocess(prediction)

    def _apply_single(self, interpretation: Interpretation) -> Any:
        return self._postprocess(self.root.apply(interpretation))

    def _apply_batch(self, data: InterpretationSet) -> list[Any]:
        return [self._postprocess(prediction) for prediction in self.root.apply(data)]


class DecisionForest(SymbolicModel):
    """An ensemble of decision trees; every tree has one equal vote.

    Attributes:
        trees (tuple[DecisionTree, ...]): The trees; at least one.
    """

    trees: tuple[DecisionTree, ...]

    @model_validator(mode="after")
    def _validate_not_empty(self) -> DecisionForest:
        """Reject forests with no trees.

        Returns:
            DecisionForest: The validated model instance.

        Raises:
            EmptyForestError: If `trees` is empty.
        """
        if not self.trees:
            raise EmptyForestError
        return self

    def __str__(self) -> str:
        ntrees = len(self.trees)
        lines: list[str] = []
        for position, tree in enumerate(self.trees, start=1):
            lines.append(f"Tree {position}/{ntrees}")
            lines.extend(_indent(str(tree), first="  ", rest="  "))
        return "\n".join(lines)

    @property
    def nnodes(self) -> int:
        """Total number of nodes over all trees."""
        return sum(tree.nnodes for tree in self.trees)

    @property
    def nleaves(self) -> int:
        """Total number of leaves over all trees."""
        return sum(tree.nleaves for tree in self.trees)

    @property
    def height(self) -> int:
        """Height of the tallest tree."""
        return max(tree.height for tree in self.trees)

    def immediate_submodels(self) -> tuple[SymbolicModel, ...]:
        return self.trees

    @overload
    def apply(self, data: InterpretationSet, *, suppress_parity_warning: bool | None = None) -> list[Any]: ...

    @overload
    def apply(self, data: Interpretation, *, suppress_parity_warning: bool | None = None) -> Any: ...

    def apply(
        self,
        data: Interpretation | InterpretationSet,
        *,
        suppress_parity_warning: bool | None = None,
    ) -> Any | list[Any]:
        """Evaluate every tree and return the majority vote.

        Args:
            data (Interpretation | InterpretationSet): A single interpretation or a batch.
            suppress_parity_warning (bool | None): Silence `ParityWarning` on
                tied votes. `None` uses `SymkitSettings.suppress_parity_warning`.

        Returns:
            Any | list[Any]: The voted outcome, or one per interpretation.
        """
        if suppress_parity_warning is None:
            suppress_parity_warning = get_settings().suppress_parity_warning

        if not isinstance(data, InterpretationSet):
            votes = [tree.apply(data) for tree in self.trees]
            return best_guess(votes, suppress_parity_warning=suppress_parity_warning)

        # trees x instances
        vote_matrix = [tree.apply(data) for tree in self.trees]
        return [
            best_guess(list(instance_votes), suppress_parity_warning=suppress_parity_warning)
            for instance_votes in zip(*vote_matrix, strict=True)
        ]


def best_guess(votes: Sequence[Any], *, suppress_parity_warning: bool = False) -> Any:
    """Aggregate the outcomes of several models into one.

    Float outcomes (regression) are averaged. Any other outcome is treated as
    a class label and the most frequent one wins; on a tie, the smallest tied
    label under the ordering `(type name, value)` wins and a `ParityWarning`
    is emitted unless suppressed.

    Args:
        votes (Sequence[Any]): One outcome per voter.
        suppress_parity_warning (bool): Do not warn on ties.

    Returns:
        Any: The aggregated outcome.

    Raises:
        ValueError: If `votes` is empty.

    Examples:
        >>> best_guess(["A", "B", "A"])
        'A'
        >>> best_guess([1.0, 2.0])
        1.5
        >>> best_guess(["B", "A"], suppress_parity_warning=True)
        'A'
    """
    if not votes:
        raise ValueError("Cannot compute a best guess from an empty list of votes")
    if all(isinstance(vote, float) for vote in votes):
        return float(np.mean(votes))

    counts = Counter(votes)
    top_count = max(counts.values())
    tied = [label for label, count in counts.items() if count == top_count]
    winner = min(tied, key=_label_sort_key)
    if len(tied) > 1:
        logger.debug("Tied vote", tied=tied, winner=winner)
        if not suppress_parity_warning:
            warnings.warn(
                f"Parity encountered in best_guess: {len(tied)} labels tied with {top_count} votes each; "
                f"choosing {winner!r}",
                ParityWarning,
                stacklevel=2,
            )
    return winner


def _label_sort_key(label: Any) -> tuple[str, Any]:
    """Order labels by type name first, so mixed-type ties stay comparable.

    Args:
        label (Any): A voted label.

    Returns:
        tuple[str, Any]: The sort key.
    """
    return (type(label).__name__, label)


# ---------------------------------------------------------------------------
# Mixed models
# ---------------------------------------------------------------------------


class MixedModel(SymbolicModel):
    """A free nesting of lists, trees, branches and rules under a feasible-model constraint.

    Every reachable model, the root included, must be an instance of one of
    `feasible_models`. The constraint is checked once, at construction; when
    `feasible_models` is omitted it is inferred from the reachable models.

    Attributes:
        root (AnyModel): The wrapped model.
        feasible_models (tuple[type[SymbolicModel], ...]): Permitted model types.
    """

    root: AnyModel
    feasible_models: tuple[type[SymbolicModel], ...]

    @model_validator(mode="before")
    @classmethod
    def _infer_feasible_models(cls, data: Any) -> Any:
        """Fill in `feasible_models` from the reachable model types when omitted.

        Args:
            data (Any): Raw constructor input.

        Returns:
            Any: The input, with `feasible_models` set when it was missing.
        """
        if isinstance(data, dict) and data.get("feasible_models") is None and "root" in data:
            root = _wrap(data["root"])
            reachable_types = dict.fromkeys(type(model) for model in (root, *root.submodels()))
            data = {**data, "root": root, "feasible_models": tuple(reachable_types)}
        return data

    @field_validator("root", mode="before")
    @classmethod
    def _wrap_root(cls, value: Any) -> Any:
        return _wrap(value)

    @model_validator(mode="after")
    def _validate_feasible_models(self) -> MixedModel:
        """Check every reachable model against the feasible set.

        Returns:
            MixedModel: The validated model instance.

        Raises:
            ModelConstraintError: If any reachable model is not feasible.
        """
        reachable = [self.root, *self.root.submodels()]
        feasible = tuple(self.feasible_models)
        violating = [model for model in reachable if not isinstance(model, feasible)]
        if violating:
            raise ModelConstraintError(
                violating_types=sorted({type(model).__name__ for model in violating}),
                feasible_types=[model_type.__name__ for model_type in feasible],
                n_violations=len(violating),
                n_submodels=len(reachable),
            )
        logger.debug(
            "MixedModel constructed",
            n_submodels=len(reachable),
            feasible_models=[model_type.__name__ for model_type in feasible],
        )
        return self

    def __str__(self) -> str:
        return str(self.root)

    @property
    def is_open(self) -> bool:
        """Open when the wrapped model is open."""
        return self.root.is_open

    def immediate_submodels(self) -> tuple[SymbolicModel, ...]:
        return (self.root,)

    def _apply_single(self, interpretation: Interpretation) -> Any:
        return self.root.apply(interpretation)

    def _apply_batch(self, data: InterpretationSet) -> list[Any]:
        return self.root.apply(data)


type AnyModel = ConstantModel | Rule | Branch | DecisionList | DecisionTree | DecisionForest | MixedModel

for _model_class in (Rule, Branch, DecisionList, DecisionTree, DecisionForest, MixedModel):
    _model_class.model_rebuild()


def _indent(text: str, *, first: str, rest: str) -> Iterator[str]:
    """Prefix the first line of `text` with `first` and the others with `rest`.

    Args:
        text (str): Possibly multi-line text.
        first (str): Prefix of the first line.
        rest (str): Prefix of every following line.

    Yields:
        str: Prefixed lines.
    """
    for position, line in enumerate(text.splitlines() or [""]):
        yield (first if position == 0 else rest) + line
