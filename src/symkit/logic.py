"""Propositional building blocks: scalar conditions, atoms, conjunctions and satisfaction checking.

A formula is checked either against a single interpretation (any mapping from
variable name to value) with `check`, or against a whole batch through its
polars expression (`to_expr`), which `InterpretationSet.check` evaluates.
"""

from __future__ import annotations

import math
import numbers
import operator
from collections.abc import Callable, Iterator, Mapping
from typing import Annotated, Any, Final, Literal

import polars as pl
from pydantic import BaseModel, ConfigDict, Field

from symkit.exceptions import ThresholdTypeError

# ---------------------------------------------------------------------------
# Public type aliases
# ---------------------------------------------------------------------------

type ComparisonOp = Literal["<=", "<", ">=", ">", "==", "!="]

type Interpretation = Mapping[str, Any]

# ---------------------------------------------------------------------------
# Features and thresholds
# ---------------------------------------------------------------------------


class VariableValue(BaseModel):
    """The value of a named variable in an interpretation.

    Attributes:
        name (str): Variable (column) name, e.g. `"petal_length"`.

    Examples:
        >>> feature = VariableValue(name="petal_length")
        >>> feature.value_of({"petal_length": 1.4})
        1.4
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, description="Variable (column) name.")

    def __str__(self) -> str:
        """Return the variable name.

        Returns:
            str: The variable name.
        """
        return self.name

    def value_of(self, interpretation: Interpretation) -> Any:
        """Look up this variable in a single interpretation.

        Args:
            interpretation (Interpretation): Mapping from variable name to value.

        Returns:
            Any: The variable's value.

        Raises:
            KeyError: If the interpretation has no such variable.
        """
        return interpretation[self.name]

    def to_expr(self) -> pl.Expr:
        """Return the polars expression selecting this variable.

        Returns:
            pl.Expr: Column expression.
        """
        return pl.col(self.name)


class NumericThreshold(BaseModel):
    """A numeric threshold; compares only against numeric values."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["numeric"] = "numeric"
    value: float

    def __str__(self) -> str:
        return str(self.value)


class SymbolicThreshold(BaseModel):
    """A raw symbolic threshold token; compares only against strings."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["symbolic"] = "symbolic"
    token: str

    def __str__(self) -> str:
        return self.token


type Threshold = Annotated[NumericThreshold | SymbolicThreshold, Field(discriminator="kind")]


def parse_threshold(raw: str) -> NumericThreshold | SymbolicThreshold:
    """Read a threshold token as a number when possible, else keep it symbolic.

    Args:
        raw (str): The threshold text, e.g. `"2.9"` or `"red"`.

    Returns:
        NumericThreshold | SymbolicThreshold: The typed threshold.

    Examples:
        >>> parse_threshold("2.9")
        NumericThreshold(kind='numeric', value=2.9)
        >>> parse_threshold("red")
        SymbolicThreshold(kind='symbolic', token='red')
    """
    try:
        return NumericThreshold(value=float(raw))
    except ValueError:
        return SymbolicThreshold(token=raw)


# ---------------------------------------------------------------------------
# Conditions and formulas
# ---------------------------------------------------------------------------

_SCALAR_OPS: Final[dict[str, Callable[[Any, Any], bool]]] = {
    "<=": operator.le,
    "<": operator.lt,
    ">=": operator.ge,
    ">": operator.gt,
    "==": operator.eq,
    "!=": operator.ne,
}


class ScalarCondition(BaseModel):
    """A comparison between one variable and a threshold, e.g. `sepal_width >= 2.9`.

    Attributes:
        feature (VariableValue): The variable being compared.
        operator (ComparisonOp): Comparison operator.
        threshold (Threshold): Numeric or symbolic threshold.

    Examples:
        >>> condition = ScalarCondition(
        ...     feature=VariableValue(name="sepal_width"),
        ...     operator=">=",
        ...     threshold=NumericThreshold(value=2.9),
        ... )
        >>> str(condition)
        'sepal_width >= 2.9'
        >>> condition.holds({"sepal_width": 3.0})
        True
    """

    model_config = ConfigDict(frozen=True)

    feature: VariableValue
    operator: ComparisonOp
    threshold: Threshold

    def __str__(self) -> str:
        return f"{self.feature} {self.operator} {self.threshold}"

    def holds(self, interpretation: Interpretation) -> bool:
        """Check this condition against a single interpretation.

        Missing values (`None` or NaN) never satisfy a condition.

        Args:
            interpretation (Interpretation): Mapping from variable name to value.

        Returns:
            bool: Whether the comparison holds.

        Raises:
            ThresholdTypeError: If the value's kind does not match the threshold's kind.
        """
        value = self.feature.value_of(interpretation)
        if value is None:
            return False
        match self.threshold:
            case NumericThreshold(value=threshold):
                if not _is_numeric(value):
                    raise ThresholdTypeError(variable=self.feature.name, value=value, threshold=threshold)
                if math.isnan(value):
                    return False
            case SymbolicThreshold(token=threshold):
                if not isinstance(value, str):
                    raise ThresholdTypeError(variable=self.feature.name, value=value, threshold=threshold)
        return bool(_SCALAR_OPS[self.operator](value, threshold))

    def to_expr(self) -> pl.Expr:
        """Return the polars expression evaluating this condition row-wise.

        Returns:
            pl.Expr: Boolean expression; nulls stay null and NaN becomes null.
        """
        column = self.feature.to_expr()
        match self.threshold:
            case NumericThreshold(value=value):
                # polars orders NaN above every number
                column = column.cast(pl.Float64).fill_nan(None)
                literal = pl.lit(value)
            case SymbolicThreshold(token=token):
                literal = pl.lit(token)
        return _SCALAR_OPS[self.operator](column, literal)


class Atom(BaseModel):
    """An atomic proposition wrapping one scalar condition."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["atom"] = "atom"
    condition: ScalarCondition

    def __str__(self) -> str:
        return f"({self.condition})"

    def conditions(self) -> Iterator[ScalarCondition]:
        """Yield the wrapped condition.

        Yields:
            ScalarCondition: The single condition.
        """
        yield self.condition

    def to_expr(self) -> pl.Expr:
        """Return the wrapped condition's expression.

        Returns:
            pl.Expr: Boolean expression.
        """
        return self.condition.to_expr()


class Conjunction(BaseModel):
    """An ordered, non-empty conjunction of atoms.

    Examples:
        >>> formula = Conjunction.of(
        ...     ScalarCondition(feature=VariableValue(name="x"), operator=">", threshold=NumericThreshold(value=1.0)),
        ...     ScalarCondition(feature=VariableValue(name="y"), operator="==", threshold=SymbolicThreshold(token="a")),
        ... )
        >>> str(formula)
        '(x > 1.0) ∧ (y == a)'
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["conjunction"] = "conjunction"
    atoms: tuple[Atom, ...] = Field(min_length=1)

    @classmethod
    def of(cls, *conditions: ScalarCondition) -> Conjunction:
        """Conjoin conditions in the given order.

        Args:
            *conditions (ScalarCondition): One or more conditions.

        Returns:
            Conjunction: The conjunction of one atom per condition.
        """
        return cls(atoms=tuple(Atom(condition=condition) for condition in conditions))

    def __str__(self) -> str:
        return " ∧ ".join(str(atom) for atom in self.atoms)

    def conditions(self) -> Iterator[ScalarCondition]:
        """Yield every atom's condition, in order.

        Yields:
            ScalarCondition: One condition per atom.
        """
        for atom in self.atoms:
            yield atom.condition

    def to_expr(self) -> pl.Expr:
        """Return the row-wise AND of every atom's expression.

        Returns:
            pl.Expr: Boolean expression.
        """
        return pl.all_horizontal([atom.to_expr() for atom in self.atoms])


class Top(BaseModel):
    """The always-true formula (`TRUE`)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["top"] = "top"

    def __str__(self) -> str:
        return "⊤"

    def conditions(self) -> Iterator[ScalarCondition]:
        """Yield nothing: TRUE has no conditions."""
        yield from ()

    def to_expr(self) -> pl.Expr:
        """Return the constant true expression."""
        return pl.lit(True)


TOP: Final[Top] = Top()

type Formula = Annotated[Atom | Conjunction | Top, Field(discriminator="kind")]


def check(formula: Atom | Conjunction | Top, interpretation: Interpretation) -> bool:
    """Check whether a formula is satisfied by a single interpretation.

    Conjunctions short-circuit on the first unsatisfied atom, in order.

    Args:
        formula (Atom | Conjunction | Top): The formula to check.
        interpretation (Interpretation): Mapping from variable name to value.

    Returns:
        bool: True if the interpretation satisfies the formula.
    """
    match formula:
        case Top():
            return True
        case Atom(condition=condition):
            return condition.holds(interpretation)
        case Conjunction(atoms=atoms):
            return all(atom.condition.holds(interpretation) for atom in atoms)
    raise TypeError(f"Unsupported formula type: {type(formula).__name__}")


def _is_numeric(value: Any) -> bool:
    """Return True for real numbers other than booleans.

    Args:
        value (Any): The value to classify.

    Returns:
        bool: Whether `value` may be compared against a numeric threshold.
    """
    return isinstance(value, numbers.Real) and not isinstance(value, bool)
