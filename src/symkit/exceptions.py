"""Custom exceptions and warnings for symkit.

This module defines the failures surfaced while parsing rule text, building
symbolic models and checking conditions:

Parsing exceptions (subclass ValueError):
- MalformedInputError: Base class for all parse failures. Catch this to
  handle any malformed decision-list text.
- MalformedLineError: Raised when a line does not match the rule grammar.
- MissingDefaultRuleError: Raised when the text has no `TRUE` (default) line.
- CoverageUnderflowError: Raised in strict mode when a rule covers more
  examples than remain uncovered.

Model construction exceptions (subclass Exception):
- SymbolicModelError: Base class for model construction failures.
- ModelConstraintError: Raised when a MixedModel sub-tree contains a model
  outside the feasible set.
- EmptyForestError: Raised when a DecisionForest is built with no trees.

Evaluation exceptions and warnings:
- ThresholdTypeError: Raised when a numeric threshold meets a symbolic value
  (or vice versa).
- ParityWarning: Emitted when a majority vote ends in a tie.
"""

from __future__ import annotations

from collections.abc import Sequence


class MalformedInputError(ValueError):
    """Base exception for malformed decision-list text.

    Attributes:
        line (str | None): The raw offending line, when a single line is to blame.
        line_number (int | None): 1-based line number of `line` in the input text.
    """

    line: str | None
    line_number: int | None

    def __init__(self, message: str, *, line: str | None = None, line_number: int | None = None) -> None:
        """Initialize MalformedInputError.

        Args:
            message (str): Description of the failure.
            line (str | None): The raw offending line.
            line_number (int | None): 1-based line number of the offending line.
        """
        super().__init__(message)
        self.line = line
        self.line_number = line_number

    def __repr__(self) -> str:
        """Return detailed representation for debugging.

        Returns:
            str: Representation including message, line number and line.
        """
        return (
            f"{self.__class__.__name__}(message={str(self)!r}, "
            f"line_number={self.line_number!r}, line={self.line!r})"
        )


class MalformedLineError(MalformedInputError):
    """Raised when a decision-list line does not match the rule grammar.

    Attributes:
        reason (str): What the parser expected at `column`.
        column (int): 1-based column within `line` where parsing failed.

    Examples:
        >>> err = MalformedLineError(
        ...     reason="expected 'THEN'",
        ...     line="[3, 0] IF x>=1.0 y=A -0.0",
        ...     line_number=1,
        ...     column=18,
        ... )
        >>> err.column
        18
        >>> str(err)
        "Malformed decision list line 1, column 18: expected 'THEN': '[3, 0] IF x>=1.0 y=A -0.0'"
    """

    reason: str
    column: int

    def __init__(self, *, reason: str, line: str, line_number: int, column: int) -> None:
        """Initialize MalformedLineError.

        Args:
            reason (str): What the parser expected at `column`.
            line (str): The raw offending line.
            line_number (int): 1-based line number of the offending line.
            column (int): 1-based column where parsing failed.
        """
        message = f"Malformed decision list line {line_number}, column {column}: {reason}: {line!r}"
        super().__init__(message, line=line, line_number=line_number)
        self.reason = reason
        self.column = column


class MissingDefaultRuleError(MalformedInputError):
    """Raised when the input ends without a default (`IF TRUE`) line."""

    def __init__(self) -> None:
        """Initialize MissingDefaultRuleError."""
        super().__init__("Malformed decision list: default rule was not found.")


class CoverageUnderflowError(MalformedInputError):
    """Raised when a rule's own distribution exceeds the uncovered distribution.

    Only raised when the parser runs with `strict_coverage=True`; otherwise the
    negative counts are kept and a warning is logged.

    Attributes:
        uncovered_distribution (tuple[int, ...]): Counts still uncovered before the rule.
        rule_distribution (tuple[int, ...]): Counts covered by the rule itself.
    """

    uncovered_distribution: tuple[int, ...]
    rule_distribution: tuple[int, ...]

    def __init__(
        self,
        *,
        line: str,
        line_number: int,
        uncovered_distribution: Sequence[int],
        rule_distribution: Sequence[int],
    ) -> None:
        """Initialize CoverageUnderflowError.

        Args:
            line (str): The raw line of the offending rule.
            line_number (int): 1-based line number of the offending rule.
            uncovered_distribution (Sequence[int]): Counts uncovered before the rule.
            rule_distribution (Sequence[int]): Counts covered by the rule.
        """
        message = (
            f"Rule on line {line_number} covers {list(rule_distribution)} but only "
            f"{list(uncovered_distribution)} examples remain uncovered"
        )
        super().__init__(message, line=line, line_number=line_number)
        self.uncovered_distribution = tuple(uncovered_distribution)
        self.rule_distribution = tuple(rule_distribution)


class SymbolicModelError(Exception):
    """Base exception for symbolic model construction failures.

    Not a ValueError subclass, so it propagates unchanged out of pydantic
    validators instead of being folded into a ValidationError.
    """


class ModelConstraintError(SymbolicModelError):
    """Raised when a MixedModel sub-tree breaks its feasible-model constraint.

    Attributes:
        violating_types (list[str]): Sorted names of the offending submodel types.
        feasible_types (list[str]): Sorted names of the permitted model types.
        n_violations (int): Number of offending submodels.
        n_submodels (int): Total number of submodels checked.

    Examples:
        >>> err = ModelConstraintError(
        ...     violating_types=["DecisionList"],
        ...     feasible_types=["Branch", "ConstantModel"],
        ...     n_violations=1,
        ...     n_submodels=5,
        ... )
        >>> err.n_violations
        1
    """

    violating_types: list[str]
    feasible_types: list[str]
    n_violations: int
    n_submodels: int

    def __init__(
        self,
        *,
        violating_types: list[str],
        feasible_types: list[str],
        n_violations: int,
        n_submodels: int,
    ) -> None:
        """Initialize ModelConstraintError.

        Args:
            violating_types (list[str]): Names of the offending submodel types.
            feasible_types (list[str]): Names of the permitted model types.
            n_violations (int): Number of offending submodels.
            n_submodels (int): Total number of submodels checked.
        """
        super().__init__(
            f"{n_violations}/{n_submodels} submodels break the type constraint on the model sub-tree! "
            f"All models should be of types {sorted(feasible_types)}, "
            f"but models were found of types: {sorted(violating_types)}."
        )
        self.violating_types = sorted(violating_types)
        self.feasible_types = sorted(feasible_types)
        self.n_violations = n_violations
        self.n_submodels = n_submodels


class EmptyForestError(SymbolicModelError):
    """Raised when a DecisionForest is constructed with zero trees."""

    def __init__(self) -> None:
        """Initialize EmptyForestError."""
        super().__init__("Cannot instantiate forest with no trees!")


class ThresholdTypeError(TypeError):
    """Raised when a condition compares a value against a threshold of the other kind.

    Attributes:
        variable (str): Name of the variable being compared.
        value (object): The interpretation value that was compared.
        threshold (object): The threshold it was compared against.
    """

    variable: str
    value: object
    threshold: object

    def __init__(self, *, variable: str, value: object, threshold: object) -> None:
        """Initialize ThresholdTypeError.

        Args:
            variable (str): Name of the variable being compared.
            value (object): The interpretation value.
            threshold (object): The threshold value.
        """
        super().__init__(
            f"Cannot compare {variable}={value!r} ({type(value).__name__}) against threshold {threshold!r}"
        )
        self.variable = variable
        self.value = value
        self.threshold = threshold


class ParityWarning(UserWarning):
    """Emitted when a majority vote ends in a tie and the tie-break rule decides."""
