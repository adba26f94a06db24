"""Tests for InterpretationSet: construction, slicing and batch formula checking."""

from __future__ import annotations

import polars as pl
import pytest
from pytest_check import check

from symkit.dataset import InterpretationSet
from symkit.exceptions import ThresholdTypeError
from symkit.logic import (
    TOP,
    Atom,
    Conjunction,
    NumericThreshold,
    ScalarCondition,
    SymbolicThreshold,
    VariableValue,
    check as check_formula,
)


@pytest.fixture
def data() -> InterpretationSet:
    """Five interpretations over a numeric and a string variable.

    Returns:
        InterpretationSet: The batch.
    """
    return InterpretationSet(
        pl.DataFrame({
            "x": [0.0, 1.0, 2.0, None, 4.0],
            "color": ["red", "blue", "red", "green", None],
        })
    )


def _x_at_least(value: float) -> Atom:
    return Atom(
        condition=ScalarCondition(
            feature=VariableValue(name="x"), operator=">=", threshold=NumericThreshold(value=value)
        )
    )


def _color_is(token: str) -> Atom:
    return Atom(
        condition=ScalarCondition(
            feature=VariableValue(name="color"), operator="==", threshold=SymbolicThreshold(token=token)
        )
    )


class TestInterpretationSetAccess:
    """Tests for size, row access, iteration and slicing."""

    def test_ninstances_and_len(self, data: InterpretationSet) -> None:
        """ninstances and len() should both report the row count.

        Args:
            data (InterpretationSet): Fixture batch.
        """
        with check:
            assert data.ninstances == 5
        with check:
            assert len(data) == 5

    def test_instance_returns_named_row(self, data: InterpretationSet) -> None:
        """instance(i) should return row i as a mapping.

        Args:
            data (InterpretationSet): Fixture batch.
        """
        assert data.instance(2) == {"x": 2.0, "color": "red"}

    def test_iteration_yields_rows_in_order(self, data: InterpretationSet) -> None:
        """Iterating should yield every row in order.

        Args:
            data (InterpretationSet): Fixture batch.
        """
        assert [row["x"] for row in data] == [0.0, 1.0, 2.0, None, 4.0]

    def test_slice_preserves_given_order(self, data: InterpretationSet) -> None:
        """slice() should select the given rows in the given order.

        Args:
            data (InterpretationSet): Fixture batch.
        """
        # Act
        sliced = data.slice([4, 0, 2])

        # Assert
        with check:
            assert sliced.ninstances == 3
        with check:
            assert [row["x"] for row in sliced] == [4.0, 0.0, 2.0]

    def test_empty_slice(self, data: InterpretationSet) -> None:
        """Slicing with no indices should give an empty set with the same variables.

        Args:
            data (InterpretationSet): Fixture batch.
        """
        # Act
        sliced = data.slice([])

        # Assert
        with check:
            assert sliced.ninstances == 0
        with check:
            assert sliced.frame.columns == ["x", "color"]

    def test_from_records(self) -> None:
        """from_records should build one row per mapping."""
        # Act
        data = InterpretationSet.from_records([{"x": 1.0, "y": "a"}, {"x": 2.0, "y": "b"}])

        # Assert
        with check:
            assert data.ninstances == 2
        with check:
            assert data.instance(1) == {"x": 2.0, "y": "b"}


class TestInterpretationSetCheck:
    """Tests for vectorised formula checking."""

    def test_check_atom_treats_nulls_as_unsatisfied(self, data: InterpretationSet) -> None:
        """Null values should never satisfy a condition.

        Args:
            data (InterpretationSet): Fixture batch.
        """
        assert data.check(_x_at_least(1.0)) == [False, True, True, False, True]

    def test_check_symbolic_atom(self, data: InterpretationSet) -> None:
        """Symbolic thresholds should compare against the string column.

        Args:
            data (InterpretationSet): Fixture batch.
        """
        assert data.check(_color_is("red")) == [True, False, True, False, False]

    def test_check_conjunction(self, data: InterpretationSet) -> None:
        """A conjunction should hold only where every atom holds.

        Args:
            data (InterpretationSet): Fixture batch.
        """
        # Arrange
        formula = Conjunction(atoms=(_x_at_least(1.0), _color_is("red")))

        # Act / Assert
        assert data.check(formula) == [False, False, True, False, False]

    def test_check_top_covers_every_row(self, data: InterpretationSet) -> None:
        """TOP should be satisfied by every row.

        Args:
            data (InterpretationSet): Fixture batch.
        """
        assert data.check(TOP) == [True] * 5

    def test_check_empty_set(self, data: InterpretationSet) -> None:
        """Checking an empty set should return an empty list.

        Args:
            data (InterpretationSet): Fixture batch.
        """
        assert data.slice([]).check(_x_at_least(1.0)) == []

    def test_batch_check_matches_single_check(self, data: InterpretationSet) -> None:
        """Batch results should equal checking each row on its own.

        Args:
            data (InterpretationSet): Fixture batch.
        """
        # Arrange
        formula = Conjunction(atoms=(_x_at_least(1.0), _color_is("red")))

        # Act
        batch = data.check(formula)
        single = [check_formula(formula, row) for row in data]

        # Assert
        assert batch == single

    def test_numeric_threshold_on_string_column_raises(self, data: InterpretationSet) -> None:
        """A numeric threshold on a string column should raise ThresholdTypeError.

        Args:
            data (InterpretationSet): Fixture batch.
        """
        # Arrange
        formula = Atom(
            condition=ScalarCondition(
                feature=VariableValue(name="color"), operator=">=", threshold=NumericThreshold(value=1.0)
            )
        )

        # Act / Assert
        with pytest.raises(ThresholdTypeError):
            data.check(formula)

    def test_symbolic_threshold_on_numeric_column_raises(self, data: InterpretationSet) -> None:
        """A symbolic threshold on a numeric column should raise ThresholdTypeError.

        Args:
            data (InterpretationSet): Fixture batch.
        """
        # Arrange
        formula = Atom(
            condition=ScalarCondition(
                feature=VariableValue(name="x"), operator="==", threshold=SymbolicThreshold(token="red")
            )
        )

        # Act / Assert
        with pytest.raises(ThresholdTypeError):
            data.check(formula)
