"""Batches of interpretations backed by a polars DataFrame."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from typing import Any, Final

import polars as pl

from symkit.exceptions import ThresholdTypeError
from symkit.logic import Atom, Conjunction, NumericThreshold, SymbolicThreshold, Top

_SATISFIED_COLUMN: Final[str] = "__symkit_satisfied__"

_SYMBOLIC_DTYPES: Final[tuple[type[pl.DataType], ...]] = (pl.String, pl.Categorical, pl.Enum)


class InterpretationSet:
    """An index-addressable batch of interpretations, one per DataFrame row.

    Slicing returns a new set over the selected rows, in the given order.
    Formulas are evaluated over every row at once through polars expressions.

    Examples:
        >>> data = InterpretationSet.from_records([{"x": 1.0}, {"x": 3.0}])
        >>> data.ninstances
        2
        >>> data.slice([1]).instance(0)
        {'x': 3.0}
    """

    def __init__(self, frame: pl.DataFrame) -> None:
        """Initialize the set.

        Args:
            frame (pl.DataFrame): One row per interpretation, one column per variable.
        """
        self._frame = frame

    @classmethod
    def from_records(cls, records: Sequence[Mapping[str, Any]]) -> InterpretationSet:
        """Build a set from a sequence of row mappings.

        Args:
            records (Sequence[Mapping[str, Any]]): One mapping per interpretation.

        Returns:
            InterpretationSet: The new set.
        """
        return cls(pl.DataFrame([dict(record) for record in records]))

    @property
    def frame(self) -> pl.DataFrame:
        """The underlying DataFrame."""
        return self._frame

    @property
    def ninstances(self) -> int:
        """Number of interpretations in the set."""
        return self._frame.height

    def __len__(self) -> int:
        return self.ninstances

    def __iter__(self) -> Iterator[dict[str, Any]]:
        return self._frame.iter_rows(named=True)

    def __repr__(self) -> str:
        return f"InterpretationSet(ninstances={self.ninstances}, variables={self._frame.columns})"

    def instance(self, index: int) -> dict[str, Any]:
        """Return one interpretation as a mapping from variable name to value.

        Args:
            index (int): Row index.

        Returns:
            dict[str, Any]: The interpretation.
        """
        return self._frame.row(index, named=True)

    def slice(self, indices: Sequence[int]) -> InterpretationSet:
        """Restrict the set to the given row indices, in the given order.

        Args:
            indices (Sequence[int]): Row indices into this set.

        Returns:
            InterpretationSet: A set of `len(indices)` interpretations.
        """
        positions = pl.Series("positions", list(indices), dtype=pl.UInt32)
        return InterpretationSet(self._frame.select(pl.all().gather(positions)))

    def check(self, formula: Atom | Conjunction | Top) -> list[bool]:
        """Check a formula against every interpretation in the set.

        Missing values never satisfy a condition.

        Args:
            formula (Atom | Conjunction | Top): The formula to check.

        Returns:
            list[bool]: One result per interpretation, aligned with row order.

        Raises:
            ThresholdTypeError: If a condition's threshold kind does not match
                its column's dtype.
        """
        if self.ninstances == 0:
            return []
        self._validate_threshold_kinds(formula)
        satisfied = self._frame.with_columns(formula.to_expr().fill_null(False).alias(_SATISFIED_COLUMN))
        return satisfied.get_column(_SATISFIED_COLUMN).to_list()

    def _validate_threshold_kinds(self, formula: Atom | Conjunction | Top) -> None:
        """Reject numeric thresholds on non-numeric columns and symbolic thresholds on non-string ones.

        Args:
            formula (Atom | Conjunction | Top): The formula about to be evaluated.

        Raises:
            ThresholdTypeError: On the first mismatching condition.
        """
        schema = self._frame.schema
        for condition in formula.conditions():
            name = condition.feature.name
            dtype = schema.get(name)
            if dtype is None or dtype == pl.Null:
                # Unknown columns are reported by polars; all-null columns satisfy nothing.
                continue
            match condition.threshold:
                case NumericThreshold(value=value):
                    if not dtype.is_numeric():
                        raise ThresholdTypeError(variable=name, value=dtype, threshold=value)
                case SymbolicThreshold(token=token):
                    if not isinstance(dtype, _SYMBOLIC_DTYPES):
                        raise ThresholdTypeError(variable=name, value=dtype, threshold=token)
