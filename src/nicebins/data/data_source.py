"""Tabular data source consumed by groupings.

This module provides the TableSource class, a read-only numeric view over a
DataFrame. Every column is exposed as float64 values so the grouping
strategies can scan nominal, numerical and date/time columns alike.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterator, Optional, Union

import numpy as np
import pandas as pd

from nicebins.data.column import Column, ColumnKind
from nicebins.utils.logging import get_logger

logger = get_logger(__name__)

# Optional polars
try:  # pragma: no cover
    import polars as _pl  # type: ignore[import]
    HAS_POLARS = True
except Exception:  # pragma: no cover
    _pl = None  # type: ignore[assignment]
    HAS_POLARS = False

if TYPE_CHECKING:
    import polars as pl
else:
    pl = _pl  # type: ignore[assignment]

DataLike = Union[pd.DataFrame, "pl.DataFrame"]  # type: ignore[name-defined]

_EPOCH = pd.Timestamp("1970-01-01")


def infer_column_kind(series: pd.Series) -> ColumnKind:
    """Map a pandas dtype onto a ColumnKind.

    bool, object, string and category columns are nominal; integer and float
    columns are numerical; datetime columns (tz-aware or naive) are date/time.
    Everything else (complex, timedelta, ...) is invalid.
    """
    if isinstance(series.dtype, pd.CategoricalDtype):
        return ColumnKind.NOMINAL
    kind = getattr(series.dtype, "kind", None)
    if kind in ("b", "O", "U", "S"):
        return ColumnKind.NOMINAL
    if kind in ("i", "u", "f"):
        return ColumnKind.NUMERICAL
    if kind == "M":
        return ColumnKind.DATE_TIME
    return ColumnKind.INVALID


def _numeric_view(series: pd.Series, kind: ColumnKind) -> tuple[np.ndarray, Optional[list[str]]]:
    """Return (float values, category labels) for a column."""
    if kind is ColumnKind.NOMINAL:
        # codes follow order of first appearance; missing -> -1
        codes, uniques = pd.factorize(series.astype(object))
        values = codes.astype(float)
        values[codes < 0] = np.nan
        return values, [str(u) for u in uniques]
    if kind is ColumnKind.DATE_TIME:
        epoch = _EPOCH if series.dt.tz is None else _EPOCH.tz_localize("UTC")
        millis = (series - epoch) / pd.Timedelta(milliseconds=1)
        return millis.to_numpy(dtype=float, na_value=np.nan), None
    if kind is ColumnKind.NUMERICAL:
        return series.to_numpy(dtype=float, na_value=np.nan), None
    return np.full(len(series), np.nan), None


class TableSource:
    """Read-only numeric view of a DataFrame used as grouping input.

    Nominal values are mapped to their category index (order of first
    appearance), date/time values to epoch milliseconds and missing values to
    NaN. Column indices follow the DataFrame's column order.

    Attributes:
        df: The wrapped pandas DataFrame.
    """

    def __init__(self, data: DataLike) -> None:
        """Initialize TableSource from a pandas or polars DataFrame.

        Args:
            data: pandas DataFrame, or polars DataFrame (converted with to_pandas()).

        Raises:
            TypeError: If data is neither a pandas nor a polars DataFrame.
        """
        self.df = self._convert_input(data)
        self._columns: list[Column] = []
        self._values: list[np.ndarray] = []
        self._labels: list[Optional[list[str]]] = []
        for name in self.df.columns:
            series = self.df[name]
            kind = infer_column_kind(series)
            values, labels = _numeric_view(series, kind)
            self._columns.append(Column(str(name), kind))
            self._values.append(values)
            self._labels.append(labels)
        logger.debug(f"TableSource with {self.row_count()} rows and columns {self._columns}")

    @staticmethod
    def _convert_input(data: DataLike) -> pd.DataFrame:
        if isinstance(data, pd.DataFrame):
            return data
        if HAS_POLARS and pl is not None and isinstance(data, pl.DataFrame):
            return data.to_pandas()
        raise TypeError(f"Unsupported data type for TableSource: {type(data)!r}")

    # ------------------ columns ------------------

    @property
    def columns(self) -> list[Column]:
        return list(self._columns)

    def column(self, column_index: int) -> Column:
        return self._columns[column_index]

    def column_index_of(self, name: Optional[str]) -> int:
        """Index of the column called ``name``, or -1 if there is none."""
        for i, col in enumerate(self._columns):
            if col.name == name:
                return i
        return -1

    def is_nominal(self, column_index: int) -> bool:
        return self._columns[column_index].kind is ColumnKind.NOMINAL

    def is_numerical(self, column_index: int) -> bool:
        return self._columns[column_index].kind is ColumnKind.NUMERICAL

    def is_date_time(self, column_index: int) -> bool:
        return self._columns[column_index].kind is ColumnKind.DATE_TIME

    # ------------------ values ------------------

    def row_count(self) -> int:
        return len(self.df)

    def value_at(self, column_index: int, row_index: int) -> float:
        return float(self._values[column_index][row_index])

    def values(self, column_index: int) -> np.ndarray:
        """All values of a column as float64 (a copy)."""
        return self._values[column_index].copy()

    def values_in_range(self, column_index: int, lower: float, upper: float) -> np.ndarray:
        """Non-missing values inside the closed range [lower, upper].

        Bounds may be -inf/+inf. NaN bounds are treated as unbounded.
        """
        if np.isnan(lower):
            lower = -np.inf
        if np.isnan(upper):
            upper = np.inf
        arr = self._values[column_index]
        mask = ~np.isnan(arr) & (arr >= lower) & (arr <= upper)
        return arr[mask]

    def iter_rows(self) -> Iterator[tuple[float, ...]]:
        """Iterate rows as tuples of floats (one entry per column)."""
        for row in zip(*self._values):
            yield tuple(float(v) for v in row)

    def map_index(self, column_index: int, code: Any) -> Optional[str]:
        """Category label of a nominal code, or None for missing/unknown codes."""
        labels = self._labels[column_index]
        if labels is None:
            raise ValueError(f"Column {self._columns[column_index].name!r} is not nominal")
        try:
            idx = int(code)
        except (TypeError, ValueError):
            return None
        if idx < 0 or idx >= len(labels):
            return None
        return labels[idx]
