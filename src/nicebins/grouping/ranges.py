"""Value ranges produced by groupings.

A range describes one group of values: a numeric interval, a single
distinct value, or an aggregate of several ranges treated as one group
(used by aggregation windows). Ranges are immutable; the precision rounder
returns new instances with display precision filled in.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Union

import pandas as pd

# Label for missing values
UNKNOWN_VALUE_LABEL = "?"


def format_value(value: float, precision: Optional[int] = None, date_format: Optional[str] = None) -> str:
    """Render a boundary value for labels.

    Args:
        value: Numeric value (epoch milliseconds for date/time columns).
        precision: Number of decimal digits. None renders the shortest repr.
        date_format: strftime pattern; when given the value is shown as a date.

    Returns:
        The formatted text.
    """
    if math.isnan(value):
        return UNKNOWN_VALUE_LABEL
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if date_format is not None:
        return pd.Timestamp(value, unit="ms").strftime(date_format)
    if precision is None:
        return str(float(value))
    return f"{value:.{precision}f}"


def _representative(lower: float, upper: float) -> float:
    lower_finite = math.isfinite(lower)
    upper_finite = math.isfinite(upper)
    if lower_finite and upper_finite:
        return (lower + upper) / 2.0
    if lower_finite:
        return lower
    if upper_finite:
        return upper
    return math.nan


@dataclass(frozen=True)
class Interval:
    """Numeric interval ``[lower, upper)`` (brackets follow the inclusive flags)."""
    lower: float
    upper: float
    lower_inclusive: bool = True
    upper_inclusive: bool = False
    precision_lower: Optional[int] = None
    precision_upper: Optional[int] = None
    date_format: Optional[str] = None

    @property
    def value(self) -> float:
        """Midpoint, or the finite bound of a half-open overflow bin."""
        return _representative(self.lower, self.upper)

    def contains(self, x: float) -> bool:
        if math.isnan(x):
            return False
        if x < self.lower or (x == self.lower and not self.lower_inclusive):
            return False
        if x > self.upper or (x == self.upper and not self.upper_inclusive):
            return False
        return True

    def label(self) -> str:
        left = "[" if self.lower_inclusive else "("
        right = "]" if self.upper_inclusive else ")"
        lo = format_value(self.lower, self.precision_lower, self.date_format)
        hi = format_value(self.upper, self.precision_upper, self.date_format)
        return f"{left}{lo} - {hi}{right}"

    def __str__(self) -> str:
        return self.label()


@dataclass(frozen=True)
class SinglePoint:
    """One distinct value. ``text`` holds the category label of nominal values."""
    value: float
    precision: Optional[int] = None
    date_format: Optional[str] = None
    text: Optional[str] = None

    @property
    def lower(self) -> float:
        return self.value

    @property
    def upper(self) -> float:
        return self.value

    def contains(self, x: float) -> bool:
        # missing values form their own group
        if math.isnan(self.value):
            return math.isnan(x)
        return x == self.value

    def label(self) -> str:
        if self.text is not None:
            return self.text
        return format_value(self.value, self.precision, self.date_format)

    def __str__(self) -> str:
        return self.label()


@dataclass(frozen=True)
class Aggregate:
    """Union of several ranges treated as one group."""
    sub_ranges: tuple["Range", ...]

    def __post_init__(self) -> None:
        if not self.sub_ranges:
            raise ValueError("Aggregate needs at least one sub range")

    @classmethod
    def of(cls, ranges: Iterable["Range"]) -> "Range":
        """Combine ranges; a single range is returned as is."""
        items = tuple(ranges)
        if len(items) == 1:
            return items[0]
        return cls(items)

    @property
    def lower(self) -> float:
        return min(r.lower for r in self.sub_ranges)

    @property
    def upper(self) -> float:
        return max(r.upper for r in self.sub_ranges)

    @property
    def value(self) -> float:
        return _representative(self.lower, self.upper)

    def contains(self, x: float) -> bool:
        return any(r.contains(x) for r in self.sub_ranges)

    def label(self) -> str:
        return " u ".join(r.label() for r in self.sub_ranges)

    def __len__(self) -> int:
        return len(self.sub_ranges)

    def __str__(self) -> str:
        return self.label()


Range = Union[Interval, SinglePoint, Aggregate]
