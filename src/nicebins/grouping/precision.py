"""
Adaptive visual rounding of group labels.

Each numeric range gets the smallest number of decimal digits that keeps
its own bounds apart and keeps its bounds apart from the adjoining bound
of its neighbors. Date/time ranges skip the search; they share a single
date format instead.

Example: two equal-width bins over 0..90 are labelled ``[0 - 45)`` and
``[45 - 90]``.
"""

from __future__ import annotations

import math
from dataclasses import replace
from typing import Optional, Sequence

from nicebins.grouping.ranges import Aggregate, Interval, Range, SinglePoint, format_value
from nicebins.settings import DEFAULT_DATE_FORMAT, DEFAULT_FALLBACK_PRECISION

# Returned when no number of digits tells two values apart (equal values)
INFINITE_PRECISION: int = 2**31 - 1

# Doubles need at most ~324 fractional digits to be told apart
MAX_SEARCH_PRECISION: int = 340


def optimal_precision(a: float, b: float) -> int:
    """Smallest number of decimal digits at which ``a`` and ``b`` render differently.

    Returns INFINITE_PRECISION if the values are equal (including two NaNs);
    callers substitute a fallback precision in that case.
    """
    if a == b or (math.isnan(a) and math.isnan(b)):
        return INFINITE_PRECISION
    for digits in range(MAX_SEARCH_PRECISION + 1):
        if format_value(a, digits) != format_value(b, digits):
            return digits
    return INFINITE_PRECISION


def _upper_boundary(r: Range) -> float:
    return r.upper


def _lower_boundary(r: Range) -> float:
    return r.lower


def _finest(*precisions: int) -> int:
    """Largest finite digit count, or INFINITE_PRECISION if none is finite."""
    finite = [p for p in precisions if p != INFINITE_PRECISION]
    return max(finite) if finite else INFINITE_PRECISION


def _round_interval(
    current: Interval,
    previous: Optional[Range],
    following: Optional[Range],
    fallback_precision: int,
) -> Interval:
    own = optimal_precision(current.lower, current.upper)

    precision_lower = own
    if previous is not None:
        precision_lower = _finest(own, optimal_precision(_upper_boundary(previous), current.lower))
    if precision_lower == INFINITE_PRECISION:
        precision_lower = fallback_precision

    precision_upper = own
    if following is not None:
        precision_upper = _finest(own, optimal_precision(current.upper, _lower_boundary(following)))
    if precision_upper == INFINITE_PRECISION:
        precision_upper = precision_lower

    return replace(current, precision_lower=precision_lower, precision_upper=precision_upper)


def _round_point(
    current: SinglePoint,
    previous: Optional[Range],
    following: Optional[Range],
    fallback_precision: int,
) -> SinglePoint:
    candidates = []
    if previous is not None:
        candidates.append(optimal_precision(_upper_boundary(previous), current.value))
    if following is not None:
        candidates.append(optimal_precision(current.value, _lower_boundary(following)))
    # one scalar must separate the point from both neighbors
    precision = _finest(*candidates)
    if precision == INFINITE_PRECISION:
        precision = fallback_precision
    return replace(current, precision=precision)


def _stamp_date_format(r: Range, date_format: str) -> Range:
    if isinstance(r, Aggregate):
        return Aggregate(tuple(_stamp_date_format(sub, date_format) for sub in r.sub_ranges))
    return replace(r, date_format=date_format)


def apply_adaptive_rounding(
    ranges: Sequence[Range],
    values_are_dates: bool = False,
    *,
    date_format: Optional[str] = None,
    fallback_precision: Optional[int] = None,
) -> list[Range]:
    """Assign display precision (or a shared date format) to a grouping result.

    Args:
        ranges: Ascending ranges from one grouping call.
        values_are_dates: If True, stamp every range with ``date_format`` and skip the search.
        date_format: strftime pattern for date/time ranges.
        fallback_precision: Digits used where no precision separates two values.

    Returns:
        New list of ranges, same length and order as ``ranges``.
    """
    if fallback_precision is None:
        fallback_precision = DEFAULT_FALLBACK_PRECISION

    if values_are_dates:
        fmt = date_format if date_format is not None else DEFAULT_DATE_FORMAT
        return [_stamp_date_format(r, fmt) for r in ranges]

    result: list[Range] = []
    n = len(ranges)
    for i, current in enumerate(ranges):
        previous = ranges[i - 1] if i > 0 else None
        following = ranges[i + 1] if i < n - 1 else None
        if isinstance(current, Interval):
            result.append(_round_interval(current, previous, following, fallback_precision))
        elif isinstance(current, SinglePoint):
            result.append(_round_point(current, previous, following, fallback_precision))
        else:
            result.append(current)
    return result
