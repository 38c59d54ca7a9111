"""
Grouping strategies: turn a column of a data source into ordered ranges.

Three strategies form a closed set:

- Distinct: one SinglePoint per distinct value.
- EqualWidthBins: ``bin_count`` intervals of equal width between min and max.
- EqualFrequencyBins: up to ``bin_count`` intervals holding roughly the same
  number of rows each.

Each strategy is an immutable dataclass. ``grouping_model()`` dispatches on
the strategy type; all numeric results pass through the adaptive precision
rounder before they are returned.

Groupings carry one piece of mutable state, their listener list.
``evolve(**changes)`` builds the changed grouping, hands the listener list
over to it and notifies every listener with a GroupingChange.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, ClassVar, Optional, Union

import numpy as np

from nicebins.data.column import Column, ColumnKind
from nicebins.data.data_source import TableSource
from nicebins.errors import GroupingError, IncompatibleColumnKindError
from nicebins.grouping.precision import apply_adaptive_rounding
from nicebins.grouping.ranges import Interval, Range, SinglePoint
from nicebins.settings import DEFAULT_BIN_COUNT, BinningSettings, resolve_settings
from nicebins.utils.logging import get_logger

logger = get_logger(__name__)


class GroupingType(Enum):
    """Enumeration of available grouping strategies."""
    DISTINCT = "distinct"
    EQUAL_WIDTH = "equal_width"
    EQUAL_FREQUENCY = "equal_frequency"


@dataclass(frozen=True)
class GroupingChange:
    """Notification sent to grouping listeners when a grouping was evolved."""
    old: "Grouping"
    new: "Grouping"


GroupingListener = Callable[[GroupingChange], None]


def _nan_free(value: Any) -> Any:
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


class _ListenerSupport:
    """Listener plumbing and value semantics shared by the grouping dataclasses."""

    _listeners: list[GroupingListener]

    def add_listener(self, listener: GroupingListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: GroupingListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def clone(self) -> "Grouping":
        """Copy of the configuration without listeners."""
        return replace(self)  # type: ignore[type-var]

    def evolve(self, **changes: Any) -> "Grouping":
        """Return a changed grouping and notify listeners.

        The listener list moves to the returned grouping. If nothing changed,
        ``self`` is returned and nobody is notified.

        Raises:
            GroupingError: If the changed configuration is invalid.
        """
        new = replace(self, **changes)  # type: ignore[type-var]
        if new == self:
            return self
        new._listeners.extend(self._listeners)
        self._listeners.clear()
        change = GroupingChange(old=self, new=new)  # type: ignore[arg-type]
        for listener in list(new._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception("grouping listener failed")
        return new

    def _key(self) -> tuple:
        raise NotImplementedError

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._key() == other._key()  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._key()))


def _check_column(column: Column, grouping_type: GroupingType, numeric_only: bool) -> None:
    if column.kind is ColumnKind.INVALID:
        raise IncompatibleColumnKindError(column, grouping_type)
    if numeric_only and column.kind is ColumnKind.NOMINAL:
        raise IncompatibleColumnKindError(column, grouping_type)


@dataclass(frozen=True, eq=False)
class Distinct(_ListenerSupport):
    """One group per distinct value. Always categorical."""
    column: Column
    date_format: Optional[str] = None
    _listeners: list[GroupingListener] = field(default_factory=list, init=False, repr=False, compare=False)

    grouping_type: ClassVar[GroupingType] = GroupingType.DISTINCT

    def __post_init__(self) -> None:
        _check_column(self.column, self.grouping_type, numeric_only=False)

    @property
    def is_categorical(self) -> bool:
        return True

    @property
    def domain_kind(self) -> ColumnKind:
        return self.column.kind

    def model(
        self,
        source: TableSource,
        lower: float = -math.inf,
        upper: float = math.inf,
        *,
        settings: Optional[BinningSettings] = None,
    ) -> list[Range]:
        return grouping_model(self, source, lower, upper, settings=settings)

    def _key(self) -> tuple:
        return (self.column, self.date_format)


@dataclass(frozen=True, eq=False)
class EqualWidthBins(_ListenerSupport):
    """``bin_count`` intervals of equal width.

    Attributes:
        column: Numerical or date/time column to bin.
        bin_count: Number of bins (>= 1).
        min_value: Explicit lower end of the binned range; NaN means automatic.
        max_value: Explicit upper end of the binned range; NaN means automatic.
        auto_range: If True, min/max are taken from the data.
        categorical: If True, the bins are shown as categories; with explicit
            bounds an underflow and an overflow bin are added.
        date_format: strftime pattern for date/time labels.
    """
    column: Column
    bin_count: int = DEFAULT_BIN_COUNT
    min_value: float = math.nan
    max_value: float = math.nan
    auto_range: bool = True
    categorical: bool = False
    date_format: Optional[str] = None
    _listeners: list[GroupingListener] = field(default_factory=list, init=False, repr=False, compare=False)

    grouping_type: ClassVar[GroupingType] = GroupingType.EQUAL_WIDTH

    def __post_init__(self) -> None:
        _check_column(self.column, self.grouping_type, numeric_only=True)
        if int(self.bin_count) < 1:
            raise GroupingError(f"bin_count must be at least 1, got {self.bin_count}")
        if not self.is_auto_ranging and self.min_value > self.max_value:
            raise GroupingError(f"min_value {self.min_value} is greater than max_value {self.max_value}")

    @property
    def is_auto_ranging(self) -> bool:
        return self.auto_range or math.isnan(self.min_value) or math.isnan(self.max_value)

    @property
    def is_categorical(self) -> bool:
        return self.categorical

    @property
    def domain_kind(self) -> ColumnKind:
        if self.column.kind is ColumnKind.DATE_TIME:
            return ColumnKind.DATE_TIME
        return ColumnKind.NUMERICAL

    def model(
        self,
        source: TableSource,
        lower: float = -math.inf,
        upper: float = math.inf,
        *,
        settings: Optional[BinningSettings] = None,
    ) -> list[Range]:
        return grouping_model(self, source, lower, upper, settings=settings)

    def _key(self) -> tuple:
        return (
            self.column,
            int(self.bin_count),
            _nan_free(self.min_value),
            _nan_free(self.max_value),
            self.auto_range,
            self.categorical,
            self.date_format,
        )


@dataclass(frozen=True, eq=False)
class EqualFrequencyBins(_ListenerSupport):
    """Up to ``bin_count`` intervals with (nearly) equal row counts.

    Fewer bins are produced when the column has fewer distinct values.
    """
    column: Column
    bin_count: int = DEFAULT_BIN_COUNT
    categorical: bool = False
    date_format: Optional[str] = None
    _listeners: list[GroupingListener] = field(default_factory=list, init=False, repr=False, compare=False)

    grouping_type: ClassVar[GroupingType] = GroupingType.EQUAL_FREQUENCY

    def __post_init__(self) -> None:
        _check_column(self.column, self.grouping_type, numeric_only=True)
        if int(self.bin_count) < 1:
            raise GroupingError(f"bin_count must be at least 1, got {self.bin_count}")

    @property
    def is_categorical(self) -> bool:
        return self.categorical

    @property
    def domain_kind(self) -> ColumnKind:
        if self.column.kind is ColumnKind.DATE_TIME:
            return ColumnKind.DATE_TIME
        return ColumnKind.NUMERICAL

    def model(
        self,
        source: TableSource,
        lower: float = -math.inf,
        upper: float = math.inf,
        *,
        settings: Optional[BinningSettings] = None,
    ) -> list[Range]:
        return grouping_model(self, source, lower, upper, settings=settings)

    def _key(self) -> tuple:
        return (self.column, int(self.bin_count), self.categorical, self.date_format)


Grouping = Union[Distinct, EqualWidthBins, EqualFrequencyBins]


# -----------------------------------------------------------------------------
# Shared steps
# -----------------------------------------------------------------------------


def _source_column_index(grouping: Grouping, source: TableSource) -> int:
    """Locate the grouping's column in ``source`` and re-check its kind there."""
    idx = source.column_index_of(grouping.column.name)
    if idx < 0:
        raise GroupingError(f"Column {grouping.column.name!r} not found in data source")
    source_column = source.column(idx)
    numeric_only = grouping.grouping_type is not GroupingType.DISTINCT
    _check_column(source_column, grouping.grouping_type, numeric_only=numeric_only)
    return idx


def _finite(values: np.ndarray) -> np.ndarray:
    return values[np.isfinite(values)]


def _round_labels(
    ranges: list[Range],
    kind: ColumnKind,
    date_format: Optional[str],
    settings: BinningSettings,
) -> list[Range]:
    if kind is ColumnKind.NOMINAL:
        return ranges
    return apply_adaptive_rounding(
        ranges,
        values_are_dates=kind is ColumnKind.DATE_TIME,
        date_format=date_format if date_format is not None else settings.date_format,
        fallback_precision=settings.fallback_precision,
    )


def _round_half_up(x: float) -> int:
    # half-up rounding; Python's round() rounds half to even
    return int(math.floor(x + 0.5))


# -----------------------------------------------------------------------------
# Strategy implementations
# -----------------------------------------------------------------------------


def _distinct_model(
    grouping: Distinct, source: TableSource, idx: int, lower: float, upper: float
) -> list[Range]:
    distinct = np.unique(source.values_in_range(idx, lower, upper))
    if source.is_nominal(idx):
        return [SinglePoint(float(v), text=source.map_index(idx, v)) for v in distinct]
    return [SinglePoint(float(v)) for v in distinct]


def _equal_width_model(
    grouping: EqualWidthBins, source: TableSource, idx: int, lower: float, upper: float
) -> list[Range]:
    n = int(grouping.bin_count)
    if grouping.is_auto_ranging:
        values = _finite(source.values_in_range(idx, lower, upper))
        if len(values) == 0:
            return []
        min_value = float(values.min())
        max_value = float(values.max())
        # never looser than a finite filter bound
        if math.isfinite(lower):
            min_value = max(min_value, lower)
        if math.isfinite(upper):
            max_value = min(max_value, upper)
    else:
        min_value = float(grouping.min_value)
        max_value = float(grouping.max_value)

    ranges: list[Range] = []
    if min_value == max_value:
        ranges.append(Interval(min_value, max_value, lower_inclusive=True, upper_inclusive=True))
    else:
        step = (max_value - min_value) / n
        for i in range(n):
            last = i == n - 1
            bin_lower = min_value + i * step
            # the last bin ends exactly at max so accumulated error cannot drop it
            bin_upper = max_value if last else min_value + (i + 1) * step
            ranges.append(Interval(bin_lower, bin_upper, lower_inclusive=True, upper_inclusive=last))

    if grouping.categorical and (not grouping.auto_range or math.isnan(grouping.min_value)):
        ranges.insert(0, Interval(-math.inf, min_value, lower_inclusive=True, upper_inclusive=False))
        ranges.append(Interval(max_value, math.inf, lower_inclusive=False, upper_inclusive=True))
    return ranges


def _equal_frequency_model(
    grouping: EqualFrequencyBins, source: TableSource, idx: int, lower: float, upper: float
) -> list[Range]:
    values = _finite(source.values_in_range(idx, lower, upper))
    if len(values) == 0:
        return []
    uniques, counts = np.unique(values, return_counts=True)
    total = int(counts.sum())
    distinct = len(uniques)
    n = min(int(grouping.bin_count), distinct)
    avg_bin_size = total / n

    ranges: list[Range] = []
    pos = 0
    used = 0
    previous_upper: Optional[float] = None
    for k in range(1, n + 1):
        target = _round_half_up(k * avg_bin_size)
        bins_after = n - k

        # every bin takes at least one distinct value
        used += int(counts[pos])
        pos += 1

        if k == n:
            used += int(counts[pos:].sum())
            pos = distinct
        else:
            while pos < distinct:
                # keep one distinct value in reserve for each later bin
                if distinct - pos <= bins_after:
                    break
                candidate = used + int(counts[pos])
                if abs(candidate - target) > abs(used - target):
                    break
                used = candidate
                pos += 1

        bin_upper = float(uniques[pos - 1])
        if previous_upper is None:
            ranges.append(Interval(float(uniques[0]), bin_upper, lower_inclusive=True, upper_inclusive=True))
        else:
            ranges.append(Interval(previous_upper, bin_upper, lower_inclusive=False, upper_inclusive=True))
        previous_upper = bin_upper
    return ranges


_MODELS: dict[type, Callable[..., list[Range]]] = {
    Distinct: _distinct_model,
    EqualWidthBins: _equal_width_model,
    EqualFrequencyBins: _equal_frequency_model,
}


def grouping_model(
    grouping: Grouping,
    source: TableSource,
    lower: float = -math.inf,
    upper: float = math.inf,
    *,
    settings: Optional[BinningSettings] = None,
) -> list[Range]:
    """Group the values of ``grouping.column`` that lie in ``[lower, upper]``.

    Missing values are always skipped. Infinite values are skipped by the
    binning strategies (EqualWidthBins, EqualFrequencyBins), which only cut
    the finite range, but Distinct keeps -inf and +inf as groups of their own.

    Args:
        grouping: The strategy and its configuration.
        source: Data source holding the column.
        lower: Lower filter bound (may be -inf).
        upper: Upper filter bound (may be +inf).
        settings: Defaults for fallback precision and date format.

    Returns:
        Ascending, non-overlapping ranges with display precision assigned.
        Empty when no value lies inside the filter bounds.

    Raises:
        GroupingError: If the column is missing from ``source``.
        IncompatibleColumnKindError: If the source column's kind does not fit the strategy.
    """
    settings = resolve_settings(settings)
    try:
        compute = _MODELS[type(grouping)]
    except KeyError:
        raise TypeError(f"Unknown grouping type {type(grouping)!r}") from None

    idx = _source_column_index(grouping, source)
    ranges = compute(grouping, source, idx, lower, upper)
    kind = source.column(idx).kind
    ranges = _round_labels(ranges, kind, grouping.date_format, settings)
    logger.debug(
        f"{grouping.grouping_type.value} grouping of {grouping.column.name!r} "
        f"in [{lower}, {upper}] -> {len(ranges)} groups"
    )
    return ranges


# -----------------------------------------------------------------------------
# Construction helpers
# -----------------------------------------------------------------------------


def valid_grouping_types(column: Column) -> list[GroupingType]:
    """Grouping types that accept ``column``."""
    if column.kind is ColumnKind.INVALID:
        return []
    if column.kind is ColumnKind.NOMINAL:
        return [GroupingType.DISTINCT]
    return list(GroupingType)


def create_grouping(
    grouping_type: GroupingType,
    column: Column,
    *,
    settings: Optional[BinningSettings] = None,
    **options: Any,
) -> Grouping:
    """Build a grouping of ``grouping_type`` for ``column``.

    Binning types without an explicit ``bin_count`` use ``settings.default_bin_count``.

    Raises:
        IncompatibleColumnKindError: If the column kind does not fit the type.
        GroupingError: If ``options`` hold an invalid configuration.
    """
    if grouping_type is GroupingType.DISTINCT:
        return Distinct(column, **options)
    options.setdefault("bin_count", resolve_settings(settings).default_bin_count)
    if grouping_type is GroupingType.EQUAL_WIDTH:
        return EqualWidthBins(column, **options)
    if grouping_type is GroupingType.EQUAL_FREQUENCY:
        return EqualFrequencyBins(column, **options)
    raise ValueError(f"Unknown grouping type {grouping_type!r}")
