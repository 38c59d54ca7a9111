"""
Per-axis configuration: one column, how it is grouped, and how it is shown.

A DimensionConfig publishes every mutation to its EventBus. Changes that
touch several properties at once (switching the column, switching to a
categorical grouping) run with the bus suspended, so subscribers receive
them as one BATCH event.

Typical use:
    ```python
    source = TableSource(df)
    dim = DimensionConfig(source.column(source.column_index_of("age")))
    dim.bus.subscribe(on_change)
    dim.set_grouping(EqualWidthBins(dim.column, bin_count=5))
    dim.set_bounds(0.0, 100.0)
    groups = dim.windowed_model(source)
    counts = dim.group_counts(source)
    ```
"""

from __future__ import annotations

import math
from dataclasses import replace
from typing import Any, Optional

import numpy as np

from nicebins.data.column import Column
from nicebins.data.data_source import TableSource
from nicebins.errors import GroupingError, InvalidBoundsError, TooManyGroupsError
from nicebins.events.bus import EventBus
from nicebins.events.change_event import ChangeEvent, ChangeType
from nicebins.grouping.groupings import Grouping, GroupingChange, grouping_model
from nicebins.grouping.ranges import Aggregate, Interval, Range, SinglePoint
from nicebins.grouping.window import AggregationWindow
from nicebins.settings import BinningSettings, resolve_settings
from nicebins.utils.logging import get_logger

logger = get_logger(__name__)

# Bounds closer than this count as equal
BOUNDS_EPSILON = 1e-6


def _range_mask(r: Range, values: np.ndarray) -> np.ndarray:
    """Boolean mask of the entries of ``values`` that fall into ``r``."""
    if isinstance(r, Aggregate):
        mask = np.zeros(len(values), dtype=bool)
        for sub in r.sub_ranges:
            mask |= _range_mask(sub, values)
        return mask
    if isinstance(r, SinglePoint):
        if math.isnan(r.value):
            return np.isnan(values)
        return values == r.value
    if isinstance(r, Interval):
        lower_ok = values >= r.lower if r.lower_inclusive else values > r.lower
        upper_ok = values <= r.upper if r.upper_inclusive else values < r.upper
        return lower_ok & upper_ok
    raise TypeError(f"Unsupported range type {type(r)!r}")


class DimensionConfig:
    """Column, grouping, aggregation window, filter bounds and display flags of one axis.

    Attributes:
        bus: EventBus receiving a ChangeEvent for every mutation.
        settings: Defaults for precision, date format and the group limit.
    """

    def __init__(
        self,
        column: Column,
        grouping: Optional[Grouping] = None,
        *,
        window: Optional[AggregationWindow] = None,
        settings: Optional[BinningSettings] = None,
        bus: Optional[EventBus] = None,
    ) -> None:
        self.settings = resolve_settings(settings)
        self.bus = bus if bus is not None else EventBus(name=f"dimension:{column.name}")
        self._column = column
        self._grouping: Optional[Grouping] = None
        self._window = window if window is not None else AggregationWindow()
        self._lower_bound: Optional[float] = None
        self._upper_bound: Optional[float] = None
        self._logarithmic = False
        self._date_format: Optional[str] = None
        self._label: Optional[str] = None
        self._cached_source: Optional[TableSource] = None
        self._cached_model: Optional[list[Range]] = None

        if grouping is not None:
            self._check_grouping_column(grouping)
            self._grouping = grouping
            grouping.add_listener(self._on_grouping_changed)

    # ------------------ read access ------------------

    @property
    def column(self) -> Column:
        return self._column

    @property
    def grouping(self) -> Optional[Grouping]:
        return self._grouping

    @property
    def is_grouping(self) -> bool:
        return self._grouping is not None

    @property
    def window(self) -> AggregationWindow:
        return self._window

    @property
    def lower_bound(self) -> Optional[float]:
        """User-defined lower filter bound, or None when unused."""
        return self._lower_bound

    @property
    def upper_bound(self) -> Optional[float]:
        """User-defined upper filter bound, or None when unused."""
        return self._upper_bound

    @property
    def logarithmic(self) -> bool:
        return self._logarithmic

    @property
    def date_format(self) -> Optional[str]:
        return self._date_format

    @property
    def label(self) -> str:
        """Axis label; the column name unless a label was set."""
        return self._label if self._label is not None else self._column.name

    @property
    def is_nominal(self) -> bool:
        """True if the axis shows categories rather than a continuous scale."""
        if self._grouping is not None:
            return self._grouping.is_categorical
        return self._column.is_nominal

    # ------------------ mutations ------------------

    def set_column(self, column: Column) -> None:
        """Switch to another column; the grouping follows the new column.

        Raises:
            IncompatibleColumnKindError: If the current grouping cannot handle ``column``.
        """
        if column == self._column:
            return
        new_grouping = None
        if self._grouping is not None:
            # validate before anything is mutated
            new_grouping = replace(self._grouping, column=column)  # type: ignore[type-var]

        with self.bus.suspended():
            kind_changed = column.kind is not self._column.kind
            self._column = column
            if new_grouping is not None:
                self._grouping.evolve(column=column)  # type: ignore[union-attr]
            if kind_changed and (self._lower_bound is not None or self._upper_bound is not None):
                self.clear_bounds()
            self._publish(ChangeType.COLUMN, column)

    def set_grouping(self, grouping: Optional[Grouping]) -> None:
        """Replace the grouping (None removes it).

        A categorical grouping switches logarithmic scaling off.

        Raises:
            GroupingError: If ``grouping`` is for a different column.
        """
        if grouping is self._grouping:
            return
        if grouping is not None:
            self._check_grouping_column(grouping)

        with self.bus.suspended():
            self._publish(ChangeType.ABOUT_TO_CHANGE_GROUPING, self._grouping)
            if self._grouping is not None:
                self._grouping.remove_listener(self._on_grouping_changed)
            self._grouping = grouping
            if grouping is not None:
                if self._logarithmic and grouping.is_categorical:
                    self.set_logarithmic(False)
                grouping.add_listener(self._on_grouping_changed)
            self._publish(ChangeType.GROUPING_RESET, grouping)

    def update_grouping(self, **changes: Any) -> Grouping:
        """Evolve the current grouping with ``changes`` (e.g. ``bin_count=5``).

        Raises:
            GroupingError: If there is no grouping or the changes are invalid.
        """
        if self._grouping is None:
            raise GroupingError(f"Dimension {self.label!r} has no grouping to update")
        return self._grouping.evolve(**changes)

    def set_window(self, window: AggregationWindow) -> None:
        if window == self._window:
            return
        self._window = window
        self._publish(ChangeType.AGGREGATION_WINDOW, window)

    def set_bounds(self, lower: Optional[float] = None, upper: Optional[float] = None) -> None:
        """Set the user-defined filter bounds; None leaves a side unbounded.

        Raises:
            InvalidBoundsError: If both bounds are set and lower is not below upper,
                or if the column is nominal.
        """
        if (lower is not None or upper is not None) and self._column.is_nominal:
            raise InvalidBoundsError(f"Column {self._column.name!r} is nominal, bounds do not apply")
        if lower is not None and math.isnan(lower):
            lower = None
        if upper is not None and math.isnan(upper):
            upper = None
        if lower is not None and upper is not None:
            if lower > upper or abs(lower - upper) < BOUNDS_EPSILON:
                raise InvalidBoundsError(f"Lower bound {lower} must be below upper bound {upper}")
        if lower == self._lower_bound and upper == self._upper_bound:
            return
        self._lower_bound = lower
        self._upper_bound = upper
        self._publish(ChangeType.RANGE, (lower, upper))

    def clear_bounds(self) -> None:
        self.set_bounds(None, None)

    def set_logarithmic(self, logarithmic: bool) -> None:
        logarithmic = bool(logarithmic)
        if logarithmic == self._logarithmic:
            return
        if logarithmic and self.is_nominal:
            logger.warning(f"Logarithmic scaling ignored for categorical dimension {self.label!r}")
            return
        self._logarithmic = logarithmic
        self._publish(ChangeType.SCALING, logarithmic)

    def set_date_format(self, date_format: Optional[str]) -> None:
        """strftime pattern for date/time labels; None restores the default."""
        if date_format == self._date_format:
            return
        self._date_format = date_format
        self._publish(ChangeType.DATE_FORMAT, date_format)

    def set_label(self, label: Optional[str]) -> None:
        if label == self._label:
            return
        self._label = label
        self._publish(ChangeType.LABEL, label)

    def trigger_replot(self) -> None:
        """Ask subscribers to redraw without changing anything."""
        self.bus.enqueue(ChangeEvent(ChangeType.TRIGGER_REPLOT, source=self))

    # ------------------ models ------------------

    def effective_bounds(self) -> tuple[float, float]:
        lower = self._lower_bound if self._lower_bound is not None else -math.inf
        upper = self._upper_bound if self._upper_bound is not None else math.inf
        return lower, upper

    def grouping_model(self, source: TableSource) -> list[Range]:
        """Groups of the column inside the user-defined bounds.

        The result is cached per source until the next mutation.

        Raises:
            GroupingError: If no grouping is set.
            TooManyGroupsError: If the grouping yields more than ``settings.max_group_count`` groups.
        """
        if self._grouping is None:
            raise GroupingError(f"Dimension {self.label!r} has no grouping")
        if self._cached_model is not None and self._cached_source is source:
            return self._cached_model

        settings = self.settings
        if self._date_format is not None:
            settings = replace(settings, date_format=self._date_format)
        lower, upper = self.effective_bounds()
        model = grouping_model(self._grouping, source, lower, upper, settings=settings)

        if len(model) > settings.max_group_count:
            raise TooManyGroupsError(len(model), settings.max_group_count, self._column.name)

        self._cached_source = source
        self._cached_model = model
        return model

    def windowed_model(self, source: TableSource) -> list[Optional[Range]]:
        """Grouping model passed through the aggregation window, index for index."""
        return self._window.apply(self.grouping_model(source))

    def group_counts(self, source: TableSource) -> list[int]:
        """Number of rows inside the bounds that fall into each windowed group."""
        idx = source.column_index_of(self._column.name)
        if idx < 0:
            raise GroupingError(f"Column {self._column.name!r} not found in data source")
        groups = self.windowed_model(source)
        lower, upper = self.effective_bounds()
        values = source.values_in_range(idx, lower, upper)
        return [0 if g is None else int(_range_mask(g, values).sum()) for g in groups]

    # ------------------ lifecycle ------------------

    def clone(self) -> "DimensionConfig":
        """Independent copy with a fresh bus; the grouping is copied without listeners."""
        grouping = self._grouping.clone() if self._grouping is not None else None
        other = DimensionConfig(self._column, grouping, window=self._window, settings=self.settings)
        other._lower_bound = self._lower_bound
        other._upper_bound = self._upper_bound
        other._logarithmic = self._logarithmic
        other._date_format = self._date_format
        other._label = self._label
        return other

    def detach(self) -> None:
        """Stop listening to the grouping."""
        if self._grouping is not None:
            self._grouping.remove_listener(self._on_grouping_changed)

    # ------------------ internals ------------------

    def _check_grouping_column(self, grouping: Grouping) -> None:
        if grouping.column.name != self._column.name:
            raise GroupingError(
                f"Grouping is for column {grouping.column.name!r}, dimension uses {self._column.name!r}"
            )

    def _on_grouping_changed(self, change: GroupingChange) -> None:
        # listeners move to the evolved grouping, follow it
        self._grouping = change.new
        with self.bus.suspended():
            if self._logarithmic and change.new.is_categorical:
                self.set_logarithmic(False)
            self._publish(ChangeType.GROUPING_CHANGED, change)

    def _publish(self, change_type: ChangeType, payload: Any = None) -> None:
        self._cached_source = None
        self._cached_model = None
        self.bus.enqueue(ChangeEvent(change_type, source=self, payload=payload))

    def __repr__(self) -> str:
        grouping = self._grouping.grouping_type.value if self._grouping is not None else None
        return f"DimensionConfig(column={self._column.name!r}, grouping={grouping}, window={self._window})"
