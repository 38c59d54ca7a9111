"""Value grouping: ranges, grouping strategies, label precision and aggregation windows."""

from nicebins.grouping.groupings import (
    Distinct,
    EqualFrequencyBins,
    EqualWidthBins,
    Grouping,
    GroupingChange,
    GroupingType,
    create_grouping,
    grouping_model,
    valid_grouping_types,
)
from nicebins.grouping.precision import INFINITE_PRECISION, apply_adaptive_rounding, optimal_precision
from nicebins.grouping.ranges import Aggregate, Interval, Range, SinglePoint, format_value
from nicebins.grouping.window import AggregationWindow

__all__ = [
    "Aggregate",
    "AggregationWindow",
    "Distinct",
    "EqualFrequencyBins",
    "EqualWidthBins",
    "Grouping",
    "GroupingChange",
    "GroupingType",
    "INFINITE_PRECISION",
    "Interval",
    "Range",
    "SinglePoint",
    "apply_adaptive_rounding",
    "create_grouping",
    "format_value",
    "grouping_model",
    "optimal_precision",
    "valid_grouping_types",
]
