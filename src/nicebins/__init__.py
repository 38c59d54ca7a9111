"""
nicebins: grouping, binning and label rounding for chart axes.

This package provides:
- TableSource: pandas/polars table wrapper exposing columns as float arrays
- Groupings: Distinct, EqualWidthBins and EqualFrequencyBins
- Adaptive precision for compact, unambiguous group labels
- AggregationWindow: moving and cumulative windows over groups
- EventBus: coalescing change notifications for configuration objects
- DimensionConfig: per-axis configuration tying the above together

For logging configuration in standalone scripts:
    ```python
    from nicebins.utils.logging import configure_logging
    configure_logging(level="DEBUG")
    ```

When used as a library, logging is handled by the parent application's
configuration.
"""

import logging

from nicebins.utils.logging import configure_logging, get_logger

from nicebins.data import Column, ColumnKind, TableSource
from nicebins.dimension import DimensionConfig
from nicebins.errors import (
    GroupingError,
    IncompatibleColumnKindError,
    InvalidBoundsError,
    InvalidWindowParametersError,
    NiceBinsError,
    TooManyGroupsError,
)
from nicebins.events import ChangeEvent, ChangeType, EventBus
from nicebins.grouping import (
    Aggregate,
    AggregationWindow,
    Distinct,
    EqualFrequencyBins,
    EqualWidthBins,
    GroupingType,
    Interval,
    SinglePoint,
    apply_adaptive_rounding,
    create_grouping,
    grouping_model,
    optimal_precision,
    valid_grouping_types,
)
from nicebins.settings import BinningSettings, SettingsStore

# Ensure nicebins logger has NullHandler so logs don't propagate to root
# when no application has configured logging.
_logger = logging.getLogger("nicebins")
if not _logger.handlers:
    _logger.addHandler(logging.NullHandler())

__all__ = [
    "Aggregate",
    "AggregationWindow",
    "BinningSettings",
    "ChangeEvent",
    "ChangeType",
    "Column",
    "ColumnKind",
    "DimensionConfig",
    "Distinct",
    "EqualFrequencyBins",
    "EqualWidthBins",
    "EventBus",
    "GroupingError",
    "GroupingType",
    "IncompatibleColumnKindError",
    "Interval",
    "InvalidBoundsError",
    "InvalidWindowParametersError",
    "NiceBinsError",
    "SettingsStore",
    "SinglePoint",
    "TableSource",
    "TooManyGroupsError",
    "apply_adaptive_rounding",
    "configure_logging",
    "create_grouping",
    "get_logger",
    "grouping_model",
    "optimal_precision",
    "valid_grouping_types",
]

__version__ = "0.1.0"
