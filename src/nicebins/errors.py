"""Exception types raised by nicebins.

Configuration problems are reported when a grouping, window or bound is
built, so callers can resolve them before any data scan.
"""

from __future__ import annotations

from typing import Any, Optional


class NiceBinsError(Exception):
    """Base class for every error raised by nicebins."""


class GroupingError(NiceBinsError, ValueError):
    """A grouping is misconfigured or cannot be applied to a data source."""


class IncompatibleColumnKindError(GroupingError):
    """A grouping strategy was combined with a column kind it cannot handle.

    Attributes:
        column: The offending column descriptor.
        grouping_type: The grouping type that rejected the column.
    """

    def __init__(self, column: Any, grouping_type: Any, message: Optional[str] = None) -> None:
        self.column = column
        self.grouping_type = grouping_type
        if message is None:
            kind = getattr(getattr(column, "kind", None), "value", None)
            name = getattr(grouping_type, "value", grouping_type)
            message = f"Grouping {name!r} cannot be applied to {kind} column {getattr(column, 'name', None)!r}"
        super().__init__(message)


class TooManyGroupsError(GroupingError):
    """A grouping model produced more groups than the configured maximum."""

    def __init__(self, group_count: int, max_group_count: int, column_name: Optional[str] = None) -> None:
        self.group_count = group_count
        self.max_group_count = max_group_count
        self.column_name = column_name
        super().__init__(
            f"Column {column_name!r} yields {group_count} groups, "
            f"more than the allowed maximum of {max_group_count}"
        )


class InvalidWindowParametersError(NiceBinsError, ValueError):
    """Aggregation window bounds must be -1 (unbounded) or non-negative."""


class InvalidBoundsError(NiceBinsError, ValueError):
    """A user-defined lower bound is not strictly below the upper bound."""
