"""Aggregation windows: blend each group with its neighbors.

A window with ``grab_left=2, grab_right=0`` turns every group into the union
of itself and the two groups to its left (a moving window); ``grab_left=-1``
grabs everything to the left (cumulative plots). The result always has the
same length as the input because callers zip it index-for-index with the
original groups.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Optional, Sequence

from nicebins.errors import InvalidWindowParametersError
from nicebins.grouping.ranges import Aggregate, Range
from nicebins.utils.logging import get_logger

logger = get_logger(__name__)

# Grab everything available in that direction
UNBOUNDED = -1


@dataclass(frozen=True)
class AggregationWindow:
    """Left/right lookback-lookahead over an ordered sequence of ranges.

    Attributes:
        grab_left: Number of groups to the left merged into each group (-1: all).
        grab_right: Number of groups to the right merged into each group (-1: all).
        include_incomplete_groups: If False, positions without a full window
            yield None instead of a partial aggregate.
    """
    grab_left: int = 0
    grab_right: int = 0
    include_incomplete_groups: bool = True

    def __post_init__(self) -> None:
        for name in ("grab_left", "grab_right"):
            value = getattr(self, name)
            if value < UNBOUNDED:
                raise InvalidWindowParametersError(f"{name} must be -1 (unbounded) or >= 0, got {value}")

    @property
    def is_identity(self) -> bool:
        return self.grab_left == 0 and self.grab_right == 0

    def apply(self, ranges: Sequence[Range]) -> list[Optional[Range]]:
        """Window every range of ``ranges``.

        Returns:
            List of the same length as ``ranges``. Each entry is the range
            itself (window of one), an Aggregate of the window, or None where
            the window is incomplete and incomplete groups are excluded.
        """
        left_cap = None if self.grab_left == UNBOUNDED else self.grab_left
        right_cap = None if self.grab_right == UNBOUNDED else self.grab_right

        left: deque[Range] = deque()
        right: deque[Range] = deque()
        current: Optional[Range] = None
        result: list[Optional[Range]] = []

        def advance() -> None:
            nonlocal current
            if current is not None:
                left.append(current)
                if left_cap is not None and len(left) > left_cap:
                    left.popleft()
            current = right.popleft()

        def emit() -> None:
            full_left = self.grab_left == UNBOUNDED or len(left) >= self.grab_left
            if self.include_incomplete_groups or full_left:
                result.append(Aggregate.of([*left, current, *right]))
            else:
                result.append(None)

        for r in ranges:
            right.append(r)
            if right_cap is not None and len(right) > right_cap:
                advance()
                emit()

        if self.include_incomplete_groups or self.grab_right == UNBOUNDED:
            while right:
                advance()
                emit()
        else:
            result.extend([None] * (len(ranges) - len(result)))

        logger.debug(f"{self} applied to {len(ranges)} groups")
        return result
