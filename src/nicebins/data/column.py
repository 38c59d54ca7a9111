"""Column descriptors shared by data sources and groupings."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ColumnKind(Enum):
    """Value kind of a tabular column."""
    NOMINAL = "nominal"
    NUMERICAL = "numerical"
    DATE_TIME = "date_time"
    INVALID = "invalid"


@dataclass(frozen=True)
class Column:
    """Name and kind of one column. Two descriptors are equal iff both match."""
    name: Optional[str]
    kind: ColumnKind

    @property
    def is_nominal(self) -> bool:
        return self.kind is ColumnKind.NOMINAL

    @property
    def is_numerical(self) -> bool:
        return self.kind is ColumnKind.NUMERICAL

    @property
    def is_date_time(self) -> bool:
        return self.kind is ColumnKind.DATE_TIME
