"""Column descriptors and the tabular data source consumed by groupings."""

from nicebins.data.column import Column, ColumnKind
from nicebins.data.data_source import TableSource, infer_column_kind

__all__ = [
    "Column",
    "ColumnKind",
    "TableSource",
    "infer_column_kind",
]
