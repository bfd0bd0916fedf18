from .parser import BomConverter
from .column_resolver import (
    ColumnResolver,
    ColumnMapping,
    ColumnDetection,
    ResolvedTable,
    NeedsManualSelection,
    resolve_columns,
    resolve_manual_columns,
)
from .expander import HierarchyExpander, ExpandedTable, ExpansionStats, expand_hierarchy
from .column_profiler import ColumnProfiler
from .exceptions import BomTreeError, EmptyInputError, InvalidColumnMappingError, UnsupportedFileError
from .schema import LEVEL_HEADER

__all__ = [
    "BomConverter",
    "ColumnResolver",
    "ColumnMapping",
    "ColumnDetection",
    "ResolvedTable",
    "NeedsManualSelection",
    "resolve_columns",
    "resolve_manual_columns",
    "HierarchyExpander",
    "ExpandedTable",
    "ExpansionStats",
    "expand_hierarchy",
    "ColumnProfiler",
    "BomTreeError",
    "EmptyInputError",
    "InvalidColumnMappingError",
    "UnsupportedFileError",
    "LEVEL_HEADER",
]
