"""Cell and column profiling for header detection and quantity parsing.

Spreadsheet decoders hand back a mix of strings, ints, floats and blanks. This
module turns those cells into comparable text, decides whether a cell reads as
a number, and profiles rows and columns by their numeric/text mix so the
resolver can tell a header row from a data row.
"""

import math
import re
from typing import Any, Dict, List, Optional, Sequence

# Longest leading numeric prefix, so "2 pcs" reads as 2 and "1e3x" as 1000
LEADING_NUMBER = re.compile(r'^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?')
INFINITY = re.compile(r'^([+-]?)Infinity')


def cell_text(value: Any) -> str:
    """Render a cell as text. Integral floats drop their trailing '.0'."""
    if value is None:
        return ''
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def is_blank(value: Any) -> bool:
    return cell_text(value).strip() == ''


def parse_leading_float(text: str) -> Optional[float]:
    """Parse the numeric prefix of a string.

    Args:
        text: Cell text, surrounding whitespace allowed

    Returns:
        The parsed number, or None when the text does not start with one
    """
    text = text.strip()
    match = LEADING_NUMBER.match(text)
    if match:
        return float(match.group(0))
    match = INFINITY.match(text)
    if match:
        return -math.inf if match.group(1) == '-' else math.inf
    return None


def is_numeric_cell(value: Any) -> bool:
    """True when the cell reads as a number (numeric prefix included)."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return not (isinstance(value, float) and math.isnan(value))
    return parse_leading_float(cell_text(value)) is not None


def parse_quantity(value: Any) -> Optional[float]:
    """Parse a quantity cell, treating the first comma as a decimal point.

    Returns:
        The quantity as float, or None when it cannot be parsed or is not
        finite (Infinity, NaN)
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = float(value)
    else:
        number = parse_leading_float(cell_text(value).replace(',', '.', 1))
        if number is None:
            return None
    if not math.isfinite(number):
        return None
    return number


class ColumnProfiler:
    """Profiles rows and columns by the mix of numeric and text cells."""

    def __init__(self, sample_size: int = 200):
        """Initialize the column profiler.

        Args:
            sample_size: Maximum number of non-blank values to sample per column
        """
        self.sample_size = sample_size

    def profile_row(self, row: Sequence[Any]) -> Dict[str, Any]:
        """Count non-blank and text cells in a single row.

        Args:
            row: Raw cells of one row

        Returns:
            Dictionary with 'non_empty', 'text', 'numeric' counts and 'text_ratio'
        """
        non_empty = [cell for cell in row if not is_blank(cell)]
        text = sum(1 for cell in non_empty if not is_numeric_cell(cell))
        return {
            'non_empty': len(non_empty),
            'text': text,
            'numeric': len(non_empty) - text,
            'text_ratio': text / len(non_empty) if non_empty else 0.0,
        }

    def is_header_candidate(self, row: Sequence[Any], min_cells: int, min_text_ratio: float) -> bool:
        """Whether a row looks like a text-dominant, multi-cell header.

        Args:
            row: Raw cells of one row
            min_cells: Minimum number of non-blank cells
            min_text_ratio: Minimum share of non-blank cells that must be text
        """
        profile = self.profile_row(row)
        if profile['non_empty'] < min_cells:
            return False
        return profile['text'] >= profile['non_empty'] * min_text_ratio

    def profile_column(self, column_name: str, values: List[Any]) -> Dict[str, Any]:
        """Compute a type profile for one column.

        Args:
            column_name: Name of the column being profiled
            values: All values in the column

        Returns:
            Dictionary with sample size, blank count and type distribution
        """
        sample = [v for v in values if not is_blank(v)][:self.sample_size]
        return {
            'column_name': column_name,
            'sample_size': len(sample),
            'null_count': sum(1 for v in values if is_blank(v)),
            'type_distribution': self._infer_type_distribution(sample),
        }

    def _infer_type_distribution(self, values: List[Any]) -> Dict[str, float]:
        """Infer type distribution: numeric vs text vs mixed.

        Args:
            values: Non-blank cell values

        Returns:
            Dictionary with 'numeric', 'text', and 'mixed' ratios
        """
        total = len(values)
        if total == 0:
            return {'numeric': 0.0, 'text': 0.0, 'mixed': 0.0}

        numeric_count = sum(1 for v in values if is_numeric_cell(v))
        text_count = total - numeric_count

        return {
            'numeric': numeric_count / total,
            'text': text_count / total,
            'mixed': 1.0 if (numeric_count > 0 and text_count > 0) else 0.0,
        }

    def numeric_columns(self, headers: Sequence[str], rows: Sequence[Sequence[Any]],
                        threshold: float = 0.8) -> List[int]:
        """Indices of columns whose sampled values are mostly numeric.

        Used as a hint for quantity selection when header vocabulary fails.

        Args:
            headers: Header labels
            rows: Data rows below the header
            threshold: Minimum numeric ratio for a column to qualify
        """
        indices = []
        for index, name in enumerate(headers):
            values = [row[index] if index < len(row) else None for row in rows]
            profile = self.profile_column(name, values)
            if profile['sample_size'] and profile['type_distribution']['numeric'] >= threshold:
                indices.append(index)
        return indices
