"""Test suite for cell parsing and row/column profiling."""

import math
import sys
from pathlib import Path

# Add parent directory to path to import bomtree
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from bomtree import ColumnProfiler
from bomtree.column_profiler import (
    cell_text,
    is_blank,
    is_numeric_cell,
    parse_leading_float,
    parse_quantity,
)


# =============================================================================
# CELL HELPERS
# =============================================================================

@pytest.mark.parametrize("value, expected", [
    (None, ""),
    ("", ""),
    ("P-100", "P-100"),
    (1001, "1001"),
    (1001.0, "1001"),
    (2.5, "2.5"),
])
def test_cell_text(value, expected):
    assert cell_text(value) == expected


def test_is_blank():
    assert is_blank(None)
    assert is_blank("")
    assert is_blank("   ")
    assert not is_blank(0)
    assert not is_blank("x")


def test_parse_leading_float_reads_numeric_prefix():
    assert parse_leading_float("12") == 12.0
    assert parse_leading_float("  -3.5 ") == -3.5
    assert parse_leading_float("2 pcs") == 2.0
    assert parse_leading_float(".5") == 0.5
    assert parse_leading_float("1e3x") == 1000.0
    assert parse_leading_float("Infinity") == math.inf
    assert parse_leading_float("qty") is None
    assert parse_leading_float("") is None


def test_is_numeric_cell():
    assert is_numeric_cell(3)
    assert is_numeric_cell(2.5)
    assert is_numeric_cell("42")
    assert is_numeric_cell("10mm")  # leading number counts
    assert not is_numeric_cell("SKU")
    assert not is_numeric_cell("")
    assert not is_numeric_cell(float("nan"))


def test_parse_quantity_comma_decimal():
    assert parse_quantity("2,5") == 2.5
    assert parse_quantity("3") == 3.0
    assert parse_quantity(4) == 4.0
    assert parse_quantity(" 1,25 kg") == 1.25


def test_parse_quantity_unparseable():
    assert parse_quantity("n/a") is None
    assert parse_quantity("") is None
    assert parse_quantity(None) is None
    assert parse_quantity(float("nan")) is None


def test_parse_quantity_rejects_non_finite():
    assert parse_quantity("Infinity") is None
    assert parse_quantity("-Infinity") is None
    assert parse_quantity(float("inf")) is None
    assert parse_quantity("1e999") is None


# =============================================================================
# PROFILING
# =============================================================================

def test_profile_row_counts_text_and_numbers():
    profiler = ColumnProfiler()
    profile = profiler.profile_row(["SKU", "Desc", "", 12, "3"])

    assert profile["non_empty"] == 4
    assert profile["text"] == 2
    assert profile["numeric"] == 2
    assert profile["text_ratio"] == 0.5


def test_is_header_candidate_thresholds():
    profiler = ColumnProfiler()

    assert profiler.is_header_candidate(["SKU", "Child", "Qty"], 3, 0.4)
    # Too few cells
    assert not profiler.is_header_candidate(["SKU", "Child", ""], 3, 0.4)
    # Mostly numeric
    assert not profiler.is_header_candidate(["P1", 1, 2, 3], 3, 0.4)
    # Exactly 40% text qualifies
    assert profiler.is_header_candidate(["A", "B", 1, 2, 3], 3, 0.4)


def test_profile_column_type_distribution():
    profiler = ColumnProfiler(sample_size=200)
    profile = profiler.profile_column("Qty", ["1", "2", "", None, "three"])

    assert profile["column_name"] == "Qty"
    assert profile["sample_size"] == 3
    assert profile["null_count"] == 2
    dist = profile["type_distribution"]
    assert dist["numeric"] == pytest.approx(2 / 3)
    assert dist["text"] == pytest.approx(1 / 3)
    assert dist["mixed"] == 1.0


def test_profile_column_empty():
    profile = ColumnProfiler().profile_column("Empty", [None, ""])
    assert profile["sample_size"] == 0
    assert profile["type_distribution"] == {'numeric': 0.0, 'text': 0.0, 'mixed': 0.0}


def test_numeric_columns():
    profiler = ColumnProfiler()
    headers = ["A", "B", "C"]
    rows = [
        ["P1", "1", 2],
        ["P2", "x", 3],
        ["P3"],  # ragged row
    ]

    assert profiler.numeric_columns(headers, rows) == [2]
