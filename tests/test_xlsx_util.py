from __future__ import annotations

import math
import sys
from pathlib import Path

import pytest

# Ensure src-layout imports work when running tests from repo checkout.
SRC_DIR = Path(__file__).resolve().parents[1] / "src"
sys.path.insert(0, str(SRC_DIR))

from streamsheet.io.xlsx.spec import SpecVerticalMerge, SpecXlsxValuePolicy  # noqa: E402
from streamsheet.io.xlsx.util import (  # noqa: E402
    calculate_column_width,
    convert_nan_inf_to_str,
    estimate_width_len,
    generate_row_span_groups,
    plan_vertical_merges,
    sanitize_sheet_name,
)


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        (None, "Data"),
        ("", "Data"),
        ("   ", "Data"),
        ("Report", "Report"),
        ("a/b:c", "a_b_c"),
        ("'quoted'", "quoted"),
        ("x" * 40, "x" * 31),
    ],
)
def test_sanitize_sheet_name(name: str | None, expected: str) -> None:
    assert sanitize_sheet_name(name) == expected


@pytest.mark.parametrize(
    ("n_rows", "n_span", "expected"),
    [
        (0, 2, []),
        (1, 2, [(1, 1)]),
        (5, 2, [(1, 2), (3, 4), (5, 5)]),
        (6, 3, [(1, 3), (4, 6)]),
        (3, 1, [(1, 1), (2, 2), (3, 3)]),
    ],
)
def test_row_span_groups_partition_data_rows(
    n_rows: int, n_span: int, expected: list[tuple[int, int]]
) -> None:
    l_groups = list(
        generate_row_span_groups(row_idx_last=n_rows, row_span_quantity=n_span)
    )
    assert l_groups == expected
    assert len(l_groups) == math.ceil(n_rows / n_span)


def test_row_span_groups_reject_non_positive_quantity() -> None:
    with pytest.raises(ValueError):
        list(generate_row_span_groups(row_idx_last=3, row_span_quantity=0))


def test_plan_vertical_merges_skips_single_rows_and_disabled_span() -> None:
    assert plan_vertical_merges(
        cols_idx_row_span=[0], row_idx_last=10, row_span_quantity=1
    ) == []

    l_merges = plan_vertical_merges(
        cols_idx_row_span=[0, 2], row_idx_last=5, row_span_quantity=2
    )
    assert l_merges == [
        SpecVerticalMerge(col_idx=0, row_idx_start=1, row_idx_end=2),
        SpecVerticalMerge(col_idx=0, row_idx_start=3, row_idx_end=4),
        SpecVerticalMerge(col_idx=2, row_idx_start=1, row_idx_end=2),
        SpecVerticalMerge(col_idx=2, row_idx_start=3, row_idx_end=4),
    ]


def test_plan_vertical_merges_from_a_later_group_start() -> None:
    l_merges = plan_vertical_merges(
        cols_idx_row_span=[1], row_idx_last=9, row_span_quantity=3, row_idx_first=7
    )
    assert l_merges == [SpecVerticalMerge(col_idx=1, row_idx_start=7, row_idx_end=9)]


def test_estimate_width_len() -> None:
    assert estimate_width_len(None) == 0
    assert estimate_width_len("") == 0
    assert estimate_width_len("abc") == 3
    assert estimate_width_len(True) == 5
    assert estimate_width_len(1.5) == 3
    assert estimate_width_len(2.0) == 1
    assert estimate_width_len("中文") == 3


def test_calculate_column_width_clamps() -> None:
    kwargs = {"width_min": 8, "width_max": 20, "width_padding": 2}
    assert calculate_column_width(0, **kwargs) == 8
    assert calculate_column_width(10, **kwargs) == 12
    assert calculate_column_width(100, **kwargs) == 20


def test_convert_nan_inf_to_str() -> None:
    policy = SpecXlsxValuePolicy(nan_str="n/a")
    assert convert_nan_inf_to_str(x=float("nan"), value_policy=policy) == "n/a"
    assert convert_nan_inf_to_str(x=float("inf"), value_policy=policy) == "Inf"
    assert convert_nan_inf_to_str(x=float("-inf"), value_policy=policy) == "-Inf"
    with pytest.raises(ValueError):
        convert_nan_inf_to_str(x=1.0, value_policy=policy)
