import math
from collections.abc import Generator, Iterable
from typing import Any

from .conf import (
    C_SHEET_NAME_DEFAULT,
    N_LEN_EXCEL_SHEET_NAME_MAX,
    N_ROW_IDX_DATA_START,
    TUP_EXCEL_ILLEGAL,
)
from .spec import SpecVerticalMerge, SpecXlsxValuePolicy

################################################################################
# #region CellValueConversion


def convert_nan_inf_to_str(*, x: float, value_policy: SpecXlsxValuePolicy) -> str:
    if math.isnan(x):
        return value_policy.nan_str
    if math.isinf(x):
        return value_policy.posinf_str if x > 0 else value_policy.neginf_str
    raise ValueError("Input is neither NaN nor Inf.")


# #endregion
################################################################################
# #region SheetNormalization


def sanitize_sheet_name(name: str | None, *, replace_to: str = "_") -> str:
    """Return an Excel-safe sheet name; blank or missing names become ``"Data"``."""
    if name is None or not name.strip():
        return C_SHEET_NAME_DEFAULT
    for ch in TUP_EXCEL_ILLEGAL:
        name = name.replace(ch, replace_to)
    # Excel rejects names starting or ending with an apostrophe.
    name = name.strip().strip("'") or C_SHEET_NAME_DEFAULT
    return name[:N_LEN_EXCEL_SHEET_NAME_MAX]


# #endregion
################################################################################
# #region RowSpanMergePlanning


def generate_row_span_groups(
    *,
    row_idx_last: int,
    row_span_quantity: int,
    row_idx_first: int = N_ROW_IDX_DATA_START,
) -> Generator[tuple[int, int], Any, None]:
    """
    Yield consecutive, non-overlapping ``(row_start, row_end)`` data row groups.

    Data rows start at 1 (row 0 is the header). Groups have
    ``row_span_quantity`` rows except possibly the last one. ``row_idx_first``
    must be a group start when only part of the sheet is planned.

    Examples:
        >>> list(generate_row_span_groups(row_idx_last=5, row_span_quantity=2))
        [(1, 2), (3, 4), (5, 5)]
        >>> list(generate_row_span_groups(row_idx_last=0, row_span_quantity=2))
        []
    """
    if row_span_quantity < 1:
        raise ValueError(f"row_span_quantity must be >= 1, got {row_span_quantity}")
    n_row_cursor = row_idx_first
    while n_row_cursor <= row_idx_last:
        n_row_end = min(n_row_cursor + row_span_quantity - 1, row_idx_last)
        yield n_row_cursor, n_row_end
        n_row_cursor = n_row_end + 1


def plan_vertical_merges(
    *,
    cols_idx_row_span: Iterable[int],
    row_idx_last: int,
    row_span_quantity: int,
    row_idx_first: int = N_ROW_IDX_DATA_START,
) -> list[SpecVerticalMerge]:
    """
    Plan vertical merges for every row-span column.

    Nothing is planned when ``row_span_quantity <= 1``; single-row groups are
    skipped.
    """
    if row_span_quantity <= 1:
        return []
    l_groups = [
        (_start, _end)
        for _start, _end in generate_row_span_groups(
            row_idx_last=row_idx_last,
            row_span_quantity=row_span_quantity,
            row_idx_first=row_idx_first,
        )
        if _start < _end
    ]
    return [
        SpecVerticalMerge(col_idx=_col_idx, row_idx_start=_start, row_idx_end=_end)
        for _col_idx in cols_idx_row_span
        for _start, _end in l_groups
    ]


# #endregion
################################################################################
# #region ColumnWidth


def estimate_width_len(value: Any) -> int:
    """
    Approximate how many character columns ``value`` takes once rendered.

    Non-ASCII characters count 1.6 each; floats are measured with at most
    four decimals; booleans as ``FALSE``.
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        return len("FALSE")
    if isinstance(value, float) and math.isfinite(value):
        s = f"{value:.4f}".rstrip("0").rstrip(".")
    else:
        s = str(value)
    if not s:
        return 0
    n_ascii = sum(1 for _chr in s if ord(_chr) < 128)
    n_non_ascii = len(s) - n_ascii
    return n_ascii + int(1.6 * n_non_ascii)


def calculate_column_width(
    n_len_recorded: int, *, width_min: int, width_max: int, width_padding: int
) -> float:
    n_min = max(1, int(width_min))
    n_max = min(255, max(n_min, int(width_max)))
    n_pad = max(0, int(width_padding))
    return min(n_max, max(n_min, n_len_recorded + n_pad))


# #endregion
################################################################################
