from collections.abc import Mapping
from dataclasses import replace
from types import MappingProxyType
from typing import Literal

from .spec import SpecCellFormat, SpecSheetWriteOptions

N_NROWS_EXCEL_MAX = 1_048_576
N_NCOLS_EXCEL_MAX = 16_384
N_LEN_EXCEL_SHEET_NAME_MAX = 31
TUP_EXCEL_ILLEGAL = ("*", ":", "?", "/", "\\", "[", "]")

N_ROW_IDX_HEADER = 0
N_ROW_IDX_DATA_START = 1

C_SHEET_NAME_DEFAULT = "Data"
C_HIDE_FIELD_NAME = "hide"

# Strategy/Preference/Adjustable Parameters for XLSX export.

LIT_FMT_KEYS = Literal["data", "header"]
_cls_base_fmt_spec = SpecCellFormat(font_name="Calibri", font_size=11)

DEFAULT_XLSX_FORMATS: Mapping[LIT_FMT_KEYS, SpecCellFormat] = MappingProxyType(
    {
        "data": _cls_base_fmt_spec,
        "header": replace(_cls_base_fmt_spec, bold=True, font_color="blue"),
    }
)

DEFAULT_SHEET_WRITE_OPTIONS = SpecSheetWriteOptions()
