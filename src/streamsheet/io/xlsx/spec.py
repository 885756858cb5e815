# "Facts/Plans" describing how records are laid out on the single export sheet.

from collections.abc import Callable, Iterator
from dataclasses import dataclass, field, fields, replace
from typing import Any, Literal

FieldAccessor = Callable[[Any], Any]


################################################################################
# #region CellFormatSpecification
@dataclass(frozen=True, slots=True)
class SpecCellFormat:
    """
    Hashable cell style, also the key of the per-workbook format cache.

    Attribute names are XlsxWriter format properties; ``None`` means unset.
    """

    font_name: str | None = None
    font_size: int | None = None
    font_color: str | None = None
    bold: bool | None = None
    italic: bool | None = None
    bg_color: str | None = None
    num_format: str | None = None
    align: str | None = None
    valign: str | None = None
    border: int | None = None
    text_wrap: bool | None = None

    def iter_props(self) -> Iterator[tuple[str, Any]]:
        for _field in fields(self):
            if (value := getattr(self, _field.name)) is not None:
                yield _field.name, value

    def overlay(self, top: "SpecCellFormat") -> "SpecCellFormat":
        """Copy of this format where every property set on ``top`` wins."""
        return replace(self, **dict(top.iter_props()))

    def to_format_props(self) -> dict[str, Any]:
        return dict(self.iter_props())


# #endregion
################################################################################
# #region ColumnSpecification
@dataclass(frozen=True, slots=True)
class SpecColumn:
    """
    Declarative description of one exported column.

    ``field`` is either a dotted field path (``"customer.address.city"``,
    integer segments index into sequences) or a callable bound explicitly to
    this column. Style attributes left as ``None`` fall back to the sheet
    defaults.
    """

    header: str
    field: str | FieldAccessor
    font_color: str | None = None
    bold: bool | None = None
    bg_color: str | None = None
    num_format: str | None = None
    header_font_color: str | None = None
    header_bg_color: str | None = None
    row_span: bool = False

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "SpecColumn":
        """Build a column from a plain mapping (e.g. decoded JSON)."""
        set_keys_known = set(cls.__dataclass_fields__)
        if set_keys_unknown := set(data) - set_keys_known:
            raise KeyError(f"Unknown column keys: {sorted(set_keys_unknown)}")
        return cls(**data)


@dataclass(frozen=True, slots=True)
class SpecSheetLayout:
    columns: tuple[SpecColumn, ...]
    sheet_name: str | None = None
    freeze_cols: int = 0
    freeze_rows: int = 1
    row_span_quantity: int = 1


@dataclass(frozen=True, slots=True)
class SpecColumnMapping:
    idx: int
    header: str
    fmt_header: Any
    fmt_data: Any
    fmt_data_spec: SpecCellFormat
    row_span: bool
    accessor: FieldAccessor


LIT_CELL_WRITE_KINDS = Literal["blank", "string", "number", "boolean", "datetime"]


@dataclass(frozen=True, slots=True)
class SpecCellWrite:
    """One encoded cell: issued as ``Worksheet.write_<kind>(row, col, value, fmt)``."""

    col_idx: int
    kind: LIT_CELL_WRITE_KINDS
    value: Any
    fmt: Any


# #endregion
################################################################################
# #region WriteOptions


@dataclass(frozen=True, slots=True)
class SpecXlsxValuePolicy:
    nan_str: str = "NaN"
    posinf_str: str = "Inf"
    neginf_str: str = "-Inf"


@dataclass(frozen=True, slots=True)
class SpecAutofitCellsPolicy:
    rule_columns: Literal["none", "header", "body", "all"] = "all"
    height_body_inferred_max: int | None = 20_000
    width_cell_min: int = 8
    width_cell_max: int = 60
    width_cell_padding: int = 2


@dataclass(frozen=True, slots=True)
class SpecSheetWriteOptions:
    fmt_data: SpecCellFormat | None = None
    fmt_header: SpecCellFormat | None = None
    num_format_date: str = "yyyy-mm-dd"
    num_format_datetime: str = "yyyy-mm-dd hh:mm:ss"
    num_format_time: str = "hh:mm:ss"
    value_policy: SpecXlsxValuePolicy = field(default_factory=SpecXlsxValuePolicy)
    autofit: SpecAutofitCellsPolicy = field(default_factory=SpecAutofitCellsPolicy)


# #endregion
################################################################################
# #region SheetFormatSpecification
@dataclass(frozen=True, slots=True)
class SpecVerticalMerge:
    col_idx: int
    row_idx_start: int
    row_idx_end: int  # inclusive


# #endregion
################################################################################
# #region ReportSpecification
@dataclass(slots=True)
class SpecSheetReport:
    sheet_name: str
    n_rows_data: int = 0
    merges: list[SpecVerticalMerge] = field(default_factory=list)
    widths: list[float] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def warn(self, msg: str) -> None:
        self.warnings.append(str(msg))


# #endregion
################################################################################
