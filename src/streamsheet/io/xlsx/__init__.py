from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

__all__ = [
    "SheetWriter",
    "StyleCache",
    "RowWriter",
    "SupportsHidden",
    "CellValueCodec",
    "ValueTransformRegistry",
    "SpecCellFormat",
    "SpecColumn",
    "SpecColumnMapping",
    "SpecSheetLayout",
    "SpecSheetWriteOptions",
    "SpecAutofitCellsPolicy",
    "SpecXlsxValuePolicy",
    "SpecSheetReport",
    "compile_field_accessor",
    "resolve_column_mappings",
]

if TYPE_CHECKING:
    from .mapping import compile_field_accessor, resolve_column_mappings
    from .row_writer import RowWriter, SupportsHidden
    from .spec import (
        SpecAutofitCellsPolicy,
        SpecCellFormat,
        SpecColumn,
        SpecColumnMapping,
        SpecSheetLayout,
        SpecSheetReport,
        SpecSheetWriteOptions,
        SpecXlsxValuePolicy,
    )
    from .style import StyleCache
    from .value_conversion import CellValueCodec, ValueTransformRegistry
    from .writer import SheetWriter

_ATTR_MODULES: dict[str, str] = {
    "SheetWriter": ".writer",
    "StyleCache": ".style",
    "RowWriter": ".row_writer",
    "SupportsHidden": ".row_writer",
    "CellValueCodec": ".value_conversion",
    "ValueTransformRegistry": ".value_conversion",
    "compile_field_accessor": ".mapping",
    "resolve_column_mappings": ".mapping",
    "SpecCellFormat": ".spec",
    "SpecColumn": ".spec",
    "SpecColumnMapping": ".spec",
    "SpecSheetLayout": ".spec",
    "SpecSheetWriteOptions": ".spec",
    "SpecAutofitCellsPolicy": ".spec",
    "SpecXlsxValuePolicy": ".spec",
    "SpecSheetReport": ".spec",
}


def __getattr__(name: str) -> Any:
    module_name = _ATTR_MODULES.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    value = getattr(import_module(module_name, package=__name__), name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(set(globals()) | set(__all__))
