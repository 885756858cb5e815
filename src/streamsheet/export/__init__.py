from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

from streamsheet._optional_deps import import_optional_attr

__all__ = [
    "BatchExporter",
    "RecordSource",
    "ProgressMonitor",
    "SpecExportContext",
    "SpecExportIssue",
    "SpecExportOptions",
    "SpecExportRequest",
    "SpecExportResult",
    "SpecExportStats",
    "count_frame_rows",
    "scan_frame",
]

if TYPE_CHECKING:
    from .exporter import BatchExporter
    from .frame import count_frame_rows, scan_frame
    from .monitor import ProgressMonitor
    from .source import RecordSource
    from .spec import (
        SpecExportContext,
        SpecExportIssue,
        SpecExportOptions,
        SpecExportRequest,
        SpecExportResult,
        SpecExportStats,
    )

_ATTR_MODULES: dict[str, str] = {
    "BatchExporter": ".exporter",
    "RecordSource": ".source",
    "ProgressMonitor": ".monitor",
    "SpecExportContext": ".spec",
    "SpecExportIssue": ".spec",
    "SpecExportOptions": ".spec",
    "SpecExportRequest": ".spec",
    "SpecExportResult": ".spec",
    "SpecExportStats": ".spec",
}


def __getattr__(name: str) -> Any:
    if name in {"count_frame_rows", "scan_frame"}:
        return import_optional_attr(
            module_name=".frame",
            attr_name=name,
            package=__name__,
            feature_key="frame",
        )
    module_name = _ATTR_MODULES.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    value = getattr(import_module(module_name, package=__name__), name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(set(globals()) | set(__all__))
