from __future__ import annotations

from typing import TYPE_CHECKING, Any

from streamsheet._optional_deps import import_optional_attr

__all__ = ["ConsoleProgressMonitor", "main"]

if TYPE_CHECKING:
    from .console import ConsoleProgressMonitor
    from .main import main


def __getattr__(name: str) -> Any:
    if name == "ConsoleProgressMonitor":
        return import_optional_attr(
            module_name=".console",
            attr_name=name,
            package=__name__,
            feature_key="cli",
        )
    if name == "main":
        return import_optional_attr(
            module_name=".main",
            attr_name=name,
            package=__name__,
            feature_key="cli",
        )
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
