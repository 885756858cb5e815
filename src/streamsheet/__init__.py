from __future__ import annotations

from importlib import import_module
from importlib.metadata import PackageNotFoundError, version
from types import ModuleType
from typing import TYPE_CHECKING, Any

__all__ = [
    "__version__",
    "io_xlsx",
    "export",
    "errors",
    "cli_console",
]

try:
    __version__ = version("streamsheet")
except PackageNotFoundError:
    __version__ = "0.0.0"

if TYPE_CHECKING:
    import streamsheet.cli.console as cli_console
    import streamsheet.errors as errors
    import streamsheet.export as export
    import streamsheet.io.xlsx as io_xlsx

_ALIAS_MODULES: dict[str, str] = {
    "io_xlsx": "streamsheet.io.xlsx",
    "export": "streamsheet.export",
    "errors": "streamsheet.errors",
    "cli_console": "streamsheet.cli.console",
}


def __getattr__(name: str) -> Any:
    module_name = _ALIAS_MODULES.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module_loaded: ModuleType = import_module(module_name)
    globals()[name] = module_loaded
    return module_loaded


def __dir__() -> list[str]:
    return sorted(set(globals()) | set(__all__))
