from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from importlib import import_module
from types import MappingProxyType, ModuleType
from typing import Any


@dataclass(frozen=True, slots=True)
class SpecOptionalFeature:
    name: str
    extras: tuple[str, ...]
    required_modules: tuple[str, ...]


OPTIONAL_FEATURES: Mapping[str, SpecOptionalFeature] = MappingProxyType(
    {
        "frame": SpecOptionalFeature(
            name="streamsheet.export frame sources",
            extras=("frame",),
            required_modules=("polars",),
        ),
        "cli": SpecOptionalFeature(
            name="streamsheet.cli",
            extras=("cli",),
            required_modules=("rich", "rich_argparse", "polars"),
        ),
    }
)


def build_optional_dependency_error(
    *,
    feature: SpecOptionalFeature,
    missing_module: str | None,
) -> ModuleNotFoundError:
    extras_text = ",".join(dict.fromkeys(feature.extras))
    missing_text = (
        f"Missing optional dependency `{missing_module}`."
        if missing_module
        else "Missing optional dependency."
    )
    return ModuleNotFoundError(
        f"{feature.name} is unavailable. {missing_text} "
        f'Install extras with `pip install "streamsheet[{extras_text}]"` '
        f"or sync in development with `pdm sync -G dev -G {extras_text}`."
    )


def _check_missing_is_required(
    missing_name: str | None, required_modules: Sequence[str]
) -> bool:
    # Only top-level names matter: `polars.dataframe` missing still means polars.
    if not required_modules:
        return True
    c_missing_root = (missing_name or "").split(".")[0]
    return c_missing_root in {_m.split(".")[0] for _m in required_modules}


def import_optional_module(
    *, module_name: str, package: str, feature_key: str
) -> ModuleType:
    """Import ``module_name`` relative to ``package``; translate a missing
    third-party dependency of ``feature_key`` into an install hint."""
    feature = OPTIONAL_FEATURES[feature_key]
    try:
        return import_module(module_name, package=package)
    except ModuleNotFoundError as exc:
        if _check_missing_is_required(exc.name, feature.required_modules):
            raise build_optional_dependency_error(
                feature=feature, missing_module=exc.name
            ) from exc
        raise


def import_optional_attr(
    *, module_name: str, attr_name: str, package: str, feature_key: str
) -> Any:
    module = import_optional_module(
        module_name=module_name, package=package, feature_key=feature_key
    )
    return getattr(module, attr_name)
