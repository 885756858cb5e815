from collections.abc import Mapping, Sequence
from typing import Any

from loguru import logger

from streamsheet.errors import ExtractionError, ValidationError

from .spec import FieldAccessor, SpecColumn, SpecColumnMapping
from .style import StyleCache

_MISSING = object()


################################################################################
# #region FieldAccessors


def parse_field_path(path: str) -> tuple[str | int, ...]:
    """
    Split a dotted field path into segments.

    Purely numeric segments become integers so they can index sequences.

    Examples:
        >>> parse_field_path("customer.address.city")
        ('customer', 'address', 'city')
        >>> parse_field_path("lines.0.sku")
        ('lines', 0, 'sku')
    """
    if not isinstance(path, str) or not path.strip():
        raise ValidationError(f"Field path must be a non-empty string, got {path!r}")
    l_segments: list[str | int] = []
    for _part in path.strip().split("."):
        if not _part:
            raise ValidationError(f"Field path has an empty segment: {path!r}")
        l_segments.append(int(_part) if _part.lstrip("-").isdigit() else _part)
    return tuple(l_segments)


def _resolve_segment(obj: Any, segment: str | int) -> Any:
    if obj is None:
        raise ExtractionError(f"cannot read {segment!r} from None")
    if isinstance(obj, Mapping):
        value = obj.get(segment, _MISSING)
        if value is _MISSING and isinstance(segment, int):
            value = obj.get(str(segment), _MISSING)
        if value is _MISSING:
            raise ExtractionError(f"key {segment!r} not found")
        return value
    if isinstance(segment, int):
        if isinstance(obj, Sequence) and not isinstance(obj, str):
            try:
                return obj[segment]
            except IndexError as e:
                raise ExtractionError(f"index {segment} out of range") from e
        raise ExtractionError(f"{type(obj).__name__} is not indexable")
    try:
        return getattr(obj, segment)
    except AttributeError as e:
        raise ExtractionError(
            f"{type(obj).__name__} has no attribute {segment!r}"
        ) from e


def _guard_accessor(accessor: FieldAccessor, label: str) -> FieldAccessor:
    def _extract(record: Any) -> Any:
        try:
            return accessor(record)
        except Exception as e:
            logger.debug(f"Failed to extract field {label!r}, using None: {e}")
            return None

    return _extract


def compile_field_accessor(field: str | FieldAccessor) -> FieldAccessor:
    """
    Bind a column's field once, at mapping-build time.

    A dotted path is parsed here, not per record; a callable is used as-is.
    The returned function never raises: extraction failures yield ``None``.
    """
    if callable(field):
        return _guard_accessor(field, getattr(field, "__name__", repr(field)))

    tup_segments = parse_field_path(field)

    def _read_path(record: Any) -> Any:
        value = record
        for _segment in tup_segments:
            value = _resolve_segment(value, _segment)
        return value

    return _guard_accessor(_read_path, field)


# #endregion
################################################################################
# #region ColumnMappings


def validate_columns(columns: Sequence[SpecColumn] | None) -> tuple[SpecColumn, ...]:
    if columns is None:
        raise ValidationError("Column specification cannot be None.")
    tup_columns = tuple(columns)
    if not tup_columns:
        raise ValidationError("At least one column must be configured.")
    for _idx, _col in enumerate(tup_columns):
        if not isinstance(_col, SpecColumn):
            raise ValidationError(
                f"Column {_idx} must be a SpecColumn, got {type(_col).__name__}"
            )
        if not isinstance(_col.header, str):
            raise ValidationError(f"Column {_idx} header must be a string.")
        if not callable(_col.field):
            parse_field_path(_col.field)
    return tup_columns


def resolve_column_mappings(
    columns: Sequence[SpecColumn], style_cache: StyleCache
) -> tuple[SpecColumnMapping, ...]:
    """
    Resolve each column into an immutable mapping.

    The mapping index is the column's position in ``columns``; header and
    data formats are taken from ``style_cache``.
    """
    l_mappings: list[SpecColumnMapping] = []
    for _idx, _col in enumerate(validate_columns(columns)):
        l_mappings.append(
            SpecColumnMapping(
                idx=_idx,
                header=_col.header,
                fmt_header=style_cache.derive_header_format(_col),
                fmt_data=style_cache.derive_data_format(_col),
                fmt_data_spec=style_cache.derive_data_spec(_col),
                row_span=bool(_col.row_span),
                accessor=compile_field_accessor(_col.field),
            )
        )
    return tuple(l_mappings)


# #endregion
################################################################################
