import datetime as dt
import math
import numbers
from collections.abc import Callable
from decimal import Decimal
from enum import Enum
from fractions import Fraction
from typing import Any
from uuid import UUID

import xlsxwriter.format
import xlsxwriter.worksheet
from loguru import logger

from streamsheet.errors import CellEncodingError

from .spec import (
    SpecCellWrite,
    SpecColumnMapping,
    SpecSheetWriteOptions,
    SpecXlsxValuePolicy,
)
from .style import StyleCache
from .util import convert_nan_inf_to_str

ValueTransform = Callable[[Any], Any]

_TUP_TEMPORAL_TYPES = (dt.datetime, dt.date, dt.time, dt.timedelta)


def _strip_timezone(value: dt.datetime) -> dt.datetime:
    # Excel has no timezone notion: aware values are stored as naive UTC.
    if value.tzinfo is None:
        return value
    return value.astimezone(dt.timezone.utc).replace(tzinfo=None)


class ValueTransformRegistry:
    """
    Type-specific transforms applied before a value is written.

    Lookup walks the value type's MRO, so a transform registered for a base
    class (e.g. ``Enum``) applies to its subclasses unless a more specific
    one is registered.
    """

    def __init__(self, *, value_policy: SpecXlsxValuePolicy | None = None):
        self.value_policy = value_policy or SpecXlsxValuePolicy()
        self._transforms: dict[type, ValueTransform] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        self.register(dt.datetime, _strip_timezone)
        self.register(Enum, lambda v: v.value)
        self.register(Decimal, float)
        self.register(Fraction, float)
        self.register(UUID, str)
        self.register(float, self._convert_float)

    def _convert_float(self, value: float) -> float | str:
        if math.isfinite(value):
            return value
        return convert_nan_inf_to_str(x=value, value_policy=self.value_policy)

    def register(self, cls: type, transform: ValueTransform) -> None:
        self._transforms[cls] = transform

    def find(self, cls: type) -> ValueTransform | None:
        for _base in cls.__mro__:
            if (transform := self._transforms.get(_base)) is not None:
                return transform
        return None

    def apply(self, value: Any) -> Any:
        transform = self.find(type(value))
        if transform is None:
            return value
        try:
            return transform(value)
        except Exception as e:
            logger.warning(
                f"Failed to transform {type(value).__name__} value {value!r}, "
                f"writing blank: {e}"
            )
            return None


class CellValueCodec:
    """
    Encode one extracted value as one cell write, degrading to text on failure.

    Encoding (:meth:`encode`) is pure: it converts and validates the value
    and decides its ``write_*`` method and format without touching a
    worksheet. :meth:`issue` then performs the planned write.
    """

    def __init__(
        self,
        style_cache: StyleCache,
        *,
        options: SpecSheetWriteOptions,
        registry: ValueTransformRegistry | None = None,
    ):
        self.style_cache = style_cache
        self.options = options
        self.registry = registry or ValueTransformRegistry(
            value_policy=options.value_policy
        )

    def encode(self, *, mapping: SpecColumnMapping, value: Any) -> SpecCellWrite:
        """
        Plan the write of ``value`` into column ``mapping.idx``.

        Values without a native encoding are planned as their ``str()``.

        Raises:
            CellEncodingError: the value has neither a native encoding nor a
                string representation.
        """
        col_idx = mapping.idx
        if value is not None:
            value = self.registry.apply(value)
        if value is None:
            return SpecCellWrite(col_idx, "blank", None, mapping.fmt_data)

        try:
            return self._encode_typed(mapping, value)
        except Exception as e:
            logger.warning(
                f"Failed to encode {type(value).__name__} value for column "
                f"{col_idx}; retrying as text: {e}"
            )

        try:
            c_value = str(value)
        except Exception as e:
            raise CellEncodingError(
                f"Cannot encode {type(value).__name__} value for column {col_idx}: {e}"
            ) from e
        return SpecCellWrite(col_idx, "string", c_value, mapping.fmt_data)

    def _encode_typed(self, mapping: SpecColumnMapping, value: Any) -> SpecCellWrite:
        col_idx = mapping.idx
        fmt = mapping.fmt_data
        if isinstance(value, str):
            return SpecCellWrite(col_idx, "string", value, fmt)
        if isinstance(value, bool):
            return SpecCellWrite(col_idx, "boolean", value, fmt)
        if isinstance(value, numbers.Number):
            n_value = float(value)  # type: ignore[arg-type]
            if not math.isfinite(n_value):
                return SpecCellWrite(
                    col_idx, "string", self.registry.apply(n_value), fmt
                )
            return SpecCellWrite(col_idx, "number", n_value, fmt)
        if isinstance(value, _TUP_TEMPORAL_TYPES):
            return SpecCellWrite(
                col_idx, "datetime", value, self._derive_date_format(mapping, value)
            )
        return SpecCellWrite(col_idx, "string", str(value), fmt)

    def _derive_date_format(
        self, mapping: SpecColumnMapping, value: Any
    ) -> xlsxwriter.format.Format:
        if isinstance(value, dt.datetime):
            c_num_format = self.options.num_format_datetime
        elif isinstance(value, dt.date):
            c_num_format = self.options.num_format_date
        else:
            c_num_format = self.options.num_format_time
        return self.style_cache.derive_date_variant(mapping.fmt_data_spec, c_num_format)

    @staticmethod
    def issue(
        ws: xlsxwriter.worksheet.Worksheet, row_idx: int, cell: SpecCellWrite
    ) -> None:
        """
        Perform a planned write at ``(row_idx, cell.col_idx)``.

        Raises:
            CellEncodingError: the worksheet rejected the write.
        """
        try:
            rc = getattr(ws, f"write_{cell.kind}")(
                row_idx, cell.col_idx, cell.value, cell.fmt
            )
        except Exception as e:
            raise CellEncodingError(
                f"Cannot write {cell.kind} cell ({row_idx}, {cell.col_idx}): {e}"
            ) from e
        # -1: outside worksheet bounds; -2 (string truncated) is not fatal.
        if rc == -1:
            raise CellEncodingError(f"Cell ({row_idx}, {cell.col_idx}) is out of range.")

    def write(
        self,
        ws: xlsxwriter.worksheet.Worksheet,
        *,
        row_idx: int,
        mapping: SpecColumnMapping,
        value: Any,
    ) -> Any:
        """Encode and issue one cell; returns the value written (``None`` if blank)."""
        cell = self.encode(mapping=mapping, value=value)
        self.issue(ws, row_idx, cell)
        return cell.value
