from dataclasses import replace
from typing import Any

import xlsxwriter
import xlsxwriter.format
from loguru import logger

from .spec import SpecCellFormat, SpecColumn


class StyleCache:
    """
    Memoize XlsxWriter formats per style signature.

    The signature of a column style is the :class:`SpecCellFormat` derived
    from its declared style attributes, so two columns declaring the same
    attributes share one workbook format regardless of their position. A
    cache belongs to exactly one workbook.
    """

    def __init__(
        self,
        wb: xlsxwriter.Workbook,
        *,
        fmt_data: SpecCellFormat,
        fmt_header: SpecCellFormat,
    ):
        self.wb = wb
        self.fmt_data = fmt_data
        self.fmt_header = fmt_header
        self._format_cache: dict[SpecCellFormat, xlsxwriter.format.Format] = {}

    def __len__(self) -> int:
        return len(self._format_cache)

    def create_format(self, spec: SpecCellFormat) -> xlsxwriter.format.Format:
        fmt = self._format_cache.get(spec)
        if fmt is None:
            fmt = self.wb.add_format(spec.to_format_props())
            self._format_cache[spec] = fmt
        return fmt

    def derive_data_spec(self, column: SpecColumn) -> SpecCellFormat:
        return self.fmt_data.overlay(
            SpecCellFormat(
                font_color=column.font_color,
                bold=True if column.bold else None,
                bg_color=column.bg_color,
                num_format=column.num_format or None,
                valign="vcenter" if column.row_span else None,
            )
        )

    def derive_header_spec(self, column: SpecColumn) -> SpecCellFormat:
        return self.fmt_header.overlay(
            SpecCellFormat(
                font_color=column.header_font_color,
                bg_color=column.header_bg_color,
            )
        )

    def derive_data_format(self, column: SpecColumn) -> xlsxwriter.format.Format:
        return self._create_format_or_default(
            self.derive_data_spec(column), self.fmt_data, column.header
        )

    def derive_header_format(self, column: SpecColumn) -> xlsxwriter.format.Format:
        return self._create_format_or_default(
            self.derive_header_spec(column), self.fmt_header, column.header
        )

    def derive_date_variant(
        self, spec: SpecCellFormat, num_format: str
    ) -> xlsxwriter.format.Format:
        """Date cells need a number format to render; keep an explicit one."""
        if spec.num_format:
            return self.create_format(spec)
        return self.create_format(replace(spec, num_format=num_format))

    def _create_format_or_default(
        self, spec: SpecCellFormat, spec_default: SpecCellFormat, header: Any
    ) -> xlsxwriter.format.Format:
        try:
            return self.create_format(spec)
        except Exception as e:
            logger.warning(
                f"Failed to build style for column {header!r}, using default: {e}"
            )
            return self.create_format(spec_default)
