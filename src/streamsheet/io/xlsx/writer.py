import tempfile
from collections.abc import Iterable
from pathlib import Path
from types import TracebackType
from typing import Any, Self

import xlsxwriter
import xlsxwriter.worksheet
from loguru import logger

from streamsheet.errors import (
    ExportStateError,
    FinishingError,
    ResourceReleaseError,
    SerializationError,
)

from .conf import (
    DEFAULT_SHEET_WRITE_OPTIONS,
    DEFAULT_XLSX_FORMATS,
    N_NCOLS_EXCEL_MAX,
    N_NROWS_EXCEL_MAX,
    N_ROW_IDX_HEADER,
)
from .mapping import resolve_column_mappings, validate_columns
from .row_writer import RowWriter
from .spec import (
    SpecColumnMapping,
    SpecSheetLayout,
    SpecSheetReport,
    SpecSheetWriteOptions,
    SpecVerticalMerge,
)
from .style import StyleCache
from .util import (
    calculate_column_width,
    estimate_width_len,
    plan_vertical_merges,
    sanitize_sheet_name,
)
from .value_conversion import CellValueCodec


class SheetWriter:
    """
    Stream records into a single-sheet XLSX workbook with bounded memory.

    The workbook runs in ``xlsxwriter``'s ``constant_memory`` mode inside a
    private temporary directory: each row is flushed to disk as soon as the
    next one starts, so only the current row lives in memory. Column widths
    are estimated while streaming and applied once, in
    :meth:`finish_and_serialize`, followed by the row-span merges.

    Lifecycle::

        with SheetWriter() as sw:
            sw.initialize(layout)
            sw.append_rows(batch_1)
            sw.append_rows(batch_2)
            content = sw.finish_and_serialize()

    Parameters
    ----------
    options:
        Default formats, date number formats, value policy and autofit
        policy. Defaults to :data:`DEFAULT_SHEET_WRITE_OPTIONS`.
    """

    def __init__(self, options: SpecSheetWriteOptions | None = None):
        self.options = DEFAULT_SHEET_WRITE_OPTIONS if options is None else options
        self.fmt_data = (
            DEFAULT_XLSX_FORMATS["data"]
            if self.options.fmt_data is None
            else self.options.fmt_data
        )
        self.fmt_header = (
            DEFAULT_XLSX_FORMATS["header"]
            if self.options.fmt_header is None
            else self.options.fmt_header
        )

        self._tmpdir: tempfile.TemporaryDirectory[str] | None = None
        self.wb: xlsxwriter.Workbook | None = None
        self.ws: xlsxwriter.worksheet.Worksheet | None = None
        self.style_cache: StyleCache | None = None
        self.mappings: tuple[SpecColumnMapping, ...] = ()
        self.row_writer: RowWriter | None = None
        self.report: SpecSheetReport | None = None

        self.freeze_cols = 0
        self.freeze_rows = 1
        self.row_span_quantity = 1

        self._dict_col_widths: dict[str, list[int]] = {"header": [], "body": []}
        self._n_rows_autofit_seen = 0
        self._tup_cols_idx_row_span: tuple[int, ...] = ()
        self._if_wb_closed = False
        self._if_finished = False
        self._if_released = False

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self, exc_type: type | None, exc: BaseException | None, tb: TracebackType | None
    ) -> None:
        self.close()

    @property
    def if_initialized(self) -> bool:
        return self.row_writer is not None

    @property
    def if_finished(self) -> bool:
        return self._if_finished

    @property
    def row_idx_last(self) -> int:
        return 0 if self.row_writer is None else self.row_writer.row_idx_last

    @property
    def n_rows_data(self) -> int:
        return self.row_idx_last

    # #region Initialization

    def initialize(self, layout: SpecSheetLayout) -> Self:
        """
        Create the workbook, write the header row and bind column mappings.

        Raises:
            ValidationError: empty or malformed column list.
            ExportStateError: the writer was already initialized or closed.
        """
        if self.if_initialized or self._if_released:
            raise ExportStateError("SheetWriter can only be initialized once.")
        tup_columns = validate_columns(layout.columns)

        c_sheet_name = sanitize_sheet_name(layout.sheet_name)
        self.freeze_cols = max(0, int(layout.freeze_cols))
        self.freeze_rows = max(0, int(layout.freeze_rows))
        self.row_span_quantity = max(1, int(layout.row_span_quantity))

        self._tmpdir = tempfile.TemporaryDirectory(prefix="streamsheet_")
        self.wb = xlsxwriter.Workbook(
            (Path(self._tmpdir.name) / "export.xlsx").as_posix(),
            {
                "constant_memory": True,
                "tmpdir": self._tmpdir.name,
                # Non-finite floats are converted to text before writing.
                "nan_inf_to_errors": False,
            },
        )
        self.ws = self.wb.add_worksheet(c_sheet_name)
        self.style_cache = StyleCache(
            self.wb, fmt_data=self.fmt_data, fmt_header=self.fmt_header
        )
        self.mappings = resolve_column_mappings(tup_columns, self.style_cache)
        self._tup_cols_idx_row_span = tuple(
            _m.idx for _m in self.mappings if _m.row_span
        )
        self.report = SpecSheetReport(sheet_name=c_sheet_name)

        self._write_header()
        if self.freeze_rows or self.freeze_cols:
            self.ws.freeze_panes(self.freeze_rows, self.freeze_cols)

        codec = CellValueCodec(self.style_cache, options=self.options)
        self.row_writer = RowWriter(
            self.ws, self.mappings, codec, on_cell_written=self._record_body_width
        )
        logger.debug(
            f"Initialized sheet {c_sheet_name!r}: {len(self.mappings)} columns, "
            f"freeze=({self.freeze_rows}, {self.freeze_cols}), "
            f"row_span_quantity={self.row_span_quantity}, "
            f"{len(self.style_cache)} cached formats."
        )
        return self

    def _write_header(self) -> None:
        assert self.ws is not None
        n_cols = len(self.mappings)
        self._dict_col_widths = {"header": [0] * n_cols, "body": [0] * n_cols}
        for _mapping in self.mappings:
            self.ws.write_string(
                N_ROW_IDX_HEADER, _mapping.idx, _mapping.header, _mapping.fmt_header
            )
            self._dict_col_widths["header"][_mapping.idx] = estimate_width_len(
                _mapping.header
            )

    # #endregion
    # #region Streaming

    def append_rows(self, records: Iterable[Any]) -> int:
        """
        Write ``records`` in order, one row each, and return the count written.

        A failing record aborts the call with :class:`RowWriteError`; rows
        written before it stay in the sheet.
        """
        self._check_writable("append_rows")
        assert self.row_writer is not None
        n_rows_written = 0
        for _record in records:
            self.row_writer.write_row(_record)
            self._n_rows_autofit_seen += 1
            n_rows_written += 1
        return n_rows_written

    def _record_body_width(self, col_idx: int, value: Any) -> None:
        n_rows_max = self.options.autofit.height_body_inferred_max
        if n_rows_max is not None and self._n_rows_autofit_seen >= n_rows_max:
            return
        l_widths = self._dict_col_widths["body"]
        l_widths[col_idx] = max(l_widths[col_idx], estimate_width_len(value))

    def _check_writable(self, operation: str) -> None:
        if self._if_finished or self._if_released:
            raise ExportStateError(f"Cannot {operation}: sheet is already finished.")
        if not self.if_initialized:
            raise ExportStateError(f"Cannot {operation}: sheet is not initialized.")

    # #endregion
    # #region Finishing

    def finish_and_serialize(self) -> bytes:
        """
        Apply column widths and merges, close the workbook and return its bytes.

        Runs at most once. Resources are released whether or not it succeeds.

        Raises:
            SerializationError: the workbook could not be closed or read back.
            ExportStateError: called twice, or before :meth:`initialize`.
        """
        self._check_writable("finish_and_serialize")
        self._if_finished = True
        assert self.report is not None
        try:
            self.report.n_rows_data = self.n_rows_data
            self._apply_column_widths()
            self._apply_vertical_merges()
            content = self._serialize()
        except BaseException:
            self._close_quietly()
            raise
        self._close_quietly()
        logger.debug(
            f"Serialized sheet {self.report.sheet_name!r}: "
            f"{self.report.n_rows_data} data rows, {len(self.report.merges)} merges, "
            f"{len(content)} bytes."
        )
        return content

    def _apply_column_widths(self) -> None:
        assert self.ws is not None and self.report is not None
        cfg_autofit = self.options.autofit
        if cfg_autofit.rule_columns == "none":
            return
        for _col_idx in range(len(self.mappings)):
            try:
                n_len_recorded = (
                    self._dict_col_widths[cfg_autofit.rule_columns][_col_idx]
                    if cfg_autofit.rule_columns != "all"
                    else max(
                        self._dict_col_widths["header"][_col_idx],
                        self._dict_col_widths["body"][_col_idx],
                    )
                )
                n_width = calculate_column_width(
                    n_len_recorded,
                    width_min=cfg_autofit.width_cell_min,
                    width_max=cfg_autofit.width_cell_max,
                    width_padding=cfg_autofit.width_cell_padding,
                )
                if self.ws.set_column(_col_idx, _col_idx, n_width) == -1:
                    raise FinishingError(f"column {_col_idx} is out of range")
            except Exception as e:
                c_msg = f"Failed to autofit column {_col_idx}: {e}"
                logger.warning(c_msg)
                self.report.warn(c_msg)
                continue
            self.report.widths.append(n_width)

    def _apply_vertical_merges(self) -> None:
        assert self.ws is not None and self.report is not None
        l_merges = plan_vertical_merges(
            cols_idx_row_span=self._tup_cols_idx_row_span,
            row_idx_last=self.row_idx_last,
            row_span_quantity=self.row_span_quantity,
        )
        for _merge in l_merges:
            try:
                self._register_merge(_merge)
            except Exception as e:
                c_msg = (
                    f"Failed to merge column {_merge.col_idx} rows "
                    f"{_merge.row_idx_start}-{_merge.row_idx_end}: {e}"
                )
                logger.warning(c_msg)
                self.report.warn(c_msg)
                continue
            self.report.merges.append(_merge)

    def _register_merge(self, merge: SpecVerticalMerge) -> None:
        # `merge_range` rejects rows that constant_memory has already flushed,
        # so the range goes straight into the worksheet's merged-cell list.
        # Flushed cells keep their values; the top cell is the one displayed.
        assert self.ws is not None
        if merge.row_idx_end >= N_NROWS_EXCEL_MAX or merge.col_idx >= N_NCOLS_EXCEL_MAX:
            raise FinishingError("range is out of bounds")
        l_merged = getattr(self.ws, "merge", None)
        if not isinstance(l_merged, list):
            raise FinishingError(
                f"xlsxwriter {xlsxwriter.__version__} has no Worksheet.merge list"
            )
        l_merged.append(
            [merge.row_idx_start, merge.col_idx, merge.row_idx_end, merge.col_idx]
        )

    def _serialize(self) -> bytes:
        assert self.wb is not None
        try:
            self._if_wb_closed = True
            self.wb.close()
            return Path(self.wb.filename).read_bytes()
        except Exception as e:
            logger.error(f"Failed to serialize workbook: {e}")
            raise SerializationError(f"Failed to serialize workbook: {e}") from e

    # #endregion

    def close(self) -> None:
        """Release the workbook and temporary directory. Safe to call repeatedly."""
        if self._if_released:
            return
        self._if_released = True
        l_errors: list[str] = []
        if self.wb is not None and not self._if_wb_closed:
            self._if_wb_closed = True
            try:
                self.wb.close()
            except Exception as e:
                l_errors.append(f"workbook: {e}")
        if self._tmpdir is not None:
            try:
                self._tmpdir.cleanup()
            except Exception as e:
                l_errors.append(f"temporary directory: {e}")
        if l_errors:
            c_msg = "Failed to release sheet resources: " + "; ".join(l_errors)
            logger.error(c_msg)
            raise ResourceReleaseError(c_msg)

    def _close_quietly(self) -> None:
        try:
            self.close()
        except ResourceReleaseError as e:
            # Content is already read; a leftover temp dir does not void it.
            if self.report is not None:
                self.report.warn(str(e))
