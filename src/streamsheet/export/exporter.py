import math
from collections.abc import Iterator
from typing import Any

from loguru import logger

from streamsheet.errors import ValidationError
from streamsheet.io.xlsx.mapping import validate_columns
from streamsheet.io.xlsx.writer import SheetWriter

from .conf import C_ISSUE_SOURCE, DEFAULT_EXPORT_OPTIONS
from .monitor import ProgressMonitor, check_progress_reportable
from .source import RecordSource
from .spec import (
    LIT_EXPORT_STAGES,
    SpecExportIssue,
    SpecExportOptions,
    SpecExportRequest,
    SpecExportResult,
    SpecExportStats,
)


def _calculate_total_batches(n_records_total: int, batch_size: int) -> int:
    """
    Examples:
        >>> _calculate_total_batches(2500, 1000)
        3
        >>> _calculate_total_batches(0, 1000)
        0
    """
    return math.ceil(n_records_total / batch_size)


class BatchExporter:
    """
    Drain a record source into a single-sheet XLSX file, batch by batch.

    Records are buffered up to ``options.batch_size`` and appended to a
    :class:`SheetWriter`; progress goes to ``monitor`` after every flushed
    batch. A failing batch is recorded and skipped, the export carries on.
    Apart from :class:`ValidationError` on a malformed request, :meth:`export`
    never raises: outcome and diagnostics are in the returned result.

    Examples:
        >>> exporter = BatchExporter(SpecExportOptions(batch_size=500))
        >>> result = exporter.export(request)  # doctest: +SKIP
        >>> result.status, result.stats.n_records_processed  # doctest: +SKIP
        ('complete', 1200)
    """

    def __init__(
        self,
        options: SpecExportOptions | None = None,
        monitor: ProgressMonitor | None = None,
    ):
        self.options = DEFAULT_EXPORT_OPTIONS if options is None else options
        self.monitor = monitor
        if (
            isinstance(self.options.batch_size, bool)
            or not isinstance(self.options.batch_size, int)
            or self.options.batch_size < 1
        ):
            raise ValidationError(
                f"batch_size must be a positive integer, got {self.options.batch_size!r}"
            )

    def export(self, request: SpecExportRequest) -> SpecExportResult:
        if request is None:
            raise ValidationError("Export request cannot be None.")
        if request.records is None:
            raise ValidationError("Export request has no record source.")
        source = RecordSource.wrap(request.records)
        try:
            self._validate_request(request)
        except ValidationError:
            self._close_source(source)
            raise

        n_batches_total = _calculate_total_batches(
            request.n_records_total, self.options.batch_size
        )
        stats = SpecExportStats()
        l_issues: list[SpecExportIssue] = []
        logger.info(
            f"Starting export {request.correlation_id!r}: "
            f"~{request.n_records_total} records, {n_batches_total} batches "
            f"of {self.options.batch_size}."
        )

        sheet = SheetWriter(self.options.to_sheet_write_options())
        content: bytes | None = None
        try:
            try:
                sheet.initialize(request.layout)  # type: ignore[arg-type]
            except Exception as e:
                self._record_issue(
                    l_issues, "initialize", f"Failed to initialize sheet: {e}"
                )
                return self._build_result(None, stats, l_issues, request)

            self._drain(source, sheet, request, stats, l_issues, n_batches_total)

            try:
                content = sheet.finish_and_serialize()
            except Exception as e:
                self._record_issue(l_issues, "finish", f"Failed to finish export: {e}")
            if sheet.report is not None:
                for _warning in sheet.report.warnings:
                    logger.debug(f"Sheet finishing warning: {_warning}")
        finally:
            self._close_source(source)
            try:
                sheet.close()
            except Exception as e:
                logger.error(f"Failed to release sheet resources: {e}")

        return self._build_result(content, stats, l_issues, request, sheet=sheet)

    # #region Validation

    def _validate_request(self, request: SpecExportRequest) -> None:
        if request.layout is None:
            raise ValidationError("Export request has no sheet layout.")
        validate_columns(request.layout.columns)
        n_total = request.n_records_total
        if isinstance(n_total, bool) or not isinstance(n_total, int) or n_total < 0:
            raise ValidationError(
                f"n_records_total must be a non-negative integer, got {n_total!r}"
            )

    # #endregion
    # #region Batching

    def _drain(
        self,
        source: RecordSource,
        sheet: SheetWriter,
        request: SpecExportRequest,
        stats: SpecExportStats,
        l_issues: list[SpecExportIssue],
        n_batches_total: int,
    ) -> None:
        l_batch: list[Any] = []
        n_batch_idx = 0
        it_records: Iterator[Any] | None = None
        while True:
            try:
                if it_records is None:
                    it_records = iter(source)
                record = next(it_records)
            except StopIteration:
                break
            except Exception as e:
                self._record_issue(
                    l_issues,
                    "source",
                    f"{C_ISSUE_SOURCE} after {source.n_records_yielded} records: {e}",
                    batch_idx=n_batch_idx + 1,
                )
                break
            l_batch.append(record)
            if len(l_batch) >= self.options.batch_size:
                n_batch_idx += 1
                self._flush_batch(
                    l_batch, n_batch_idx, sheet, request, stats, l_issues, n_batches_total
                )
                l_batch.clear()

        if l_batch:
            n_batch_idx += 1
            self._flush_batch(
                l_batch, n_batch_idx, sheet, request, stats, l_issues, n_batches_total
            )
            l_batch.clear()

    def _flush_batch(
        self,
        l_batch: list[Any],
        batch_idx: int,
        sheet: SheetWriter,
        request: SpecExportRequest,
        stats: SpecExportStats,
        l_issues: list[SpecExportIssue],
        n_batches_total: int,
    ) -> None:
        n_rows_before = sheet.n_rows_data
        try:
            sheet.append_rows(l_batch)
            stats.n_batches_flushed += 1
        except Exception as e:
            stats.n_batches_failed += 1
            self._record_issue(
                l_issues,
                "batch",
                f"Failed to write batch {batch_idx}: {e}",
                batch_idx=batch_idx,
            )
        finally:
            # Rows written before a failing record stay in the sheet.
            stats.n_records_processed += sheet.n_rows_data - n_rows_before

        if self.options.if_debug:
            logger.debug(
                f"Batch {batch_idx}/{n_batches_total} flushed: {len(l_batch)} records, "
                f"{stats.n_records_processed} processed so far."
            )
        self._report_progress(request, batch_idx, n_batches_total)

    def _report_progress(
        self, request: SpecExportRequest, batch_idx: int, n_batches_total: int
    ) -> None:
        if not check_progress_reportable(
            monitor=self.monitor,
            n_batches_total=n_batches_total,
            correlation_id=request.correlation_id,
            monitoring_id=request.monitoring_id,
        ):
            return
        assert self.monitor is not None
        try:
            self.monitor.update_progress(
                request.context.org,
                request.context.user,
                request.correlation_id,
                request.monitoring_id,
                batch_idx,
                n_batches_total,
            )
        except Exception as e:
            logger.error(
                f"Failed to report progress {batch_idx}/{n_batches_total} "
                f"for export {request.correlation_id!r}: {e}"
            )

    # #endregion

    @staticmethod
    def _record_issue(
        l_issues: list[SpecExportIssue],
        stage: LIT_EXPORT_STAGES,
        message: str,
        *,
        batch_idx: int | None = None,
    ) -> None:
        logger.error(message)
        l_issues.append(SpecExportIssue(stage=stage, message=message, batch_idx=batch_idx))

    @staticmethod
    def _close_source(source: RecordSource) -> None:
        try:
            source.close()
        except Exception as e:
            logger.error(f"Failed to close record source: {e}")

    def _build_result(
        self,
        content: bytes | None,
        stats: SpecExportStats,
        l_issues: list[SpecExportIssue],
        request: SpecExportRequest,
        *,
        sheet: SheetWriter | None = None,
    ) -> SpecExportResult:
        result = SpecExportResult(
            content=content,
            stats=stats,
            issues=tuple(l_issues),
            is_fatal=content is None,
            report=None if sheet is None else sheet.report,
        )
        c_log = (
            f"Export {request.correlation_id!r} {result.status}: "
            f"{stats.n_records_processed} records, {stats.n_batches_flushed} batches "
            f"flushed, {stats.n_batches_failed} failed, {result.n_bytes} bytes."
        )
        if result.status == "complete":
            logger.info(c_log)
        else:
            logger.warning(c_log)
        return result
