# "Facts/Plans" exchanged between a caller and the batch exporter.

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Literal

from streamsheet.io.xlsx.spec import (
    SpecAutofitCellsPolicy,
    SpecCellFormat,
    SpecSheetLayout,
    SpecSheetReport,
    SpecSheetWriteOptions,
    SpecXlsxValuePolicy,
)

LIT_EXPORT_STAGES = Literal["initialize", "batch", "source", "finish"]
LIT_EXPORT_STATUS = Literal["complete", "partial", "fatal"]


################################################################################
# #region RequestSpecification
@dataclass(frozen=True, slots=True)
class SpecExportContext:
    """Opaque caller identity, forwarded to the progress monitor untouched."""

    org: Any = None
    user: Any = None
    scenario: Any = None


@dataclass(frozen=True, slots=True)
class SpecExportRequest:
    """
    One export job.

    Attributes:
        records: A ``RecordSource`` or any iterable of records. Consumed once.
        n_records_total: Estimated record count; only drives progress.
        correlation_id: Id of the export job in the monitoring service.
        monitoring_id: Id of the progress entry to update.
        layout: Columns and sheet presentation.
        context: Caller identity forwarded to the monitor.
        query: Opaque query that produced ``records``; never interpreted.
    """

    records: Iterable[Any] | None
    n_records_total: int
    correlation_id: str
    monitoring_id: str
    layout: SpecSheetLayout | None
    context: SpecExportContext = field(default_factory=SpecExportContext)
    query: Any = None


# #endregion
################################################################################
# #region OptionsSpecification
@dataclass(frozen=True, slots=True)
class SpecExportOptions:
    batch_size: int = 1000
    if_debug: bool = False
    fmt_data: SpecCellFormat | None = None
    fmt_header: SpecCellFormat | None = None
    num_format_date: str = "yyyy-mm-dd"
    num_format_datetime: str = "yyyy-mm-dd hh:mm:ss"
    num_format_time: str = "hh:mm:ss"
    value_policy: SpecXlsxValuePolicy = field(default_factory=SpecXlsxValuePolicy)
    autofit: SpecAutofitCellsPolicy = field(default_factory=SpecAutofitCellsPolicy)

    def to_sheet_write_options(self) -> SpecSheetWriteOptions:
        return SpecSheetWriteOptions(
            fmt_data=self.fmt_data,
            fmt_header=self.fmt_header,
            num_format_date=self.num_format_date,
            num_format_datetime=self.num_format_datetime,
            num_format_time=self.num_format_time,
            value_policy=self.value_policy,
            autofit=self.autofit,
        )


# #endregion
################################################################################
# #region ResultSpecification
@dataclass(slots=True)
class SpecExportStats:
    n_records_processed: int = 0
    n_batches_flushed: int = 0
    n_batches_failed: int = 0


@dataclass(frozen=True, slots=True)
class SpecExportIssue:
    stage: LIT_EXPORT_STAGES
    message: str
    batch_idx: int | None = None


@dataclass(frozen=True, slots=True)
class SpecExportResult:
    content: bytes | None
    stats: SpecExportStats
    issues: tuple[SpecExportIssue, ...] = ()
    is_fatal: bool = False
    report: SpecSheetReport | None = None

    @property
    def n_bytes(self) -> int:
        return 0 if self.content is None else len(self.content)

    @property
    def messages(self) -> tuple[str, ...]:
        """Unique issue messages in first-seen order."""
        return tuple(dict.fromkeys(_issue.message for _issue in self.issues))

    @property
    def status(self) -> LIT_EXPORT_STATUS:
        if self.is_fatal or self.content is None:
            return "fatal"
        return "partial" if self.issues else "complete"


# #endregion
################################################################################
# #region FrameSourceSpecification
@dataclass(frozen=True, slots=True)
class SpecFrameChunkPolicy:
    width_large: int = 8_000
    width_medium: int = 2_000
    size_large: int = 1_000
    size_medium: int = 2_000
    size_default: int = 10_000
    fixed_size: int | None = None


# #endregion
################################################################################
