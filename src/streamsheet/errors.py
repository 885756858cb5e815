"""Error hierarchy shared by the xlsx writer and the export pipeline.

Failures are narrowed cell -> row -> batch -> export. Only
:class:`RowWriteError` travels up to the batch boundary; the other recovered
kinds are logged where they happen and surface as export issues.
"""

from __future__ import annotations

__all__ = [
    "StreamsheetError",
    "ValidationError",
    "ExtractionError",
    "CellEncodingError",
    "RowWriteError",
    "FinishingError",
    "SerializationError",
    "ResourceReleaseError",
    "ExportStateError",
]


class StreamsheetError(Exception):
    """Root of the streamsheet error hierarchy."""

    code: str = "streamsheet_error"


class ValidationError(StreamsheetError, ValueError):
    """Malformed export request, layout or options. Raised before any work."""

    code = "validation_error"


class ExtractionError(StreamsheetError):
    """A record field could not be read. Recovered as a blank cell."""

    code = "extraction_error"


class CellEncodingError(StreamsheetError):
    """A value could be written neither natively nor as text."""

    code = "cell_encoding_error"


class RowWriteError(StreamsheetError):
    """Row construction failed; caught at the batch boundary."""

    code = "row_write_error"

    def __init__(self, message: str, *, row_idx: int | None = None) -> None:
        super().__init__(message)
        self.row_idx = row_idx


class FinishingError(StreamsheetError):
    """Autofit or merge failed for one column or group."""

    code = "finishing_error"


class SerializationError(StreamsheetError):
    """The workbook could not be closed or read back."""

    code = "serialization_error"


class ResourceReleaseError(StreamsheetError):
    """Temporary storage or workbook handles could not be released."""

    code = "resource_release_error"


class ExportStateError(StreamsheetError, RuntimeError):
    """An object was used outside its single-use lifecycle."""

    code = "export_state_error"
