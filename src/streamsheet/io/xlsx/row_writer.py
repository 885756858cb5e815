from collections.abc import Callable, Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

import xlsxwriter.worksheet
from loguru import logger

from streamsheet.errors import RowWriteError

from .conf import C_HIDE_FIELD_NAME, N_NROWS_EXCEL_MAX, N_ROW_IDX_DATA_START
from .spec import SpecColumnMapping
from .value_conversion import CellValueCodec

HiddenProbe = Callable[[Any], bool]


@runtime_checkable
class SupportsHidden(Protocol):
    """Records that decide their own row visibility."""

    def is_hidden(self) -> bool: ...


def _probe_none(record: Any) -> bool:
    return False


def _probe_capability(record: SupportsHidden) -> bool:
    return bool(record.is_hidden())


def _probe_mapping(record: Mapping[str, Any]) -> bool:
    return record.get(C_HIDE_FIELD_NAME) is True


def _probe_attribute(record: Any) -> bool:
    return getattr(record, C_HIDE_FIELD_NAME, None) is True


def resolve_hidden_probe(cls: type) -> HiddenProbe:
    """
    Pick how rows of records of type ``cls`` decide their visibility.

    Precedence: the ``SupportsHidden`` capability, then a ``"hide"`` key for
    mappings, then a ``hide`` attribute declared on the type (class
    attribute, slot, property or dataclass field). Types without any of
    these are always visible.
    """
    if callable(getattr(cls, "is_hidden", None)):
        return _probe_capability
    if issubclass(cls, Mapping):
        return _probe_mapping
    if hasattr(cls, C_HIDE_FIELD_NAME) or C_HIDE_FIELD_NAME in getattr(
        cls, "__dataclass_fields__", {}
    ):
        return _probe_attribute
    if any("__dict__" in vars(_base) for _base in cls.__mro__):
        # Plain instances may carry `hide` in their instance dict only.
        return _probe_attribute
    return _probe_none


class RowWriter:
    """
    Write one record as one worksheet row.

    Every cell of a record is encoded before the first ``write_*`` call, so a
    record that fails to encode leaves no trace in the sheet. The cursor only
    advances once a row has been written completely, so the k-th successful
    record lands on row k.
    """

    def __init__(
        self,
        ws: xlsxwriter.worksheet.Worksheet,
        mappings: Sequence[SpecColumnMapping],
        codec: CellValueCodec,
        *,
        on_cell_written: Callable[[int, Any], None] | None = None,
    ):
        self.ws = ws
        self.mappings = tuple(mappings)
        self.codec = codec
        self.on_cell_written = on_cell_written
        self.row_idx_next = N_ROW_IDX_DATA_START
        self.n_rows_hidden = 0
        self._hidden_probes: dict[type, HiddenProbe] = {}

    @property
    def row_idx_last(self) -> int:
        """Index of the last data row written; 0 when only the header exists."""
        return self.row_idx_next - 1

    def write_row(self, record: Any) -> int:
        """
        Write ``record`` at the cursor and return the row index used.

        Raises:
            RowWriteError: any failure while building the row.
        """
        n_row_idx = self.row_idx_next
        if record is None:
            raise RowWriteError("Record cannot be None.", row_idx=n_row_idx)
        if n_row_idx >= N_NROWS_EXCEL_MAX:
            raise RowWriteError(
                f"Excel row limit reached ({N_NROWS_EXCEL_MAX} rows).",
                row_idx=n_row_idx,
            )

        try:
            l_cells = [
                self.codec.encode(mapping=_mapping, value=_mapping.accessor(record))
                for _mapping in self.mappings
            ]
        except Exception as e:
            logger.error(f"Failed to encode row {n_row_idx} for record {record!r}: {e}")
            raise RowWriteError(
                f"Failed to write row {n_row_idx}: {e}", row_idx=n_row_idx
            ) from e

        b_hidden = self._check_hidden(record, n_row_idx)
        try:
            for _cell in l_cells:
                self.codec.issue(self.ws, n_row_idx, _cell)
            if b_hidden:
                self.ws.set_row(n_row_idx, None, None, {"hidden": True})
        except Exception as e:
            logger.error(f"Failed to write row {n_row_idx} for record {record!r}: {e}")
            raise RowWriteError(
                f"Failed to write row {n_row_idx}: {e}", row_idx=n_row_idx
            ) from e

        if b_hidden:
            self.n_rows_hidden += 1
        if self.on_cell_written is not None:
            for _cell in l_cells:
                self.on_cell_written(_cell.col_idx, _cell.value)
        self.row_idx_next += 1
        return n_row_idx

    def _check_hidden(self, record: Any, row_idx: int) -> bool:
        cls_record = type(record)
        probe = self._hidden_probes.get(cls_record)
        if probe is None:
            probe = self._hidden_probes[cls_record] = resolve_hidden_probe(cls_record)
        try:
            b_hidden = probe(record)
        except Exception as e:
            logger.warning(f"Failed to check visibility of row {row_idx}: {e}")
            return False
        if b_hidden:
            logger.debug(f"Row {row_idx} hidden by record visibility flag.")
        return b_hidden
