from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest
import xlsxwriter

# Ensure src-layout imports work when running tests from repo checkout.
SRC_DIR = Path(__file__).resolve().parents[1] / "src"
sys.path.insert(0, str(SRC_DIR))

from streamsheet.io.xlsx.conf import DEFAULT_XLSX_FORMATS  # noqa: E402
from streamsheet.io.xlsx.style import StyleCache  # noqa: E402


class RecordingWorksheet:
    """Worksheet stand-in that records cell writes instead of producing XML."""

    def __init__(self, *, fail_on: set[str] | None = None, rc: int = 0):
        self.calls: list[tuple] = []
        self.rows: dict[int, dict] = {}
        self.fail_on = fail_on or set()
        self.rc = rc

    def _record(self, kind: str, row: int, col: int, value, fmt) -> int:
        if kind in self.fail_on:
            raise TypeError(f"cannot write {kind}")
        self.calls.append((kind, row, col, value, fmt))
        return self.rc

    def write_string(self, row, col, value, fmt=None):
        return self._record("string", row, col, value, fmt)

    def write_number(self, row, col, value, fmt=None):
        return self._record("number", row, col, value, fmt)

    def write_boolean(self, row, col, value, fmt=None):
        return self._record("boolean", row, col, value, fmt)

    def write_datetime(self, row, col, value, fmt=None):
        return self._record("datetime", row, col, value, fmt)

    def write_blank(self, row, col, value, fmt=None):
        return self._record("blank", row, col, value, fmt)

    def set_row(self, row, height=None, fmt=None, options=None):
        self.rows[row] = dict(options or {})
        return 0

    def cells(self, row: int) -> list[tuple]:
        return [_c for _c in self.calls if _c[1] == row]


@pytest.fixture
def wb(tmp_path: Path) -> Iterator[xlsxwriter.Workbook]:
    workbook = xlsxwriter.Workbook((tmp_path / "scratch.xlsx").as_posix())
    yield workbook
    workbook.close()


@pytest.fixture
def style_cache(wb: xlsxwriter.Workbook) -> StyleCache:
    return StyleCache(
        wb,
        fmt_data=DEFAULT_XLSX_FORMATS["data"],
        fmt_header=DEFAULT_XLSX_FORMATS["header"],
    )


@pytest.fixture
def recording_ws() -> RecordingWorksheet:
    return RecordingWorksheet()
