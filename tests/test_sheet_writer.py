from __future__ import annotations

import datetime as dt
import math
import sys
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import UUID

import pytest

# Ensure src-layout imports work when running tests from repo checkout.
SRC_DIR = Path(__file__).resolve().parents[1] / "src"
sys.path.insert(0, str(SRC_DIR))

from streamsheet.errors import (  # noqa: E402
    ExportStateError,
    RowWriteError,
    SerializationError,
    ValidationError,
)
from streamsheet.io.xlsx import SheetWriter  # noqa: E402
from streamsheet.io.xlsx.spec import (  # noqa: E402
    SpecAutofitCellsPolicy,
    SpecColumn,
    SpecSheetLayout,
    SpecSheetReport,
    SpecSheetWriteOptions,
    SpecVerticalMerge,
)
from xlsx_reader import (  # noqa: E402
    read_cell_style,
    read_cells,
    read_col_widths,
    read_merges,
    read_pane,
    read_row_values,
    read_rows,
    read_sheet_names,
    read_values,
)


def _excel_serial(value: dt.datetime) -> float:
    return (value - dt.datetime(1899, 12, 30)).total_seconds() / 86400


def _write_sheet(
    columns: Sequence[SpecColumn],
    *batches: Iterable[Any],
    options: SpecSheetWriteOptions | None = None,
    **layout_kwargs: Any,
) -> tuple[bytes, SpecSheetReport]:
    layout = SpecSheetLayout(columns=tuple(columns), **layout_kwargs)
    with SheetWriter(options) as sw:
        sw.initialize(layout)
        for _batch in batches:
            sw.append_rows(_batch)
        content = sw.finish_and_serialize()
    assert sw.report is not None
    return content, sw.report


class Color(Enum):
    RED = "red"


@dataclass
class Address:
    city: str


@dataclass
class Customer:
    name: str
    address: Address | None


def test_header_row_and_styles_round_trip() -> None:
    content, report = _write_sheet(
        [
            SpecColumn(header="Id", field="id"),
            SpecColumn(
                header="Name",
                field="name",
                header_font_color="#FF0000",
                header_bg_color="#FFFF00",
            ),
            SpecColumn(header="Amount", field="amount", bold=True, num_format="0.00"),
        ],
        [{"id": 1, "name": "Ana", "amount": 2.5}],
    )

    assert read_row_values(content, 0) == ["Id", "Name", "Amount"]
    assert read_row_values(content, 1) == [1.0, "Ana", 2.5]
    assert report.n_rows_data == 1

    style_header_default = read_cell_style(content, (0, 0))
    assert style_header_default.bold is True
    assert style_header_default.font_color == "FF0000FF"

    style_header_custom = read_cell_style(content, (0, 1))
    assert style_header_custom.font_color == "FFFF0000"
    assert style_header_custom.fill_color == "FFFFFF00"

    style_amount = read_cell_style(content, (1, 2))
    assert style_amount.bold is True
    assert style_amount.num_format == "0.00"
    assert read_cell_style(content, (1, 1)).bold is False


def test_zero_records_produces_header_only_sheet() -> None:
    content, report = _write_sheet(
        [SpecColumn(header="Id", field="id", row_span=True)],
        [],
        row_span_quantity=3,
    )

    assert read_values(content) == {(0, 0): "Id"}
    assert read_merges(content) == []
    assert report.n_rows_data == 0
    assert report.merges == []


def test_typed_values_are_written_natively() -> None:
    l_fields = [
        "text",
        "int",
        "float",
        "flag",
        "missing",
        "day",
        "moment",
        "aware",
        "clock",
        "decimal",
        "enum",
        "uuid",
        "nan",
        "posinf",
        "neginf",
    ]
    record = {
        "text": "hello",
        "int": 42,
        "float": 1.25,
        "flag": True,
        "missing": None,
        "day": dt.date(2024, 1, 31),
        "moment": dt.datetime(2024, 1, 31, 6, 0),
        "aware": dt.datetime(
            2024, 1, 31, 12, 0, tzinfo=dt.timezone(dt.timedelta(hours=2))
        ),
        "clock": dt.time(12, 0),
        "decimal": Decimal("3.5"),
        "enum": Color.RED,
        "uuid": UUID("12345678-1234-5678-1234-567812345678"),
        "nan": math.nan,
        "posinf": math.inf,
        "neginf": -math.inf,
    }
    content, _ = _write_sheet(
        [SpecColumn(header=_f, field=_f) for _f in l_fields], [record]
    )
    dict_cells = read_cells(content)

    def _value(field: str) -> Any:
        return dict_cells[(1, l_fields.index(field))].value

    assert _value("text") == "hello"
    assert _value("int") == 42.0
    assert _value("float") == 1.25
    assert _value("flag") is True
    assert _value("missing") is None
    assert _value("day") == pytest.approx(_excel_serial(dt.datetime(2024, 1, 31)))
    assert _value("moment") == pytest.approx(
        _excel_serial(dt.datetime(2024, 1, 31, 6, 0))
    )
    assert _value("aware") == pytest.approx(
        _excel_serial(dt.datetime(2024, 1, 31, 10, 0))
    )
    assert _value("clock") == pytest.approx(0.5)
    assert _value("decimal") == 3.5
    assert _value("enum") == "red"
    assert _value("uuid") == "12345678-1234-5678-1234-567812345678"
    assert (_value("nan"), _value("posinf"), _value("neginf")) == ("NaN", "Inf", "-Inf")

    assert read_cell_style(content, (1, l_fields.index("day"))).num_format == "yyyy-mm-dd"
    assert (
        read_cell_style(content, (1, l_fields.index("moment"))).num_format
        == "yyyy-mm-dd hh:mm:ss"
    )
    assert read_cell_style(content, (1, l_fields.index("clock"))).num_format == "hh:mm:ss"


def test_nested_paths_missing_values_and_callables() -> None:
    l_records = [
        Customer(name="Ana", address=Address(city="Recife")),
        Customer(name="Bo", address=None),
    ]
    content, _ = _write_sheet(
        [
            SpecColumn(header="City", field="address.city"),
            SpecColumn(header="Upper", field=lambda c: c.name.upper()),
            SpecColumn(header="Nope", field="not_there"),
        ],
        l_records,
    )
    dict_values = read_values(content)

    assert dict_values[(1, 0)] == "Recife"
    assert dict_values[(1, 1)] == "ANA"
    assert dict_values[(1, 2)] is None
    assert dict_values[(2, 0)] is None
    assert dict_values[(2, 1)] == "BO"


def test_hidden_rows_follow_record_flags() -> None:
    l_records = [
        {"id": 1, "hide": False},
        {"id": 2, "hide": True},
        {"id": 3, "hide": "yes"},
        {"id": 4},
    ]
    content, _ = _write_sheet([SpecColumn(header="Id", field="id")], l_records)
    dict_rows = read_rows(content)

    assert dict_rows[2].get("hidden") == "1"
    assert all(dict_rows[_r].get("hidden") is None for _r in (0, 1, 3, 4))


@pytest.mark.parametrize(
    ("n_rows", "row_span_quantity", "l_refs_expected"),
    [
        (5, 2, ["A2:A3", "A4:A5"]),
        (6, 3, ["A2:A4", "A5:A7"]),
        (7, 3, ["A2:A4", "A5:A7"]),
        (4, 1, []),
        (1, 4, []),
    ],
)
def test_row_span_merges_partition_data_rows(
    n_rows: int, row_span_quantity: int, l_refs_expected: list[str]
) -> None:
    l_records = [{"group": f"g{_i // row_span_quantity}", "id": _i} for _i in range(n_rows)]
    content, report = _write_sheet(
        [
            SpecColumn(header="Group", field="group", row_span=True),
            SpecColumn(header="Id", field="id"),
        ],
        l_records,
        row_span_quantity=row_span_quantity,
    )

    assert read_merges(content) == l_refs_expected
    assert len(report.merges) == len(l_refs_expected)
    assert all(_m.col_idx == 0 for _m in report.merges)
    # Every data row is still present; merging does not drop rows.
    assert [read_values(content)[(_r, 1)] for _r in range(1, n_rows + 1)] == [
        float(_i) for _i in range(n_rows)
    ]
    if l_refs_expected:
        assert read_cell_style(content, (1, 0)).valign == "center"


def test_merges_cover_every_row_span_column_across_batches() -> None:
    l_records = [{"a": _i, "b": _i, "c": _i} for _i in range(5)]
    content, report = _write_sheet(
        [
            SpecColumn(header="A", field="a", row_span=True),
            SpecColumn(header="B", field="b"),
            SpecColumn(header="C", field="c", row_span=True),
        ],
        l_records[:3],
        l_records[3:],
        row_span_quantity=2,
    )

    assert read_merges(content) == ["A2:A3", "A4:A5", "C2:C3", "C4:C5"]
    assert report.merges[0] == SpecVerticalMerge(col_idx=0, row_idx_start=1, row_idx_end=2)
    assert report.warnings == []
    assert read_values(content)[(1, 0)] == 0.0


def test_worksheet_keeps_a_merged_range_list(wb) -> None:
    # Merges are registered on this list once rows are flushed.
    assert wb.add_worksheet().merge == []


def test_missing_merge_list_is_a_warning() -> None:
    layout = SpecSheetLayout(
        columns=(SpecColumn(header="A", field="a", row_span=True),),
        row_span_quantity=2,
    )
    with SheetWriter() as sw:
        sw.initialize(layout)
        sw.append_rows([{"a": 1}, {"a": 2}])
        sw.ws.merge = ()  # type: ignore[union-attr]
        content = sw.finish_and_serialize()

    assert read_merges(content) == []
    assert sw.report is not None
    assert sw.report.merges == []
    assert len(sw.report.warnings) == 1
    assert "Worksheet.merge" in sw.report.warnings[0]


@pytest.mark.parametrize(
    ("freeze_rows", "freeze_cols", "dict_pane_expected"),
    [
        (1, 0, {"ySplit": "1", "topLeftCell": "A2"}),
        (1, 2, {"xSplit": "2", "ySplit": "1", "topLeftCell": "C2"}),
        (0, 0, None),
    ],
)
def test_freeze_panes(
    freeze_rows: int, freeze_cols: int, dict_pane_expected: dict[str, str] | None
) -> None:
    content, _ = _write_sheet(
        [SpecColumn(header="A", field="a"), SpecColumn(header="B", field="b")],
        [{"a": 1, "b": 2}],
        freeze_rows=freeze_rows,
        freeze_cols=freeze_cols,
    )
    dict_pane = read_pane(content)

    if dict_pane_expected is None:
        assert dict_pane is None
        return
    assert dict_pane is not None
    assert dict_pane["state"] == "frozen"
    for _key, _value in dict_pane_expected.items():
        assert dict_pane[_key] == _value


def test_autofit_all_uses_header_and_body_lengths() -> None:
    content, report = _write_sheet(
        [SpecColumn(header="Id", field="id"), SpecColumn(header="Name", field="name")],
        [{"id": 1, "name": "abcdefghijklmnop"}],
    )
    dict_widths = read_col_widths(content)

    assert report.widths == [8, 18]
    assert set(dict_widths) == {0, 1}
    assert dict_widths[1] > dict_widths[0]


def test_autofit_rules_and_inferred_row_cap() -> None:
    l_columns = [SpecColumn(header="A very long header name", field="v")]
    l_records = [{"v": "x"}, {"v": "y" * 40}]

    _, report_header = _write_sheet(
        l_columns,
        l_records,
        options=SpecSheetWriteOptions(autofit=SpecAutofitCellsPolicy(rule_columns="header")),
    )
    _, report_body = _write_sheet(
        l_columns,
        l_records,
        options=SpecSheetWriteOptions(autofit=SpecAutofitCellsPolicy(rule_columns="body")),
    )
    _, report_capped = _write_sheet(
        l_columns,
        l_records,
        options=SpecSheetWriteOptions(
            autofit=SpecAutofitCellsPolicy(rule_columns="body", height_body_inferred_max=1)
        ),
    )
    content_none, report_none = _write_sheet(
        l_columns,
        l_records,
        options=SpecSheetWriteOptions(autofit=SpecAutofitCellsPolicy(rule_columns="none")),
    )

    assert report_header.widths == [25]
    assert report_body.widths == [42]
    assert report_capped.widths == [8]
    assert report_none.widths == []
    assert read_col_widths(content_none) == {}


@pytest.mark.parametrize(
    ("sheet_name", "c_name_expected"),
    [(None, "Data"), ("   ", "Data"), ("Q1/Q2: sales", "Q1_Q2_ sales"), ("x" * 40, "x" * 31)],
)
def test_sheet_name_is_sanitized(sheet_name: str | None, c_name_expected: str) -> None:
    content, report = _write_sheet(
        [SpecColumn(header="A", field="a")], [], sheet_name=sheet_name
    )
    assert read_sheet_names(content) == [c_name_expected]
    assert report.sheet_name == c_name_expected


def test_failed_record_keeps_prior_rows_and_cursor() -> None:
    class Unprintable:
        def __str__(self) -> str:
            raise RuntimeError("no text form")

    layout = SpecSheetLayout(
        columns=(SpecColumn(header="A", field="a"), SpecColumn(header="B", field="b"))
    )
    with SheetWriter() as sw:
        sw.initialize(layout)
        with pytest.raises(RowWriteError) as exc_info:
            sw.append_rows([{"a": 1, "b": 1}, {"a": 2, "b": Unprintable()}, {"a": 3, "b": 3}])
        assert exc_info.value.row_idx == 2
        assert sw.n_rows_data == 1

        with pytest.raises(RowWriteError):
            sw.append_rows([None])
        assert sw.append_rows([{"a": 4, "b": 4}]) == 1
        content = sw.finish_and_serialize()

    assert read_row_values(content, 1) == [1.0, 1.0]
    assert read_row_values(content, 2) == [4.0, 4.0]
    assert 3 not in read_rows(content)


def test_lifecycle_errors() -> None:
    layout = SpecSheetLayout(columns=(SpecColumn(header="A", field="a"),))
    sw = SheetWriter()
    with pytest.raises(ExportStateError):
        sw.append_rows([{"a": 1}])
    with pytest.raises(ExportStateError):
        sw.finish_and_serialize()

    sw.initialize(layout)
    with pytest.raises(ExportStateError):
        sw.initialize(layout)
    sw.finish_and_serialize()
    assert sw.if_finished
    with pytest.raises(ExportStateError):
        sw.append_rows([{"a": 1}])
    with pytest.raises(ExportStateError):
        sw.finish_and_serialize()
    sw.close()
    sw.close()


def test_invalid_columns_are_rejected_before_any_work() -> None:
    sw = SheetWriter()
    with pytest.raises(ValidationError):
        sw.initialize(SpecSheetLayout(columns=()))
    assert sw.wb is None
    assert sw.if_initialized is False


def test_temporary_storage_is_released() -> None:
    layout = SpecSheetLayout(columns=(SpecColumn(header="A", field="a"),))

    sw = SheetWriter().initialize(layout)
    assert sw.wb is not None
    path_dir = Path(sw.wb.filename).parent
    assert path_dir.is_dir()
    sw.append_rows([{"a": 1}])
    sw.finish_and_serialize()
    assert not path_dir.exists()

    sw_abandoned = SheetWriter().initialize(layout)
    assert sw_abandoned.wb is not None
    path_dir_abandoned = Path(sw_abandoned.wb.filename).parent
    sw_abandoned.close()
    assert not path_dir_abandoned.exists()


def test_serialization_failure_still_releases_resources(tmp_path: Path) -> None:
    layout = SpecSheetLayout(columns=(SpecColumn(header="A", field="a"),))
    sw = SheetWriter().initialize(layout)
    assert sw.wb is not None
    path_dir = Path(sw.wb.filename).parent
    sw.wb.filename = (tmp_path / "missing" / "export.xlsx").as_posix()

    with pytest.raises(SerializationError):
        sw.finish_and_serialize()
    assert not path_dir.exists()
    sw.close()
