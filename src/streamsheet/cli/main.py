"""Command-line front end: ``streamsheet export INPUT -c COLUMNS.json -o OUT.xlsx``."""

import argparse
import json
import sys
from collections.abc import Sequence
from pathlib import Path
from types import MappingProxyType

import polars as pl
from loguru import logger
from rich_argparse import ArgumentDefaultsRichHelpFormatter, RawTextRichHelpFormatter

from streamsheet.errors import StreamsheetError, ValidationError
from streamsheet.export.exporter import BatchExporter
from streamsheet.export.frame import count_frame_rows, scan_frame
from streamsheet.export.source import RecordSource
from streamsheet.export.spec import (
    SpecExportContext,
    SpecExportOptions,
    SpecExportRequest,
)
from streamsheet.io.xlsx.spec import SpecColumn, SpecSheetLayout

from .console import ConsoleProgressMonitor

DICT_EXIT_CODES = MappingProxyType({"complete": 0, "partial": 1, "fatal": 2})
TUP_LOG_LEVELS = ("WARNING", "INFO", "DEBUG")


class SmartFormatter(ArgumentDefaultsRichHelpFormatter, RawTextRichHelpFormatter):
    """
    Keep manual newlines/indentation AND show (default: ...) in help.
    """

    pass


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="streamsheet",
        description="Stream tabular records into a single-sheet XLSX file.",
        formatter_class=SmartFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_export = subparsers.add_parser(
        "export",
        help="Export a Parquet/CSV/NDJSON file to XLSX.",
        formatter_class=SmartFormatter,
    )
    p_export.add_argument(
        "input", type=Path, help="Input file (.parquet, .csv, .tsv, .ndjson)."
    )
    p_export.add_argument(
        "-c",
        "--columns",
        type=Path,
        required=True,
        help="JSON list of column objects, e.g.\n"
        '[{"header": "City", "field": "city", "row_span": true}]',
    )
    p_export.add_argument(
        "-o", "--output", type=Path, required=True, help="Output .xlsx file."
    )
    p_export.add_argument("--sheet-name", default=None, help="Sheet name.")
    p_export.add_argument("--batch-size", type=int, default=1000)
    p_export.add_argument("--freeze-cols", type=int, default=0)
    p_export.add_argument("--freeze-rows", type=int, default=1)
    p_export.add_argument(
        "--row-span",
        type=int,
        default=1,
        help="Rows merged per group in row-span columns.",
    )
    p_export.add_argument(
        "--correlation-id",
        default=None,
        help="Export id shown in progress (default: input file stem).",
    )
    p_export.add_argument("--monitoring-id", default="cli")
    p_export.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Log more (-v: info, -vv: debug).",
    )
    return parser


def configure_logging(n_verbose: int) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level=TUP_LOG_LEVELS[min(max(n_verbose, 0), len(TUP_LOG_LEVELS) - 1)],
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def load_columns(file_columns: Path) -> tuple[SpecColumn, ...]:
    try:
        data = json.loads(file_columns.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid columns file {file_columns}: {e}") from e
    if not isinstance(data, list):
        raise ValidationError(
            f"Columns file must hold a JSON list, got {type(data).__name__}."
        )
    l_columns: list[SpecColumn] = []
    for _idx, _item in enumerate(data):
        if not isinstance(_item, dict):
            raise ValidationError(f"Column {_idx} must be a JSON object.")
        try:
            l_columns.append(SpecColumn.from_mapping(_item))
        except (KeyError, TypeError) as e:
            raise ValidationError(f"Column {_idx} is invalid: {e}") from e
    return tuple(l_columns)


def run_export(args: argparse.Namespace) -> int:
    lf_input = scan_frame(args.input)
    layout = SpecSheetLayout(
        columns=load_columns(args.columns),
        sheet_name=args.sheet_name,
        freeze_cols=args.freeze_cols,
        freeze_rows=args.freeze_rows,
        row_span_quantity=args.row_span,
    )
    request = SpecExportRequest(
        records=RecordSource.from_frame(lf_input),
        n_records_total=count_frame_rows(lf_input),
        correlation_id=args.correlation_id or args.input.stem,
        monitoring_id=args.monitoring_id,
        layout=layout,
        context=SpecExportContext(scenario="cli"),
        query=str(args.input),
    )
    options = SpecExportOptions(batch_size=args.batch_size, if_debug=args.verbose > 1)

    with ConsoleProgressMonitor() as monitor:
        result = BatchExporter(options, monitor).export(request)
    monitor.print_summary(result)

    if result.content is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_bytes(result.content)
        logger.info(f"Wrote {result.n_bytes} bytes to {args.output}")
    return DICT_EXIT_CODES[result.status]


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    try:
        return run_export(args)
    except (StreamsheetError, ValueError, OSError, pl.exceptions.PolarsError) as e:
        logger.error(f"Export failed: {e}")
        return DICT_EXIT_CODES["fatal"]


if __name__ == "__main__":
    sys.exit(main())
