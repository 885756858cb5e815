from __future__ import annotations

import argparse
import json
import platform
import re
import statistics
import sys
import tracemalloc
import zipfile
from collections.abc import Iterator
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from importlib import metadata
from io import BytesIO
from pathlib import Path
from time import perf_counter
from typing import Any, Literal

import polars as pl

PATH_REPO = Path(__file__).resolve().parents[1]
PATH_SRC = PATH_REPO / "src"
if str(PATH_SRC) not in sys.path:
    sys.path.insert(0, str(PATH_SRC))

from streamsheet.export import (  # noqa: E402
    BatchExporter,
    RecordSource,
    SpecExportOptions,
    SpecExportRequest,
)
from streamsheet.io.xlsx.spec import (  # noqa: E402
    SpecAutofitCellsPolicy,
    SpecColumn,
    SpecSheetLayout,
)

LIT_SOURCE_KINDS = Literal["generator", "frame", "lazy_frame"]
DT_ORDERS_START = datetime(2024, 1, 1, 8, 0)


@dataclass(frozen=True)
class SpecBenchCase:
    name: str
    n_records: int
    n_lines_per_order: int
    source_kind: LIT_SOURCE_KINDS
    batch_size: int = 1000
    rule_autofit_columns: str = "all"


@dataclass(frozen=True)
class SpecBenchResult:
    case: SpecBenchCase
    runs: int
    seconds: list[float]
    seconds_median: float
    seconds_best: float
    seconds_spread: float
    records_per_second: float
    peak_traced_mb: float
    size_mb: float


def build_cases(profile: str) -> list[SpecBenchCase]:
    if profile == "quick":
        return [
            SpecBenchCase("orders_generator", 20_000, 4, "generator"),
            SpecBenchCase("orders_frame", 20_000, 4, "frame"),
        ]
    return [
        SpecBenchCase("orders_generator", 200_000, 4, "generator", batch_size=5_000),
        SpecBenchCase("orders_lazy_frame", 200_000, 4, "lazy_frame", batch_size=5_000),
        SpecBenchCase(
            "orders_header_autofit",
            200_000,
            1,
            "generator",
            batch_size=5_000,
            rule_autofit_columns="header",
        ),
    ]


def generate_orders(n_records: int, n_lines_per_order: int) -> Iterator[dict[str, Any]]:
    """Order lines grouped by order; each group spans ``n_lines_per_order`` rows."""
    for n_idx in range(n_records):
        n_order = n_idx // n_lines_per_order
        yield {
            "order_id": f"SO-{n_order:07d}",
            "customer": {"name": f"customer-{n_order % 997}", "tier": n_order % 3},
            "placed_at": DT_ORDERS_START + timedelta(minutes=n_order),
            "sku": f"SKU-{n_idx % 5_000:05d}",
            "qty": n_idx % 7 + 1,
            "price": round(3.5 + (n_idx % 1_000) / 7.0, 4),
            "hide": n_idx % 97 == 0,
        }


def build_source(case: SpecBenchCase) -> RecordSource:
    it_orders = generate_orders(case.n_records, case.n_lines_per_order)
    if case.source_kind == "generator":
        return RecordSource(it_orders)
    df = pl.DataFrame(list(it_orders))
    return RecordSource.from_frame(df.lazy() if case.source_kind == "lazy_frame" else df)


def build_layout(case: SpecBenchCase) -> SpecSheetLayout:
    b_row_span = case.n_lines_per_order > 1
    return SpecSheetLayout(
        columns=(
            SpecColumn(header="Order", field="order_id", row_span=b_row_span, bold=True),
            SpecColumn(header="Customer", field="customer.name", row_span=b_row_span),
            SpecColumn(header="Tier", field="customer.tier"),
            SpecColumn(header="Placed", field="placed_at"),
            SpecColumn(header="SKU", field="sku"),
            SpecColumn(header="Qty", field="qty"),
            SpecColumn(header="Price", field="price", num_format="#,##0.00"),
            SpecColumn(header="Line total", field=lambda r: r["qty"] * r["price"]),
        ),
        sheet_name="orders",
        freeze_cols=1,
        row_span_quantity=case.n_lines_per_order,
    )


def count_sheet_rows(content: bytes) -> int:
    with zipfile.ZipFile(BytesIO(content)) as zf:
        return len(re.findall(rb"<row ", zf.read("xl/worksheets/sheet1.xml")))


def run_case_once(case: SpecBenchCase) -> tuple[float, float, bytes]:
    source = build_source(case)
    request = SpecExportRequest(
        records=source,
        n_records_total=case.n_records,
        correlation_id=case.name,
        monitoring_id="benchmark",
        layout=build_layout(case),
    )
    exporter = BatchExporter(
        SpecExportOptions(
            batch_size=case.batch_size,
            autofit=SpecAutofitCellsPolicy(rule_columns=case.rule_autofit_columns),  # type: ignore[arg-type]
        )
    )

    tracemalloc.start()
    n_t0 = perf_counter()
    result = exporter.export(request)
    n_elapsed = perf_counter() - n_t0
    _, n_peak_bytes = tracemalloc.get_traced_memory()
    tracemalloc.stop()

    if result.status != "complete" or result.content is None:
        raise RuntimeError(f"{case.name} ended {result.status}: {result.messages}")
    if (n_rows := count_sheet_rows(result.content)) != case.n_records + 1:
        raise RuntimeError(f"{case.name}: expected {case.n_records + 1} rows, got {n_rows}")
    return n_elapsed, n_peak_bytes / 2**20, result.content


def bench_case(case: SpecBenchCase, *, runs: int, warmup: int) -> SpecBenchResult:
    for _ in range(warmup):
        run_case_once(case)

    l_seconds: list[float] = []
    l_peaks_mb: list[float] = []
    n_size_bytes = 0
    for _ in range(runs):
        n_seconds, n_peak_mb, content = run_case_once(case)
        l_seconds.append(n_seconds)
        l_peaks_mb.append(n_peak_mb)
        n_size_bytes = len(content)

    n_median = statistics.median(l_seconds)
    return SpecBenchResult(
        case=case,
        runs=runs,
        seconds=l_seconds,
        seconds_median=n_median,
        seconds_best=min(l_seconds),
        seconds_spread=max(l_seconds) - min(l_seconds),
        records_per_second=case.n_records / n_median,
        peak_traced_mb=max(l_peaks_mb),
        size_mb=n_size_bytes / 2**20,
    )


def format_table(l_results: list[SpecBenchResult]) -> str:
    l_lines = [
        "| case | source | records | batch | median s | best s | records/s | peak MB | size MB |",
        "| --- | --- | ---: | ---: | ---: | ---: | ---: | ---: | ---: |",
    ]
    for res in l_results:
        l_lines.append(
            f"| {res.case.name} | {res.case.source_kind} | {res.case.n_records} | "
            f"{res.case.batch_size} | {res.seconds_median:.3f} | {res.seconds_best:.3f} | "
            f"{res.records_per_second:,.0f} | {res.peak_traced_mb:.1f} | {res.size_mb:.2f} |"
        )
    return "\n".join(l_lines) + "\n"


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Measure BatchExporter throughput and peak traced memory."
    )
    parser.add_argument("--runs", type=int, default=3, help="Measured runs per case.")
    parser.add_argument("--warmup", type=int, default=1, help="Unmeasured runs per case.")
    parser.add_argument("--profile", choices=("quick", "full"), default="quick")
    parser.add_argument(
        "--out-dir",
        type=Path,
        default=PATH_REPO / "benchmarks" / "batch_export",
        help="Where the JSON record and markdown table are written.",
    )
    args = parser.parse_args()
    if args.runs < 1 or args.warmup < 0:
        parser.error("--runs must be >= 1 and --warmup >= 0")

    l_results = [
        bench_case(_case, runs=args.runs, warmup=args.warmup)
        for _case in build_cases(args.profile)
    ]
    try:
        c_version = metadata.version("streamsheet")
    except metadata.PackageNotFoundError:
        c_version = "src"
    dt_now = datetime.now(timezone.utc)
    c_table = format_table(l_results)

    args.out_dir.mkdir(parents=True, exist_ok=True)
    c_stem = f"batch_export_{args.profile}_{dt_now:%Y%m%dT%H%M%SZ}"
    (args.out_dir / f"{c_stem}.json").write_text(
        json.dumps(
            {
                "utc": dt_now.isoformat(),
                "platform": platform.platform(),
                "python": platform.python_version(),
                "streamsheet": c_version,
                "polars": pl.__version__,
                "results": [asdict(_res) for _res in l_results],
            },
            indent=2,
        )
        + "\n",
        encoding="utf-8",
    )
    (args.out_dir / f"{c_stem}.md").write_text(c_table, encoding="utf-8")
    print(c_table, end="")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
