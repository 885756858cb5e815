from dataclasses import dataclass
from types import TracebackType
from typing import Any, Self

from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.style import Style
from rich.table import Table

from streamsheet.export.spec import SpecExportResult


@dataclass(frozen=True, slots=True)
class SpecCliTheme:
    h1: str = "#7C3AED"
    h2: str = "#00FFFF"
    ok: str = "#4ADE80"
    warn: str = "#FACC15"
    error: str = "#F87171"


class ConsoleProgressMonitor:
    """
    Progress monitor that draws a batch progress bar on a ``rich`` console.

    Implements the ``update_progress`` monitoring contract, so it can be
    handed to :class:`streamsheet.export.BatchExporter` directly::

        with ConsoleProgressMonitor() as monitor:
            BatchExporter(monitor=monitor).export(request)
    """

    def __init__(
        self, *, console: Console | None = None, theme: SpecCliTheme | None = None
    ):
        self.console = console or Console(stderr=True)
        self.theme = theme or SpecCliTheme()
        self.progress = Progress(
            TextColumn("[bold]{task.description}"),
            BarColumn(complete_style=Style(color=self.theme.h2)),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=self.console,
        )
        self._dict_tasks: dict[str, TaskID] = {}
        self.n_updates = 0

    def __enter__(self) -> Self:
        self.progress.start()
        return self

    def __exit__(
        self, exc_type: type | None, exc: BaseException | None, tb: TracebackType | None
    ) -> None:
        self.progress.stop()

    def update_progress(
        self,
        org: Any,
        user: Any,
        correlation_id: str,
        monitoring_id: str,
        batch_idx: int,
        n_batches_total: int,
    ) -> None:
        task_id = self._dict_tasks.get(monitoring_id)
        if task_id is None:
            task_id = self._dict_tasks[monitoring_id] = self.progress.add_task(
                f"export {correlation_id}", total=n_batches_total
            )
        # The total is an estimate; the real batch count may exceed it.
        self.progress.update(
            task_id, completed=batch_idx, total=max(n_batches_total, batch_idx)
        )
        self.n_updates += 1

    def h1(self, text: str) -> None:
        self.console.rule(
            f"[bold]{text}[/bold]",
            style=Style(color=self.theme.h1, bold=True),
            characters="=",
        )

    def print_summary(self, result: SpecExportResult) -> None:
        c_color = {
            "complete": self.theme.ok,
            "partial": self.theme.warn,
            "fatal": self.theme.error,
        }[result.status]
        self.h1(f"Export {result.status}")

        table = Table(show_header=False, box=None)
        table.add_column(style="bold")
        table.add_column(style=Style(color=c_color))
        table.add_row("records", str(result.stats.n_records_processed))
        table.add_row("batches flushed", str(result.stats.n_batches_flushed))
        table.add_row("batches failed", str(result.stats.n_batches_failed))
        table.add_row("bytes", str(result.n_bytes))
        self.console.print(table)

        for _message in result.messages:
            self.console.print(f"[{self.theme.error}]- {escape(_message)}[/]")
