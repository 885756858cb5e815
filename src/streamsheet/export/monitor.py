from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ProgressMonitor(Protocol):
    """External service told after every flushed batch how far an export got."""

    def update_progress(
        self,
        org: Any,
        user: Any,
        correlation_id: str,
        monitoring_id: str,
        batch_idx: int,
        n_batches_total: int,
    ) -> None: ...


def check_progress_reportable(
    *,
    monitor: ProgressMonitor | None,
    n_batches_total: int,
    correlation_id: str | None,
    monitoring_id: str | None,
) -> bool:
    """Progress goes out only with a monitor, a known total and both ids set."""
    return (
        monitor is not None
        and n_batches_total > 0
        and bool(correlation_id)
        and bool(monitoring_id)
    )
