from collections.abc import Generator, Iterable
from pathlib import Path
from typing import Any

import polars as pl

from .spec import SpecFrameChunkPolicy

DEFAULT_FRAME_CHUNK_POLICY = SpecFrameChunkPolicy()


def calculate_row_chunk_size(
    *, width_df: int, policy: SpecFrameChunkPolicy = DEFAULT_FRAME_CHUNK_POLICY
) -> int:
    """
    Return a row chunk size for streaming a frame of ``width_df`` columns.

    Wider frames use smaller chunks so that one materialized chunk stays
    roughly the same size regardless of the schema.
    """
    if policy.fixed_size is not None:
        return policy.fixed_size
    if width_df >= policy.width_large:
        return policy.size_large
    if width_df >= policy.width_medium:
        return policy.size_medium
    return policy.size_default


def count_frame_rows(frame: pl.DataFrame | pl.LazyFrame) -> int:
    if isinstance(frame, pl.LazyFrame):
        return int(frame.select(pl.len()).collect().item())
    return frame.height


def generate_frame_records(
    frame: pl.DataFrame | pl.LazyFrame, *, size_rows_chunk: int | None = None
) -> Generator[dict[str, Any], Any, None]:
    """
    Yield rows as dicts, one chunk at a time.

    A ``DataFrame`` is walked with zero-copy slices. A ``LazyFrame`` runs
    once on the streaming engine and hands over one batch at a time, so a
    scanned file is read a single time and only one batch is materialized.
    Polars releases without ``LazyFrame.collect_batches`` fall back to
    collecting one slice per chunk.
    """
    if not isinstance(frame, pl.DataFrame | pl.LazyFrame):
        frame = pl.DataFrame(frame)
    n_width = (
        len(frame.collect_schema()) if isinstance(frame, pl.LazyFrame) else frame.width
    )
    n_rows_chunk = size_rows_chunk or calculate_row_chunk_size(width_df=n_width)
    if n_rows_chunk < 1:
        raise ValueError(f"size_rows_chunk must be >= 1, got {n_rows_chunk}")

    if isinstance(frame, pl.DataFrame):
        it_chunks: Iterable[pl.DataFrame] = frame.iter_slices(n_rows=n_rows_chunk)
    elif hasattr(frame, "collect_batches"):
        it_chunks = frame.collect_batches(chunk_size=n_rows_chunk, maintain_order=True)
    else:
        it_chunks = _generate_lazy_slices(frame, n_rows_chunk)
    for _df_chunk in it_chunks:
        yield from _df_chunk.iter_rows(named=True)


def _generate_lazy_slices(
    frame: pl.LazyFrame, n_rows_chunk: int
) -> Generator[pl.DataFrame, Any, None]:
    n_row_cursor = 0
    while True:
        df_chunk = frame.slice(offset=n_row_cursor, length=n_rows_chunk).collect()
        yield df_chunk
        if df_chunk.height < n_rows_chunk:
            return
        n_row_cursor += n_rows_chunk


def scan_frame(file_in: Path | str) -> pl.LazyFrame:
    """Lazily scan a Parquet, CSV or NDJSON file, chosen by suffix."""
    path_in = Path(file_in)
    c_suffix = path_in.suffix.lower()
    if c_suffix in {".parquet", ".pq"}:
        return pl.scan_parquet(path_in)
    if c_suffix in {".csv", ".tsv"}:
        return pl.scan_csv(path_in, separator="\t" if c_suffix == ".tsv" else ",")
    if c_suffix in {".ndjson", ".jsonl"}:
        return pl.scan_ndjson(path_in)
    raise ValueError(f"Unsupported input format: {path_in.name!r}")
