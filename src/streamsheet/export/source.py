from collections.abc import Callable, Iterable, Iterator
from types import TracebackType
from typing import Any, Self

from loguru import logger

from streamsheet._optional_deps import import_optional_module
from streamsheet.errors import ExportStateError, ResourceReleaseError


class RecordSource:
    """
    Single-use, closeable stream of records.

    Wraps any iterable (a list, a generator, a database cursor). It can be
    iterated once; :meth:`close` releases the underlying iterable (anything
    exposing ``close()``) and then runs ``on_close``, exactly once.

    Examples:
        >>> with RecordSource(iter([{"a": 1}, {"a": 2}])) as src:
        ...     [r["a"] for r in src]
        [1, 2]
    """

    def __init__(
        self,
        records: Iterable[Any],
        *,
        on_close: Callable[[], None] | None = None,
    ):
        if records is None:
            raise TypeError("records cannot be None")
        self._records = records
        self._iterator: Iterator[Any] | None = None
        self.on_close = on_close
        self.n_records_yielded = 0
        self._if_iterated = False
        self._if_closed = False

    @classmethod
    def wrap(cls, records: "Iterable[Any] | RecordSource") -> "RecordSource":
        return records if isinstance(records, RecordSource) else cls(records)

    @classmethod
    def from_frame(cls, frame: Any, *, size_rows_chunk: int | None = None) -> Self:
        """Stream rows of a polars ``DataFrame``/``LazyFrame`` as dicts."""
        mod_frame = import_optional_module(
            module_name=".frame", package=__package__, feature_key="frame"
        )
        return cls(
            mod_frame.generate_frame_records(frame, size_rows_chunk=size_rows_chunk)
        )

    @property
    def is_closed(self) -> bool:
        return self._if_closed

    def __iter__(self) -> Iterator[Any]:
        if self._if_closed:
            raise ExportStateError("RecordSource is closed.")
        if self._if_iterated:
            raise ExportStateError("RecordSource can only be iterated once.")
        self._if_iterated = True
        self._iterator = iter(self._records)
        return self._generate()

    def _generate(self) -> Iterator[Any]:
        assert self._iterator is not None
        for _record in self._iterator:
            self.n_records_yielded += 1
            yield _record

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self, exc_type: type | None, exc: BaseException | None, tb: TracebackType | None
    ) -> None:
        self.close()

    def close(self) -> None:
        if self._if_closed:
            return
        self._if_closed = True
        l_errors: list[str] = []
        l_closeables = [self._records]
        if self._iterator is not None and self._iterator is not self._records:
            l_closeables.insert(0, self._iterator)
        for _obj in l_closeables:
            closer = getattr(_obj, "close", None)
            if not callable(closer):
                continue
            try:
                closer()
            except Exception as e:
                l_errors.append(f"{type(_obj).__name__}: {e}")
        if self.on_close is not None:
            try:
                self.on_close()
            except Exception as e:
                l_errors.append(f"on_close: {e}")
        logger.debug(f"Record source closed after {self.n_records_yielded} records.")
        if l_errors:
            raise ResourceReleaseError(
                "Failed to close record source: " + "; ".join(l_errors)
            )
