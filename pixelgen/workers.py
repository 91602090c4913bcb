"""Bounded thread pool and fixed work partitioning."""
import os
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def split_rows(height: int, width: int, chunk_rows: int) -> List[Tuple[int, int]]:
    """
    Split a row-major grid into contiguous flat index ranges.

    The split depends only on the grid shape and ``chunk_rows``, never on
    the number of workers, so partial results merged in chunk order are
    identical for any pool size.

    Args:
        height: Number of grid rows
        width: Number of grid columns
        chunk_rows: Rows per chunk

    Returns:
        List of (start, end) flat cell index ranges
    """
    chunks = []
    for row in range(0, height, chunk_rows):
        end_row = min(height, row + chunk_rows)
        chunks.append((row * width, end_row * width))
    return chunks


def split_range(n: int, chunk_size: int) -> List[Tuple[int, int]]:
    """Split ``range(n)`` into consecutive (start, end) chunks."""
    return [(s, min(n, s + chunk_size)) for s in range(0, n, chunk_size)]


class WorkerPool:
    """
    Bounded worker pool for CPU-bound numpy work.

    ``map`` returns results in submission order and only after every task
    has finished, which is the barrier between pipeline phases. With a
    single worker tasks run inline.
    """

    def __init__(self, workers: Optional[int] = None):
        self.workers = max(1, workers if workers is not None else (os.cpu_count() or 1))
        self._executor: Optional[ThreadPoolExecutor] = None
        if self.workers > 1:
            self._executor = ThreadPoolExecutor(
                max_workers=self.workers, thread_name_prefix="pixelgen"
            )
        logger.debug(f"Worker pool with {self.workers} worker(s)")

    def map(self, fn: Callable[[T], R], items: Sequence[T]) -> List[R]:
        if self._executor is None or len(items) <= 1:
            return [fn(item) for item in items]
        futures = [self._executor.submit(fn, item) for item in items]
        return [f.result() for f in futures]

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
