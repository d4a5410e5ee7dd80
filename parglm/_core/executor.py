"""
Fork-join task executor.

A fixed-size thread pool created once per fit. NumPy and LAPACK release
the GIL inside their kernels, so block tasks run in parallel.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Iterable, List, Tuple

logger = logging.getLogger(__name__)


class TaskExecutor:
    """
    Worker pool with an explicit join barrier.

    Use as a context manager; the pool is shut down (waiting for every
    submitted task) on exit.

    Examples
    --------
    >>> with TaskExecutor(4) as pool:
    ...     sums = pool.map_blocks(lambda s, e: sum(range(s, e)), [(0, 5), (5, 10)])
    >>> sums
    [10, 35]
    """

    def __init__(self, max_threads: int):
        if int(max_threads) < 1:
            raise ValueError(f"max_threads must be >= 1, got {max_threads}")
        self.max_threads = int(max_threads)
        self._pool = ThreadPoolExecutor(
            max_workers=self.max_threads,
            thread_name_prefix="parglm"
        )

    def submit(self, fn: Callable, *args) -> Future:
        """Schedule one task; ``future.result()`` re-raises its failure."""
        return self._pool.submit(fn, *args)

    def map_blocks(self, fn: Callable, ranges: Iterable[Tuple[int, int]]) -> List:
        """
        Run ``fn(start, stop)`` for every range and wait for all of them.

        Results come back in the order of ``ranges`` whatever order the
        tasks finish in. The first stored failure (in range order) is
        raised after every task has finished.
        """
        futures = [self.submit(fn, start, stop) for start, stop in ranges]
        logger.debug("dispatched %d block tasks", len(futures))

        # join on everything before surfacing an error, so no task is
        # still writing into shared buffers when the caller unwinds
        for f in futures:
            f.exception()
        return [f.result() for f in futures]

    def shutdown(self):
        self._pool.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()
        return False
