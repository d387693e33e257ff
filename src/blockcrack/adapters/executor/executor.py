"""Executor adapters implementing ExecutorPort.

The match engine submits candidate batches for hashing and checkpoint
writes through these; the fetch operations submit one instance per task.
"""

from __future__ import annotations

import os
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING, TypeVar


if TYPE_CHECKING:
    from collections.abc import Callable


T = TypeVar("T")


class SynchronousExecutor:
    """Runs each task immediately in the calling thread.

    Used when a single worker is requested and in tests, where it makes the
    engine's batch order and checkpoint timing fully deterministic.
    """

    max_workers = 1

    def submit(
        self,
        fn: Callable[..., T],
        *args: object,
        **kwargs: object,
    ) -> Future[T]:
        """Execute function immediately and return completed future."""
        future: Future[T] = Future()
        try:
            result = fn(*args, **kwargs)
            future.set_result(result)
        except Exception as e:
            future.set_exception(e)
        return future

    def __enter__(self) -> SynchronousExecutor:
        """Enter context manager."""
        return self

    def __exit__(
        self, exc_type: object, exc_val: object, exc_tb: object
    ) -> object | None:
        """Exit context manager (nothing to release)."""
        return None


class ThreadPoolExecutorAdapter:
    """Thread pool for hashing workers, checkpoint writers and fetches.

    Leaving the context waits for running tasks and cancels queued ones, so
    an interrupted crack run does not keep hashing batches it will discard.
    """

    def __init__(self, max_workers: int | None = None, name: str = "blockcrack") -> None:
        """Initialize thread pool executor adapter.

        Args:
            max_workers: Maximum number of worker threads. None uses default.
            name: Thread name prefix, visible in debug logs.
        """
        if max_workers is None:
            max_workers = min(32, (os.cpu_count() or 1) + 4)
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix=name
        )
        self.max_workers = max_workers

    def submit(
        self,
        fn: Callable[..., T],
        *args: object,
        **kwargs: object,
    ) -> Future[T]:
        """Submit function to thread pool."""
        return self._executor.submit(fn, *args, **kwargs)

    def __enter__(self) -> ThreadPoolExecutorAdapter:
        """Enter context manager."""
        return self

    def __exit__(
        self, exc_type: object, exc_val: object, exc_tb: object
    ) -> object | None:
        """Shut the pool down, dropping tasks that have not started."""
        self._executor.shutdown(wait=True, cancel_futures=True)
        return None


def create_executor(
    workers: int, name: str = "blockcrack"
) -> SynchronousExecutor | ThreadPoolExecutorAdapter:
    """Pick the executor for a worker count (1 or less runs synchronously)."""
    if workers <= 1:
        return SynchronousExecutor()
    return ThreadPoolExecutorAdapter(max_workers=workers, name=name)
