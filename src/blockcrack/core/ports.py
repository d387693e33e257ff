"""Port interfaces for hexagonal architecture.

Ports define contracts that adapters must implement. The core domain
depends only on these protocols, never on concrete implementations.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Protocol, TypeVar, runtime_checkable


if TYPE_CHECKING:
    from concurrent.futures import Future

    from blockcrack.core.candidates import CandidateStream
    from blockcrack.core.models import (
        BlockEntry,
        CandidateCursor,
        Checkpoint,
        ImportReport,
    )
    from blockcrack.core.session import Session

ProgressCallback = Callable[[int, int], None]

T = TypeVar("T")


@runtime_checkable
class SessionStorePort(Protocol):
    """Durable home of the Session aggregate."""

    def load(self) -> Session:
        """Load the stored session, or a fresh one when nothing is stored.

        Raises:
            CorruptDatabase: If the stored data cannot be parsed.
        """
        ...

    def save(self, session: Session) -> None:
        """Atomically replace the stored session with a full snapshot."""
        ...

    def import_block_entries(self, entries: Iterable[BlockEntry]) -> ImportReport:
        """Merge fetched entries into the stored session and persist it.

        Re-importing identical entries leaves the stored session unchanged.
        An existing CrackedDomain is never overwritten.
        """
        ...

    def checkpoint(self, checkpoint: Checkpoint) -> None:
        """Atomically persist cursors, retired digests and new cracks.

        A crash during the call leaves the previous checkpoint intact.
        """
        ...


@runtime_checkable
class BlocklistFetcherPort(Protocol):
    """Source of published block lists (network or local files)."""

    def fetch(self, instance: str) -> list[BlockEntry]:
        """Return every block entry an instance publishes.

        Raises:
            FetchError: If the list cannot be retrieved or parsed.
        """
        ...


@runtime_checkable
class CandidateGenerator(Protocol):
    """A deterministic, resumable sequence of candidate domains."""

    generator_id: str

    def open(self, cursor: CandidateCursor) -> CandidateStream:
        """Return a stream over the part of the sequence after ``cursor``."""
        ...


@runtime_checkable
class ProgressReporter(Protocol):
    """Reports search and fetch progress to the user.

    This protocol defines the contract for progress display adapters.
    The core domain uses this to report progress without depending
    on any specific UI library.
    """

    def start_task(self, name: str, total: int | None) -> ProgressCallback:
        """Start tracking a task.

        Args:
            name: Human-readable name for the task.
            total: Expected number of steps, or None when unbounded.

        Returns:
            A ProgressCallback to call with (completed, total).
        """
        ...

    def finish_task(self, name: str) -> None:
        """Mark a task as complete.

        Args:
            name: The task name passed to start_task().
        """
        ...


class NullProgressReporter:
    """A ProgressReporter that produces no output.

    Used as the default when no progress reporting is desired.
    """

    def start_task(self, name: str, total: int | None) -> ProgressCallback:  # noqa: ARG002
        """Return a no-op callback."""
        return lambda _completed, _total: None

    def finish_task(self, name: str) -> None:
        """Do nothing."""
        _ = name  # Unused but required by protocol


@runtime_checkable
class ExecutorPort(Protocol):
    """Executor for parallel task execution.

    Abstracts over concurrent.futures executors to allow dependency injection
    and testing. The core domain uses this protocol instead of directly
    importing ThreadPoolExecutor, maintaining "concurrency at the edges".
    """

    max_workers: int

    def submit(
        self, fn: Callable[..., T], *args: object, **kwargs: object
    ) -> Future[T]:  # type: ignore[name-defined, unused-ignore]
        """Submit a function for execution."""
        ...

    def __enter__(self) -> ExecutorPort:
        """Enter context manager."""
        ...

    def __exit__(
        self, exc_type: object, exc_val: object, exc_tb: object
    ) -> object | None:
        """Exit context manager."""
        ...
