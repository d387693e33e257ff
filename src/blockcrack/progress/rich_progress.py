"""Rich-based progress reporter for terminal output."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)


if TYPE_CHECKING:
    from types import TracebackType

    from rich.console import Console

    from blockcrack.core.ports import ProgressCallback


class RichProgressReporter:
    """Progress reporter using Rich for terminal display.

    Bounded tasks (cracked digests, fetched instances) show a bar with a
    completed/total count. Unbounded tasks (candidates tried) show a spinner
    and a running count.

    Example:
        with RichProgressReporter() as reporter:
            result = cracker.crack(progress=reporter)
    """

    def __init__(self, console: Console | None = None) -> None:
        """Initialize the progress display.

        Args:
            console: Console to draw on. Defaults to Rich's stderr-aware default.
        """
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console,
        )
        self._tasks: dict[str, TaskID] = {}
        self._started = False

    def __enter__(self) -> RichProgressReporter:
        """Start the progress display."""
        self._progress.start()
        self._started = True
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Stop the progress display."""
        self._progress.stop()
        self._started = False

    def start_task(self, name: str, total: int | None) -> ProgressCallback:
        """Start tracking a task.

        Args:
            name: Human-readable name for the task.
            total: Expected number of steps, or None for an open-ended count.

        Returns:
            A callback to update progress.
        """
        # Auto-start if not in context manager
        if not self._started:
            self._progress.start()
            self._started = True

        task_id = self._progress.add_task(name, total=total)
        self._tasks[name] = task_id

        def callback(completed: int, _total: int) -> None:
            self._progress.update(task_id, completed=completed)

        return callback

    def finish_task(self, name: str) -> None:
        """Stop a task; an open-ended task gets its final count as total.

        Args:
            name: The task name.
        """
        if name in self._tasks:
            task_id = self._tasks.pop(name)
            task = next(t for t in self._progress.tasks if t.id == task_id)
            if task.total is None:
                self._progress.update(task_id, total=task.completed)
            self._progress.stop_task(task_id)
