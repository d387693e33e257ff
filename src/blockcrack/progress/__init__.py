"""Progress reporting adapters."""

from blockcrack.progress.rich_progress import RichProgressReporter


__all__ = ["RichProgressReporter"]
