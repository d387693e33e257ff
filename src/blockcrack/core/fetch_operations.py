"""Fetch operation implementations for Cracker.

This module contains the block list retrieval logic that Cracker delegates
to. These are implementation details and should not be used directly.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from blockcrack.core.exceptions import FetchError
from blockcrack.core.models import BlockEntry, ImportReport


if TYPE_CHECKING:
    from blockcrack.core.ports import (
        BlocklistFetcherPort,
        ExecutorPort,
        ProgressReporter,
        SessionStorePort,
    )


logger = logging.getLogger(__name__)

FETCH_TASK = "fetch"


@dataclass
class FetchSummary:
    """Result of fetching several instances.

    Attributes:
        reports: Import report per instance that was fetched.
        failures: Error per instance that could not be fetched.
    """

    reports: dict[str, ImportReport] = field(default_factory=dict)
    failures: dict[str, FetchError] = field(default_factory=dict)

    @property
    def total(self) -> ImportReport:
        """All per-instance reports added together."""
        return sum(self.reports.values(), ImportReport())

    @property
    def all_failed(self) -> bool:
        """True when instances were requested and none could be fetched."""
        return bool(self.failures) and not self.reports


def fetch_blocklists(
    instances: Sequence[str],
    fetcher: BlocklistFetcherPort,
    progress: ProgressReporter,
    executor: ExecutorPort | None = None,
) -> tuple[dict[str, list[BlockEntry]], dict[str, FetchError]]:
    """Fetch every instance, collecting failures instead of raising them.

    Runs in parallel through ``executor`` when it has more than one worker,
    sequentially otherwise. Results keep the order of ``instances``.
    """

    def fetch_one(instance: str) -> list[BlockEntry] | FetchError:
        try:
            return fetcher.fetch(instance)
        except FetchError as e:
            logger.warning("%s", e)
            return e

    callback = progress.start_task(FETCH_TASK, len(instances))
    outcomes: list[list[BlockEntry] | FetchError] = []
    try:
        if executor is None or executor.max_workers == 1:
            for instance in instances:
                outcomes.append(fetch_one(instance))
                callback(len(outcomes), len(instances))
        else:
            with executor:
                futures = [executor.submit(fetch_one, i) for i in instances]
                for future in futures:
                    outcome = future.result()
                    assert isinstance(outcome, list | FetchError)
                    outcomes.append(outcome)
                    callback(len(outcomes), len(instances))
    finally:
        progress.finish_task(FETCH_TASK)

    fetched: dict[str, list[BlockEntry]] = {}
    failures: dict[str, FetchError] = {}
    for instance, outcome in zip(instances, outcomes, strict=True):
        if isinstance(outcome, FetchError):
            failures[instance] = outcome
        else:
            fetched[instance] = outcome
    return fetched, failures


def fetch_and_import(
    instances: Sequence[str],
    fetcher: BlocklistFetcherPort,
    store: SessionStorePort,
    progress: ProgressReporter,
    executor: ExecutorPort | None = None,
) -> FetchSummary:
    """Fetch instances, then import each list into the store in order.

    Imports run one at a time on the calling thread so the store sees a
    single writer.
    """
    fetched, failures = fetch_blocklists(instances, fetcher, progress, executor)
    summary = FetchSummary(failures=failures)
    for instance, entries in fetched.items():
        summary.reports[instance] = store.import_block_entries(entries)
    return summary
