"""Pytest configuration and shared fixtures.

This module registers custom markers for CI job separation and provides
shared fixtures for the test suite.
"""

from __future__ import annotations

import hashlib
from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING

import pytest


if TYPE_CHECKING:
    from pathlib import Path

    from blockcrack.core.candidates import CandidateStream
    from blockcrack.core.models import BlockEntry, CandidateCursor, Checkpoint
    from blockcrack.core.ports import BlocklistFetcherPort, SessionStorePort
    from blockcrack.core.session import Session


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "core: Codec, candidates, engine and services")
    config.addinivalue_line("markers", "store: Session store adapter")
    config.addinivalue_line("markers", "fetch: Block list fetch adapter")
    config.addinivalue_line("markers", "progress: Rich progress integration")
    config.addinivalue_line("markers", "cli: CLI tests")
    config.addinivalue_line("markers", "e2e: End-to-end tests")
    config.addinivalue_line("markers", "property: Hypothesis property-based tests")
    config.addinivalue_line(
        "markers", "tra: Test Responsibility Anchor (TRA) - namespace.Anchor format"
    )
    config.addinivalue_line(
        "markers",
        "tier: Test tier for CI job separation (0=instant, 1=fast, 2=standard, 3=slow, 4=manual)",
    )


def hex_digest(domain: str, algorithm: str = "sha256") -> str:
    """Hex digest of a domain as an instance would publish it."""
    return hashlib.new(algorithm, domain.encode("ascii")).hexdigest()


@pytest.fixture
def digest_of() -> Callable[..., str]:
    """Return a helper computing the published hex digest of a domain."""
    return hex_digest


@pytest.fixture
def make_entry() -> Callable[..., BlockEntry]:
    """Return a factory for BlockEntry records.

    ``make_entry(source, real_domain, published=None)`` publishes the digest
    of ``real_domain`` with ``published`` as the visible domain text
    (defaults to the real domain, i.e. published in clear).
    """
    from blockcrack.core.models import BlockEntry

    def factory(
        source: str,
        real_domain: str,
        published: str | None = None,
        *,
        algorithm: str = "sha256",
        severity: str = "suspend",
        comment: str | None = None,
    ) -> BlockEntry:
        return BlockEntry(
            source=source,
            digest=hex_digest(real_domain, algorithm),
            algorithm=algorithm,
            domain=real_domain if published is None else published,
            severity=severity,
            comment=comment,
        )

    return factory


class ListGenerator:
    """Generator over a fixed, ordered list of candidates."""

    def __init__(self, items: Sequence[str], generator_id: str = "list") -> None:
        self.generator_id = generator_id
        self.items = list(items)

    def open(self, cursor: CandidateCursor) -> CandidateStream:
        from blockcrack.core.candidates import OffsetStream

        return OffsetStream(
            self.generator_id, iter(self.items[cursor.position :]), cursor.position
        )


@pytest.fixture
def list_generator() -> Callable[..., ListGenerator]:
    """Return a factory for ordered in-memory generators."""
    return ListGenerator


class RecordingStore:
    """SessionStorePort that keeps checkpoints in memory."""

    def __init__(self, fail_with: Exception | None = None) -> None:
        self.checkpoints: list[Checkpoint] = []
        self.fail_with = fail_with

    def load(self) -> Session:
        from blockcrack.core.session import Session

        return Session()

    def save(self, session: Session) -> None:
        pass

    def import_block_entries(self, entries: Iterable[BlockEntry]) -> object:
        raise NotImplementedError

    def checkpoint(self, checkpoint: Checkpoint) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.checkpoints.append(checkpoint)


@pytest.fixture
def recording_store() -> RecordingStore:
    """A store that records checkpoints instead of writing them."""
    return RecordingStore()


@pytest.fixture
def failing_store() -> RecordingStore:
    """A store whose every checkpoint write fails like a full disk."""
    return RecordingStore(fail_with=OSError("disk full"))


class RecordingProgress:
    """ProgressReporter that records every task event."""

    def __init__(self) -> None:
        self.started: list[tuple[str, int | None]] = []
        self.updates: dict[str, list[tuple[int, int]]] = {}
        self.finished: list[str] = []

    def start_task(self, name: str, total: int | None) -> Callable[[int, int], None]:
        self.started.append((name, total))
        updates = self.updates.setdefault(name, [])

        def callback(completed: int, total: int) -> None:
            updates.append((completed, total))

        return callback

    def finish_task(self, name: str) -> None:
        self.finished.append(name)


@pytest.fixture
def recording_progress() -> RecordingProgress:
    """A progress reporter that records task events."""
    return RecordingProgress()


@pytest.fixture
def fake_fetcher() -> BlocklistFetcherPort:
    """Reusable fake fetcher serving block lists from a dict.

    Assign ``fake_fetcher.lists[instance] = [...]``; unknown instances raise
    FetchError like an unreachable host.
    """
    from blockcrack.core.exceptions import FetchError

    class FakeFetcher:
        def __init__(self) -> None:
            self.lists: dict[str, list[BlockEntry]] = {}
            self.requested: list[str] = []

        def fetch(self, instance: str) -> list[BlockEntry]:
            self.requested.append(instance)
            if instance not in self.lists:
                raise FetchError(f"Cannot reach {instance}", instance=instance)
            return list(self.lists[instance])

    return FakeFetcher()


@pytest.fixture
def session_store(tmp_path: Path) -> SessionStorePort:
    """JsonSessionStore in a temporary directory."""
    from blockcrack.adapters.store import JsonSessionStore

    return JsonSessionStore(tmp_path / "session.json")
