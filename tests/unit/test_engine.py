"""Unit tests for MatchEngine.

Most tests run on the SynchronousExecutor so batch order and checkpoint
timing are deterministic; one test exercises the thread pool.
"""

from __future__ import annotations

import ast
import hashlib
from collections.abc import Callable, Iterator
from concurrent.futures import Future
from itertools import count
from pathlib import Path
from typing import TypeVar

import pytest

from blockcrack.adapters.executor import SynchronousExecutor
from blockcrack.core.candidates import CandidateSource, NumericSuffixGenerator, OffsetStream
from blockcrack.core.engine import MatchEngine, hash_batch
from blockcrack.core.exceptions import ConfigurationError
from blockcrack.core.models import CandidateCursor, CrackState, TargetEntry
from blockcrack.core.session import Session
from blockcrack.core.targets import TargetDigestSet


T = TypeVar("T")


def _target(domain: str, algorithm: str = "sha256") -> TargetEntry:
    digest = hashlib.new(algorithm, domain.encode()).digest()
    return TargetEntry(digest, algorithm, frozenset({"a.social"}))


def _session(*targets: TargetEntry) -> Session:
    session = Session()
    for target in targets:
        session.targets.add(target)
    return session


def _frozen_clock() -> float:
    return 0.0


class _StopAfterFirstBatch:
    """Progress reporter that asks the engine to stop on the first update."""

    def __init__(self) -> None:
        self.engine: MatchEngine | None = None

    def start_task(self, name: str, total: int | None) -> Callable[[int, int], None]:
        def callback(completed: int, total: int) -> None:
            if name == "candidates" and self.engine is not None:
                self.engine.stop()

        return callback

    def finish_task(self, name: str) -> None:
        pass


class _InterruptedGenerator:
    """Yields two candidates, then behaves as if Ctrl-C was pressed."""

    generator_id = "flaky"

    def open(self, cursor: CandidateCursor) -> OffsetStream:
        def items() -> Iterator[str]:
            yield from ["a.example", "b.example"][cursor.position :]
            raise KeyboardInterrupt

        return OffsetStream(self.generator_id, items(), cursor.position)


class _InterruptedWriter(SynchronousExecutor):
    """Checkpoint writer that behaves as if Ctrl-C hit its first write."""

    def __init__(self) -> None:
        self.calls = 0

    def submit(self, fn: Callable[..., T], *args: object, **kwargs: object) -> Future[T]:
        self.calls += 1
        if self.calls == 1:
            raise KeyboardInterrupt
        return super().submit(fn, *args, **kwargs)


class _UnusedGenerator:
    generator_id = "unused"

    def open(self, cursor: CandidateCursor) -> OffsetStream:
        raise AssertionError("generator should not be opened")


@pytest.mark.core
@pytest.mark.tra("Domain.Engine.HashBatch")
@pytest.mark.tier(0)
class TestHashBatch:
    """Tests for the worker function."""

    def test_stops_once_every_digest_is_hit(self) -> None:
        """A batch stops hashing when its hits cover all outstanding digests."""
        target = _target("b.example")
        targets = TargetDigestSet([target])

        outcome = hash_batch(
            ["a.example", "b.example", "c.example"], ["sha256"], targets, remaining=1
        )

        assert outcome.hits == (("b.example", "sha256", target.digest),)
        assert outcome.hashed == 2
        assert not outcome.complete

    def test_hashes_whole_batch_while_digests_remain(self) -> None:
        """With more digests outstanding the batch is hashed in full."""
        targets = TargetDigestSet([_target("b.example"), _target("z.example")])

        outcome = hash_batch(
            ["a.example", "b.example", "c.example"], ["sha256"], targets, remaining=2
        )

        assert len(outcome.hits) == 1
        assert outcome.hashed == 3
        assert outcome.complete

    def test_only_outstanding_digests_hit(self) -> None:
        """Retired digests are not reported again."""
        target = _target("b.example")
        targets = TargetDigestSet([target])
        targets.retire("sha256", target.digest)

        outcome = hash_batch(["b.example"], ["sha256"], targets, remaining=1)

        assert outcome.hits == ()


@pytest.mark.core
@pytest.mark.tra("Domain.Engine.Run")
@pytest.mark.tier(1)
class TestMatchEngineRun:
    """Tests for terminal states and crack records."""

    @pytest.mark.parametrize("batch_size", [1, 1000])
    def test_cracks_and_stops_early(
        self, batch_size: int, list_generator: Callable[..., object], recording_store
    ) -> None:
        """Once the last digest falls, no further candidate is hashed."""
        session = _session(_target("example.org"))
        source = CandidateSource(
            [list_generator(["example.com", "example.org", "example.net"])],
            batch_size=batch_size,
        )
        engine = MatchEngine(session, source, recording_store, clock=_frozen_clock)

        result = engine.run()

        assert result.state is CrackState.ALL_CRACKED
        assert engine.state is CrackState.ALL_CRACKED
        assert result.tried == 2
        assert result.outstanding == 0
        [cracked] = result.cracked
        assert cracked.domain == "example.org"
        assert cracked.provenance == "list"
        assert cracked.verify()
        assert recording_store.checkpoints[-1].cracked == (cracked,)

    def test_unbounded_generator_ends_when_all_cracked(self) -> None:
        """An endless generator is fine once every digest is found."""
        session = _session(_target("node7.example"))
        source = CandidateSource(
            [NumericSuffixGenerator(["node.example"])], batch_size=3
        )

        result = MatchEngine(session, source, clock=_frozen_clock).run()

        assert result.state is CrackState.ALL_CRACKED
        assert result.tried == 8
        assert result.cracked[0].provenance == "suffix"

    def test_exhausted_without_false_positives(
        self, list_generator: Callable[..., object]
    ) -> None:
        """Digests that no candidate matches stay outstanding."""
        session = _session(_target("hidden.example"))
        source = CandidateSource(
            [list_generator(["a.example", "b.example", "bad domain"])], batch_size=2
        )

        result = MatchEngine(session, source, clock=_frozen_clock).run()

        assert result.state is CrackState.EXHAUSTED
        assert result.cracked == ()
        assert result.outstanding == 1
        assert result.tried == 2
        assert result.invalid == 1
        assert session.cursors["list"].exhausted
        assert session.cursors["list"].position == 3

    def test_several_algorithms(self, list_generator: Callable[..., object]) -> None:
        """Each candidate is checked under every outstanding algorithm."""
        session = _session(_target("a.example", "sha1"), _target("b.example"))
        source = CandidateSource([list_generator(["a.example", "b.example"])])

        result = MatchEngine(session, source, clock=_frozen_clock).run()

        assert result.state is CrackState.ALL_CRACKED
        assert {(c.algorithm, c.domain) for c in result.cracked} == {
            ("sha1", "a.example"),
            ("sha256", "b.example"),
        }

    def test_nothing_outstanding_returns_immediately(self, recording_store) -> None:
        """No generator is opened when there is nothing to crack."""
        source = CandidateSource([_UnusedGenerator()])

        result = MatchEngine(Session(), source, recording_store).run()

        assert result.state is CrackState.ALL_CRACKED
        assert result.tried == 0
        assert recording_store.checkpoints == []

    def test_run_only_once(self, list_generator: Callable[..., object]) -> None:
        """An engine cannot be restarted."""
        engine = MatchEngine(_session(_target("x.example")), CandidateSource([list_generator([])]))
        engine.run()

        with pytest.raises(RuntimeError, match="only run once"):
            engine.run()

    def test_checkpoint_every_must_be_positive(
        self, list_generator: Callable[..., object]
    ) -> None:
        """A zero checkpoint cadence is rejected up front."""
        with pytest.raises(ConfigurationError, match="checkpoint_every"):
            MatchEngine(Session(), CandidateSource([list_generator([])]), checkpoint_every=0)

    def test_thread_pool_keeps_cursor_monotonic(
        self, list_generator: Callable[..., object], recording_store
    ) -> None:
        """Results are applied in claim order whatever order workers finish in."""
        from blockcrack.adapters.executor import ThreadPoolExecutorAdapter

        domains = [f"d{i}.example" for i in range(200)]
        session = _session(_target("d150.example"), _target("d199.example"), _target("zz.example"))
        source = CandidateSource([list_generator(domains)], batch_size=7)
        engine = MatchEngine(
            session,
            source,
            recording_store,
            executor=ThreadPoolExecutorAdapter(max_workers=4),
            checkpoint_every=1,
        )

        result = engine.run()

        assert result.state is CrackState.EXHAUSTED
        assert result.tried == 200
        assert sorted(c.domain for c in result.cracked) == ["d150.example", "d199.example"]
        positions = [c.cursors[0].position for c in recording_store.checkpoints]
        assert positions == sorted(positions)
        assert positions[-1] == 200


@pytest.mark.core
@pytest.mark.tra("Domain.Engine.Checkpoint")
@pytest.mark.tier(1)
class TestMatchEngineCheckpoints:
    """Tests for checkpoint cadence and failure handling."""

    def test_checkpoint_by_count(
        self, list_generator: Callable[..., object], recording_store
    ) -> None:
        """A checkpoint is written every checkpoint_every candidates, plus a final one."""
        session = _session(_target("hidden.example"))
        source = CandidateSource(
            [list_generator([f"{c}.example" for c in "abcde"])], batch_size=1
        )
        engine = MatchEngine(
            session, source, recording_store, checkpoint_every=2, clock=_frozen_clock
        )

        result = engine.run()

        assert result.checkpoints == 3
        assert len(recording_store.checkpoints) == 3
        final = recording_store.checkpoints[-1].cursors
        assert final == (CandidateCursor("list", position=5, exhausted=True),)

    def test_checkpoint_by_interval(
        self, list_generator: Callable[..., object], recording_store
    ) -> None:
        """Slow progress still checkpoints once the interval has elapsed."""
        ticks = count(step=100)
        session = _session(_target("hidden.example"))
        source = CandidateSource(
            [list_generator(["a.example", "b.example", "c.example"])], batch_size=1
        )
        engine = MatchEngine(
            session,
            source,
            recording_store,
            checkpoint_every=1_000_000,
            checkpoint_interval=30.0,
            clock=lambda: float(next(ticks)),
        )

        result = engine.run()

        # Three batches, the empty batch closing the generator, and the final write
        assert result.checkpoints == 5

    def test_checkpoint_carries_retired_digests(
        self, list_generator: Callable[..., object], recording_store
    ) -> None:
        """Cracked digests are recorded as retired in the checkpoint delta."""
        target = _target("b.example")
        session = _session(target, _target("hidden.example"))
        source = CandidateSource([list_generator(["a.example", "b.example"])])

        MatchEngine(session, source, recording_store, clock=_frozen_clock).run()

        [checkpoint] = recording_store.checkpoints
        assert checkpoint.retired == {target.key}
        assert [c.domain for c in checkpoint.cracked] == ["b.example"]

    def test_failed_checkpoint_fails_run(
        self, list_generator: Callable[..., object], failing_store
    ) -> None:
        """A store error propagates and leaves the engine FAILED."""
        store = failing_store
        engine = MatchEngine(
            _session(_target("hidden.example")),
            CandidateSource([list_generator(["a.example"])]),
            store,
            clock=_frozen_clock,
        )

        with pytest.raises(OSError, match="disk full"):
            engine.run()

        assert engine.state is CrackState.FAILED


@pytest.mark.core
@pytest.mark.tra("Domain.Engine.Interrupt")
@pytest.mark.tier(1)
class TestMatchEngineInterrupt:
    """Tests for stop() and KeyboardInterrupt."""

    def test_stop_then_resume(
        self, list_generator: Callable[..., object], recording_store
    ) -> None:
        """A stopped run keeps its cursor; the next run continues from it."""
        items = [f"{c}.example" for c in "abcde"]
        session = _session(_target("e.example"))
        progress = _StopAfterFirstBatch()
        engine = MatchEngine(
            session,
            CandidateSource([list_generator(items)], batch_size=2),
            recording_store,
            progress=progress,
            clock=_frozen_clock,
        )
        progress.engine = engine

        first = engine.run()

        assert first.state is CrackState.INTERRUPTED
        assert first.tried == 2
        assert session.cursors["list"].position == 2
        assert recording_store.checkpoints[-1].cursors[0].position == 2

        second = MatchEngine(
            session,
            CandidateSource([list_generator(items)], batch_size=2),
            recording_store,
            clock=_frozen_clock,
        ).run()

        assert second.state is CrackState.ALL_CRACKED
        assert second.tried == 3
        assert second.cracked[0].domain == "e.example"

    def test_stop_before_run_is_interrupted(
        self, list_generator: Callable[..., object]
    ) -> None:
        """A stop requested before any batch is claimed still ends INTERRUPTED."""
        engine = MatchEngine(
            _session(_target("hidden.example")),
            CandidateSource([list_generator(["a.example"])]),
            clock=_frozen_clock,
        )
        engine.stop()

        result = engine.run()

        assert result.state is CrackState.INTERRUPTED
        assert result.tried == 0

    def test_keyboard_interrupt_flushes_checkpoint(self, recording_store) -> None:
        """Ctrl-C mid-claim ends INTERRUPTED with the last committed cursor saved."""
        session = _session(_target("hidden.example"))
        source = CandidateSource([_InterruptedGenerator()], batch_size=2)

        result = MatchEngine(session, source, recording_store, clock=_frozen_clock).run()

        assert result.state is CrackState.INTERRUPTED
        assert result.tried == 2
        assert recording_store.checkpoints[-1].cursors == (
            CandidateCursor("flaky", position=2),
        )

    def test_interrupted_checkpoint_keeps_cracks(
        self, list_generator: Callable[..., object], recording_store
    ) -> None:
        """Ctrl-C while a checkpoint is handed over loses no crack."""
        target = _target("a.example")
        session = _session(target, _target("zz.example"))
        source = CandidateSource(
            [list_generator(["a.example", "b.example", "c.example"])], batch_size=1
        )
        writer = _InterruptedWriter()
        engine = MatchEngine(
            session,
            source,
            recording_store,
            writer=writer,
            checkpoint_every=1,
            clock=_frozen_clock,
        )

        result = engine.run()

        assert result.state is CrackState.INTERRUPTED
        assert writer.calls == 2
        [checkpoint] = recording_store.checkpoints
        assert [c.domain for c in checkpoint.cracked] == ["a.example"]
        assert checkpoint.retired == {target.key}
        assert checkpoint.cursors == (CandidateCursor("list", position=1),)


@pytest.mark.core
@pytest.mark.tra("Domain.AdapterBoundary")
@pytest.mark.tier(1)
class TestAdapterBoundary:
    """Tests that the core package only reaches adapters lazily."""

    def _module_tree(self, name: str) -> ast.Module:
        path = Path(__file__).parent.parent.parent / "src" / "blockcrack" / "core" / name
        return ast.parse(path.read_text(), filename=str(path))

    @pytest.mark.parametrize(
        "name",
        ["engine.py", "candidates.py", "session.py", "services.py", "fetch_operations.py"],
    )
    def test_core_module_has_no_top_level_adapter_imports(self, name: str) -> None:
        """Core modules import no adapter when they are imported themselves."""
        violations = []
        for node in self._module_tree(name).body:
            if isinstance(node, ast.ImportFrom) and node.module:
                if node.module.startswith("blockcrack.adapters"):
                    violations.append(f"Line {node.lineno}: {node.module}")
            elif isinstance(node, ast.Import):
                for alias in node.names:
                    if alias.name.startswith("blockcrack.adapters"):
                        violations.append(f"Line {node.lineno}: {alias.name}")

        assert violations == [], f"Adapter imports in core/{name}: {violations}"

    def test_engine_has_no_runtime_asserts(self) -> None:
        """Worker results are typed through their futures, not asserted."""
        asserts = [
            node.lineno
            for node in ast.walk(self._module_tree("engine.py"))
            if isinstance(node, ast.Assert)
        ]

        assert asserts == []
