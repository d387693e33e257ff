"""Match engine: the search loop behind ``blockcrack crack``.

The engine claims batches from a CandidateSource, has workers hash them
against the outstanding digests, and applies the results on the calling
thread in claim order. Applying in claim order keeps every generator's
cursor monotonic and limited to ranges that were fully hashed, whatever
order the workers finish in.

Workers only read the target set. Confirming a hit (re-deriving the
digest, retiring it, appending the CrackedDomain) happens under the
engine lock, so two workers hitting the same digest resolve it once.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from blockcrack.core.codec import Digest, codec_for
from blockcrack.core.exceptions import ConfigurationError
from blockcrack.core.models import Checkpoint, CrackedDomain, CrackResult, CrackState
from blockcrack.core.ports import NullProgressReporter


if TYPE_CHECKING:
    from concurrent.futures import Future

    from blockcrack.core.candidates import CandidateBatch, CandidateSource
    from blockcrack.core.ports import ExecutorPort, ProgressReporter, SessionStorePort
    from blockcrack.core.session import Session
    from blockcrack.core.targets import TargetDigestSet


logger = logging.getLogger(__name__)

TRIED_TASK = "candidates"
CRACKED_TASK = "cracked"


@dataclass(frozen=True, slots=True)
class BatchOutcome:
    """What a worker found in one batch.

    Attributes:
        hits: ``(candidate, algorithm, digest)`` for each outstanding match.
        hashed: Candidates hashed before the worker stopped.
        complete: False when the worker stopped early because its hits
            already covered every outstanding digest.
    """

    hits: tuple[tuple[str, str, Digest], ...]
    hashed: int
    complete: bool


def hash_batch(
    candidates: Sequence[str],
    algorithms: Sequence[str],
    targets: TargetDigestSet,
    remaining: int,
) -> BatchOutcome:
    """Hash canonical candidates under each algorithm and look them up.

    Runs on worker threads; reads ``targets`` without mutating it.

    Args:
        candidates: Canonical candidates from one batch.
        algorithms: Algorithms with outstanding digests at claim time.
        targets: The shared target set.
        remaining: Outstanding digests at claim time. Hashing stops once
            this many distinct digests have been hit.
    """
    codecs = [codec_for(a) for a in algorithms]
    hits = []
    found: set[tuple[str, Digest]] = set()
    hashed = 0
    for candidate in candidates:
        hashed += 1
        for codec in codecs:
            digest = codec.hash_canonical(candidate)
            if targets.is_outstanding(codec.algorithm, digest):
                hits.append((candidate, codec.algorithm, digest))
                found.add((codec.algorithm, digest))
        if len(found) >= remaining:
            return BatchOutcome(tuple(hits), hashed, hashed == len(candidates))
    return BatchOutcome(tuple(hits), hashed, True)


class MatchEngine:
    """Runs one crack session: ``IDLE -> RUNNING -> terminal state``.

    Terminal states:
        ALL_CRACKED: nothing outstanding remains; the search stops at once.
        EXHAUSTED: every generator ran dry with digests still outstanding.
        INTERRUPTED: ``stop()`` was called or KeyboardInterrupt was raised.
        FAILED: an exception escaped (typically a checkpoint write error),
            which is re-raised to the caller.

    A final checkpoint is always flushed before ``run()`` returns, and
    checkpoints are written at most every ``checkpoint_every`` candidates or
    ``checkpoint_interval`` seconds, whichever comes first.

    Example:
        >>> engine = MatchEngine(session, CandidateSource([generator]), store)
        >>> result = engine.run()
        >>> result.state
        <CrackState.ALL_CRACKED: 'all-cracked'>
    """

    def __init__(
        self,
        session: Session,
        source: CandidateSource,
        store: SessionStorePort | None = None,
        *,
        executor: ExecutorPort | None = None,
        writer: ExecutorPort | None = None,
        checkpoint_every: int = 100_000,
        checkpoint_interval: float | None = 30.0,
        max_in_flight: int | None = None,
        progress: ProgressReporter | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if checkpoint_every < 1:
            raise ConfigurationError("checkpoint_every must be at least 1")
        self._session = session
        self._source = source
        self._store = store
        if executor is None or writer is None:
            from blockcrack.adapters.executor import SynchronousExecutor

            executor = executor or SynchronousExecutor()
            writer = writer or SynchronousExecutor()
        self._executor = executor
        self._writer = writer
        self._checkpoint_every = checkpoint_every
        self._checkpoint_interval = checkpoint_interval
        self._max_in_flight = max_in_flight
        self._progress = progress or NullProgressReporter()
        self._clock = clock

        self._state = CrackState.IDLE
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._write_future: Future[None] | None = None

        self._tried = 0
        self._since_checkpoint = 0
        self._last_checkpoint_at = 0.0
        self._checkpoints = 0
        self._cracked: list[CrackedDomain] = []
        self._new_cracked: list[CrackedDomain] = []
        self._retired: set[tuple[str, Digest]] = set()
        self._outstanding_at_start = 0

    @property
    def state(self) -> CrackState:
        """Current lifecycle state."""
        return self._state

    @property
    def session(self) -> Session:
        """The session being mutated."""
        return self._session

    def stop(self) -> None:
        """Ask the engine to finish claimed batches and return INTERRUPTED.

        Safe to call from any thread or a signal handler.
        """
        self._stop.set()

    def run(self) -> CrackResult:
        """Search until all digests are cracked, candidates run out, or stop.

        Raises:
            RuntimeError: If the engine has already run.
            Exception: Whatever made a checkpoint fail; state becomes FAILED.
        """
        if self._state is not CrackState.IDLE:
            raise RuntimeError("A MatchEngine can only run once")

        started = self._clock()
        self._outstanding_at_start = self._session.outstanding_count
        if self._outstanding_at_start == 0:
            self._state = CrackState.ALL_CRACKED
            return self._result(started)

        self._state = CrackState.RUNNING
        self._last_checkpoint_at = started
        tried_callback = self._progress.start_task(TRIED_TASK, None)
        cracked_callback = self._progress.start_task(
            CRACKED_TASK, self._outstanding_at_start
        )
        try:
            with self._executor as executor, self._writer:
                try:
                    terminal = self._search(executor, tried_callback, cracked_callback)
                except KeyboardInterrupt:
                    logger.info("Interrupted, writing final checkpoint")
                    terminal = CrackState.INTERRUPTED
                self._checkpoint(wait=True)
        except BaseException:
            self._state = CrackState.FAILED
            raise
        finally:
            self._progress.finish_task(TRIED_TASK)
            self._progress.finish_task(CRACKED_TASK)

        self._state = terminal
        if self._source.invalid:
            logger.debug("Skipped %d invalid candidates", self._source.invalid)
        return self._result(started)

    def _search(
        self,
        executor: ExecutorPort,
        tried_callback: Callable[[int, int], None],
        cracked_callback: Callable[[int, int], None],
    ) -> CrackState:
        window = self._max_in_flight or max(1, executor.max_workers * 2)
        if executor.max_workers <= 1:
            window = 1
        batches = self._source.batches(self._session.cursors)
        pending: deque[tuple[CandidateBatch, Future[BatchOutcome]]] = deque()
        drained = False

        while True:
            while not drained and len(pending) < window and not self._stop.is_set():
                batch = next(batches, None)
                if batch is None:
                    drained = True
                    break
                future = executor.submit(
                    hash_batch,
                    batch.candidates,
                    self._session.targets.outstanding_algorithms(),
                    self._session.targets,
                    self._session.outstanding_count,
                )
                pending.append((batch, future))

            if not pending:
                break

            batch, future = pending.popleft()
            outcome = future.result()
            self._commit(batch, outcome)
            tried_callback(self._tried, 0)
            cracked_callback(len(self._cracked), self._outstanding_at_start)

            if self._session.outstanding_count == 0:
                for _batch, leftover in pending:
                    leftover.cancel()
                return CrackState.ALL_CRACKED

            self._maybe_checkpoint()

            if self._stop.is_set():
                while pending:
                    batch, future = pending.popleft()
                    outcome = future.result()
                    self._commit(batch, outcome)
                if self._session.outstanding_count == 0:
                    return CrackState.ALL_CRACKED
                return CrackState.INTERRUPTED

        if self._session.outstanding_count == 0:
            return CrackState.ALL_CRACKED
        if self._stop.is_set() and not drained:
            return CrackState.INTERRUPTED
        return CrackState.EXHAUSTED

    def _commit(self, batch: CandidateBatch, outcome: BatchOutcome) -> None:
        with self._lock:
            for candidate, algorithm, digest in outcome.hits:
                self._confirm(candidate, algorithm, digest, batch.generator_id)
            if outcome.complete:
                self._session.cursors[batch.generator_id] = batch.end_cursor
            self._tried += outcome.hashed
            self._since_checkpoint += outcome.hashed

    def _confirm(
        self, candidate: str, algorithm: str, digest: Digest, provenance: str
    ) -> None:
        codec = codec_for(algorithm)
        if not codec.matches(candidate, digest):
            logger.error(
                "Rejected hit %r: does not re-derive %s", candidate, codec.encode(digest)
            )
            return
        if not self._session.targets.is_outstanding(algorithm, digest):
            return

        cracked = CrackedDomain(
            digest=digest,
            algorithm=algorithm,
            domain=candidate,
            provenance=provenance,
        )
        if self._session.record_crack(cracked):
            self._cracked.append(cracked)
            self._new_cracked.append(cracked)
            self._retired.add(cracked.key)
            logger.info(
                "Cracked %s (%s) -> %s via %s",
                codec.encode(digest),
                algorithm,
                candidate,
                provenance,
            )

    def _maybe_checkpoint(self) -> None:
        due = self._since_checkpoint >= self._checkpoint_every
        if not due and self._checkpoint_interval is not None:
            due = self._clock() - self._last_checkpoint_at >= self._checkpoint_interval
        if due:
            self._checkpoint()

    def _checkpoint(self, *, wait: bool = False) -> None:
        with self._lock:
            checkpoint = Checkpoint(
                cursors=tuple(self._session.cursors.values()),
                retired=frozenset(self._retired),
                cracked=tuple(self._new_cracked),
            )

        if self._store is not None:
            # One write in flight at a time keeps checkpoints ordered on disk
            self._await_write()
            self._write_future = self._writer.submit(self._store.checkpoint, checkpoint)
            self._checkpoints += 1
            logger.debug(
                "Checkpoint %d: %d cursors, %d new cracks",
                self._checkpoints,
                len(checkpoint.cursors),
                len(checkpoint.cracked),
            )

        # The delta stays buffered until a write carrying it has been issued
        with self._lock:
            self._retired.difference_update(checkpoint.retired)
            del self._new_cracked[: len(checkpoint.cracked)]
            self._since_checkpoint = 0
            self._last_checkpoint_at = self._clock()

        if wait:
            self._await_write()

    def _await_write(self) -> None:
        if self._write_future is not None:
            future, self._write_future = self._write_future, None
            future.result()

    def _result(self, started: float) -> CrackResult:
        return CrackResult(
            state=self._state,
            tried=self._tried,
            invalid=self._source.invalid,
            duplicates=self._source.duplicates,
            cracked=tuple(self._cracked),
            outstanding=self._session.outstanding_count,
            checkpoints=self._checkpoints,
            elapsed=self._clock() - started,
        )
