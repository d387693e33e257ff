"""Core domain models for blockcrack.

These models are pure Python dataclasses with no I/O dependencies.
They represent the published block entries, the digests being searched
for, the recovered plaintexts and the progress of each candidate generator.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Self

from blockcrack.core.codec import DEFAULT_ALGORITHM, Digest, codec_for


WILDCARD = "*"


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class BlockEntry:
    """One blocked-domain record published by one instance.

    Attributes:
        source: Host of the instance that published the record.
        digest: Digest text exactly as published (hex for Mastodon).
        algorithm: Hash algorithm the digest was produced with.
        domain: Published domain text. Instances may obfuscate characters
            with ``*``; a value without ``*`` is the plaintext itself.
        severity: Published block level (``silence``, ``suspend``, ...).
        comment: Optional public reason for the block.

    Example:
        >>> entry = BlockEntry(
        ...     source="mastodon.social",
        ...     digest="3b7c...",
        ...     domain="ev*l.example",
        ...     severity="suspend",
        ... )
        >>> entry.is_obfuscated
        True
    """

    source: str
    digest: str
    algorithm: str = DEFAULT_ALGORITHM
    domain: str = ""
    severity: str = ""
    comment: str | None = None

    def __post_init__(self) -> None:
        """Validate entry fields after initialization."""
        if not self.source:
            raise ValueError("BlockEntry source cannot be empty")
        if not self.digest:
            raise ValueError("BlockEntry digest cannot be empty")

    @property
    def is_obfuscated(self) -> bool:
        """True when the published domain hides characters behind ``*``."""
        return WILDCARD in self.domain

    @property
    def plaintext(self) -> str | None:
        """The published domain when it is not obfuscated, else None."""
        if not self.domain or self.is_obfuscated:
            return None
        return self.domain


@dataclass(frozen=True, slots=True)
class TargetEntry:
    """A digest being searched for, with every instance that published it.

    Attributes:
        digest: Raw digest bytes.
        algorithm: Hash algorithm of the digest.
        sources: Instances that published this digest.
        patterns: Obfuscated domain texts published for this digest.
    """

    digest: Digest
    algorithm: str
    sources: frozenset[str] = frozenset()
    patterns: frozenset[str] = frozenset()

    @property
    def key(self) -> tuple[str, Digest]:
        """Identity of the entry across the whole session."""
        return (self.algorithm, self.digest)

    def merge(self, other: TargetEntry) -> Self:
        """Return a new entry carrying the union of both attributions.

        Raises:
            ValueError: If the entries describe different digests.
        """
        if other.key != self.key:
            raise ValueError("Cannot merge entries for different digests")
        return replace(
            self,
            sources=self.sources | other.sources,
            patterns=self.patterns | other.patterns,
        )


@dataclass(frozen=True, slots=True)
class CrackedDomain:
    """A recovered digest-to-domain mapping. Never updated once created.

    Attributes:
        digest: The target digest.
        algorithm: Algorithm the digest was produced with.
        domain: Canonical plaintext domain.
        provenance: Generator id, or ``published:<instance>`` when an
            instance published the domain in clear.
        cracked_at: When the match was confirmed.
    """

    digest: Digest
    algorithm: str
    domain: str
    provenance: str
    cracked_at: datetime = field(default_factory=utcnow)

    @property
    def key(self) -> tuple[str, Digest]:
        """Identity of the cracked target."""
        return (self.algorithm, self.digest)

    def verify(self) -> bool:
        """Re-hash the domain and check it still produces the digest."""
        return codec_for(self.algorithm).matches(self.domain, self.digest)


@dataclass(frozen=True, slots=True)
class CandidateCursor:
    """How far one generator's sequence has been tried.

    Ordered generators only use ``position``. Generators working through an
    unordered collection record finished units in ``visited`` and the unit
    in progress in ``current``, with ``position`` counting inside it.

    Attributes:
        generator_id: Stable id of the generator owning the cursor.
        position: Number of items already tried.
        visited: Completed units for visited-set generators.
        current: Unit in progress for visited-set generators.
        exhausted: True once the whole sequence has been tried.
    """

    generator_id: str
    position: int = 0
    visited: frozenset[str] = frozenset()
    current: str | None = None
    exhausted: bool = False

    def __post_init__(self) -> None:
        """Validate cursor fields after initialization."""
        if not self.generator_id:
            raise ValueError("CandidateCursor generator_id cannot be empty")
        if self.position < 0:
            raise ValueError("CandidateCursor position cannot be negative")

    def at(self, position: int) -> Self:
        """Return a copy positioned at ``position``."""
        return replace(self, position=position)

    def finished(self) -> Self:
        """Return a copy marked exhausted."""
        return replace(self, exhausted=True)


@dataclass(frozen=True, slots=True)
class Checkpoint:
    """Incremental state handed to the session store.

    Attributes:
        cursors: Cursor of every generator touched so far.
        retired: Digests removed from the outstanding set since the last
            checkpoint, as ``(algorithm, digest)`` keys.
        cracked: CrackedDomain records created since the last checkpoint.
        taken_at: When the snapshot was taken.
    """

    cursors: tuple[CandidateCursor, ...] = ()
    retired: frozenset[tuple[str, Digest]] = frozenset()
    cracked: tuple[CrackedDomain, ...] = ()
    taken_at: datetime = field(default_factory=utcnow)


class CrackState(Enum):
    """Match engine lifecycle states."""

    IDLE = "idle"
    RUNNING = "running"
    EXHAUSTED = "exhausted"
    INTERRUPTED = "interrupted"
    ALL_CRACKED = "all-cracked"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """True for states the engine stops in."""
        return self not in (CrackState.IDLE, CrackState.RUNNING)


@dataclass(frozen=True, slots=True)
class CrackResult:
    """Outcome of one crack run.

    Attributes:
        state: Terminal state of the engine.
        tried: Candidates hashed during the run.
        invalid: Generated strings rejected by canonicalization.
        duplicates: Candidates skipped because they were already tried.
        cracked: Records created during the run.
        outstanding: Digests still unresolved.
        checkpoints: Number of checkpoints written.
        elapsed: Wall-clock seconds spent running.
    """

    state: CrackState
    tried: int = 0
    invalid: int = 0
    duplicates: int = 0
    cracked: tuple[CrackedDomain, ...] = ()
    outstanding: int = 0
    checkpoints: int = 0
    elapsed: float = 0.0


@dataclass(frozen=True, slots=True)
class ImportReport:
    """Summary of merging block entries into a session.

    Attributes:
        received: Entries handed to the import.
        added: New digests added to the target set.
        merged: Entries whose digest was already known.
        malformed: Entries dropped because their digest could not be decoded.
        published: Digests resolved from plaintext published domains.
        cursors_reset: True when generator progress was discarded because
            new digests arrived.
    """

    received: int = 0
    added: int = 0
    merged: int = 0
    malformed: int = 0
    published: int = 0
    cursors_reset: bool = False

    def __add__(self, other: ImportReport) -> ImportReport:
        return ImportReport(
            received=self.received + other.received,
            added=self.added + other.added,
            merged=self.merged + other.merged,
            malformed=self.malformed + other.malformed,
            published=self.published + other.published,
            cursors_reset=self.cursors_reset or other.cursors_reset,
        )


@dataclass(frozen=True, slots=True)
class BlockedBy:
    """One instance's block of a digest, for display."""

    instance: str
    severity: str
    comment: str | None = None


@dataclass(frozen=True, slots=True)
class ReportRow:
    """One digest joined with its resolution, for the show command.

    Attributes:
        digest: Hex text of the digest.
        algorithm: Hash algorithm.
        domain: Cracked plaintext, else the first published pattern, else "".
        status: ``cracked``, ``partial`` (only a pattern is known) or
            ``unknown``.
        blocked_by: Instances blocking the digest.
    """

    digest: str
    algorithm: str
    domain: str
    status: str
    blocked_by: tuple[BlockedBy, ...] = ()


@dataclass(frozen=True, slots=True)
class InstanceSummary:
    """Per-instance totals for the status command."""

    instance: str
    entries: int
    cracked: int

    @property
    def outstanding(self) -> int:
        """Entries of this instance not resolved yet."""
        return self.entries - self.cracked
