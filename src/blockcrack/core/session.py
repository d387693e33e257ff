"""Session aggregate: targets, cracked records, cursors and raw block lists.

A Session is an explicit value passed to every operation. Persistence is
handled by a SessionStorePort adapter; nothing here touches the disk.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from blockcrack.core.codec import DEFAULT_ALGORITHM, Digest, canonicalize, codec_for
from blockcrack.core.exceptions import InvalidCandidate, MalformedDigest
from blockcrack.core.models import (
    BlockedBy,
    BlockEntry,
    CandidateCursor,
    Checkpoint,
    CrackedDomain,
    ImportReport,
    InstanceSummary,
    ReportRow,
    TargetEntry,
    utcnow,
)
from blockcrack.core.targets import TargetDigestSet


logger = logging.getLogger(__name__)

PUBLISHED_PREFIX = "published:"


@dataclass
class Session:
    """Everything needed to resume a search.

    Attributes:
        algorithm: Default algorithm for entries published without a tag.
        targets: Digests under search and the outstanding partition.
        cracked: CrackedDomain records keyed by ``(algorithm, digest)``.
        cursors: Generator progress keyed by generator id.
        blocklists: Block entries as last fetched, keyed by instance.
        created_at: When the session was first created.
    """

    algorithm: str = DEFAULT_ALGORITHM
    targets: TargetDigestSet = field(default_factory=TargetDigestSet)
    cracked: dict[tuple[str, Digest], CrackedDomain] = field(default_factory=dict)
    cursors: dict[str, CandidateCursor] = field(default_factory=dict)
    blocklists: dict[str, tuple[BlockEntry, ...]] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        """Validate the session algorithm."""
        codec_for(self.algorithm)

    @property
    def outstanding_count(self) -> int:
        """Digests not cracked yet."""
        return self.targets.outstanding_count

    def cursor(self, generator_id: str) -> CandidateCursor:
        """Return the stored cursor for a generator, or a fresh one."""
        return self.cursors.get(generator_id) or CandidateCursor(generator_id)

    def record_crack(self, cracked: CrackedDomain) -> bool:
        """Append a cracked record and retire its digest.

        Append-only: an existing record for the same digest is never
        replaced.

        Returns:
            True if the record was stored.
        """
        if cracked.key in self.cracked:
            return False
        self.cracked[cracked.key] = cracked
        self.targets.retire(cracked.algorithm, cracked.digest)
        return True

    def apply(self, checkpoint: Checkpoint) -> None:
        """Apply a checkpoint's delta to this session."""
        for cursor in checkpoint.cursors:
            self.cursors[cursor.generator_id] = cursor
        for cracked in checkpoint.cracked:
            self.record_crack(cracked)
        for algorithm, digest in checkpoint.retired:
            self.targets.retire(algorithm, digest)

    def import_block_entries(self, entries: Iterable[BlockEntry]) -> ImportReport:
        """Merge fetched entries into the target set.

        Entries are deduplicated by algorithm and digest; the publishing
        instance is added to the existing entry's sources. Undecodable
        digests are dropped with a warning. Plaintext published domains are
        recorded as cracked once their digest has been re-derived.

        The block list of every instance present in ``entries`` replaces the
        one stored before. When new digests arrive all cursors are reset,
        since previously tried candidates were never checked against them.
        """
        entries = list(entries)
        added = merged = malformed = published = 0
        accepted: dict[str, dict[tuple[str, str], BlockEntry]] = {}

        for entry in entries:
            algorithm = entry.algorithm or self.algorithm
            codec = codec_for(algorithm)
            try:
                digest = codec.decode(entry.digest)
            except MalformedDigest as e:
                logger.warning("Dropping entry from %s: %s", entry.source, e)
                malformed += 1
                continue

            accepted.setdefault(entry.source, {})[(algorithm, codec.encode(digest))] = (
                entry
            )
            target = TargetEntry(
                digest=digest,
                algorithm=algorithm,
                sources=frozenset({entry.source}),
                patterns=frozenset({entry.domain}) if entry.is_obfuscated else frozenset(),
            )
            if self.targets.add(target, outstanding=target.key not in self.cracked):
                added += 1
            else:
                merged += 1

            plaintext = entry.plaintext
            if plaintext is not None and target.key not in self.cracked:
                if self._resolve_published(plaintext, target, entry.source):
                    published += 1

        for source, by_key in accepted.items():
            self.blocklists[source] = tuple(by_key.values())

        if added:
            self.cursors.clear()

        return ImportReport(
            received=len(entries),
            added=added,
            merged=merged,
            malformed=malformed,
            published=published,
            cursors_reset=bool(added),
        )

    def _resolve_published(self, domain: str, target: TargetEntry, source: str) -> bool:
        codec = codec_for(target.algorithm)
        try:
            canonical_digest = codec.digest(domain)
        except InvalidCandidate:
            logger.debug("Published domain %r from %s is not valid", domain, source)
            return False
        if canonical_digest != target.digest:
            logger.warning(
                "Published domain %r from %s does not hash to its digest", domain, source
            )
            return False
        return self.record_crack(
            CrackedDomain(
                digest=target.digest,
                algorithm=target.algorithm,
                domain=canonicalize(domain),
                provenance=f"{PUBLISHED_PREFIX}{source}",
            )
        )

    def known_domains(self) -> list[str]:
        """Sorted plaintext domains known so far (published or cracked)."""
        return sorted({c.domain for c in self.cracked.values()})

    def report(self, instance: str | None = None) -> list[ReportRow]:
        """Join every digest with its resolution and the instances blocking it.

        Args:
            instance: Restrict to digests published by this instance.

        Returns:
            Rows sorted with cracked domains first, then by display domain.
        """
        rows = []
        for target in self.targets:
            if instance is not None and instance not in target.sources:
                continue
            codec = codec_for(target.algorithm)
            digest_text = codec.encode(target.digest)
            cracked = self.cracked.get(target.key)
            if cracked is not None:
                domain, status = cracked.domain, "cracked"
            elif target.patterns:
                domain, status = sorted(target.patterns)[0], "partial"
            else:
                domain, status = "", "unknown"

            blocked_by = []
            for source in sorted(target.sources):
                for entry in self.blocklists.get(source, ()):
                    if (entry.algorithm or self.algorithm) != target.algorithm:
                        continue
                    if entry.digest.strip().lower() == digest_text:
                        blocked_by.append(
                            BlockedBy(source, entry.severity, entry.comment)
                        )
                        break
                else:
                    blocked_by.append(BlockedBy(source, ""))

            rows.append(
                ReportRow(
                    digest=digest_text,
                    algorithm=target.algorithm,
                    domain=domain,
                    status=status,
                    blocked_by=tuple(blocked_by),
                )
            )

        order = {"cracked": 0, "partial": 1, "unknown": 2}
        rows.sort(key=lambda r: (order[r.status], r.domain, r.digest))
        return rows

    def summaries(self) -> list[InstanceSummary]:
        """Per-instance entry and cracked counts, sorted by instance."""
        totals: dict[str, int] = {}
        cracked: dict[str, int] = {}
        for target in self.targets:
            is_cracked = target.key in self.cracked
            for source in target.sources:
                totals[source] = totals.get(source, 0) + 1
                if is_cracked:
                    cracked[source] = cracked.get(source, 0) + 1
        return [
            InstanceSummary(name, totals[name], cracked.get(name, 0))
            for name in sorted(totals)
        ]
