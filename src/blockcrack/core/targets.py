"""The set of digests under search, partitioned by hash algorithm."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from blockcrack.core.codec import Digest
from blockcrack.core.models import TargetEntry


class TargetDigestSet:
    """Digest-keyed target entries with an outstanding partition.

    Each algorithm has its own dict of entries, so one digest value appears
    at most once per algorithm no matter how many instances published it.
    Lookups are dict lookups; matching never scans the targets.

    Example:
        >>> targets = TargetDigestSet()
        >>> targets.add(TargetEntry(digest=d, algorithm="sha256", sources=frozenset({"a"})))
        True
        >>> targets.is_outstanding("sha256", d)
        True
    """

    def __init__(self, entries: Iterable[TargetEntry] = ()) -> None:
        self._entries: dict[str, dict[Digest, TargetEntry]] = {}
        self._outstanding: dict[str, set[Digest]] = {}
        for entry in entries:
            self.add(entry)

    def __len__(self) -> int:
        return sum(len(by_digest) for by_digest in self._entries.values())

    def __iter__(self) -> Iterator[TargetEntry]:
        for algorithm in sorted(self._entries):
            yield from self._entries[algorithm].values()

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple) or len(key) != 2:
            return False
        algorithm, digest = key
        return digest in self._entries.get(algorithm, {})

    @property
    def algorithms(self) -> list[str]:
        """Algorithms with at least one entry, sorted."""
        return sorted(self._entries)

    @property
    def outstanding_count(self) -> int:
        """Number of digests not yet cracked, across all algorithms."""
        return sum(len(digests) for digests in self._outstanding.values())

    def outstanding_algorithms(self) -> list[str]:
        """Algorithms that still have outstanding digests, sorted."""
        return sorted(a for a, digests in self._outstanding.items() if digests)

    def get(self, algorithm: str, digest: Digest) -> TargetEntry | None:
        """Return the entry for a digest, or None."""
        return self._entries.get(algorithm, {}).get(digest)

    def add(self, entry: TargetEntry, *, outstanding: bool = True) -> bool:
        """Insert an entry or merge it into the existing one.

        Args:
            entry: The entry to add.
            outstanding: Whether a newly added digest starts outstanding.
                Ignored when the digest is already present.

        Returns:
            True if the digest was not present before.
        """
        by_digest = self._entries.setdefault(entry.algorithm, {})
        existing = by_digest.get(entry.digest)
        if existing is not None:
            by_digest[entry.digest] = existing.merge(entry)
            return False

        by_digest[entry.digest] = entry
        pending = self._outstanding.setdefault(entry.algorithm, set())
        if outstanding:
            pending.add(entry.digest)
        return True

    def is_outstanding(self, algorithm: str, digest: Digest) -> bool:
        """O(1) membership test against the outstanding partition."""
        pending = self._outstanding.get(algorithm)
        return pending is not None and digest in pending

    def retire(self, algorithm: str, digest: Digest) -> bool:
        """Move a digest out of the outstanding partition.

        Idempotent: retiring an unknown or already retired digest is a no-op.

        Returns:
            True if the digest was outstanding before the call.
        """
        pending = self._outstanding.get(algorithm)
        if pending is None or digest not in pending:
            return False
        pending.discard(digest)
        return True

    def outstanding(self, algorithm: str | None = None) -> list[TargetEntry]:
        """Outstanding entries, optionally restricted to one algorithm."""
        algorithms = [algorithm] if algorithm else sorted(self._outstanding)
        result = []
        for name in algorithms:
            by_digest = self._entries.get(name, {})
            result.extend(by_digest[d] for d in sorted(self._outstanding.get(name, ())))
        return result

    def patterns(self) -> set[str]:
        """Obfuscated domain patterns attached to outstanding entries."""
        found: set[str] = set()
        for entry in self.outstanding():
            found.update(entry.patterns)
        return found
