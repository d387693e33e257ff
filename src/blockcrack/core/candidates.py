"""Candidate generators and the deterministic scheduler that combines them.

Every generator has a stable ``generator_id`` and an ``open(cursor)`` method
returning a CandidateStream that yields exactly the part of its sequence the
cursor has not covered yet. A stream's ``cursor`` property always describes
the position after the last item it produced, so the scheduler can persist
progress at any batch boundary.

Generators must be deterministic: the same inputs produce the same sequence
in the same order on every run, otherwise stored cursors are meaningless.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from itertools import count, islice
from pathlib import Path

from blockcrack.core.codec import canonicalize
from blockcrack.core.exceptions import ConfigurationError, InvalidCandidate
from blockcrack.core.models import WILDCARD, CandidateCursor


logger = logging.getLogger(__name__)

# Characters instances hide behind a single "*"
DEFAULT_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"

COMMON_TLDS = (
    "com", "net", "org", "social", "online", "cloud", "xyz", "club", "io",
    "space", "town", "world", "zone", "site", "website", "party", "lol", "fun",
    "life", "live", "tech", "dev", "app", "me", "co", "one", "pub", "cafe",
    "host", "ninja", "de", "jp", "uk", "fr", "nl", "in", "us", "ca", "eu",
)  # fmt: skip

SUBDOMAIN_PREFIXES = (
    "www", "social", "mastodon", "masto", "mstdn", "m", "toot", "fedi",
    "pleroma", "misskey", "pl", "mk",
)  # fmt: skip


class CandidateStream:
    """Iterator over the untried suffix of one generator's sequence."""

    def __iter__(self) -> Iterator[str]:
        return self

    def __next__(self) -> str:
        raise NotImplementedError

    @property
    def cursor(self) -> CandidateCursor:
        """Cursor marking everything produced so far as tried."""
        raise NotImplementedError

    @property
    def exhausted(self) -> bool:
        """True once the underlying sequence has ended."""
        return self.cursor.exhausted


class OffsetStream(CandidateStream):
    """Stream over a linear sequence, tracked by a single offset.

    The underlying iterator may yield ``None`` for positions that count as
    consumed but produce no candidate (comment lines in a wordlist).
    """

    def __init__(
        self,
        generator_id: str,
        items: Iterator[str | None],
        start: int = 0,
        unit: str | None = None,
    ) -> None:
        self._generator_id = generator_id
        self._items = items
        self._position = start
        self._unit = unit
        self._exhausted = False

    def __next__(self) -> str:
        if self._exhausted:
            raise StopIteration
        for item in self._items:
            self._position += 1
            if item is not None:
                return item
        self._exhausted = True
        raise StopIteration

    @property
    def cursor(self) -> CandidateCursor:
        return CandidateCursor(
            self._generator_id,
            position=self._position,
            current=self._unit,
            exhausted=self._exhausted,
        )


class UnitStream(CandidateStream):
    """Visited-set stream over independent units.

    Each unit (a base domain, a wildcard pattern) expands to a finite run of
    candidates. The cursor lists finished units in ``visited`` and records
    the offset into the unit in progress, so units that appear between runs
    are searched in full and finished ones are never repeated.
    """

    def __init__(
        self,
        generator_id: str,
        units: Sequence[str],
        expand: Callable[[str, int], Iterator[str]],
        cursor: CandidateCursor,
    ) -> None:
        self._generator_id = generator_id
        self._expand = expand
        self._visited = set(cursor.visited)
        self._current = cursor.current
        self._position = cursor.position if cursor.current else 0
        self._exhausted = False
        self._items = self._walk(units)

    def _walk(self, units: Sequence[str]) -> Iterator[str]:
        for unit in units:
            if unit in self._visited:
                continue
            start = self._position if unit == self._current else 0
            self._current = unit
            self._position = start
            for candidate in self._expand(unit, start):
                self._position += 1
                yield candidate
            self._visited.add(unit)
            self._current = None
            self._position = 0

    def __next__(self) -> str:
        try:
            return next(self._items)
        except StopIteration:
            self._exhausted = True
            raise

    @property
    def cursor(self) -> CandidateCursor:
        return CandidateCursor(
            self._generator_id,
            position=self._position if self._current else 0,
            visited=frozenset(self._visited),
            current=self._current,
            exhausted=self._exhausted,
        )


class DomainListGenerator:
    """Plaintext domains already known, in sorted order.

    Used for domains other instances published in clear and for domains
    cracked in earlier sessions: a digest blocked by one instance is often
    the same domain another instance names openly. The list grows as runs
    crack more, so progress is kept per domain rather than as an offset.
    """

    def __init__(self, domains: Iterable[str], generator_id: str = "known") -> None:
        self.generator_id = generator_id
        self._domains = sorted(set(domains))

    def __len__(self) -> int:
        return len(self._domains)

    @staticmethod
    def _expand(domain: str, start: int) -> Iterator[str]:
        return iter([domain][start:])

    def open(self, cursor: CandidateCursor) -> CandidateStream:
        """Resume with the domains not yet in ``cursor.visited``."""
        return UnitStream(self.generator_id, self._domains, self._expand, cursor)


class WordlistGenerator:
    """Lines of a text file, one candidate per line.

    Blank lines and ``#`` comments are skipped but still count as positions,
    so offsets always equal line numbers.
    """

    def __init__(self, path: Path, generator_id: str | None = None) -> None:
        if not path.is_file():
            raise ConfigurationError(f"Wordlist not found: {path}")
        self.path = path
        self.generator_id = generator_id or f"wordlist:{path.stem}"

    def _lines(self, skip: int) -> Iterator[str | None]:
        with self.path.open(encoding="utf-8", errors="replace") as f:
            for line in islice(f, skip, None):
                text = line.strip()
                if not text or text.startswith("#"):
                    yield None
                else:
                    yield text

    def open(self, cursor: CandidateCursor) -> CandidateStream:
        """Resume after ``cursor.position`` lines."""
        return OffsetStream(
            self.generator_id, self._lines(cursor.position), cursor.position
        )


def tld_variants(domain: str) -> list[str]:
    """The domain with its last label replaced by each common TLD."""
    stem, dot, tld = domain.rpartition(".")
    if not dot:
        return []
    return [f"{stem}.{other}" for other in COMMON_TLDS if other != tld]


def subdomain_variants(domain: str) -> list[str]:
    """The parent domain, plus the domain under each common prefix."""
    labels = domain.split(".")
    variants = []
    if len(labels) > 2:
        variants.append(".".join(labels[1:]))
    variants.extend(
        f"{prefix}.{domain}" for prefix in SUBDOMAIN_PREFIXES if labels[0] != prefix
    )
    return variants


VARIANT_RULES: dict[str, Callable[[str], list[str]]] = {
    "tld": tld_variants,
    "subdomain": subdomain_variants,
}


class VariantGenerator:
    """Finite mutations of base domains produced by a named rule.

    Each base is one unit of a visited-set cursor, so bases cracked after
    the previous run still get their variants tried.
    """

    def __init__(self, bases: Iterable[str], rule: str) -> None:
        if rule not in VARIANT_RULES:
            raise ConfigurationError(
                f"Unknown variant rule '{rule}' (available: {', '.join(VARIANT_RULES)})"
            )
        self.rule = rule
        self.generator_id = f"variants:{rule}"
        self._bases = sorted(set(bases))

    def _expand(self, base: str, start: int) -> Iterator[str]:
        return iter(VARIANT_RULES[self.rule](base)[start:])

    def open(self, cursor: CandidateCursor) -> CandidateStream:
        """Resume with the bases not yet in ``cursor.visited``."""
        return UnitStream(self.generator_id, self._bases, self._expand, cursor)


def insert_suffix(domain: str, n: int) -> str:
    """Append ``n`` to the first label: ``mastodon.social`` -> ``mastodon1.social``."""
    first, dot, rest = domain.partition(".")
    return f"{first}{n}{dot}{rest}"


class NumericSuffixGenerator:
    """Numbered siblings of base domains. Unbounded unless ``limit`` is set.

    Position ``p`` maps to suffix ``p // len(bases)`` on base
    ``p % len(bases)``, so every base gets suffix 0 before any gets 1.

    An offset only describes the base list it was taken over, so the cursor
    carries a fingerprint of that list in ``current``. A cursor taken over a
    different list starts again from zero. Raising ``limit`` extends the same
    sequence, so a cursor finished under a smaller limit continues from where
    it stopped.
    """

    generator_id = "suffix"

    def __init__(self, bases: Iterable[str], limit: int | None = None) -> None:
        self._bases = sorted(set(bases))
        self.limit = limit
        self.basis = hashlib.sha256("\n".join(self._bases).encode("utf-8")).hexdigest()[:16]

    def _items(self, start: int) -> Iterator[str]:
        width = len(self._bases)
        if not width:
            return
        positions = count(start) if self.limit is None else range(start, self.limit * width)
        for p in positions:
            n, index = divmod(p, width)
            yield insert_suffix(self._bases[index], n)

    def open(self, cursor: CandidateCursor) -> CandidateStream:
        """Resume after ``cursor.position`` candidates of the same base list."""
        start = cursor.position if cursor.current == self.basis else 0
        return OffsetStream(self.generator_id, self._items(start), start, unit=self.basis)


def expand_pattern(pattern: str, index: int, alphabet: str = DEFAULT_ALPHABET) -> str:
    """Fill the wildcards of ``pattern`` with the ``index``-th combination.

    The first wildcard is the most significant digit in base ``len(alphabet)``.
    """
    stars = pattern.count(WILDCARD)
    base = len(alphabet)
    digits = []
    for _ in range(stars):
        index, remainder = divmod(index, base)
        digits.append(alphabet[remainder])
    digits.reverse()
    filled = iter(digits)
    return "".join(next(filled) if ch == WILDCARD else ch for ch in pattern)


class WildcardGenerator:
    """Expands obfuscated domains published by instances.

    Mastodon lets instances publish blocked domains with characters replaced
    by ``*``. Each ``*`` stands for one character, so a pattern with ``k``
    wildcards has ``len(alphabet) ** k`` completions. Patterns are visited
    cheapest first; the cursor remembers which patterns are finished rather
    than an offset, because the pattern collection changes between fetches.
    """

    generator_id = "wildcard"

    def __init__(
        self,
        patterns: Iterable[str],
        alphabet: str = DEFAULT_ALPHABET,
        max_wildcards: int = 5,
    ) -> None:
        if not alphabet:
            raise ConfigurationError("Wildcard alphabet cannot be empty")
        self.alphabet = alphabet
        self.max_wildcards = max_wildcards
        usable = []
        for pattern in set(patterns):
            stars = pattern.count(WILDCARD)
            if stars == 0:
                continue
            if stars > max_wildcards:
                logger.info(
                    "Skipping pattern %r: %d wildcards exceeds limit of %d",
                    pattern,
                    stars,
                    max_wildcards,
                )
                continue
            usable.append(pattern.strip().lower())
        self.patterns = sorted(set(usable), key=lambda p: (p.count(WILDCARD), p))

    def _expand(self, pattern: str, start: int) -> Iterator[str]:
        for index in range(start, len(self.alphabet) ** pattern.count(WILDCARD)):
            yield expand_pattern(pattern, index, self.alphabet)

    def open(self, cursor: CandidateCursor) -> CandidateStream:
        """Resume, skipping visited patterns and the done part of the current one."""
        return UnitStream(self.generator_id, self.patterns, self._expand, cursor)


@dataclass(frozen=True, slots=True)
class CandidateBatch:
    """A contiguous range of one generator's sequence, ready for hashing.

    Attributes:
        generator_id: Generator the range belongs to.
        sequence: Claim order across all batches of a run.
        candidates: Canonical candidates to hash (invalid and duplicate
            items already removed).
        end_cursor: Cursor to commit once every candidate has been hashed.
        consumed: Raw items the range covers, including removed ones.
    """

    generator_id: str
    sequence: int
    candidates: tuple[str, ...]
    end_cursor: CandidateCursor
    consumed: int = 0


class CandidateSource:
    """Round-robin composition of generators with per-run deduplication.

    Generators take turns in registration order, each contributing up to
    ``batch_size`` raw items per turn. Exhausted generators leave the
    rotation; the source ends when all have. Candidates are canonicalized
    here so workers only hash, and candidates already tried earlier in the
    same run are dropped while the dedup set is below ``dedup_limit``.

    Attributes:
        invalid: Items rejected by canonicalization so far.
        duplicates: Items dropped as already tried so far.
    """

    def __init__(
        self,
        generators: Sequence,
        *,
        batch_size: int = 1000,
        dedup_limit: int = 1_000_000,
    ) -> None:
        if batch_size < 1:
            raise ConfigurationError("batch_size must be at least 1")
        ids = [g.generator_id for g in generators]
        if len(ids) != len(set(ids)):
            raise ConfigurationError(f"Duplicate generator ids: {sorted(ids)}")
        self.generators = list(generators)
        self.batch_size = batch_size
        self.dedup_limit = dedup_limit
        self.invalid = 0
        self.duplicates = 0
        self._seen: set[str] = set()

    @property
    def generator_ids(self) -> list[str]:
        """Ids in scheduling order."""
        return [g.generator_id for g in self.generators]

    def _accept(self, raw: str) -> str | None:
        try:
            candidate = canonicalize(raw)
        except InvalidCandidate as e:
            self.invalid += 1
            logger.debug("%s", e)
            return None
        if candidate in self._seen:
            self.duplicates += 1
            return None
        if len(self._seen) < self.dedup_limit:
            self._seen.add(candidate)
        return candidate

    def batches(
        self, cursors: Mapping[str, CandidateCursor] | None = None
    ) -> Iterator[CandidateBatch]:
        """Yield batches resuming each generator from its cursor.

        Args:
            cursors: Stored cursors by generator id. Missing ids start fresh.
                Exhausted cursors are reopened too, because a generator's
                inputs (known domains, wordlist lines) can grow between runs;
                one with nothing new produces no batch.
        """
        cursors = cursors or {}
        rotation = []
        for generator in self.generators:
            cursor = cursors.get(generator.generator_id) or CandidateCursor(
                generator.generator_id
            )
            rotation.append((generator.open(cursor), cursor))

        sequence = 0
        while rotation:
            for entry in list(rotation):
                stream, opened_at = entry
                candidates = []
                consumed = 0
                for raw in islice(stream, self.batch_size):
                    consumed += 1
                    candidate = self._accept(raw)
                    if candidate is not None:
                        candidates.append(candidate)
                end_cursor = stream.cursor
                if consumed < self.batch_size:
                    # islice stopped early, so the stream has ended
                    end_cursor = end_cursor.finished()
                    rotation.remove(entry)
                    if not consumed and end_cursor == opened_at:
                        continue
                yield CandidateBatch(
                    generator_id=end_cursor.generator_id,
                    sequence=sequence,
                    candidates=tuple(candidates),
                    end_cursor=end_cursor,
                    consumed=consumed,
                )
                sequence += 1
