"""Digest codec: canonical domain form, hashing, and digest text encoding.

The canonicalization rule is applied identically to published plaintext
domains and to every generated candidate. Any drift between the two sides
silently prevents all matches, so the rule lives here and nowhere else:

1. strip surrounding whitespace
2. lowercase
3. drop one trailing dot (``example.org.`` -> ``example.org``)
4. IDNA-encode non-ASCII labels to punycode
5. validate: 1..253 characters, labels of 1..63 ``[a-z0-9_-]`` characters,
   no label starting or ending with ``-``
"""

from __future__ import annotations

import hashlib
import re
from functools import lru_cache

from blockcrack.core.exceptions import (
    InvalidCandidate,
    MalformedDigest,
    UnsupportedAlgorithmError,
)


Digest = bytes

DEFAULT_ALGORITHM = "sha256"

SUPPORTED_ALGORITHMS = ("sha256", "sha1", "sha512", "md5", "blake2b", "sha3_256")

MAX_DOMAIN_LENGTH = 253
MAX_LABEL_LENGTH = 63

_LABEL_RE = re.compile(r"^[a-z0-9_](?:[a-z0-9_-]*[a-z0-9_])?$")
_HEX_RE = re.compile(r"^[0-9a-fA-F]*$")


def canonicalize(candidate: str) -> str:
    """Return the canonical form of a domain, or raise InvalidCandidate.

    Args:
        candidate: Raw domain text (may carry case, whitespace, trailing dot).

    Returns:
        The canonical ASCII domain string that gets hashed.

    Raises:
        InvalidCandidate: If the text is not a syntactically valid domain.

    Example:
        >>> canonicalize("  Example.ORG. ")
        'example.org'
    """
    text = candidate.strip().lower()
    if text.endswith("."):
        text = text[:-1]
    if not text:
        raise InvalidCandidate(candidate, "empty")

    if not text.isascii():
        try:
            text = text.encode("idna").decode("ascii")
        except UnicodeError as e:
            raise InvalidCandidate(candidate, f"IDNA encoding failed: {e}") from None

    if len(text) > MAX_DOMAIN_LENGTH:
        raise InvalidCandidate(candidate, "longer than 253 characters")

    for label in text.split("."):
        if not label:
            raise InvalidCandidate(candidate, "empty label")
        if len(label) > MAX_LABEL_LENGTH:
            raise InvalidCandidate(candidate, "label longer than 63 characters")
        if not _LABEL_RE.match(label):
            raise InvalidCandidate(candidate, f"invalid label {label!r}")

    return text


class DigestCodec:
    """Hashes canonical domains and converts digests to and from hex text.

    One codec exists per algorithm. Use ``codec_for()`` to share instances.

    Attributes:
        algorithm: hashlib name of the hash function.
        digest_size: Length of a digest in bytes.
    """

    def __init__(self, algorithm: str = DEFAULT_ALGORITHM) -> None:
        if algorithm not in SUPPORTED_ALGORITHMS:
            raise UnsupportedAlgorithmError(algorithm, list(SUPPORTED_ALGORITHMS))
        self.algorithm = algorithm
        self._new = getattr(hashlib, algorithm)
        self.digest_size = self._new().digest_size

    def __repr__(self) -> str:
        return f"DigestCodec({self.algorithm!r})"

    def hash_canonical(self, canonical: str) -> Digest:
        """Hash an already canonical domain. No validation is performed."""
        return self._new(canonical.encode("ascii")).digest()

    def digest(self, candidate: str) -> Digest:
        """Canonicalize a candidate and return its digest.

        Raises:
            InvalidCandidate: If the candidate is not a valid domain.
        """
        return self.hash_canonical(canonicalize(candidate))

    def encode(self, digest: Digest) -> str:
        """Return the lowercase hex text for a digest."""
        return digest.hex()

    def decode(self, text: str) -> Digest:
        """Parse published digest text.

        Raises:
            MalformedDigest: On non-hex characters or the wrong length.
        """
        cleaned = text.strip()
        if not _HEX_RE.match(cleaned):
            raise MalformedDigest(text, self.algorithm, "not hexadecimal")
        if len(cleaned) != self.digest_size * 2:
            raise MalformedDigest(
                text,
                self.algorithm,
                f"expected {self.digest_size * 2} hex characters, got {len(cleaned)}",
            )
        return bytes.fromhex(cleaned)

    def matches(self, candidate: str, digest: Digest) -> bool:
        """Re-derive the digest of a candidate and compare it.

        Invalid candidates never match.
        """
        try:
            return self.digest(candidate) == digest
        except InvalidCandidate:
            return False


@lru_cache(maxsize=None)
def codec_for(algorithm: str) -> DigestCodec:
    """Return the shared codec for an algorithm.

    Raises:
        UnsupportedAlgorithmError: If the algorithm is not supported.
    """
    return DigestCodec(algorithm)
