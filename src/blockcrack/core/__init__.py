"""Core domain module for blockcrack.

This module contains the digest codec, candidate generators, the match
engine and their port definitions. It has no I/O dependencies and can be
tested in isolation.
"""

from blockcrack.core.codec import DigestCodec, canonicalize, codec_for
from blockcrack.core.models import (
    BlockEntry,
    CandidateCursor,
    Checkpoint,
    CrackedDomain,
    TargetEntry,
)
from blockcrack.core.ports import (
    BlocklistFetcherPort,
    ProgressCallback,
    SessionStorePort,
)


__all__ = [
    "BlockEntry",
    "BlocklistFetcherPort",
    "CandidateCursor",
    "Checkpoint",
    "CrackedDomain",
    "DigestCodec",
    "ProgressCallback",
    "SessionStorePort",
    "TargetEntry",
    "canonicalize",
    "codec_for",
]
