"""blockcrack - Recover the domains behind Mastodon's hashed domain blocks.

Mastodon instances publish their domain blocks with the SHA-256 digest of
each blocked domain, sometimes hiding the domain itself behind ``*``. This
library fetches those lists, guesses candidate domains, and matches their
digests against the published ones, resuming where it left off.

Example:
    >>> from blockcrack import Cracker
    >>> cracker = Cracker.from_directory()
    >>> cracker.fetch_all(["mastodon.social"])
    >>> result = cracker.crack()
    >>> for row in cracker.report():
    ...     print(row.domain, row.status)
"""

from blockcrack.adapters.executor import SynchronousExecutor, ThreadPoolExecutorAdapter
from blockcrack.adapters.fetch import MastodonBlocklistFetcher, load_blocklist_file
from blockcrack.adapters.store import JsonSessionStore
from blockcrack.config import CrackSettings, find_project_root
from blockcrack.core.codec import DigestCodec, canonicalize, codec_for
from blockcrack.core.engine import MatchEngine
from blockcrack.core.exceptions import (
    AlgorithmMismatchError,
    BlockcrackError,
    ConfigurationError,
    CorruptDatabase,
    FetchError,
    InvalidCandidate,
    MalformedDigest,
    UnsupportedAlgorithmError,
)
from blockcrack.core.models import (
    BlockEntry,
    CandidateCursor,
    Checkpoint,
    CrackedDomain,
    CrackResult,
    CrackState,
    ImportReport,
    ReportRow,
    TargetEntry,
)
from blockcrack.core.ports import (
    NullProgressReporter,
    ProgressCallback,
    ProgressReporter,
    SessionStorePort,
)
from blockcrack.core.services import Cracker
from blockcrack.core.session import Session
from blockcrack.discovery import discover_wordlists, load_instances
from blockcrack.progress import RichProgressReporter


__version__ = "0.1.0"

__all__ = [
    "AlgorithmMismatchError",
    "BlockEntry",
    "BlockcrackError",
    "CandidateCursor",
    "Checkpoint",
    "ConfigurationError",
    "CorruptDatabase",
    "CrackResult",
    "CrackSettings",
    "CrackState",
    "CrackedDomain",
    "Cracker",
    "DigestCodec",
    "FetchError",
    "ImportReport",
    "InvalidCandidate",
    "JsonSessionStore",
    "MalformedDigest",
    "MastodonBlocklistFetcher",
    "MatchEngine",
    "NullProgressReporter",
    "ProgressCallback",
    "ProgressReporter",
    "ReportRow",
    "RichProgressReporter",
    "Session",
    "SessionStorePort",
    "SynchronousExecutor",
    "TargetEntry",
    "ThreadPoolExecutorAdapter",
    "UnsupportedAlgorithmError",
    "__version__",
    "canonicalize",
    "codec_for",
    "discover_wordlists",
    "find_project_root",
    "load_blocklist_file",
    "load_instances",
]
