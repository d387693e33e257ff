"""Domain exceptions for blockcrack.

All library errors inherit from BlockcrackError, allowing users to catch
any library exception with a single except clause. Each exception provides
a recovery_hint property with guidance on resolving the error.

Per-candidate and per-entry errors (InvalidCandidate, MalformedDigest) are
absorbed by the code that raises them and never abort a search or an import.
"""

from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from pathlib import Path


class BlockcrackError(Exception):
    """Base class for all blockcrack exceptions.

    Catch this to handle any error from the library.
    """

    @property
    def recovery_hint(self) -> str | None:
        """Optional guidance on how to resolve this error."""
        return None


class InvalidCandidate(BlockcrackError):  # noqa: N818
    """Raised when a candidate string is not a valid domain name.

    Attributes:
        candidate: The rejected candidate text.
        reason: Short description of the failed rule.
    """

    def __init__(self, candidate: str, reason: str) -> None:
        self.candidate = candidate
        self.reason = reason
        super().__init__(f"Invalid candidate {candidate!r}: {reason}")


class MalformedDigest(BlockcrackError):  # noqa: N818
    """Raised when published digest text cannot be decoded.

    Attributes:
        text: The digest text as received.
        algorithm: The algorithm the digest was expected to use.
        reason: Short description of the problem.
    """

    def __init__(self, text: str, algorithm: str, reason: str) -> None:
        self.text = text
        self.algorithm = algorithm
        self.reason = reason
        super().__init__(f"Malformed {algorithm} digest {text!r}: {reason}")


class CorruptDatabase(BlockcrackError):  # noqa: N818
    """Raised when the persisted session cannot be parsed.

    Attributes:
        path: The database file that failed to load.
        cause: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        path: Path,
        cause: Exception | None = None,
    ) -> None:
        self.path = path
        self.cause = cause
        super().__init__(message)

    @property
    def recovery_hint(self) -> str:
        """Suggest re-fetching into a fresh database."""
        return f"Move {self.path.name} aside and run 'blockcrack fetch' again"


class ConfigurationError(BlockcrackError):
    """Raised for configuration problems (bad settings, missing files)."""

    pass


class UnsupportedAlgorithmError(ConfigurationError):
    """Raised when a hash algorithm is not supported.

    Attributes:
        algorithm: The requested algorithm name.
        supported: Names of the supported algorithms.
    """

    def __init__(self, algorithm: str, supported: list[str] | None = None) -> None:
        self.algorithm = algorithm
        self.supported = supported if supported is not None else []
        super().__init__(f"Unsupported hash algorithm '{algorithm}'")

    @property
    def recovery_hint(self) -> str:
        """List the algorithms that can be used instead."""
        if self.supported:
            return f"Supported algorithms: {', '.join(self.supported)}"
        return "Use sha256, the algorithm Mastodon publishes"


class AlgorithmMismatchError(ConfigurationError):
    """Raised when the requested algorithm differs from the session's.

    Attributes:
        requested: Algorithm asked for on this invocation.
        recorded: Algorithm recorded in the existing session.
    """

    def __init__(self, requested: str, recorded: str) -> None:
        self.requested = requested
        self.recorded = recorded
        super().__init__(
            f"Session uses '{recorded}' but '{requested}' was requested"
        )

    @property
    def recovery_hint(self) -> str:
        """Suggest dropping the option or starting a new database."""
        return f"Omit --algorithm or use a separate --database for {self.requested}"


class FetchError(BlockcrackError):
    """Raised when a block list cannot be retrieved from an instance.

    Attributes:
        instance: The instance host that failed.
        cause: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        instance: str,
        cause: Exception | None = None,
    ) -> None:
        self.instance = instance
        self.cause = cause
        super().__init__(message)

    @property
    def recovery_hint(self) -> str:
        """Suggest checking that the instance exposes its block list."""
        return (
            f"Check that https://{self.instance}/api/v1/instance/domain_blocks "
            "is public"
        )
