"""Configuration utilities for blockcrack.

This module provides project root discovery and the tunable settings of a
crack run, with defaults overridable through ``BLOCKCRACK_*`` variables.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from blockcrack.core.exceptions import ConfigurationError


PROJECT_DIR = ".blockcrack"
DEFAULT_DATABASE = f"{PROJECT_DIR}/session.json"
ENV_PREFIX = "BLOCKCRACK_"

_ENV_TYPES: dict[str, type] = {
    "database": str,
    "algorithm": str,
    "workers": int,
    "batch_size": int,
    "checkpoint_every": int,
    "checkpoint_interval": float,
    "max_wildcards": int,
    "dedup_limit": int,
    "timeout": float,
}


def find_project_root(start: Path | None = None) -> Path:
    """Find the project root directory by walking up from start directory.

    Searches for marker files in the following priority order:
    1. .blockcrack - Explicit project marker
    2. pyproject.toml - Python project root
    3. .git - Version control root

    Args:
        start: Directory to start searching from. If None, uses current directory.

    Returns:
        Path to project root directory. Returns start directory if no markers found.

    Example:
        >>> from blockcrack.config import find_project_root
        >>> root = find_project_root()
        >>> database = root / ".blockcrack" / "session.json"
    """
    if start is None:
        start = Path.cwd()

    markers = [PROJECT_DIR, "pyproject.toml", ".git"]
    current = start.resolve()

    for parent in [current, *current.parents]:
        for marker in markers:
            if (parent / marker).exists():
                return parent

    return start.resolve()


@dataclass(frozen=True, slots=True)
class CrackSettings:
    """Tunables for fetching and cracking.

    Attributes:
        database: Session file, relative to the project root unless absolute.
        algorithm: Hash algorithm requested for the session. None uses the
            one the session recorded, or sha256 for a new session.
        workers: Hashing threads; 1 hashes in the calling thread.
        batch_size: Raw candidates per claimed batch.
        checkpoint_every: Candidates between checkpoints.
        checkpoint_interval: Seconds between checkpoints.
        max_wildcards: Patterns with more ``*`` than this are skipped.
        dedup_limit: Capacity of the per-run duplicate filter.
        timeout: HTTP timeout in seconds for fetching block lists.
    """

    database: str = DEFAULT_DATABASE
    algorithm: str | None = None
    workers: int = 1
    batch_size: int = 1000
    checkpoint_every: int = 100_000
    checkpoint_interval: float = 30.0
    max_wildcards: int = 5
    dedup_limit: int = 1_000_000
    timeout: float = 30.0

    def __post_init__(self) -> None:
        """Reject values the engine cannot run with."""
        for name in ("workers", "batch_size", "checkpoint_every"):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be at least 1")
        if self.max_wildcards < 0 or self.dedup_limit < 0:
            raise ConfigurationError("max_wildcards and dedup_limit cannot be negative")
        if self.checkpoint_interval <= 0 or self.timeout <= 0:
            raise ConfigurationError("checkpoint_interval and timeout must be positive")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> CrackSettings:
        """Build settings from ``BLOCKCRACK_<FIELD>`` environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ``.

        Raises:
            ConfigurationError: If a variable does not parse as its field type.
        """
        environ = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for name, kind in _ENV_TYPES.items():
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None:
                continue
            try:
                values[name] = kind(raw)
            except ValueError:
                raise ConfigurationError(
                    f"{ENV_PREFIX}{name.upper()}={raw!r} is not a valid {kind.__name__}"
                ) from None
        return cls(**values)  # type: ignore[arg-type]

    def database_path(self, root: Path) -> Path:
        """Resolve ``database`` against a project root."""
        path = Path(self.database)
        return path if path.is_absolute() else root / path
