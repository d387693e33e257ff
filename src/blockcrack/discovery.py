"""Project file discovery.

Finds wordlists under .blockcrack/wordlists/ and the seed instance list in
.blockcrack/instances.txt.
"""

from __future__ import annotations

from pathlib import Path

from blockcrack.adapters.fetch import DEFAULT_INSTANCES, normalize_instance
from blockcrack.config import PROJECT_DIR


def discover_wordlists(root: Path) -> dict[str, Path]:
    """Find all wordlist files under .blockcrack/wordlists/.

    Args:
        root: Project root directory to search from.

    Returns:
        Dict mapping wordlist names to their file paths, sorted by name.
        Names are derived from filenames (e.g., 'top-sites.txt' -> 'top-sites').
    """
    wordlist_dir = root / PROJECT_DIR / "wordlists"
    if not wordlist_dir.exists():
        return {}

    return {
        p.stem: p
        for p in sorted(wordlist_dir.glob("*.txt"))
        if not p.name.startswith("_")
    }


def load_instances(root: Path) -> list[str]:
    """Read seed instances from .blockcrack/instances.txt.

    One host per line; blank lines and ``#`` comments are ignored. Falls back
    to the built-in seed list when the file is absent.
    """
    path = root / PROJECT_DIR / "instances.txt"
    if not path.exists():
        return list(DEFAULT_INSTANCES)

    instances: list[str] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        text = line.split("#", 1)[0].strip()
        if text:
            host = normalize_instance(text)
            if host not in instances:
                instances.append(host)
    return instances
