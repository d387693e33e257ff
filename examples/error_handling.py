"""Error handling patterns with recovery hints.

This example demonstrates how to handle common errors and use
the recovery_hint property to provide actionable guidance.
"""

from pathlib import Path

from blockcrack import (
    AlgorithmMismatchError,
    BlockcrackError,
    CorruptDatabase,
    CrackResult,
    CrackSettings,
    Cracker,
    FetchError,
    ImportReport,
    JsonSessionStore,
    MastodonBlocklistFetcher,
)


cracker = Cracker(
    store=JsonSessionStore(Path("./session.json")),
    fetcher=MastodonBlocklistFetcher(),
)


# Pattern 1: Handle unreachable instances
def fetch_or_skip(cracker: Cracker, instance: str) -> ImportReport | None:
    """Fetch one instance, returning None if it does not publish its list."""
    try:
        return cracker.fetch(instance)
    except FetchError as e:
        print(f"Could not fetch {e.instance}: {e}")
        print(f"Hint: {e.recovery_hint}")
        return None


# Pattern 2: Handle a damaged session file
def crack_or_report_corruption(cracker: Cracker) -> CrackResult | None:
    """Crack, explaining how to recover from an unreadable database."""
    try:
        return cracker.crack()
    except CorruptDatabase as e:
        print(f"Session file is damaged: {e.path}")
        print(f"Hint: {e.recovery_hint}")
        return None


# Pattern 3: Catch-all for any library error
def crack_safe(database: Path, algorithm: str) -> CrackResult | None:
    """Crack with comprehensive error handling."""
    try:
        safe = Cracker(
            store=JsonSessionStore(database, algorithm),
            settings=CrackSettings(algorithm=algorithm),
        )
        return safe.crack()
    except AlgorithmMismatchError as e:
        print(f"Session was created for {e.recorded}, not {e.requested}")
        return None
    except BlockcrackError as e:
        # Catch any other library errors
        print(f"Unexpected error: {e}")
        print(f"Hint: {e.recovery_hint}")
        return None


# Example usage
if __name__ == "__main__":
    fetch_or_skip(cracker, "no-such-instance.invalid")
