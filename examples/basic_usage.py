"""Basic fetch, crack and report example.

This example shows the simplest usage pattern: fetch published block
lists, search for the domains behind their digests, and print what was
found. Progress is saved to the session file, so running it again picks
up where the last run stopped.
"""

from pathlib import Path

from blockcrack import (
    Cracker,
    JsonSessionStore,
    MastodonBlocklistFetcher,
    RichProgressReporter,
)


# Option 1: Manual wiring (full control over adapters)
# Use this when you need a custom database location or HTTP session
cracker = Cracker(
    store=JsonSessionStore(Path("./session.json")),
    fetcher=MastodonBlocklistFetcher(timeout=10.0),
)

# Option 2: Factory method (recommended for most cases)
# Auto-discovers project root, wordlists under .blockcrack/wordlists/ and
# reads BLOCKCRACK_* environment variables
# cracker = Cracker.from_directory()

# Fetch merges each list into the session; unreachable instances are
# collected in summary.failures instead of raising
summary = cracker.fetch_all(["mastodon.social", "mstdn.jp"])
print(f"Fetched {summary.total.received} entries, {summary.total.added} new")

# Crack runs until every digest is found or the candidates run out
with RichProgressReporter() as progress:
    result = cracker.crack(progress=progress)
print(f"{result.state.value}: cracked {len(result.cracked)}")

for row in cracker.report():
    print(row.status, row.domain or row.digest)
