"""Block list fetch adapters."""

from blockcrack.adapters.fetch.mastodon import (
    DEFAULT_INSTANCES,
    DEFAULT_USER_AGENT,
    MastodonBlocklistFetcher,
    load_blocklist_file,
    normalize_instance,
    parse_blocklist,
)


__all__ = [
    "DEFAULT_INSTANCES",
    "DEFAULT_USER_AGENT",
    "MastodonBlocklistFetcher",
    "load_blocklist_file",
    "normalize_instance",
    "parse_blocklist",
]
