"""Mastodon block list fetcher implementing BlocklistFetcherPort.

Mastodon instances that publish their moderation decisions expose them at
``GET /api/v1/instance/domain_blocks`` as a JSON list of objects::

    {"domain": "ev*l.example", "digest": "<sha256 hex>",
     "severity": "suspend", "comment": "spam"}

``domain`` may have characters replaced by ``*``; ``digest`` is always the
SHA-256 of the real domain.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import requests

from blockcrack.core.codec import DEFAULT_ALGORITHM
from blockcrack.core.exceptions import FetchError
from blockcrack.core.models import BlockEntry


logger = logging.getLogger(__name__)

DOMAIN_BLOCKS_PATH = "/api/v1/instance/domain_blocks"

# Some instances (mstdn.jp) answer 404 to clients without a browser agent
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

DEFAULT_INSTANCES = (
    "mastodon.social",
    "mstdn.jp",
    "mastodon.cloud",
    "mastodon.online",
    "mstdn.social",
    "mas.to",
    "home.social",
)


def normalize_instance(instance: str) -> str:
    """Reduce an instance URL or host to its lowercase host name.

    Example:
        >>> normalize_instance("https://Mastodon.Social/")
        'mastodon.social'
    """
    host = instance.strip()
    if "://" in host:
        host = host.split("://", 1)[1]
    host = host.split("/", 1)[0].strip().lower()
    if not host:
        raise ValueError(f"Not an instance host: {instance!r}")
    return host


def parse_blocklist(
    data: Any, instance: str, algorithm: str = DEFAULT_ALGORITHM
) -> list[BlockEntry]:
    """Turn a decoded domain_blocks response into BlockEntry records.

    Records without a digest are skipped with a warning. Digest text is kept
    as published; decoding it is the import's job.

    Raises:
        FetchError: If the payload is not a list.
    """
    if not isinstance(data, list):
        raise FetchError(
            f"Unexpected domain_blocks payload from {instance}: "
            f"expected a list, got {type(data).__name__}",
            instance=instance,
        )

    entries = []
    for item in data:
        if not isinstance(item, dict) or not item.get("digest"):
            logger.warning("Skipping block record without digest from %s", instance)
            continue
        entries.append(
            BlockEntry(
                source=instance,
                digest=str(item["digest"]),
                algorithm=algorithm,
                domain=str(item.get("domain") or ""),
                severity=str(item.get("severity") or ""),
                comment=item.get("comment") or None,
            )
        )
    return entries


def load_blocklist_file(path: Path, instance: str) -> list[BlockEntry]:
    """Read a saved domain_blocks response for offline import.

    Raises:
        FetchError: If the file cannot be read or is not a JSON list.
    """
    host = normalize_instance(instance)
    try:
        with path.open(encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise FetchError(
            f"Cannot read block list file {path}: {e}", instance=host, cause=e
        ) from e
    return parse_blocklist(data, host)


class MastodonBlocklistFetcher:
    """Fetches block lists over HTTPS with ``requests``.

    Args:
        session: HTTP session to reuse. A new one is created when omitted.
        timeout: Seconds to wait for each response.
        user_agent: User-Agent header sent with each request.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self._session = session or requests.Session()
        self.timeout = timeout
        self.user_agent = user_agent

    def url_for(self, instance: str) -> str:
        """Return the domain_blocks endpoint of an instance."""
        return f"https://{normalize_instance(instance)}{DOMAIN_BLOCKS_PATH}"

    def fetch(self, instance: str) -> list[BlockEntry]:
        """Fetch and parse one instance's published block list.

        Raises:
            FetchError: On network errors, non-2xx responses or bad JSON.
        """
        host = normalize_instance(instance)
        url = self.url_for(host)
        logger.debug("GET %s", url)
        try:
            response = self._session.get(
                url,
                headers={"User-Agent": self.user_agent, "Accept": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.HTTPError as e:
            raise FetchError(
                f"{host} refused the block list request: {e}", instance=host, cause=e
            ) from e
        except requests.JSONDecodeError as e:
            raise FetchError(
                f"{host} returned invalid JSON: {e}", instance=host, cause=e
            ) from e
        except requests.RequestException as e:
            raise FetchError(
                f"Cannot reach {host}: {e}", instance=host, cause=e
            ) from e

        entries = parse_blocklist(data, host)
        logger.info("Fetched %d block entries from %s", len(entries), host)
        return entries
