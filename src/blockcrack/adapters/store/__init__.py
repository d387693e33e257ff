"""Session store adapters."""

from blockcrack.adapters.store.json_store import JsonSessionStore


__all__ = ["JsonSessionStore"]
