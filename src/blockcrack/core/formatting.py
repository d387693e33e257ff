"""Formatting utilities for domain logic."""


def status_to_color(status: str) -> str:
    """Map a report status to a color name.

    Args:
        status: Status string ("cracked", "partial", or "unknown")

    Returns:
        Color name string:
        - "cracked" -> "green"
        - "partial" -> "yellow"
        - "unknown" -> "red"
        - invalid -> empty string
    """
    color_map = {
        "cracked": "green",
        "partial": "yellow",
        "unknown": "red",
    }
    return color_map.get(status, "")


def severity_to_color(severity: str) -> str:
    """Map a Mastodon block severity to a color name ("" when unknown)."""
    color_map = {
        "suspend": "red",
        "silence": "yellow",
        "noop": "dim",
    }
    return color_map.get(severity, "")


def format_blocked_by(instance: str, comment: str | None) -> str:
    """One ``- Blocked by`` line as printed by ``blockcrack show``.

    Example:
        >>> format_blocked_by("mastodon.social", "spam")
        '- Blocked by mastodon.social for reason: spam'
    """
    if comment:
        return f"- Blocked by {instance} for reason: {comment}"
    return f"- Blocked by {instance}"
