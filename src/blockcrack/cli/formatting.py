"""Shared formatting helpers for CLI commands."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.text import Text

from blockcrack.core.formatting import (
    format_blocked_by,
    severity_to_color,
    status_to_color,
)


if TYPE_CHECKING:
    from blockcrack.core.models import BlockedBy, ReportRow


def _format_status_with_color(status: str) -> Text:
    """Format status string with color coding.

    Args:
        status: Status string ("cracked", "partial", or "unknown")

    Returns:
        Rich Text object with appropriate color:
        - "cracked" -> green
        - "partial" -> yellow
        - "unknown" -> red
    """
    color = status_to_color(status)
    return Text(status, style=color) if color else Text(status)


def _format_blocked_by_cell(blocked_by: tuple[BlockedBy, ...]) -> Text:
    """One line per blocking instance, colored by severity."""
    cell = Text()
    for i, block in enumerate(blocked_by):
        if i:
            cell.append("\n")
        cell.append(block.instance)
        if block.severity:
            cell.append(f" ({block.severity})", style=severity_to_color(block.severity))
    return cell


def _display_domain(row: ReportRow) -> str:
    """Cracked domain, else published pattern, else the digest itself."""
    return row.domain or row.digest


def _plain_report_lines(rows: list[ReportRow]) -> list[str]:
    """Render rows as ``show`` prints them without --table."""
    lines: list[str] = []
    for row in rows:
        lines.append(_display_domain(row))
        lines.extend(format_blocked_by(b.instance, b.comment) for b in row.blocked_by)
        lines.append("")
    return lines
