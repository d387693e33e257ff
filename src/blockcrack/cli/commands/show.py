"""Show command for CLI."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from blockcrack.cli.formatting import (
    _display_domain,
    _format_blocked_by_cell,
    _format_status_with_color,
    _plain_report_lines,
)
from blockcrack.cli.main import (
    AlgorithmOption,
    DatabaseOption,
    app,
    exit_with_error,
    load_cracker,
)
from blockcrack.core.exceptions import BlockcrackError


STATUSES = ("cracked", "partial", "unknown")


@app.command()
def show(
    instance: str | None = typer.Option(
        None,
        "--instance",
        "-i",
        help="Only digests blocked by this instance.",
    ),
    status: str | None = typer.Option(
        None,
        "--status",
        "-s",
        help="Only rows with this status (cracked, partial, unknown).",
    ),
    table: bool = typer.Option(
        False,
        "--table",
        "-t",
        help="Render as a table instead of plain text.",
    ),
    database: str | None = DatabaseOption,
    algorithm: str | None = AlgorithmOption,
) -> None:
    """Show every blocked domain and the instances blocking it."""
    if status is not None and status not in STATUSES:
        typer.echo(f"Error: unknown status '{status}' (use {', '.join(STATUSES)})")
        raise typer.Exit(1)

    cracker = load_cracker(database, algorithm)
    try:
        rows = cracker.report(instance)
    except BlockcrackError as e:
        exit_with_error(e)

    if status is not None:
        rows = [r for r in rows if r.status == status]

    if not rows:
        typer.echo("No entries found. Run 'blockcrack fetch' to get started.")
        return

    if not table:
        for line in _plain_report_lines(rows):
            typer.echo(line)
        return

    # Build Rich table
    output = Table()
    output.add_column("Domain")
    output.add_column("Status")
    output.add_column("Blocked by")
    output.add_column("Digest")

    for row in rows:
        output.add_row(
            _display_domain(row),
            _format_status_with_color(row.status),
            _format_blocked_by_cell(row.blocked_by),
            row.digest[:16],
        )

    console = Console(force_terminal=True)
    console.print(output)
