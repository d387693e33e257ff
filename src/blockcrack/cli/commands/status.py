"""Status command for CLI."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table
from rich.text import Text

from blockcrack.cli.main import (
    AlgorithmOption,
    DatabaseOption,
    app,
    exit_with_error,
    load_cracker,
)
from blockcrack.core.exceptions import BlockcrackError


@app.command()
def status(
    database: str | None = DatabaseOption,
    algorithm: str | None = AlgorithmOption,
) -> None:
    """Show entries, cracked and outstanding counts per instance."""
    cracker = load_cracker(database, algorithm)
    try:
        summaries = cracker.summaries()
        session = cracker.load_session()
    except BlockcrackError as e:
        exit_with_error(e)

    if not summaries:
        typer.echo("No entries found. Run 'blockcrack fetch' to get started.")
        return

    # Build Rich table
    table = Table(title=f"{session.algorithm} digests")
    table.add_column("Instance")
    table.add_column("Entries", justify="right")
    table.add_column("Cracked", justify="right", style="green")
    table.add_column("Outstanding", justify="right")

    for summary in summaries:
        outstanding = Text(
            str(summary.outstanding), style="red" if summary.outstanding else ""
        )
        table.add_row(
            summary.instance, str(summary.entries), str(summary.cracked), outstanding
        )

    table.add_section()
    table.add_row(
        "all instances",
        str(len(session.targets)),
        str(len(session.cracked)),
        Text(str(session.outstanding_count)),
    )

    console = Console(force_terminal=True)
    console.print(table)
