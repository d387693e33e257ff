"""CLI commands for blockcrack."""

from __future__ import annotations

import contextlib
import logging
import signal
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING, NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler

from blockcrack.core.exceptions import BlockcrackError, ConfigurationError


if TYPE_CHECKING:
    from blockcrack import CrackSettings, Cracker
    from blockcrack.core.engine import MatchEngine


app = typer.Typer(
    name="blockcrack",
    help="Recover the domains behind the digests in Mastodon domain block lists.",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)

INSTANCES_TEMPLATE = """\
# Instances whose domain block lists 'blockcrack fetch' downloads.
# One host per line.
"""

DatabaseOption = typer.Option(
    None,
    "--database",
    "-d",
    help="Session database file (default: .blockcrack/session.json).",
)
AlgorithmOption = typer.Option(
    None,
    "--algorithm",
    "-a",
    help="Hash algorithm of the published digests (default: sha256).",
)


@app.callback()
def configure(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log debug details to stderr.",
    ),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def exit_with_error(error: BlockcrackError | OSError) -> NoReturn:
    """Print an error and its recovery hint to stderr, then exit 1."""
    typer.echo(f"Error: {error}", err=True)
    hint = getattr(error, "recovery_hint", None)
    if hint:
        typer.echo(f"Hint: {hint}", err=True)
    raise typer.Exit(1)


def build_settings(**overrides: object) -> CrackSettings:
    """Environment settings with explicitly passed options applied on top.

    Raises:
        typer.Exit: If the resulting settings are invalid.
    """
    from blockcrack import CrackSettings

    try:
        settings = CrackSettings.from_env()
        given = {k: v for k, v in overrides.items() if v is not None}
        return replace(settings, **given)  # type: ignore[arg-type]
    except ConfigurationError as e:
        exit_with_error(e)


def load_cracker(
    database: str | None = None,
    algorithm: str | None = None,
    **overrides: object,
) -> Cracker:
    """Create a Cracker for the current project.

    Raises:
        typer.Exit: If configuration is invalid.
    """
    from blockcrack import Cracker

    settings = build_settings(database=database, algorithm=algorithm, **overrides)
    try:
        return Cracker.from_directory(settings=settings)
    except BlockcrackError as e:
        exit_with_error(e)


@app.command()
def init(
    directory: str | None = typer.Argument(
        None,
        help="Directory to initialize. Defaults to current directory.",
    ),
) -> None:
    """Initialize a blockcrack project structure."""
    from blockcrack.adapters.fetch import DEFAULT_INSTANCES
    from blockcrack.config import PROJECT_DIR

    target = Path(directory) if directory else Path.cwd()
    target = target.resolve()

    wordlists_dir = target / PROJECT_DIR / "wordlists"
    if not wordlists_dir.exists():
        wordlists_dir.mkdir(parents=True)
        typer.echo(f"Created {wordlists_dir.relative_to(target)}/")

    instances = target / PROJECT_DIR / "instances.txt"
    if not instances.exists():
        instances.write_text(INSTANCES_TEMPLATE + "\n".join(DEFAULT_INSTANCES) + "\n")
        typer.echo(f"Created {instances.relative_to(target)}")


@app.command()
def fetch(
    instances: list[str] | None = typer.Argument(
        None,
        help="Instances to fetch. Defaults to .blockcrack/instances.txt.",
    ),
    database: str | None = DatabaseOption,
    algorithm: str | None = AlgorithmOption,
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each instance.",
    ),
) -> None:
    """Download block lists and merge them into the session."""
    from blockcrack import RichProgressReporter
    from blockcrack.config import find_project_root
    from blockcrack.discovery import load_instances

    cracker = load_cracker(database, algorithm, timeout=timeout)
    hosts = list(instances or load_instances(find_project_root()))
    if not hosts:
        typer.echo("No instances to fetch. Add some to .blockcrack/instances.txt.")
        raise typer.Exit(1)

    try:
        with RichProgressReporter(console=Console(stderr=True)) as progress:
            summary = cracker.fetch_all(hosts, progress=progress)
    except BlockcrackError as e:
        exit_with_error(e)

    for host, report in summary.reports.items():
        typer.echo(
            f"Loaded {report.received} blocklist items from {host} "
            f"({report.added} new, {report.published} in clear)"
        )
    for host, error in summary.failures.items():
        typer.echo(f"Error while trying to load blocklist from {host}: {error}", err=True)

    if summary.all_failed:
        raise typer.Exit(1)


@app.command(name="import")
def import_file(
    instance: str = typer.Argument(..., help="Instance the block list came from."),
    file: Path = typer.Argument(..., help="Saved domain_blocks JSON response."),
    database: str | None = DatabaseOption,
    algorithm: str | None = AlgorithmOption,
) -> None:
    """Import a block list saved from /api/v1/instance/domain_blocks."""
    from blockcrack.adapters.fetch import load_blocklist_file

    cracker = load_cracker(database, algorithm)
    try:
        entries = load_blocklist_file(file, instance)
        report = cracker.import_entries(entries)
    except BlockcrackError as e:
        exit_with_error(e)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    typer.echo(
        f"Imported {report.received} entries from {file} "
        f"({report.added} new, {report.merged} already known, "
        f"{report.malformed} malformed)"
    )


class _StopOnSigint:
    """First Ctrl-C stops the engine cleanly; a second one aborts."""

    def __init__(self, engine: MatchEngine) -> None:
        self._engine = engine
        self._previous: object = None

    def __enter__(self) -> _StopOnSigint:
        self._previous = signal.signal(signal.SIGINT, self._handle)
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        signal.signal(signal.SIGINT, self._previous)  # type: ignore[arg-type]

    def _handle(self, signum: int, frame: object) -> None:
        logger.warning("Stopping after the batches in progress (Ctrl-C again to abort)")
        self._engine.stop()
        signal.signal(signal.SIGINT, signal.default_int_handler)


@app.command()
def crack(
    database: str | None = DatabaseOption,
    algorithm: str | None = AlgorithmOption,
    workers: int | None = typer.Option(
        None,
        "--workers",
        "-w",
        help="Hashing threads (default 1).",
    ),
    batch_size: int | None = typer.Option(
        None,
        "--batch-size",
        help="Candidates per claimed batch.",
    ),
    checkpoint_every: int | None = typer.Option(
        None,
        "--checkpoint-every",
        help="Candidates between checkpoints.",
    ),
    max_wildcards: int | None = typer.Option(
        None,
        "--max-wildcards",
        help="Skip published patterns with more '*' than this.",
    ),
    suffix_limit: int | None = typer.Option(
        None,
        "--suffix-limit",
        help=(
            "Also try numbered siblings (name0.tld, name1.tld ...) below this "
            "number. A larger limit on a later run continues where the last stopped."
        ),
    ),
    no_progress: bool = typer.Option(
        False,
        "--no-progress",
        help="Do not draw progress bars.",
    ),
) -> None:
    """Search for the domains behind outstanding digests."""
    from blockcrack import NullProgressReporter, RichProgressReporter

    cracker = load_cracker(
        database,
        algorithm,
        workers=workers,
        batch_size=batch_size,
        checkpoint_every=checkpoint_every,
        max_wildcards=max_wildcards,
    )
    try:
        session = cracker.load_session()
        typer.echo(
            f"Found {session.outstanding_count}/{len(session.targets)} "
            "entries with no fully known domain"
        )
        display = (
            contextlib.nullcontext(NullProgressReporter())
            if no_progress
            else RichProgressReporter(console=Console(stderr=True))
        )
        with display as progress:
            engine = cracker.prepare_crack(progress, suffix_limit=suffix_limit)
            with _StopOnSigint(engine):
                result = engine.run()
    except (BlockcrackError, OSError) as e:
        exit_with_error(e)

    for cracked in result.cracked:
        typer.echo(f"> Found: {cracked.domain} ({cracked.provenance})")
    typer.echo(
        f"{result.state.value}: tried {result.tried} candidates in "
        f"{result.elapsed:.1f}s, cracked {len(result.cracked)}, "
        f"{result.outstanding} outstanding"
    )


def main() -> None:
    """Entry point for the CLI."""
    app()
