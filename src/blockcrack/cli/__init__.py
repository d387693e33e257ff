"""CLI for blockcrack."""

# Import commands to register them with the app
# These imports have side effects (registering commands with @app.command())
from blockcrack.cli.commands import show as _show_module  # noqa: F401
from blockcrack.cli.commands import status as _status_module  # noqa: F401
from blockcrack.cli.main import app, main


__all__ = ["app", "main"]
