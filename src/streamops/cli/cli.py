"""CLI application for streaming application lifecycle management."""

import typer

from streamops.cli.commands.apps import app as apps_app
from streamops.cli.common.logging import setup_logging
from streamops.core.config import Settings

app = typer.Typer(
    help="streamops - deploy, start, cancel and reconcile streaming applications",
    no_args_is_help=True,
)


@app.callback()
def _main(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Log lifecycle transitions and cluster calls"
    ),
):
    """Configure logging for the invocation."""
    setup_logging("DEBUG" if verbose else Settings.from_env().log_level)


app.add_typer(apps_app, name="apps", help="Manage streaming applications.")


if __name__ == "__main__":
    app()
