"""CLI commands for transitcache.

Provides command-line interface using Typer:
- transitcache inspect: List durable cache entries and their age
- transitcache clear: Remove one entry or the whole cache namespace

Usage:
    transitcache --help
    transitcache inspect --backend local --path ~/.cache/transitcache
    transitcache clear --key live_buses
"""

import typer

from transitcache.cli.clear_cmd import app as clear_app
from transitcache.cli.inspect_cmd import app as inspect_app
from transitcache.config import settings
from transitcache.observability.logging import configure_logging

# Main CLI application
app = typer.Typer(
    name="transitcache",
    help="transitcache: inspect and maintain the transit data cache",
    no_args_is_help=True,
)

app.add_typer(inspect_app, name="inspect")
app.add_typer(clear_app, name="clear")


@app.callback()
def callback() -> None:
    """transitcache: inspect and maintain the transit data cache."""
    configure_logging(json_format=settings.log_json, level=settings.log_level)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
