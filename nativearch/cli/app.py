"""Main Typer application: imports and registers all CLI commands.

Entry point: ``nativearch`` (configured via pyproject.toml [project.scripts]).
"""

from __future__ import annotations

import typer

from nativearch.cli.commands import _shared
from nativearch.cli.commands.build import build_cmd
from nativearch.cli.commands.housekeeping import inspect_cmd, purge_cmd
from nativearch.cli.commands.merge import merge_cmd
from nativearch.cli.commands.platforms import platforms_cmd
from nativearch.cli.commands.run import run_cmd
from nativearch.log import configure_logging

app = typer.Typer(
    name="nativearch",
    help="Multi-architecture image builds on native runners.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def _root(
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        envvar="NATIVEARCH_LOG_LEVEL",
        help="Logging level (DEBUG, INFO, WARNING, ...).",
    ),
) -> None:
    configure_logging(log_level or _shared.load_settings().log_level)


# Register subcommands
app.command(name="platforms", help="Show the declared platform matrix.")(platforms_cmd)
app.command(name="build", help="Run one per-platform build instance.")(build_cmd)
app.command(name="merge", help="Merge digest artifacts into a manifest list.")(merge_cmd)
app.command(name="run", help="Run build fan-out and merge end to end.")(run_cmd)
app.command(name="purge", help="Delete expired digest artifacts.")(purge_cmd)
app.command(name="inspect", help="Inspect a published reference.")(inspect_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
