"""``nativearch purge`` and ``nativearch inspect``."""

from __future__ import annotations

import typer

from nativearch.cli.commands import _shared
from nativearch.cli.commands._shared import console
from nativearch.core.artifact_store import purge_workspace
from nativearch.core.buildx import ImagetoolsClient


def purge_cmd() -> None:
    """Delete digest artifacts past their retention window."""
    settings = _shared.load_settings()
    purged = purge_workspace(settings.artifact_path)
    if not purged:
        console.print("[dim]No expired artifacts.[/dim]")
        return
    for name in purged:
        console.print(f"  [red]purged[/red] {name}")


def inspect_cmd(
    reference: str = typer.Argument(..., help="Image reference to inspect."),
) -> None:
    """Show the manifest behind a registry reference."""
    step = ImagetoolsClient().inspect(reference)
    if not step.succeeded:
        console.print(f"[bold red]Inspection failed:[/bold red] {step.stderr.strip()}")
        raise typer.Exit(code=1)
    console.print(step.stdout.rstrip())
