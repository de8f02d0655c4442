"""``nativearch merge``: run stage 2 over every digest artifact of a run."""

from __future__ import annotations

import typer

from nativearch.cli.commands import _shared
from nativearch.cli.commands._shared import RUN_ID_ENVVARS, console
from nativearch.core.triggers import EventKind, TriggerEvent
from nativearch.models.results import StepOutcome
from nativearch.monitor.renderer import RunRenderer


def merge_cmd(
    run_id: str | None = typer.Option(
        None,
        "--run-id",
        envvar=RUN_ID_ENVVARS,
        help="Run whose digest artifacts are merged. Required.",
    ),
    ref: str = typer.Option(
        "refs/heads/main",
        "--ref",
        envvar="GITHUB_REF",
        help="Git ref the tags are derived from.",
    ),
) -> None:
    """Create the multi-platform manifest list and inspect it."""
    if not run_id:
        console.print(
            "[bold red]A run id is required:[/bold red] pass --run-id or set NATIVEARCH_RUN_ID"
        )
        raise typer.Exit(code=1)
    orchestrator = _shared.orchestrator_or_exit()
    event = TriggerEvent(kind=EventKind.WORKFLOW_DISPATCH, ref=ref)
    result = orchestrator.run_merge(run_id, event)

    console.print(RunRenderer(console=console).render_merge(result))
    if result.outcome != StepOutcome.SUCCESS:
        raise typer.Exit(code=1)
