"""``nativearch build PLATFORM``: run one stage-1 instance.

This is what a single matrix job executes on its native runner: log in,
build and push by digest, and upload the digest artifact for the merge job.
"""

from __future__ import annotations

import typer

from nativearch.cli.commands import _shared
from nativearch.cli.commands._shared import RUN_ID_ENVVARS, console
from nativearch.models.platforms import UnknownPlatformError
from nativearch.models.results import StepOutcome
from nativearch.models.runs import new_run_id
from nativearch.monitor.renderer import RunRenderer


def build_cmd(
    platform: str = typer.Argument(..., help="Platform identifier, e.g. linux/arm64."),
    run_id: str | None = typer.Option(
        None,
        "--run-id",
        envvar=RUN_ID_ENVVARS,
        help="Run the artifact belongs to; shared with the merge job. Generated when omitted.",
    ),
    revision: str = typer.Option(
        "",
        "--revision",
        envvar="GITHUB_SHA",
        help="Source revision recorded as an image label.",
    ),
) -> None:
    """Build and push one platform image by digest and export its digest."""
    orchestrator = _shared.orchestrator_or_exit()
    if not run_id:
        run_id = new_run_id()
        console.print(f"Run id: [bold]{run_id}[/bold] (pass it to merge with --run-id)")
    try:
        result = orchestrator.run_build_instance(platform, run_id, revision=revision)
    except UnknownPlatformError as exc:
        console.print(f"[bold red]{exc}[/bold red]")
        raise typer.Exit(code=1)

    renderer = RunRenderer(console=console)
    console.print(renderer.render_builds({platform: result}))
    if result.outcome != StepOutcome.SUCCESS:
        console.print(renderer.render_steps(result.steps))
        raise typer.Exit(code=1)
    console.print(
        f"[bold green]Exported[/bold green] {result.artifact_name} -> {result.digest}"
    )
