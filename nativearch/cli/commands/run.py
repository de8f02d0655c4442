"""``nativearch run``: the full two-stage run on this machine.

Fans out one build per declared platform (each routed to the buildx
builder configured for its host class), joins, then merges.
"""

from __future__ import annotations

import typer

from nativearch.cli.commands import _shared
from nativearch.cli.commands._shared import console
from nativearch.core.triggers import EventKind, TriggerEvent
from nativearch.models.runs import RunState
from nativearch.monitor.renderer import RunRenderer


def run_cmd(
    event: EventKind = typer.Option(
        EventKind.WORKFLOW_DISPATCH,
        "--event",
        "-e",
        help="Triggering event kind.",
    ),
    ref: str = typer.Option("refs/heads/main", "--ref", envvar="GITHUB_REF"),
    sha: str = typer.Option("", "--sha", envvar="GITHUB_SHA"),
    paths: list[str] = typer.Option(
        [],
        "--path",
        "-p",
        help="Changed path (repeatable); only consulted for push events.",
    ),
) -> None:
    """Run build fan-out and merge end to end."""
    orchestrator = _shared.orchestrator_or_exit()
    trigger = TriggerEvent(kind=event, ref=ref, sha=sha, changed_paths=tuple(paths))
    report = orchestrator.run(trigger)

    RunRenderer(console=console).print_report(report)
    if report.state not in (RunState.SUCCESS, RunState.SKIPPED):
        raise typer.Exit(code=1)
