"""Rich terminal renderer for run reports and the platform matrix.

Color scheme
------------
- green     : success / passed
- red       : failure / failed
- yellow    : cancelled
- dim       : skipped
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from nativearch.models.artifacts import artifact_name_for
from nativearch.models.platforms import PlatformMatrix
from nativearch.models.results import StepOutcome, StepResult
from nativearch.models.runs import BuildInstanceResult, MergeResult, RunReport, RunState

_OUTCOME_MARKUP: dict[StepOutcome, str] = {
    StepOutcome.SUCCESS: "[green]success[/green]",
    StepOutcome.FAILURE: "[bold red]failure[/bold red]",
    StepOutcome.CANCELLED: "[yellow]cancelled[/yellow]",
    StepOutcome.SKIPPED: "[dim]skipped[/dim]",
}

_RUN_BORDER: dict[RunState, str] = {
    RunState.SUCCESS: "green",
    RunState.FAILURE: "red",
    RunState.CANCELLED: "yellow",
    RunState.SKIPPED: "dim",
}


def _short(digest: str | None) -> str:
    if not digest:
        return "[dim]-[/dim]"
    return digest[:19] + "…"


class RunRenderer:
    """Renders run reports as Rich terminal output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def render_matrix(self, matrix: PlatformMatrix) -> Table:
        table = Table(title="Platform Matrix", title_style="bold cyan")
        table.add_column("Platform", style="cyan")
        table.add_column("Label")
        table.add_column("Host class", style="magenta")
        table.add_column("Artifact")
        for p in matrix.platforms:
            table.add_row(p.identifier, p.label, p.host_class, artifact_name_for(p.identifier))
        table.caption = f"fail-fast: {'on' if matrix.fail_fast else 'off'}"
        return table

    def render_builds(self, builds: dict[str, BuildInstanceResult]) -> Table:
        table = Table(show_header=True, header_style="bold")
        table.add_column("Platform", style="cyan")
        table.add_column("Host class")
        table.add_column("State", justify="center")
        table.add_column("Digest")
        table.add_column("Error", overflow="fold")
        for pid, result in builds.items():
            table.add_row(
                pid,
                result.host_class,
                _OUTCOME_MARKUP[result.outcome],
                _short(result.digest.value if result.digest else None),
                result.error or "",
            )
        return table

    def render_steps(self, steps: list[StepResult]) -> Table:
        table = Table(show_header=True, header_style="bold")
        table.add_column("Step")
        table.add_column("Outcome", justify="center")
        table.add_column("Conclusion", justify="center")
        for step in steps:
            table.add_row(
                step.name, _OUTCOME_MARKUP[step.outcome], _OUTCOME_MARKUP[step.conclusion]
            )
        return table

    def render_merge(self, merge: MergeResult) -> Group:
        parts: list = [self.render_steps(merge.steps)]
        if merge.reference is not None:
            ref = merge.reference
            lines = [
                f"[bold]Image:[/bold] {ref.image}",
                f"[bold]Tags:[/bold] {', '.join(ref.tags)}",
                f"[bold]Platforms:[/bold] {', '.join(ref.platforms)}",
                f"[bold]Annotated:[/bold] {'yes' if merge.annotated else 'no'}",
            ]
            parts.append(Text.from_markup("\n".join(lines)))
        if merge.error:
            parts.append(Text.from_markup(f"[bold red]Error:[/bold red] {merge.error}"))
        return Group(*parts)

    # ------------------------------------------------------------------
    # Report
    # ------------------------------------------------------------------

    def render_report(self, report: RunReport) -> Panel:
        duration = (report.finished_at - report.started_at).total_seconds()
        summary = "  |  ".join([
            f"[bold]Run:[/bold] {report.run_id}",
            f"[bold]Key:[/bold] {report.key}",
            f"[bold]State:[/bold] {report.state.value}",
            f"[bold]Duration:[/bold] {duration:.1f}s",
        ])
        parts: list = [Text.from_markup(summary)]
        if report.reason:
            parts.append(Text.from_markup(f"[dim]{report.reason}[/dim]"))
        if report.builds:
            parts += [Text(""), Text.from_markup("[bold]Build stage[/bold]"), self.render_builds(report.builds)]
        if report.merge is not None:
            parts += [Text(""), Text.from_markup("[bold]Merge stage[/bold]"), self.render_merge(report.merge)]

        return Panel(
            Group(*parts),
            title="[bold]Native Multi-Arch Run[/bold]",
            border_style=_RUN_BORDER[report.state],
            padding=(1, 2),
        )

    def print_report(self, report: RunReport) -> None:
        self.console.print(self.render_report(report))
