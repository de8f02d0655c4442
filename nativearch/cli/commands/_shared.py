"""Helpers shared by the CLI commands."""

from __future__ import annotations

import typer
from rich.console import Console

from nativearch.config import Settings
from nativearch.core.orchestrator import Orchestrator

console = Console()

RUN_ID_ENVVARS = ["NATIVEARCH_RUN_ID", "GITHUB_RUN_ID"]


def load_settings() -> Settings:
    return Settings()


def build_orchestrator(settings: Settings) -> Orchestrator:
    """Create the orchestrator the commands run against."""
    return Orchestrator(settings)


def orchestrator_or_exit() -> Orchestrator:
    settings = load_settings()
    try:
        return build_orchestrator(settings)
    except ValueError as exc:
        console.print(f"[bold red]Configuration error:[/bold red] {exc}")
        raise typer.Exit(code=1)
