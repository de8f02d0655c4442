"""``nativearch platforms``: show the declared platform matrix."""

from __future__ import annotations

from nativearch.cli.commands._shared import console
from nativearch.models.platforms import DEFAULT_MATRIX
from nativearch.monitor.renderer import RunRenderer


def platforms_cmd() -> None:
    """List declared platforms with their labels and host classes."""
    renderer = RunRenderer(console=console)
    console.print(renderer.render_matrix(DEFAULT_MATRIX))
