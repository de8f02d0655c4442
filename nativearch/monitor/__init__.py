"""Rich terminal rendering of runs and the platform matrix."""

from nativearch.monitor.renderer import RunRenderer

__all__ = ["RunRenderer"]
