"""The two coordination stages: per-platform build and manifest merge."""

from nativearch.stages.build import BuildStage
from nativearch.stages.merge import MergeStage

__all__ = ["BuildStage", "MergeStage"]
