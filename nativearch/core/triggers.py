"""Trigger surface: path-filtered pushes and parameterless manual dispatch."""

from __future__ import annotations

import fnmatch
from collections.abc import Sequence
from enum import Enum

from pydantic import BaseModel, ConfigDict

DEFAULT_WORKFLOW = "multiarch"
DEFAULT_WATCHED_PATHS: tuple[str, ...] = (
    "Dockerfile",
    ".github/workflows/multiarch.yml",
)


class EventKind(str, Enum):
    PUSH = "push"
    WORKFLOW_DISPATCH = "workflow_dispatch"


class TriggerEvent(BaseModel):
    """An event that may start a coordination run."""

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    ref: str = "refs/heads/main"
    sha: str = ""
    changed_paths: tuple[str, ...] = ()
    workflow: str = DEFAULT_WORKFLOW

    @property
    def branch(self) -> str | None:
        if self.ref.startswith("refs/heads/"):
            return self.ref.removeprefix("refs/heads/")
        return None


class TriggerPolicy:
    """Decides whether an event starts a run."""

    def __init__(self, paths: Sequence[str] = DEFAULT_WATCHED_PATHS) -> None:
        self.paths = tuple(paths)

    def matches_path(self, path: str) -> bool:
        return any(fnmatch.fnmatchcase(path, pattern) for pattern in self.paths)

    def should_run(self, event: TriggerEvent) -> bool:
        if event.kind == EventKind.WORKFLOW_DISPATCH:
            return True
        return any(self.matches_path(p) for p in event.changed_paths)
