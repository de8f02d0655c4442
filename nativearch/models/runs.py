"""Per-run result models: build instances, merge, and the run report."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from nativearch.models.artifacts import BuildDigest
from nativearch.models.manifest import ManifestReference
from nativearch.models.results import StepOutcome, StepResult
from nativearch.models.stages import StageTransition


class RunState(str, Enum):
    """Terminal state of a whole coordination run."""

    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


class ConcurrencyKey(BaseModel):
    """At most one run may be in flight per (workflow, ref)."""

    model_config = ConfigDict(frozen=True)

    workflow: str
    ref: str

    def __str__(self) -> str:
        return f"{self.workflow}-{self.ref}"


class BuildInstanceResult(BaseModel):
    """Result of one stage-1 instance (one platform)."""

    model_config = ConfigDict(frozen=True)

    platform: str
    host_class: str = ""
    label: str = ""
    outcome: StepOutcome
    digest: BuildDigest | None = None
    artifact_name: str | None = None
    steps: list[StepResult] = []
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == StepOutcome.SUCCESS


class MergeResult(BaseModel):
    """Result of the stage-2 manifest merge."""

    model_config = ConfigDict(frozen=True)

    outcome: StepOutcome
    reference: ManifestReference | None = None
    steps: list[StepResult] = []
    annotated: bool = False
    error: str | None = None

    def step(self, name: str) -> StepResult | None:
        for s in self.steps:
            if s.name == name:
                return s
        return None


class RunEvent(BaseModel):
    """One entry of the in-memory run event log."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    transition: StageTransition
    timestamp_utc: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    details: dict[str, Any] = {}


def new_run_id() -> str:
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"na-{ts}-{uuid.uuid4().hex[:6]}"


class RunReport(BaseModel):
    """Everything one coordination run produced."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    key: ConcurrencyKey
    state: RunState
    builds: dict[str, BuildInstanceResult] = {}
    merge: MergeResult | None = None
    events: list[RunEvent] = []
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    reason: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.state == RunState.SUCCESS
