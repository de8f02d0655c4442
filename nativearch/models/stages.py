"""Stage state model with deterministic transitions."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class StageState(str, Enum):
    """State of one build instance or of the merge stage."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


TERMINAL_STATES: frozenset[StageState] = frozenset(
    {StageState.PASSED, StageState.FAILED, StageState.CANCELLED, StageState.SKIPPED}
)

# Terminal states have no outgoing transitions; a run is never retried
# in place, a human re-triggers a new one.
VALID_TRANSITIONS: dict[StageState, set[StageState]] = {
    StageState.NOT_STARTED: {StageState.RUNNING, StageState.SKIPPED, StageState.CANCELLED},
    StageState.RUNNING: {StageState.PASSED, StageState.FAILED, StageState.CANCELLED},
    StageState.PASSED: set(),
    StageState.FAILED: set(),
    StageState.CANCELLED: set(),
    StageState.SKIPPED: set(),
}


class StageTransition(BaseModel):
    """Records a single state transition for the run event log."""

    model_config = ConfigDict(frozen=True)

    stage_id: str
    from_state: StageState
    to_state: StageState
    reason: str | None = None


MERGE_STAGE_ID = "merge"


def build_stage_id(platform_identifier: str) -> str:
    """Stage id of one build instance, e.g. ``build:linux/amd64``."""
    return f"build:{platform_identifier}"
