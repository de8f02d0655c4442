"""Deterministic stage state tracking for one run.

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- The merge stage cannot enter RUNNING while any build instance is non-terminal
- Every transition recorded as a RunEvent
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from typing import Any

from nativearch.models.runs import RunEvent
from nativearch.models.stages import (
    MERGE_STAGE_ID,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    StageState,
    StageTransition,
    build_stage_id,
)


class InvalidTransitionError(RuntimeError):
    """Raised when a requested state transition is not valid."""


class BarrierNotReachedError(RuntimeError):
    """Raised when the merge stage is started before every build is terminal."""


class RunTracker:
    """Tracks build-instance and merge states for a single run.

    Parameters
    ----------
    run_id:
        The run being tracked.
    platforms:
        Declared platform identifiers; one build stage each.
    """

    def __init__(self, run_id: str, platforms: Iterable[str]) -> None:
        self.run_id = run_id
        self._lock = threading.Lock()
        self._build_ids = [build_stage_id(p) for p in platforms]
        self._states: dict[str, StageState] = {
            sid: StageState.NOT_STARTED for sid in [*self._build_ids, MERGE_STAGE_ID]
        }
        self._events: list[RunEvent] = []

    @property
    def events(self) -> list[RunEvent]:
        with self._lock:
            return list(self._events)

    def states(self) -> dict[str, StageState]:
        with self._lock:
            return dict(self._states)

    def state(self, stage_id: str) -> StageState:
        with self._lock:
            return self._states[stage_id]

    def builds_terminal(self) -> bool:
        with self._lock:
            return all(self._states[sid] in TERMINAL_STATES for sid in self._build_ids)

    def transition(
        self,
        stage_id: str,
        target: StageState,
        *,
        reason: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> RunEvent:
        with self._lock:
            if stage_id not in self._states:
                raise KeyError(f"Unknown stage {stage_id!r} in run {self.run_id}")
            current = self._states[stage_id]
            allowed = VALID_TRANSITIONS.get(current, set())
            if target not in allowed:
                raise InvalidTransitionError(
                    f"Cannot transition {stage_id} from {current.value} to {target.value}. "
                    f"Allowed: {sorted(s.value for s in allowed)}"
                )
            if stage_id == MERGE_STAGE_ID and target == StageState.RUNNING:
                pending = [
                    sid for sid in self._build_ids
                    if self._states[sid] not in TERMINAL_STATES
                ]
                if pending:
                    raise BarrierNotReachedError(
                        f"Cannot start merge: builds still pending: {', '.join(pending)}"
                    )

            event = RunEvent(
                run_id=self.run_id,
                transition=StageTransition(
                    stage_id=stage_id, from_state=current, to_state=target, reason=reason
                ),
                details=details or {},
            )
            self._states[stage_id] = target
            self._events.append(event)
            return event
