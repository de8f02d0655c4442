"""Step outcome model used instead of exceptions for try/fallback flow."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class StepOutcome(str, Enum):
    """Raw result of a step, before ``continue_on_error`` is applied."""

    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


class StepResult(BaseModel):
    """Outcome of one invocation of an external capability.

    ``outcome`` is what actually happened. ``conclusion`` is what the
    enclosing stage sees: a failed step that was allowed to fail concludes
    as a success.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    outcome: StepOutcome
    continue_on_error: bool = False
    command: list[str] = []
    returncode: int | None = None
    stdout: str = ""
    stderr: str = ""
    details: dict[str, Any] = {}
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def conclusion(self) -> StepOutcome:
        if self.outcome == StepOutcome.FAILURE and self.continue_on_error:
            return StepOutcome.SUCCESS
        return self.outcome

    @property
    def succeeded(self) -> bool:
        return self.outcome == StepOutcome.SUCCESS

    @property
    def failed(self) -> bool:
        return self.outcome == StepOutcome.FAILURE

    @classmethod
    def skipped(cls, name: str, reason: str = "") -> StepResult:
        details = {"reason": reason} if reason else {}
        return cls(name=name, outcome=StepOutcome.SKIPPED, details=details)
