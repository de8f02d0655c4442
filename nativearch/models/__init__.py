"""nativearch data models: all Pydantic v2, all frozen (immutable)."""

from nativearch.models.artifacts import (
    ARTIFACT_PREFIX,
    BuildDigest,
    DigestArtifact,
    InvalidDigestError,
    artifact_name_for,
)
from nativearch.models.manifest import ManifestReference
from nativearch.models.platforms import (
    DEFAULT_MATRIX,
    Platform,
    PlatformMatrix,
    UnknownPlatformError,
    platform_label,
)
from nativearch.models.results import StepOutcome, StepResult
from nativearch.models.runs import (
    BuildInstanceResult,
    ConcurrencyKey,
    MergeResult,
    RunEvent,
    RunReport,
    RunState,
)
from nativearch.models.stages import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    StageState,
    StageTransition,
)

__all__ = [
    # platforms
    "Platform",
    "PlatformMatrix",
    "DEFAULT_MATRIX",
    "UnknownPlatformError",
    "platform_label",
    # artifacts
    "ARTIFACT_PREFIX",
    "BuildDigest",
    "DigestArtifact",
    "InvalidDigestError",
    "artifact_name_for",
    # manifest
    "ManifestReference",
    # results
    "StepOutcome",
    "StepResult",
    # stages
    "StageState",
    "StageTransition",
    "TERMINAL_STATES",
    "VALID_TRANSITIONS",
    # runs
    "BuildInstanceResult",
    "ConcurrencyKey",
    "MergeResult",
    "RunEvent",
    "RunReport",
    "RunState",
]
