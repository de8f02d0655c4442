"""Stage 1: per-platform build, push by digest, and digest artifact upload.

One instance runs per declared platform. Each instance writes only to
its own artifact slot, so instances share no state.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

from nativearch.config import RegistryConfig
from nativearch.core.artifact_store import ArtifactConflictError, DigestArtifactStore
from nativearch.core.buildx import ImageBuilder, RegistryLogin
from nativearch.core.concurrency import CancellationToken
from nativearch.models.artifacts import (
    DEFAULT_RETENTION_DAYS,
    BuildDigest,
    InvalidDigestError,
)
from nativearch.models.platforms import PlatformMatrix, UnknownPlatformError
from nativearch.models.results import StepOutcome, StepResult
from nativearch.models.runs import BuildInstanceResult

logger = logging.getLogger(__name__)


class BuildStage:
    """Coordinates one platform build from login to artifact upload.

    Parameters
    ----------
    registry:
        Registry identity; the image is pushed to ``registry.image_name``.
    store:
        Artifact exchange the digest is uploaded to.
    builder / login:
        External capabilities, invoked by protocol.
    context / dockerfile:
        Fixed build context.
    labels:
        OCI labels applied to the image.
    """

    def __init__(
        self,
        registry: RegistryConfig,
        store: DigestArtifactStore,
        builder: ImageBuilder,
        login: RegistryLogin,
        *,
        context: Path = Path("."),
        dockerfile: Path = Path("Dockerfile"),
        labels: Mapping[str, str] | None = None,
        retention_days: int = DEFAULT_RETENTION_DAYS,
    ) -> None:
        self.registry = registry
        self.store = store
        self.builder = builder
        self.login = login
        self.context = Path(context)
        self.dockerfile = Path(dockerfile)
        self.labels = dict(labels or {})
        self.retention_days = retention_days

    def run(
        self,
        platform_identifier: str,
        matrix: PlatformMatrix,
        cancel_token: CancellationToken | None = None,
    ) -> BuildInstanceResult:
        token = cancel_token or CancellationToken()
        try:
            platform = matrix.get(platform_identifier)
        except UnknownPlatformError as exc:
            logger.error("%s", exc)
            return BuildInstanceResult(
                platform=platform_identifier,
                outcome=StepOutcome.FAILURE,
                error=str(exc),
            )

        base = {
            "platform": platform.identifier,
            "host_class": platform.host_class,
            "label": platform.label,
        }
        steps: list[StepResult] = []

        def _finish(outcome: StepOutcome, error: str | None = None, **extra) -> BuildInstanceResult:
            if outcome == StepOutcome.SUCCESS:
                logger.info("Build %s passed on %s", platform.identifier, platform.host_class)
            else:
                logger.error("Build %s %s: %s", platform.identifier, outcome.value, error)
            return BuildInstanceResult(**base, outcome=outcome, steps=steps, error=error, **extra)

        logger.info("Build %s starting (label=%s)", platform.identifier, platform.label)

        # 1. Authenticate
        if token.cancelled:
            return _finish(StepOutcome.CANCELLED, token.reason)
        step = self.login.login(self.registry, cancel_token=token)
        steps.append(step)
        if step.outcome != StepOutcome.SUCCESS:
            return _finish(step.outcome, f"login {step.outcome.value}: {step.stderr.strip()}")

        # 2. Build and push by digest
        if token.cancelled:
            return _finish(StepOutcome.CANCELLED, token.reason)
        step = self.builder.build_and_push(
            platform,
            self.registry,
            context=self.context,
            dockerfile=self.dockerfile,
            labels=self.labels,
            cancel_token=token,
        )
        steps.append(step)
        if step.outcome != StepOutcome.SUCCESS:
            return _finish(step.outcome, f"build {step.outcome.value}: {step.stderr.strip()}")

        try:
            digest = BuildDigest.parse(str(step.details.get("digest", "")))
        except InvalidDigestError as exc:
            return _finish(StepOutcome.FAILURE, str(exc))

        # 3. Export the digest as this platform's artifact
        if token.cancelled:
            return _finish(StepOutcome.CANCELLED, token.reason)
        try:
            artifact = self.store.upload(
                platform.identifier, digest, retention_days=self.retention_days
            )
        except ArtifactConflictError as exc:
            steps.append(
                StepResult(name="upload-artifact", outcome=StepOutcome.FAILURE, stderr=str(exc))
            )
            return _finish(StepOutcome.FAILURE, str(exc))
        steps.append(
            StepResult(
                name="upload-artifact",
                outcome=StepOutcome.SUCCESS,
                details={"artifact": artifact.name, "digest": digest.value},
            )
        )
        return _finish(StepOutcome.SUCCESS, digest=digest, artifact_name=artifact.name)
