"""Stage 2: gather every digest artifact and publish one manifest list.

Lifecycle::

    download (exact set, no partial merge)
        -> login                          (fatal on failure)
        -> create with annotations        (allowed to fail)
        -> create without annotations     (only if the above outcome is failure)
        -> inspect                        (fatal only if configured)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from nativearch.config import RegistryConfig
from nativearch.core.artifact_store import (
    ArtifactIntegrityError,
    DigestArtifactStore,
    MissingArtifactError,
)
from nativearch.core.buildx import ManifestTool, RegistryLogin
from nativearch.core.concurrency import CancellationToken
from nativearch.models.manifest import ManifestReference
from nativearch.models.results import StepOutcome, StepResult
from nativearch.models.runs import MergeResult

logger = logging.getLogger(__name__)

STEP_DOWNLOAD = "download-digests"
STEP_LOGIN = "login"
STEP_CREATE_ANNOTATED = "create-annotated"
STEP_CREATE_FALLBACK = "create-fallback"
STEP_INSPECT = "inspect"


class MergeStage:
    """Combines per-platform digests into one multi-platform reference.

    Parameters
    ----------
    registry:
        Registry identity; the manifest list lives at ``registry.image_name``.
    store:
        Artifact exchange the digests are read from.
    manifest_tool:
        External merge/inspect capability.
    login:
        Authenticates the manifest-list push.
    annotations:
        Descriptive annotations for the primary (annotated) attempt.
    fail_on_inspect_error:
        Whether a failed inspection fails the stage.
    """

    def __init__(
        self,
        registry: RegistryConfig,
        store: DigestArtifactStore,
        manifest_tool: ManifestTool,
        login: RegistryLogin,
        *,
        annotations: Mapping[str, str] | None = None,
        fail_on_inspect_error: bool = False,
    ) -> None:
        self.registry = registry
        self.store = store
        self.manifest_tool = manifest_tool
        self.login = login
        self.annotations = dict(annotations or {})
        self.fail_on_inspect_error = fail_on_inspect_error

    def run(
        self,
        expected_artifacts: Sequence[str],
        tags: Sequence[str],
        cancel_token: CancellationToken | None = None,
    ) -> MergeResult:
        token = cancel_token or CancellationToken()
        steps: list[StepResult] = []
        image = self.registry.image_name

        if not tags:
            raise ValueError("At least one tag is required to publish a manifest list")

        # 1. Download exactly the expected set
        try:
            artifacts = self.store.download(list(expected_artifacts))
        except (MissingArtifactError, ArtifactIntegrityError) as exc:
            logger.error("Merge aborted: %s", exc)
            steps.append(
                StepResult(name=STEP_DOWNLOAD, outcome=StepOutcome.FAILURE, stderr=str(exc))
            )
            return MergeResult(outcome=StepOutcome.FAILURE, steps=steps, error=str(exc))

        if set(artifacts) != set(expected_artifacts):
            error = (
                f"Artifact set mismatch: expected {sorted(expected_artifacts)}, "
                f"got {sorted(artifacts)}"
            )
            steps.append(StepResult(name=STEP_DOWNLOAD, outcome=StepOutcome.FAILURE, stderr=error))
            return MergeResult(outcome=StepOutcome.FAILURE, steps=steps, error=error)

        ordered = [artifacts[name] for name in expected_artifacts]
        digests = [a.digest for a in ordered]
        steps.append(
            StepResult(
                name=STEP_DOWNLOAD,
                outcome=StepOutcome.SUCCESS,
                details={"artifacts": list(expected_artifacts)},
            )
        )
        logger.info("Merging %d digest(s) into %s", len(digests), image)

        if token.cancelled:
            return MergeResult(outcome=StepOutcome.CANCELLED, steps=steps, error=token.reason)

        # 2. Authenticate before pushing the manifest list
        login = self.login.login(self.registry, cancel_token=token).model_copy(
            update={"name": STEP_LOGIN}
        )
        steps.append(login)
        if login.outcome != StepOutcome.SUCCESS:
            error = f"login {login.outcome.value}: {login.stderr.strip()}"
            logger.error("Merge aborted: %s", error)
            return MergeResult(outcome=login.outcome, steps=steps, error=error)

        # 3. Primary path: annotated create, allowed to fail
        annotated = self.manifest_tool.create(
            image,
            list(tags),
            digests,
            self.annotations,
            continue_on_error=True,
            cancel_token=token,
        ).model_copy(update={"name": STEP_CREATE_ANNOTATED, "continue_on_error": True})
        steps.append(annotated)

        # 4. Fallback only on an outcome of exactly "failure"
        if annotated.outcome == StepOutcome.FAILURE:
            logger.warning(
                "Annotated manifest creation failed; retrying without annotations"
            )
            created = self.manifest_tool.create(
                image, list(tags), digests, {}, cancel_token=token
            ).model_copy(update={"name": STEP_CREATE_FALLBACK})
            steps.append(created)
            used_annotations: dict[str, str] = {}
        else:
            created = annotated
            used_annotations = dict(self.annotations)
            steps.append(
                StepResult.skipped(
                    STEP_CREATE_FALLBACK, f"annotated create outcome was {annotated.outcome.value}"
                )
            )

        if created.outcome != StepOutcome.SUCCESS:
            error = f"Manifest creation {created.outcome.value}: {created.stderr.strip()}"
            logger.error("%s", error)
            return MergeResult(outcome=created.outcome, steps=steps, error=error)

        reference = ManifestReference(
            image=image,
            tags=list(tags),
            digests=digests,
            annotations=used_annotations,
            platforms=[a.platform for a in ordered],
        )

        # 5. Surface the final state
        inspected = self.manifest_tool.inspect(reference.primary_tag, cancel_token=token)
        inspected = inspected.model_copy(
            update={"name": STEP_INSPECT, "continue_on_error": not self.fail_on_inspect_error}
        )
        steps.append(inspected)
        if inspected.outcome == StepOutcome.SUCCESS:
            logger.info("Inspected %s:\n%s", reference.primary_tag, inspected.stdout.rstrip())
        elif inspected.conclusion != StepOutcome.SUCCESS:
            error = f"Inspection {inspected.outcome.value}: {inspected.stderr.strip()}"
            logger.error("%s", error)
            return MergeResult(
                outcome=inspected.outcome,
                reference=reference,
                steps=steps,
                annotated=bool(used_annotations),
                error=error,
            )
        else:
            logger.warning(
                "Inspection of %s failed (ignored): %s",
                reference.primary_tag,
                inspected.stderr.strip(),
            )

        return MergeResult(
            outcome=StepOutcome.SUCCESS,
            reference=reference,
            steps=steps,
            annotated=bool(used_annotations),
        )
