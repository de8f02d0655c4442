"""Run orchestrator: the coordinator for native multi-arch runs.

The Orchestrator wires together the trigger policy, the run gate, the
platform fan-out, the build and merge stages and the artifact exchange
into one two-phase run:

    trigger check -> admit (cancel superseded run)
        -> fan out one build per platform -> join
        -> merge (only if every build passed) -> release slot
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from nativearch.config import RegistryConfig, Settings
from nativearch.core.artifact_store import DigestArtifactStore, purge_workspace
from nativearch.core.buildx import (
    DockerLogin,
    ImagetoolsClient,
    ManifestTool,
    RegistryLogin,
)
from nativearch.core.concurrency import CancellationToken, RunGate
from nativearch.core.fanout import BuilderRouter, PlatformFanout
from nativearch.core.metadata import TagPolicy, oci_annotations, oci_labels
from nativearch.core.run_tracker import RunTracker
from nativearch.core.triggers import TriggerEvent, TriggerPolicy
from nativearch.models.artifacts import artifact_name_for
from nativearch.models.platforms import DEFAULT_MATRIX, Platform, PlatformMatrix
from nativearch.models.results import StepOutcome
from nativearch.models.runs import (
    BuildInstanceResult,
    ConcurrencyKey,
    MergeResult,
    RunReport,
    RunState,
    new_run_id,
)
from nativearch.models.stages import MERGE_STAGE_ID, StageState, build_stage_id
from nativearch.stages.build import BuildStage
from nativearch.stages.merge import MergeStage

logger = logging.getLogger(__name__)

_OUTCOME_TO_STATE: dict[StepOutcome, StageState] = {
    StepOutcome.SUCCESS: StageState.PASSED,
    StepOutcome.FAILURE: StageState.FAILED,
    StepOutcome.CANCELLED: StageState.CANCELLED,
    # a stage that started running cannot end skipped
    StepOutcome.SKIPPED: StageState.FAILED,
}


class Orchestrator:
    """Two-stage coordinator for one image across the platform matrix.

    Parameters
    ----------
    settings:
        Runtime settings. Loaded from the environment if not provided.
    matrix:
        Declared platform set.
    builders:
        Routes each platform's host class to an ``ImageBuilder``. Defaults
        to ``Settings.runner_builders`` backed by ``docker buildx``.
    login / manifest_tool:
        External capabilities; default to the docker CLI.
    gate:
        Shared run gate. Pass the same instance to every orchestrator that
        must debounce against each other.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        matrix: PlatformMatrix = DEFAULT_MATRIX,
        builders: BuilderRouter | None = None,
        login: RegistryLogin | None = None,
        manifest_tool: ManifestTool | None = None,
        gate: RunGate | None = None,
        fanout: PlatformFanout | None = None,
        tag_policy: TagPolicy | None = None,
        trigger_policy: TriggerPolicy | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.registry: RegistryConfig = self.settings.registry_config()
        self.matrix = matrix
        self.builders = builders or BuilderRouter.from_builder_names(
            self.settings.runner_builders
        )
        self.login = login or DockerLogin()
        self.manifest_tool = manifest_tool or ImagetoolsClient()
        self.gate = gate or RunGate()
        self.fanout = fanout or PlatformFanout()
        self.tag_policy = tag_policy or TagPolicy(
            default_branch=self.settings.default_branch,
            extra_tags=self.settings.extra_tags,
        )
        self.trigger_policy = trigger_policy or TriggerPolicy()

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def store_for(self, run_id: str) -> DigestArtifactStore:
        """Artifacts are scoped per run, so names only need to be unique within it."""
        return DigestArtifactStore(self.settings.artifact_path / run_id)

    def expected_artifacts(self) -> list[str]:
        return [artifact_name_for(pid) for pid in self.matrix.identifiers]

    def build_stage_for(
        self, platform: Platform, store: DigestArtifactStore, revision: str = ""
    ) -> BuildStage:
        return BuildStage(
            self.registry,
            store,
            self.builders.for_platform(platform),
            self.login,
            context=self.settings.build_context,
            dockerfile=self.settings.dockerfile,
            labels=oci_labels(
                self.settings.image_description,
                self.settings.resolved_source_url,
                revision=revision,
            ),
            retention_days=self.settings.artifact_retention_days,
        )

    def merge_stage_for(self, store: DigestArtifactStore) -> MergeStage:
        return MergeStage(
            self.registry,
            store,
            self.manifest_tool,
            self.login,
            annotations=oci_annotations(
                self.settings.image_description, self.settings.resolved_source_url
            ),
            fail_on_inspect_error=self.settings.fail_on_inspect_error,
        )

    # ------------------------------------------------------------------
    # Single-stage entry points (one CI job each)
    # ------------------------------------------------------------------

    def run_build_instance(
        self,
        platform_identifier: str,
        run_id: str,
        *,
        revision: str = "",
        cancel_token: CancellationToken | None = None,
    ) -> BuildInstanceResult:
        """Run one stage-1 instance, as a single matrix job would."""
        platform = self.matrix.get(platform_identifier)
        stage = self.build_stage_for(platform, self.store_for(run_id), revision)
        return stage.run(platform_identifier, self.matrix, cancel_token)

    def run_merge(
        self,
        run_id: str,
        event: TriggerEvent,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> MergeResult:
        """Run stage 2 over the artifacts of the declared matrix."""
        tags = self.tag_policy.tags_for(self.registry.image_name, event)
        return self.merge_stage_for(self.store_for(run_id)).run(
            self.expected_artifacts(), tags, cancel_token
        )

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    def run(self, event: TriggerEvent, run_id: str | None = None) -> RunReport:
        run_id = run_id or new_run_id()
        key = ConcurrencyKey(workflow=event.workflow, ref=event.ref)
        started = datetime.now(timezone.utc)

        if not self.trigger_policy.should_run(event):
            logger.info("Run %s skipped: no watched path changed", run_id)
            return RunReport(
                run_id=run_id,
                key=key,
                state=RunState.SKIPPED,
                started_at=started,
                reason="no watched path changed",
            )

        token = self.gate.admit(key, run_id)
        try:
            return self._run_admitted(run_id, key, event, token, started)
        finally:
            self.gate.release(key, run_id)

    def _run_admitted(
        self,
        run_id: str,
        key: ConcurrencyKey,
        event: TriggerEvent,
        token: CancellationToken,
        started: datetime,
    ) -> RunReport:
        logger.info("Run %s admitted for %s (%s)", run_id, key, event.kind.value)
        purge_workspace(self.settings.artifact_path)

        store = self.store_for(run_id)
        tracker = RunTracker(run_id, self.matrix.identifiers)

        def _build(platform: Platform, instance_token: CancellationToken) -> BuildInstanceResult:
            sid = build_stage_id(platform.identifier)
            if instance_token.cancelled:
                tracker.transition(sid, StageState.CANCELLED, reason=instance_token.reason)
                return BuildInstanceResult(
                    platform=platform.identifier,
                    host_class=platform.host_class,
                    label=platform.label,
                    outcome=StepOutcome.CANCELLED,
                    error=instance_token.reason,
                )
            tracker.transition(sid, StageState.RUNNING, details={"host_class": platform.host_class})
            try:
                result = self.build_stage_for(platform, store, event.sha).run(
                    platform.identifier, self.matrix, instance_token
                )
            except Exception as exc:
                tracker.transition(sid, StageState.FAILED, reason=str(exc))
                raise
            tracker.transition(
                sid,
                _OUTCOME_TO_STATE[result.outcome],
                reason=result.error,
                details={"digest": result.digest.value} if result.digest else {},
            )
            return result

        # Phase 1: fan out and join
        builds = self.fanout.run(self.matrix, _build, token)

        # Phase 2: merge, gated on the join
        merge: MergeResult | None = None
        if token.cancelled:
            tracker.transition(MERGE_STAGE_ID, StageState.CANCELLED, reason=token.reason)
        elif all(b.succeeded for b in builds.values()):
            tracker.transition(MERGE_STAGE_ID, StageState.RUNNING)
            tags = self.tag_policy.tags_for(self.registry.image_name, event)
            merge = self.merge_stage_for(store).run(self.expected_artifacts(), tags, token)
            tracker.transition(
                MERGE_STAGE_ID, _OUTCOME_TO_STATE[merge.outcome], reason=merge.error
            )
        else:
            failed = [pid for pid, b in builds.items() if not b.succeeded]
            tracker.transition(
                MERGE_STAGE_ID,
                StageState.SKIPPED,
                reason=f"build failed: {', '.join(failed)}",
            )

        if token.cancelled or (merge is not None and merge.outcome == StepOutcome.CANCELLED):
            state = RunState.CANCELLED
        elif merge is not None and merge.outcome == StepOutcome.SUCCESS:
            state = RunState.SUCCESS
        else:
            state = RunState.FAILURE

        logger.info("Run %s finished: %s", run_id, state.value)
        return RunReport(
            run_id=run_id,
            key=key,
            state=state,
            builds=builds,
            merge=merge,
            events=tracker.events,
            started_at=started,
            finished_at=datetime.now(timezone.utc),
            reason=token.reason if state == RunState.CANCELLED else None,
        )
