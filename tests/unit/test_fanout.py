"""Tests for PlatformFanout, BuilderRouter and the RunTracker barrier."""

from __future__ import annotations

import threading

import pytest

from nativearch.core.buildx import BuildxBuilder
from nativearch.core.concurrency import CancellationToken
from nativearch.core.fanout import BuilderRouter, PlatformFanout
from nativearch.core.run_tracker import (
    BarrierNotReachedError,
    InvalidTransitionError,
    RunTracker,
)
from nativearch.models.platforms import DEFAULT_MATRIX, Platform, PlatformMatrix
from nativearch.models.results import StepOutcome
from nativearch.models.runs import BuildInstanceResult
from nativearch.models.stages import MERGE_STAGE_ID, StageState

THREE = PlatformMatrix(
    platforms=(
        Platform(identifier="linux/amd64", host_class="ubuntu-latest"),
        Platform(identifier="linux/arm64", host_class="ubuntu-24.04-arm"),
        Platform(identifier="linux/arm/v7", host_class="ubuntu-24.04-arm"),
    )
)


def _result(platform: Platform, outcome: StepOutcome) -> BuildInstanceResult:
    return BuildInstanceResult(
        platform=platform.identifier,
        host_class=platform.host_class,
        label=platform.label,
        outcome=outcome,
    )


class TestPlatformFanout:
    def test_one_task_per_platform_in_declared_order(self):
        seen: list[str] = []
        lock = threading.Lock()

        def task(platform: Platform, token: CancellationToken) -> BuildInstanceResult:
            with lock:
                seen.append(platform.identifier)
            return _result(platform, StepOutcome.SUCCESS)

        results = PlatformFanout().run(THREE, task, CancellationToken())
        assert sorted(seen) == sorted(THREE.identifiers)
        assert list(results) == THREE.identifiers

    def test_tasks_run_concurrently(self):
        barrier = threading.Barrier(len(THREE), timeout=5)

        def task(platform: Platform, token: CancellationToken) -> BuildInstanceResult:
            # deadlocks unless every task is in flight at once
            barrier.wait()
            return _result(platform, StepOutcome.SUCCESS)

        results = PlatformFanout().run(THREE, task, CancellationToken())
        assert all(r.succeeded for r in results.values())

    def test_sibling_failure_does_not_stop_others(self):
        def task(platform: Platform, token: CancellationToken) -> BuildInstanceResult:
            if platform.identifier == "linux/amd64":
                return _result(platform, StepOutcome.FAILURE)
            return _result(platform, StepOutcome.SUCCESS)

        results = PlatformFanout().run(THREE, task, CancellationToken())
        assert results["linux/amd64"].outcome == StepOutcome.FAILURE
        assert results["linux/arm64"].outcome == StepOutcome.SUCCESS
        assert results["linux/arm/v7"].outcome == StepOutcome.SUCCESS

    def test_raising_task_becomes_failure(self):
        def task(platform: Platform, token: CancellationToken) -> BuildInstanceResult:
            if platform.identifier == "linux/arm64":
                raise RuntimeError("runner lost")
            return _result(platform, StepOutcome.SUCCESS)

        results = PlatformFanout().run(DEFAULT_MATRIX, task, CancellationToken())
        assert results["linux/arm64"].outcome == StepOutcome.FAILURE
        assert results["linux/arm64"].error == "runner lost"
        assert results["linux/amd64"].succeeded

    def test_fail_fast_cancels_siblings_not_run(self):
        matrix = DEFAULT_MATRIX.model_copy(update={"fail_fast": True})
        run_token = CancellationToken()

        def task(platform: Platform, token: CancellationToken) -> BuildInstanceResult:
            if platform.identifier == "linux/amd64":
                return _result(platform, StepOutcome.FAILURE)
            if token.wait(timeout=5):
                return _result(platform, StepOutcome.CANCELLED)
            return _result(platform, StepOutcome.SUCCESS)

        results = PlatformFanout().run(matrix, task, run_token)
        assert results["linux/arm64"].outcome == StepOutcome.CANCELLED
        assert not run_token.cancelled


class TestBuilderRouter:
    def test_routes_by_host_class(self):
        amd, arm = BuildxBuilder("amd"), BuildxBuilder("arm")
        router = BuilderRouter({"ubuntu-latest": amd, "ubuntu-24.04-arm": arm})
        assert router.for_platform(DEFAULT_MATRIX.get("linux/amd64")) is amd
        assert router.for_platform(DEFAULT_MATRIX.get("linux/arm64")) is arm

    def test_missing_route_without_default(self):
        with pytest.raises(LookupError):
            BuilderRouter().for_platform(DEFAULT_MATRIX.get("linux/amd64"))

    def test_from_builder_names(self):
        router = BuilderRouter.from_builder_names({"ubuntu-24.04-arm": "arm-node"})
        assert router.for_platform(DEFAULT_MATRIX.get("linux/arm64")).builder == "arm-node"
        assert router.for_platform(DEFAULT_MATRIX.get("linux/amd64")).builder is None


class TestRunTracker:
    def test_initial_states(self):
        tracker = RunTracker("run-1", DEFAULT_MATRIX.identifiers)
        assert set(tracker.states().values()) == {StageState.NOT_STARTED}
        assert MERGE_STAGE_ID in tracker.states()

    def test_merge_blocked_until_builds_terminal(self):
        tracker = RunTracker("run-1", DEFAULT_MATRIX.identifiers)
        tracker.transition("build:linux/amd64", StageState.RUNNING)
        tracker.transition("build:linux/amd64", StageState.PASSED)
        with pytest.raises(BarrierNotReachedError, match="linux/arm64"):
            tracker.transition(MERGE_STAGE_ID, StageState.RUNNING)

        tracker.transition("build:linux/arm64", StageState.RUNNING)
        tracker.transition("build:linux/arm64", StageState.PASSED)
        assert tracker.builds_terminal()
        tracker.transition(MERGE_STAGE_ID, StageState.RUNNING)
        assert tracker.state(MERGE_STAGE_ID) == StageState.RUNNING

    def test_invalid_transition_rejected(self):
        tracker = RunTracker("run-1", DEFAULT_MATRIX.identifiers)
        with pytest.raises(InvalidTransitionError):
            tracker.transition("build:linux/amd64", StageState.PASSED)

    def test_terminal_state_is_final(self):
        tracker = RunTracker("run-1", DEFAULT_MATRIX.identifiers)
        tracker.transition("build:linux/amd64", StageState.CANCELLED)
        with pytest.raises(InvalidTransitionError):
            tracker.transition("build:linux/amd64", StageState.RUNNING)

    def test_unknown_stage(self):
        with pytest.raises(KeyError):
            RunTracker("run-1", ["linux/amd64"]).transition("build:linux/mips", StageState.RUNNING)

    def test_events_recorded(self):
        tracker = RunTracker("run-1", ["linux/amd64"])
        tracker.transition("build:linux/amd64", StageState.RUNNING)
        tracker.transition("build:linux/amd64", StageState.FAILED, reason="exit 1")
        events = tracker.events
        assert [e.transition.to_state for e in events] == [StageState.RUNNING, StageState.FAILED]
        assert events[-1].transition.reason == "exit 1"
        assert all(e.run_id == "run-1" for e in events)
