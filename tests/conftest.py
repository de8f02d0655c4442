"""Shared test fixtures for nativearch.

External tools (docker login / buildx / imagetools) are replaced by
in-process fakes that satisfy the same protocols.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import pytest

from nativearch.config import RegistryConfig, Settings
from nativearch.core.artifact_store import DigestArtifactStore
from nativearch.core.concurrency import CancellationToken, RunGate
from nativearch.core.fanout import BuilderRouter
from nativearch.core.orchestrator import Orchestrator
from nativearch.models.artifacts import BuildDigest
from nativearch.models.platforms import Platform
from nativearch.models.results import StepOutcome, StepResult

AMD64_HEX = "abc123" + "0" * 58
ARM64_HEX = "def456" + "1" * 58

DIGESTS = {
    "linux/amd64": f"sha256:{AMD64_HEX}",
    "linux/arm64": f"sha256:{ARM64_HEX}",
}


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeLogin:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def login(
        self, registry: RegistryConfig, *, cancel_token: CancellationToken | None = None
    ) -> StepResult:
        with self._lock:
            self.calls.append(registry.registry_host)
        if self.fail:
            return StepResult(name="login", outcome=StepOutcome.FAILURE, stderr="denied")
        return StepResult(name="login", outcome=StepOutcome.SUCCESS)


class FakeBuilder:
    """Returns canned digests; can fail or block per platform."""

    def __init__(
        self,
        digests: Mapping[str, str] | None = None,
        *,
        fail: Sequence[str] = (),
        block: Sequence[str] = (),
        raise_for: Sequence[str] = (),
    ) -> None:
        self.digests = dict(digests or DIGESTS)
        self.fail = set(fail)
        self.block = set(block)
        self.raise_for = set(raise_for)
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def build_and_push(
        self,
        platform: Platform,
        registry: RegistryConfig,
        *,
        context: Path,
        dockerfile: Path,
        labels: Mapping[str, str],
        cancel_token: CancellationToken | None = None,
    ) -> StepResult:
        with self._lock:
            self.calls.append(
                {"platform": platform.identifier, "image": registry.image_name, "labels": dict(labels)}
            )
        self.started.set()
        if platform.identifier in self.raise_for:
            raise RuntimeError(f"builder crashed for {platform.identifier}")
        if platform.identifier in self.block:
            # held until released or cancelled
            while not self.release.wait(0.02):
                if cancel_token is not None and cancel_token.cancelled:
                    return StepResult(name="build-push", outcome=StepOutcome.CANCELLED)
        if platform.identifier in self.fail:
            return StepResult(
                name="build-push", outcome=StepOutcome.FAILURE, returncode=1, stderr="exec format error"
            )
        return StepResult(
            name="build-push",
            outcome=StepOutcome.SUCCESS,
            returncode=0,
            details={"digest": self.digests[platform.identifier]},
        )


class FakeManifestTool:
    """Records create/inspect calls; the annotated create can be made to fail
    or to end with any other fixed outcome."""

    def __init__(
        self,
        *,
        fail_annotated: bool = False,
        fail_plain: bool = False,
        fail_inspect: bool = False,
        annotated_outcome: StepOutcome | None = None,
    ) -> None:
        self.fail_annotated = fail_annotated
        self.annotated_outcome = annotated_outcome
        self.fail_plain = fail_plain
        self.fail_inspect = fail_inspect
        self.create_calls: list[dict[str, Any]] = []
        self.inspect_calls: list[str] = []

    def create(
        self,
        image: str,
        tags: Sequence[str],
        digests: Sequence[BuildDigest],
        annotations: Mapping[str, str],
        *,
        continue_on_error: bool = False,
        cancel_token: CancellationToken | None = None,
    ) -> StepResult:
        self.create_calls.append(
            {
                "image": image,
                "tags": list(tags),
                "digests": [d.value for d in digests],
                "annotations": dict(annotations),
            }
        )
        if annotations and self.annotated_outcome is not None:
            return StepResult(
                name="create",
                outcome=self.annotated_outcome,
                continue_on_error=continue_on_error,
            )
        failing = self.fail_annotated if annotations else self.fail_plain
        if failing:
            return StepResult(
                name="create",
                outcome=StepOutcome.FAILURE,
                continue_on_error=continue_on_error,
                returncode=1,
                stderr="annotations not supported by registry",
            )
        return StepResult(name="create", outcome=StepOutcome.SUCCESS, returncode=0)

    def inspect(
        self, reference: str, *, cancel_token: CancellationToken | None = None
    ) -> StepResult:
        self.inspect_calls.append(reference)
        if self.fail_inspect:
            return StepResult(name="inspect", outcome=StepOutcome.FAILURE, stderr="not found")
        return StepResult(
            name="inspect",
            outcome=StepOutcome.SUCCESS,
            stdout=f"Name: {reference}\nMediaType: application/vnd.oci.image.index.v1+json\n",
        )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from the environment and .env files."""
    return Settings(
        _env_file=None,
        owner_repo="Acme/Multiarch-Demo",
        credential="t0ken",
        registry_user="ci-bot",
        workspace=tmp_path / ".nativearch",
    )


@pytest.fixture
def registry(settings: Settings) -> RegistryConfig:
    return settings.registry_config()


@pytest.fixture
def artifact_store(tmp_path: Path) -> DigestArtifactStore:
    return DigestArtifactStore(tmp_path / "artifacts")


@pytest.fixture
def digests() -> dict[str, str]:
    return dict(DIGESTS)


@pytest.fixture
def fake_login() -> FakeLogin:
    return FakeLogin()


@pytest.fixture
def fake_builder() -> FakeBuilder:
    return FakeBuilder()


@pytest.fixture
def fake_manifest_tool() -> FakeManifestTool:
    return FakeManifestTool()


@pytest.fixture
def make_login():
    return FakeLogin


@pytest.fixture
def make_builder():
    return FakeBuilder


@pytest.fixture
def make_manifest_tool():
    return FakeManifestTool


@pytest.fixture
def gate() -> RunGate:
    return RunGate()


@pytest.fixture
def make_orchestrator(settings: Settings, fake_login: FakeLogin, gate: RunGate):
    """Factory fixture: an Orchestrator wired to fakes."""

    def _factory(
        builder: FakeBuilder | None = None,
        manifest_tool: FakeManifestTool | None = None,
        **overrides: Any,
    ) -> Orchestrator:
        kwargs: dict[str, Any] = {
            "builders": BuilderRouter(default=builder or FakeBuilder()),
            "login": fake_login,
            "manifest_tool": manifest_tool or FakeManifestTool(),
            "gate": gate,
        }
        kwargs.update(overrides)
        return Orchestrator(settings, **kwargs)

    return _factory
