"""Pluggable backends for the external build, login and manifest tools.

Defines the ``RegistryLogin``, ``ImageBuilder`` and ``ManifestTool``
Protocols, plus the default implementations that shell out to
``docker`` / ``docker buildx``. Tests substitute in-process fakes.
"""

from __future__ import annotations

import json
import logging
import tempfile
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from nativearch.config import RegistryConfig
from nativearch.core.tooling import command_step
from nativearch.models.artifacts import BuildDigest
from nativearch.models.platforms import Platform
from nativearch.models.results import StepOutcome, StepResult

if TYPE_CHECKING:
    from nativearch.core.concurrency import CancellationToken

logger = logging.getLogger(__name__)

DIGEST_METADATA_KEY = "containerimage.digest"


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class RegistryLogin(Protocol):
    """Authenticates the local tooling against a registry."""

    def login(
        self, registry: RegistryConfig, *, cancel_token: CancellationToken | None = None
    ) -> StepResult:
        ...


@runtime_checkable
class ImageBuilder(Protocol):
    """Builds one platform image and pushes it by digest.

    On success the returned step carries ``details["digest"]``.
    """

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
        ...


@runtime_checkable
class ManifestTool(Protocol):
    """Combines per-platform digests into a manifest list and inspects it."""

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
        ...

    def inspect(
        self, reference: str, *, cancel_token: CancellationToken | None = None
    ) -> StepResult:
        ...


# ---------------------------------------------------------------------------
# Docker implementations
# ---------------------------------------------------------------------------


class DockerLogin:
    """``docker login`` with the credential passed over stdin."""

    def __init__(self, docker: str = "docker") -> None:
        self._docker = docker

    def login(
        self, registry: RegistryConfig, *, cancel_token: CancellationToken | None = None
    ) -> StepResult:
        if not registry.credential:
            return StepResult(
                name="login",
                outcome=StepOutcome.FAILURE,
                stderr=f"No credential configured for {registry.registry_host}",
            )
        command = [
            self._docker,
            "login",
            registry.registry_host,
            "--username",
            registry.username or "oauth2",
            "--password-stdin",
        ]
        return command_step(
            "login",
            command,
            input=registry.credential,
            cancel_token=cancel_token,
        )


class BuildxBuilder:
    """Native ``docker buildx build`` that pushes by digest only.

    Parameters
    ----------
    builder:
        Optional buildx builder name, used to route a platform to its
        native node.
    """

    def __init__(self, builder: str | None = None, docker: str = "docker") -> None:
        self.builder = builder
        self._docker = docker

    def build_command(
        self,
        platform: Platform,
        registry: RegistryConfig,
        *,
        context: Path,
        dockerfile: Path,
        labels: Mapping[str, str],
        metadata_file: Path,
    ) -> list[str]:
        command = [self._docker, "buildx", "build", "--platform", platform.identifier]
        if self.builder:
            command += ["--builder", self.builder]
        command += ["--file", str(dockerfile)]
        for key, value in sorted(labels.items()):
            command += ["--label", f"{key}={value}"]
        command += [
            "--output",
            f"type=image,name={registry.image_name},"
            "push-by-digest=true,name-canonical=true,push=true",
            "--metadata-file",
            str(metadata_file),
            str(context),
        ]
        return command

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
        with tempfile.TemporaryDirectory(prefix="nativearch-") as tmp:
            metadata_file = Path(tmp) / "metadata.json"
            command = self.build_command(
                platform,
                registry,
                context=context,
                dockerfile=dockerfile,
                labels=labels,
                metadata_file=metadata_file,
            )
            step = command_step("build-push", command, cancel_token=cancel_token)
            if step.outcome != StepOutcome.SUCCESS:
                return step
            digest = read_metadata_digest(metadata_file)

        if digest is None:
            return step.model_copy(
                update={
                    "outcome": StepOutcome.FAILURE,
                    "stderr": step.stderr + f"\n{DIGEST_METADATA_KEY} missing from build metadata",
                }
            )
        return step.model_copy(update={"details": {**step.details, "digest": digest}})


def read_metadata_digest(metadata_file: Path) -> str | None:
    """Read ``containerimage.digest`` from a buildx metadata file."""
    if not metadata_file.exists():
        return None
    try:
        data = json.loads(metadata_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        logger.warning("Unreadable buildx metadata file %s", metadata_file)
        return None
    value = data.get(DIGEST_METADATA_KEY)
    return value if isinstance(value, str) and value else None


class ImagetoolsClient:
    """``docker buildx imagetools`` for manifest-list creation and inspection."""

    def __init__(self, docker: str = "docker") -> None:
        self._docker = docker

    def create_command(
        self,
        image: str,
        tags: Sequence[str],
        digests: Sequence[BuildDigest],
        annotations: Mapping[str, str],
    ) -> list[str]:
        command = [self._docker, "buildx", "imagetools", "create"]
        for key, value in annotations.items():
            command += ["--annotation", f"index:{key}={value}"]
        for tag in tags:
            command += ["-t", tag]
        command += [f"{image}@{d.value}" for d in digests]
        return command

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
        name = "create-annotated" if annotations else "create"
        return command_step(
            name,
            self.create_command(image, tags, digests, annotations),
            continue_on_error=continue_on_error,
            cancel_token=cancel_token,
        )

    def inspect(
        self, reference: str, *, cancel_token: CancellationToken | None = None
    ) -> StepResult:
        return command_step(
            "inspect",
            [self._docker, "buildx", "imagetools", "inspect", reference],
            cancel_token=cancel_token,
        )
