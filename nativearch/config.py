"""Environment-driven configuration for native multi-arch builds.

Reads ``NATIVEARCH_*`` environment variables and a ``.env`` file. The
registry identity falls back to the ambient variables a CI runner exposes
(``GITHUB_REPOSITORY``, ``GITHUB_TOKEN``, ``GITHUB_ACTOR``) so no
user-managed secret is needed there.

The settings object is never consulted globally by the stages: callers
derive an explicit ``RegistryConfig`` from it and pass that in.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RegistryConfig(BaseModel):
    """Registry identity handed to each coordination stage."""

    model_config = ConfigDict(frozen=True)

    registry_host: str = "ghcr.io"
    owner_repo: str
    credential: str = Field(default="", repr=False)
    username: str = ""

    @property
    def image_name(self) -> str:
        """Fully qualified image path: ``<registry-host>/<owner>/<repository>``.

        OCI repository names must be lower case.
        """
        return f"{self.registry_host}/{self.owner_repo}".lower()


class Settings(BaseSettings):
    """Runtime settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export NATIVEARCH_REGISTRY_HOST=ghcr.io
        export NATIVEARCH_OWNER_REPO=acme/multiarch-demo
        export NATIVEARCH_LOG_LEVEL=DEBUG

    Inside a CI job the ambient ``GITHUB_REPOSITORY`` / ``GITHUB_TOKEN`` /
    ``GITHUB_ACTOR`` variables are picked up automatically.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="NATIVEARCH_",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    # Registry
    registry_host: str = "ghcr.io"
    owner_repo: str = Field(
        default="",
        validation_alias=AliasChoices(
            "owner_repo", "NATIVEARCH_OWNER_REPO", "GITHUB_REPOSITORY"
        ),
    )
    credential: str = Field(
        default="",
        repr=False,
        validation_alias=AliasChoices(
            "credential", "NATIVEARCH_CREDENTIAL", "GITHUB_TOKEN"
        ),
    )
    registry_user: str = Field(
        default="",
        validation_alias=AliasChoices(
            "registry_user", "NATIVEARCH_REGISTRY_USER", "GITHUB_ACTOR"
        ),
    )

    # Build context
    build_context: Path = Path(".")
    dockerfile: Path = Path("Dockerfile")

    # Artifact exchange
    workspace: Path = Path(".nativearch")
    artifact_retention_days: int = 1

    # Tags and annotations
    default_branch: str = "main"
    extra_tags: list[str] = []
    image_description: str = "Multi-architecture image built on native runners"
    source_url: str = ""

    # Merge policy
    fail_on_inspect_error: bool = False

    # host class -> buildx builder name
    runner_builders: dict[str, str] = {}

    log_level: str = "INFO"

    @property
    def artifact_path(self) -> Path:
        return self.workspace / "artifacts"

    @property
    def resolved_source_url(self) -> str:
        if self.source_url:
            return self.source_url
        if self.owner_repo:
            return f"https://github.com/{self.owner_repo}"
        return ""

    def registry_config(self) -> RegistryConfig:
        """Build the explicit registry configuration passed to the stages."""
        if not self.owner_repo:
            raise ValueError(
                "owner_repo is not set; export NATIVEARCH_OWNER_REPO or GITHUB_REPOSITORY"
            )
        return RegistryConfig(
            registry_host=self.registry_host,
            owner_repo=self.owner_repo,
            credential=self.credential,
            username=self.registry_user,
        )
