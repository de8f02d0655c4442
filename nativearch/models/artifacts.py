"""Digest and digest-artifact models.

A digest artifact is a short-retention carrier of exactly one build
digest. The artifact name is derived from the platform label; the digest
itself travels as a filename.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from nativearch.core.hasher import DIGEST_ALGORITHM, is_sha256_hex, strip_algorithm
from nativearch.models.platforms import platform_label

ARTIFACT_PREFIX = "digests-"
DEFAULT_RETENTION_DAYS = 1


class InvalidDigestError(RuntimeError):
    """Raised when a value is not a well-formed ``sha256:<hex>`` digest."""


def artifact_name_for(platform_identifier: str) -> str:
    """Artifact name for one platform, e.g. ``digests-linux-amd64``."""
    return f"{ARTIFACT_PREFIX}{platform_label(platform_identifier)}"


class BuildDigest(BaseModel):
    """Content address of one platform-specific build output."""

    model_config = ConfigDict(frozen=True)

    value: str  # "sha256:<hex>"

    @field_validator("value")
    @classmethod
    def _check_format(cls, value: str) -> str:
        if not value.startswith(f"{DIGEST_ALGORITHM}:") or not is_sha256_hex(
            strip_algorithm(value)
        ):
            raise ValueError(f"Not a {DIGEST_ALGORITHM} digest: {value!r}")
        return value

    @classmethod
    def parse(cls, raw: str) -> BuildDigest:
        """Accept ``sha256:<hex>`` or a bare 64-char hex string."""
        candidate = raw.strip().lower()
        if is_sha256_hex(candidate):
            candidate = f"{DIGEST_ALGORITHM}:{candidate}"
        if not candidate.startswith(f"{DIGEST_ALGORITHM}:") or not is_sha256_hex(
            strip_algorithm(candidate)
        ):
            raise InvalidDigestError(f"Not a {DIGEST_ALGORITHM} digest: {raw!r}")
        return cls(value=candidate)

    @property
    def algorithm(self) -> str:
        return DIGEST_ALGORITHM

    @property
    def hex(self) -> str:
        return strip_algorithm(self.value)

    def __str__(self) -> str:
        return self.value


class DigestArtifact(BaseModel):
    """Named, retained carrier of one build digest."""

    model_config = ConfigDict(frozen=True)

    name: str
    platform: str
    digest: BuildDigest
    retention_days: int = DEFAULT_RETENTION_DAYS
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def _check_name(self) -> DigestArtifact:
        if any(sep in self.name for sep in ("/", "\\")):
            raise ValueError(f"Artifact name must not contain path separators: {self.name!r}")
        if self.retention_days < 1:
            raise ValueError("retention_days must be at least 1")
        return self

    @property
    def expires_at(self) -> datetime:
        return self.created_at + timedelta(days=self.retention_days)

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.now(timezone.utc)) >= self.expires_at
