"""Final multi-platform manifest reference."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from nativearch.models.artifacts import BuildDigest


class ManifestReference(BaseModel):
    """A registry reference resolving per client to a platform image.

    ``platforms`` is informational; associating each digest with its
    platform is done by the external merge capability.
    """

    model_config = ConfigDict(frozen=True)

    image: str
    tags: list[str]
    digests: list[BuildDigest]
    annotations: dict[str, str] = {}
    platforms: list[str] = []

    @property
    def sources(self) -> list[str]:
        """``<image>@sha256:<hex>`` source references, one per digest."""
        return [f"{self.image}@{d.value}" for d in self.digests]

    @property
    def primary_tag(self) -> str:
        return self.tags[0]
