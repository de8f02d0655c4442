"""Tag and OCI annotation/label metadata for the published image."""

from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import datetime, timezone

from nativearch.core.triggers import TriggerEvent

OCI_DESCRIPTION = "org.opencontainers.image.description"
OCI_CREATED = "org.opencontainers.image.created"
OCI_SOURCE = "org.opencontainers.image.source"
OCI_REVISION = "org.opencontainers.image.revision"

_TAG_INVALID = re.compile(r"[^A-Za-z0-9_.-]")
_TAG_MAX = 128


def sanitize_tag(value: str) -> str:
    """Coerce *value* into a valid image tag."""
    tag = _TAG_INVALID.sub("-", value)[:_TAG_MAX]
    tag = tag.lstrip(".-")
    return tag or "latest"


class TagPolicy:
    """Minimal tag rules: branch name, ``latest`` on the default branch, git tags.

    Parameters
    ----------
    default_branch:
        Branch whose builds also receive ``latest``.
    extra_tags:
        Additional tags appended to every run.
    """

    def __init__(self, default_branch: str = "main", extra_tags: Sequence[str] = ()) -> None:
        self.default_branch = default_branch
        self.extra_tags = list(extra_tags)

    def tags_for(self, image: str, event: TriggerEvent) -> list[str]:
        names: list[str] = []
        if event.branch is not None:
            names.append(sanitize_tag(event.branch))
            if event.branch == self.default_branch:
                names.append("latest")
        elif event.ref.startswith("refs/tags/"):
            names.append(sanitize_tag(event.ref.removeprefix("refs/tags/")))
        names.extend(sanitize_tag(t) for t in self.extra_tags)
        if not names:
            names.append("latest")

        tags: list[str] = []
        for name in names:
            tag = f"{image}:{name}"
            if tag not in tags:
                tags.append(tag)
        return tags


def utc_timestamp(now: datetime | None = None) -> str:
    moment = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


def oci_annotations(
    description: str, source: str, created: datetime | None = None
) -> dict[str, str]:
    """The three descriptive annotations attached to the manifest list."""
    return {
        OCI_DESCRIPTION: description,
        OCI_CREATED: utc_timestamp(created),
        OCI_SOURCE: source,
    }


def oci_labels(
    description: str, source: str, revision: str = "", created: datetime | None = None
) -> dict[str, str]:
    """Image labels applied to each per-platform build."""
    labels = oci_annotations(description, source, created)
    if revision:
        labels[OCI_REVISION] = revision
    return labels
