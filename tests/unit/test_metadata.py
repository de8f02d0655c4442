"""Tests for tag policy, OCI annotations and trigger filtering."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from nativearch.core.metadata import (
    OCI_CREATED,
    OCI_DESCRIPTION,
    OCI_REVISION,
    OCI_SOURCE,
    TagPolicy,
    oci_annotations,
    oci_labels,
    sanitize_tag,
    utc_timestamp,
)
from nativearch.core.triggers import EventKind, TriggerEvent, TriggerPolicy

IMAGE = "ghcr.io/acme/demo"


def _push(ref: str, *paths: str) -> TriggerEvent:
    return TriggerEvent(kind=EventKind.PUSH, ref=ref, changed_paths=paths)


class TestTagPolicy:
    def test_default_branch_gets_latest(self):
        tags = TagPolicy().tags_for(IMAGE, _push("refs/heads/main"))
        assert tags == [f"{IMAGE}:main", f"{IMAGE}:latest"]

    def test_other_branch_is_sanitized(self):
        tags = TagPolicy().tags_for(IMAGE, _push("refs/heads/feature/arm64"))
        assert tags == [f"{IMAGE}:feature-arm64"]

    def test_git_tag_ref(self):
        tags = TagPolicy().tags_for(IMAGE, _push("refs/tags/v1.2.0"))
        assert tags == [f"{IMAGE}:v1.2.0"]

    def test_extra_tags_are_deduplicated(self):
        policy = TagPolicy(extra_tags=["nightly", "latest"])
        tags = policy.tags_for(IMAGE, _push("refs/heads/main"))
        assert tags == [f"{IMAGE}:main", f"{IMAGE}:latest", f"{IMAGE}:nightly"]

    def test_unrecognized_ref_falls_back_to_latest(self):
        tags = TagPolicy().tags_for(IMAGE, _push("refs/pull/7/merge"))
        assert tags == [f"{IMAGE}:latest"]

    @pytest.mark.parametrize(
        "raw, expected",
        [("main", "main"), ("a/b", "a-b"), (".hidden", "hidden"), ("", "latest")],
    )
    def test_sanitize_tag(self, raw: str, expected: str):
        assert sanitize_tag(raw) == expected

    def test_sanitize_tag_truncates(self):
        assert len(sanitize_tag("x" * 300)) == 128


class TestAnnotations:
    def test_exactly_three_annotations(self):
        created = datetime(2026, 3, 4, 5, 6, 7, tzinfo=timezone.utc)
        annotations = oci_annotations("demo image", "https://github.com/acme/demo", created)
        assert annotations == {
            OCI_DESCRIPTION: "demo image",
            OCI_CREATED: "2026-03-04T05:06:07Z",
            OCI_SOURCE: "https://github.com/acme/demo",
        }

    def test_created_defaults_to_now(self):
        before = datetime.now(timezone.utc).replace(microsecond=0)
        annotations = oci_annotations(description="d", source="https://x.test")
        created = datetime.strptime(annotations[OCI_CREATED], "%Y-%m-%dT%H:%M:%SZ")
        assert created.replace(tzinfo=timezone.utc) >= before
        assert annotations[OCI_SOURCE] == "https://x.test"

    def test_labels_carry_revision(self):
        labels = oci_labels("d", "s", revision="abc123")
        assert labels[OCI_REVISION] == "abc123"
        assert OCI_REVISION not in oci_labels("d", "s")

    def test_utc_timestamp_format(self):
        assert utc_timestamp(datetime(2026, 1, 2, tzinfo=timezone.utc)) == "2026-01-02T00:00:00Z"


class TestTriggers:
    def test_manual_dispatch_always_runs(self):
        event = TriggerEvent(kind=EventKind.WORKFLOW_DISPATCH)
        assert TriggerPolicy().should_run(event)

    def test_push_touching_dockerfile_runs(self):
        assert TriggerPolicy().should_run(_push("refs/heads/main", "README.md", "Dockerfile"))

    def test_push_touching_workflow_runs(self):
        assert TriggerPolicy().should_run(
            _push("refs/heads/main", ".github/workflows/multiarch.yml")
        )

    def test_push_elsewhere_is_ignored(self):
        assert not TriggerPolicy().should_run(_push("refs/heads/main", "docs/index.md"))
        assert not TriggerPolicy().should_run(_push("refs/heads/main"))

    def test_custom_patterns(self):
        policy = TriggerPolicy(paths=["docker/*"])
        assert policy.matches_path("docker/Dockerfile.arm")
        assert not policy.matches_path("Dockerfile")

    def test_branch_property(self):
        assert _push("refs/heads/dev").branch == "dev"
        assert _push("refs/tags/v1").branch is None
