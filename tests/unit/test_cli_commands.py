"""Unit tests for the CLI: Typer command registration and exit codes.

Commands are driven through typer.testing.CliRunner with the orchestrator
factory patched to one wired to in-process fakes.
"""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from nativearch.cli.app import app
from nativearch.cli.commands import _shared

runner = CliRunner()


@pytest.fixture
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path):
    for name in (
        "NATIVEARCH_OWNER_REPO",
        "GITHUB_REPOSITORY",
        "NATIVEARCH_LOG_LEVEL",
        "NATIVEARCH_RUN_ID",
        "GITHUB_RUN_ID",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    # keep table cells on one line under the runner's fake terminal
    monkeypatch.setattr(_shared.console, "width", 200)
    return monkeypatch


@pytest.fixture
def patched(isolated_env, make_orchestrator):
    """Route every command to an orchestrator built from fakes."""

    def _patch(**kwargs):
        orchestrator = make_orchestrator(**kwargs)
        isolated_env.setattr(_shared, "build_orchestrator", lambda settings: orchestrator)
        return orchestrator

    return _patch


class TestCliApp:
    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert result.exit_code in (0, 2)
        assert "Usage" in result.output or "usage" in result.output.lower()

    def test_help_lists_commands(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for name in ("platforms", "build", "merge", "run", "purge", "inspect"):
            assert name in result.output

    def test_platforms(self, isolated_env):
        result = runner.invoke(app, ["platforms"])
        assert result.exit_code == 0
        assert "linux/amd64" in result.output
        assert "ubuntu-24.04-arm" in result.output


class TestBuildCommand:
    def test_missing_owner_repo_is_config_error(self, isolated_env):
        result = runner.invoke(app, ["build", "linux/amd64"])
        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_build_success(self, patched):
        patched()
        result = runner.invoke(app, ["build", "linux/arm64", "--run-id", "42"])
        assert result.exit_code == 0, result.output
        assert "digests-linux-arm64" in result.output

    def test_unknown_platform_exits_nonzero(self, patched):
        patched()
        result = runner.invoke(app, ["build", "linux/s390x", "--run-id", "42"])
        assert result.exit_code == 1
        assert "not declared" in result.output

    def test_build_failure_exits_nonzero(self, patched, make_builder):
        patched(builder=make_builder(fail=["linux/amd64"]))
        result = runner.invoke(app, ["build", "linux/amd64", "--run-id", "42"])
        assert result.exit_code == 1

    def test_repeated_build_without_run_id(self, patched):
        patched()
        first = runner.invoke(app, ["build", "linux/amd64"])
        second = runner.invoke(app, ["build", "linux/amd64"])
        assert first.exit_code == 0, first.output
        assert second.exit_code == 0, second.output
        assert "Run id: na-" in first.output

    def test_run_id_from_ci_environment(self, patched, isolated_env):
        orchestrator = patched()
        isolated_env.setenv("GITHUB_RUN_ID", "1234")
        assert runner.invoke(app, ["build", "linux/amd64"]).exit_code == 0
        assert orchestrator.store_for("1234").list_names() == ["digests-linux-amd64"]


class TestMergeCommand:
    def test_build_jobs_then_merge(self, patched):
        orchestrator = patched()
        for platform in ("linux/amd64", "linux/arm64"):
            assert runner.invoke(app, ["build", platform, "--run-id", "7"]).exit_code == 0
        result = runner.invoke(app, ["merge", "--run-id", "7", "--ref", "refs/heads/main"])
        assert result.exit_code == 0, result.output
        assert orchestrator.manifest_tool.create_calls[0]["tags"] == [
            "ghcr.io/acme/multiarch-demo:main",
            "ghcr.io/acme/multiarch-demo:latest",
        ]

    def test_merge_without_artifacts_fails(self, patched):
        patched()
        result = runner.invoke(app, ["merge", "--run-id", "empty"])
        assert result.exit_code == 1

    def test_merge_requires_run_id(self, patched):
        orchestrator = patched()
        result = runner.invoke(app, ["merge"])
        assert result.exit_code == 1
        assert "run id is required" in result.output
        assert orchestrator.manifest_tool.create_calls == []


class TestRunCommand:
    def test_manual_run_succeeds(self, patched):
        patched()
        result = runner.invoke(app, ["run"])
        assert result.exit_code == 0, result.output
        assert "success" in result.output

    def test_push_without_watched_paths_is_skipped(self, patched):
        orchestrator = patched()
        result = runner.invoke(app, ["run", "--event", "push", "--path", "README.md"])
        assert result.exit_code == 0
        assert "skipped" in result.output
        assert orchestrator.manifest_tool.create_calls == []

    def test_failed_run_exits_nonzero(self, patched, make_builder):
        patched(builder=make_builder(fail=["linux/arm64"]))
        result = runner.invoke(app, ["run"])
        assert result.exit_code == 1


class TestHousekeeping:
    def test_purge_with_nothing_expired(self, isolated_env):
        result = runner.invoke(app, ["purge"])
        assert result.exit_code == 0
        assert "No expired artifacts" in result.output
