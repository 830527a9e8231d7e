"""Behavioural tests for the release CLI entry point."""

from __future__ import annotations

import functools
from pathlib import Path

import pytest

from pipeline_test_helpers import FakeReleaseHost, ScriptedBuild, decode_output_file
from release_orchestrator import CommitInfo, ReleasePipeline, cli

COMMIT = CommitInfo(hash="abc1234", date="2024-01-01 00:00:00 +0000")

CONFIG = """\
[common]
product = "ostrich"
build_command = ["build", "--target", "{target}"]

[targets.x86_64-unknown-linux-musl]

[targets.x86_64-pc-windows-gnu]
"""


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Write a two-target pipeline configuration."""
    path = tmp_path / "release-pipeline.toml"
    path.write_text(CONFIG, encoding="utf-8")
    return path


@pytest.fixture
def github_env(workspace: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Simulate a tag push and return the ``GITHUB_OUTPUT`` path."""
    output_file = tmp_path / "github-output.txt"
    monkeypatch.delenv("GITHUB_EVENT_PATH", raising=False)
    monkeypatch.setenv("GITHUB_REF", "refs/tags/v1.2.3")
    monkeypatch.setenv("GITHUB_OUTPUT", str(output_file))
    return output_file


def _install_fakes(
    monkeypatch: pytest.MonkeyPatch, host: FakeReleaseHost, build: ScriptedBuild
) -> None:
    monkeypatch.setattr(cli, "GitHubCliHost", lambda repository=None: host)
    monkeypatch.setattr(
        cli,
        "ReleasePipeline",
        functools.partial(ReleasePipeline, build_runner=build, commit=COMMIT),
    )


def test_cli_publishes_release_and_writes_outputs(
    config_file: Path,
    github_env: Path,
    host: FakeReleaseHost,
    scripted_build: ScriptedBuild,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """A tag push runs the pipeline and exports its outputs."""

    _install_fakes(monkeypatch, host, scripted_build)

    cli.main(config_file)

    outputs = decode_output_file(github_env)
    assert outputs["run_status"] == "succeeded"
    assert outputs["release_tag"] == "v1.2.3"
    assert outputs["published_assets"].splitlines() == [
        "ostrich-x86_64-pc-windows-gnu.zip",
        "ostrich-x86_64-unknown-linux-musl.gz",
    ]
    stdout = capsys.readouterr().out
    assert "::group::Release summary" in stdout
    assert "Release v1.2.3: succeeded" in stdout


def test_cli_exits_non_zero_when_build_fails(
    config_file: Path,
    github_env: Path,
    host: FakeReleaseHost,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Failed runs annotate the failing stage and exit with status 1."""

    _install_fakes(monkeypatch, host, ScriptedBuild(failures={"x86_64-pc-windows-gnu"}))

    with pytest.raises(SystemExit) as exc_info:
        cli.main(config_file)

    assert exc_info.value.code == 1
    assert decode_output_file(github_env)["run_status"] == "failed"
    stderr = capsys.readouterr().err
    assert "::error title=Release Failure::build[x86_64-pc-windows-gnu]" in stderr
    assert host.create_calls == []


def test_cli_warns_about_partial_release(
    config_file: Path,
    github_env: Path,
    scripted_build: ScriptedBuild,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """A release missing assets is flagged and fails the job."""

    host = FakeReleaseHost(fail_uploads={"ostrich-x86_64-pc-windows-gnu.zip"})
    _install_fakes(monkeypatch, host, scripted_build)

    with pytest.raises(SystemExit):
        cli.main(config_file)

    assert decode_output_file(github_env)["run_status"] == "partial"
    assert "::warning title=Partial Release::" in capsys.readouterr().err


def test_cli_ignores_branch_pushes(
    config_file: Path,
    github_env: Path,
    host: FakeReleaseHost,
    scripted_build: ScriptedBuild,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Non-release refs exit cleanly without doing any work."""

    monkeypatch.setenv("GITHUB_REF", "refs/heads/main")
    _install_fakes(monkeypatch, host, scripted_build)

    cli.main(config_file)

    assert "nothing to release" in capsys.readouterr().err
    assert scripted_build.calls == []
    assert not github_env.exists()


def test_cli_dry_run_prints_plan(
    config_file: Path,
    github_env: Path,
    host: FakeReleaseHost,
    scripted_build: ScriptedBuild,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """``--dry-run`` reports the plan without building or releasing."""

    _install_fakes(monkeypatch, host, scripted_build)

    cli.main(config_file, dry_run=True)

    stdout = capsys.readouterr().out
    assert "::group::Release plan" in stdout
    assert "  - ostrich-x86_64-unknown-linux-musl.gz" in stdout
    assert scripted_build.calls == []
    assert host.find_calls == []


def test_cli_reports_missing_configuration(
    tmp_path: Path,
    github_env: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """A missing configuration file is reported as a workflow error."""

    with pytest.raises(SystemExit) as exc_info:
        cli.main(tmp_path / "absent.toml")

    assert exc_info.value.code == 1
    assert "::error title=Release Failure::Configuration file not found" in capsys.readouterr().err


def test_cli_requires_trigger(
    config_file: Path,
    workspace: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Without a trigger ref the CLI fails instead of guessing."""

    monkeypatch.delenv("GITHUB_EVENT_PATH", raising=False)
    monkeypatch.delenv("GITHUB_REF", raising=False)

    with pytest.raises(SystemExit):
        cli.main(config_file)

    assert "does not define a ref" in capsys.readouterr().err
