"""End-to-end tests for the release pipeline."""

from __future__ import annotations

import gzip
import io
import zipfile
from pathlib import Path

import pytest

from pipeline_test_helpers import FakeReleaseHost, ScriptedBuild, make_config
from release_orchestrator import (
    AssetCollision,
    CommitInfo,
    Compression,
    PackagingPolicy,
    PackagingRule,
    ReleasePipeline,
    RunStatus,
    StageStatus,
    TriggerEvent,
)
from release_orchestrator.pipeline import report_lines

COMMIT = CommitInfo(hash="abc1234", date="2024-01-01 00:00:00 +0000")
TAG_PUSH = TriggerEvent("refs/tags/v1.2.3")
LINUX = "x86_64-unknown-linux-musl"
WINDOWS = "x86_64-pc-windows-gnu"


def _pipeline(
    workspace: Path,
    targets: list[str],
    host: FakeReleaseHost,
    build: ScriptedBuild,
    **overrides: object,
) -> ReleasePipeline:
    return ReleasePipeline(
        make_config(workspace, targets, **overrides),
        host,
        build_runner=build,
        commit=COMMIT,
    )


def test_tag_push_builds_releases_and_publishes(
    workspace: Path, host: FakeReleaseHost, scripted_build: ScriptedBuild
) -> None:
    """A version tag yields one release carrying one asset per target."""

    pipeline = _pipeline(workspace, [LINUX, WINDOWS], host, scripted_build)

    report = pipeline.run(TAG_PUSH)

    assert report is not None
    assert report.status is RunStatus.SUCCEEDED
    assert host.create_calls == ["v1.2.3"]
    assert host.asset_names("v1.2.3") == {
        "ostrich-x86_64-unknown-linux-musl.gz",
        "ostrich-x86_64-pc-windows-gnu.zip",
    }
    assert report.asset_names == [
        "ostrich-x86_64-pc-windows-gnu.zip",
        "ostrich-x86_64-unknown-linux-musl.gz",
    ]
    assert report.release is not None
    assert report.release.tag == "v1.2.3"
    assert set(report.stages.values()) == {StageStatus.SUCCEEDED}

    linux_asset, _ = host.assets["v1.2.3"]["ostrich-x86_64-unknown-linux-musl.gz"]
    assert gzip.decompress(linux_asset) == f"binary for {LINUX}".encode()
    windows_asset, _ = host.assets["v1.2.3"]["ostrich-x86_64-pc-windows-gnu.zip"]
    with zipfile.ZipFile(io.BytesIO(windows_asset)) as archive:
        assert archive.namelist() == ["ostrich-x86_64-pc-windows-gnu.exe"]


def test_failed_build_prevents_release(workspace: Path, host: FakeReleaseHost) -> None:
    """If any leg fails no release is created and nothing is uploaded."""

    build = ScriptedBuild(failures={"aarch64-unknown-linux-musl"})
    targets = [LINUX, "aarch64-unknown-linux-musl", WINDOWS]
    pipeline = _pipeline(workspace, targets, host, build)

    report = pipeline.run(TriggerEvent("refs/tags/v1.3.0"))

    assert report is not None
    assert report.status is RunStatus.FAILED
    assert host.create_calls == []
    assert host.asset_names("v1.3.0") == set()
    assert report.release is None
    assert report.published == []
    assert report.stages["build[aarch64-unknown-linux-musl]"] is StageStatus.FAILED
    assert report.stages["create-release"] is StageStatus.SKIPPED
    assert all(
        status is StageStatus.SKIPPED
        for name, status in report.stages.items()
        if name.startswith("publish[")
    )
    assert "build for aarch64-unknown-linux-musl failed" in report.errors[
        "build[aarch64-unknown-linux-musl]"
    ]


def test_fail_isolated_builds_every_target(workspace: Path, host: FakeReleaseHost) -> None:
    """Without fail-fast every healthy leg still builds."""

    build = ScriptedBuild(failures={LINUX})
    targets = [LINUX, "aarch64-unknown-linux-musl", WINDOWS]
    pipeline = _pipeline(workspace, targets, host, build, max_workers=1, fail_fast=False)

    report = pipeline.run(TAG_PUSH)

    assert report is not None
    assert sorted(build.targets) == sorted(targets)
    assert report.stages[f"build[{WINDOWS}]"] is StageStatus.SUCCEEDED
    assert report.status is RunStatus.FAILED
    assert host.create_calls == []


def test_redelivered_trigger_reuses_release(
    workspace: Path, host: FakeReleaseHost, scripted_build: ScriptedBuild
) -> None:
    """Running twice for the same tag keeps exactly one release."""

    pipeline = _pipeline(workspace, [LINUX, WINDOWS], host, scripted_build)

    first = pipeline.run(TAG_PUSH)
    second = pipeline.run(TAG_PUSH)

    assert first is not None
    assert second is not None
    assert host.create_calls == ["v1.2.3"]
    assert list(host.releases) == ["v1.2.3"]
    assert second.status is RunStatus.SUCCEEDED
    assert second.release == first.release
    assert host.asset_names("v1.2.3") == set(first.asset_names)


def test_bundles_are_published_as_zips(
    workspace: Path, host: FakeReleaseHost, scripted_build: ScriptedBuild
) -> None:
    """Framework bundles are archived under their directory name."""

    pipeline = _pipeline(workspace, ["apple-xcframework", "android-libs"], host, scripted_build)

    report = pipeline.run(TAG_PUSH)

    assert report is not None
    assert report.asset_names == ["ostrich-android-libs.zip", "ostrich.xcframework.zip"]
    payload, _ = host.assets["v1.2.3"]["ostrich.xcframework.zip"]
    with zipfile.ZipFile(io.BytesIO(payload)) as archive:
        assert archive.namelist() == [
            "ostrich.xcframework/Info.plist",
            "ostrich.xcframework/lib/libostrich.a",
        ]


def test_failed_upload_reports_partial_release(
    workspace: Path, scripted_build: ScriptedBuild
) -> None:
    """A release missing some assets is reported as partial."""

    host = FakeReleaseHost(fail_uploads={"ostrich-x86_64-pc-windows-gnu.zip"})
    pipeline = _pipeline(workspace, [LINUX, WINDOWS], host, scripted_build)

    report = pipeline.run(TAG_PUSH)

    assert report is not None
    assert report.status is RunStatus.PARTIAL
    assert report.release is not None
    assert host.asset_names("v1.2.3") == {"ostrich-x86_64-unknown-linux-musl.gz"}
    assert report.stages[f"publish[{WINDOWS}]"] is StageStatus.FAILED
    assert report.stages[f"publish[{LINUX}]"] is StageStatus.SUCCEEDED


def test_release_failure_skips_publishing(workspace: Path, scripted_build: ScriptedBuild) -> None:
    """If the release cannot be created nothing is uploaded."""

    host = FakeReleaseHost(fail_create=True)
    pipeline = _pipeline(workspace, [LINUX], host, scripted_build)

    report = pipeline.run(TAG_PUSH)

    assert report is not None
    assert report.status is RunStatus.FAILED
    assert report.stages["create-release"] is StageStatus.FAILED
    assert report.stages[f"publish[{LINUX}]"] is StageStatus.SKIPPED
    assert host.assets == {}


@pytest.mark.parametrize(
    "ref",
    ["refs/heads/main", "refs/tags/nightly", "refs/pull/7/merge"],
)
def test_non_release_refs_do_nothing(
    workspace: Path, host: FakeReleaseHost, scripted_build: ScriptedBuild, ref: str
) -> None:
    """Branch pushes and unrelated tags never build or release."""

    pipeline = _pipeline(workspace, [LINUX], host, scripted_build)

    assert pipeline.run(TriggerEvent(ref)) is None
    assert scripted_build.calls == []
    assert host.find_calls == []


def test_asset_collisions_abort_before_building(
    workspace: Path, host: FakeReleaseHost, scripted_build: ScriptedBuild
) -> None:
    """Two targets mapping to one asset name fail before any build runs."""

    policy = PackagingPolicy(
        [("*", PackagingRule("{product}-{target}", "{product}.gz", Compression.GZIP))]
    )
    pipeline = ReleasePipeline(
        make_config(workspace, [LINUX, "aarch64-unknown-linux-musl"]),
        host,
        policy=policy,
        build_runner=scripted_build,
        commit=COMMIT,
    )

    with pytest.raises(AssetCollision):
        pipeline.run(TAG_PUSH)
    assert scripted_build.calls == []


def test_plan_describes_stage_graph(
    workspace: Path, host: FakeReleaseHost, scripted_build: ScriptedBuild
) -> None:
    """The dry-run plan lists stages, dependencies and asset names."""

    pipeline = _pipeline(workspace, [LINUX, WINDOWS], host, scripted_build)

    lines = pipeline.plan(TAG_PUSH)

    assert lines[0] == "Release v1.2.3 from refs/tags/v1.2.3:"
    assert f"  - build[{LINUX}]" in lines
    assert f"  - create-release (after build[{LINUX}], build[{WINDOWS}])" in lines
    assert f"  - publish[{WINDOWS}] (after create-release)" in lines
    assert lines[-2:] == [
        "  - ostrich-x86_64-pc-windows-gnu.zip",
        "  - ostrich-x86_64-unknown-linux-musl.gz",
    ]
    assert scripted_build.calls == []
    assert host.create_calls == []


def test_report_lines_summarise_run(
    workspace: Path, host: FakeReleaseHost, scripted_build: ScriptedBuild
) -> None:
    """The summary names the outcome of every stage and upload."""

    report = _pipeline(workspace, [LINUX], host, scripted_build).run(TAG_PUSH)

    assert report is not None
    lines = list(report_lines(report))
    assert lines[0] == "Release v1.2.3: succeeded"
    assert "  succeeded create-release" in lines
    uploaded = "  uploaded  ostrich-x86_64-unknown-linux-musl.gz"
    assert any(line.startswith(uploaded) for line in lines)
