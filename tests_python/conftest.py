"""Shared fixtures for the release pipeline test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from pipeline_test_helpers import FakeReleaseHost, ScriptedBuild


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Create an isolated workspace and set ``GITHUB_WORKSPACE`` accordingly."""
    root = tmp_path / "workspace"
    root.mkdir()
    monkeypatch.setenv("GITHUB_WORKSPACE", str(root))
    return root


@pytest.fixture
def host() -> FakeReleaseHost:
    """Return an empty in-memory release host."""
    return FakeReleaseHost()


@pytest.fixture
def scripted_build() -> ScriptedBuild:
    """Return a build command that succeeds for every target."""
    return ScriptedBuild()
