"""Tests for trigger detection."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from release_orchestrator import TriggerError, TriggerEvent, is_release_trigger, load_trigger


@pytest.mark.parametrize(
    ("ref", "expected"),
    [
        ("refs/tags/v1.2.3", True),
        ("refs/tags/v0.1.0-rc.1", True),
        ("refs/tags/release-1", False),
        ("refs/heads/main", False),
        ("refs/heads/v1.2.3", False),
    ],
)
def test_only_version_tags_activate(ref: str, expected: bool) -> None:
    """Branch pushes and non-version tags never start a release."""

    assert is_release_trigger(TriggerEvent(ref)) is expected


def test_custom_tag_pattern() -> None:
    """The tag pattern is configurable."""

    event = TriggerEvent("refs/tags/release-1")

    assert is_release_trigger(event, "release-*")
    assert event.tag_name() == "release-1"


def test_load_trigger_prefers_event_payload(tmp_path: Path) -> None:
    """The event payload's ref wins over ``GITHUB_REF``."""

    payload = tmp_path / "event.json"
    payload.write_text(json.dumps({"ref": "refs/tags/v2.0.0"}), encoding="utf-8")

    event = load_trigger({"GITHUB_EVENT_PATH": str(payload), "GITHUB_REF": "refs/heads/main"})

    assert event == TriggerEvent("refs/tags/v2.0.0")


def test_load_trigger_falls_back_to_ref_variable(tmp_path: Path) -> None:
    """Payloads without a ref defer to ``GITHUB_REF``."""

    payload = tmp_path / "event.json"
    payload.write_text(json.dumps({"action": "published"}), encoding="utf-8")

    event = load_trigger({"GITHUB_EVENT_PATH": str(payload), "GITHUB_REF": "refs/tags/v1.0.0"})

    assert event.tag_name() == "v1.0.0"


def test_load_trigger_rejects_unreadable_payload(tmp_path: Path) -> None:
    """A malformed payload is reported rather than ignored."""

    payload = tmp_path / "event.json"
    payload.write_text("{not json", encoding="utf-8")

    with pytest.raises(TriggerError, match="Cannot read trigger payload"):
        load_trigger({"GITHUB_EVENT_PATH": str(payload)})


def test_load_trigger_requires_a_ref() -> None:
    """An environment without any ref cannot describe a trigger."""

    with pytest.raises(TriggerError, match="does not define a ref"):
        load_trigger({})
