"""Trigger events that activate the release pipeline."""

from __future__ import annotations

import dataclasses
import fnmatch
import json
import typing as typ
from pathlib import Path

from .errors import TriggerError

__all__ = ["TAG_PREFIX", "TriggerEvent", "is_release_trigger", "load_trigger"]

TAG_PREFIX = "refs/tags/"


@dataclasses.dataclass(frozen=True, slots=True)
class TriggerEvent:
    """Push event descriptor; only ``ref`` matters to the pipeline."""

    ref: str

    @property
    def is_tag(self) -> bool:
        """``True`` when :attr:`ref` names a tag."""
        return self.ref.startswith(TAG_PREFIX)

    def tag_name(self) -> str:
        """Return the tag name without the ``refs/tags/`` prefix.

        Examples
        --------
        >>> TriggerEvent("refs/tags/v1.2.3").tag_name()
        'v1.2.3'
        """
        return self.ref.removeprefix(TAG_PREFIX)


def is_release_trigger(event: TriggerEvent, pattern: str = "v*") -> bool:
    """Return ``True`` when ``event`` is a tag push matching ``pattern``."""
    return event.is_tag and fnmatch.fnmatchcase(event.tag_name(), pattern)


def load_trigger(environ: typ.Mapping[str, str]) -> TriggerEvent:
    """Return the trigger described by the GitHub Actions environment.

    The event payload referenced by ``GITHUB_EVENT_PATH`` wins; ``GITHUB_REF``
    is used when no payload is available or it carries no ``ref``.

    Raises
    ------
    TriggerError
        If the payload is unreadable or no ref can be determined.
    """
    ref: object = None
    if event_path := environ.get("GITHUB_EVENT_PATH"):
        try:
            payload = json.loads(Path(event_path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            message = f"Cannot read trigger payload {event_path}: {exc}"
            raise TriggerError(message) from exc
        if isinstance(payload, dict):
            ref = payload.get("ref")
    if not ref:
        ref = environ.get("GITHUB_REF")
    if not isinstance(ref, str) or not ref:
        message = "Trigger event does not define a ref"
        raise TriggerError(message)
    return TriggerEvent(ref=ref)
