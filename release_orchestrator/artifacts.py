"""Run-scoped, write-once artifact store shared between stages.

Each artifact name has exactly one declared producer. Readers suspend in
:meth:`ArtifactStore.get` until that producer reaches a terminal state, so a
payload is only ever observed after its producer has succeeded.

Usage
-----
The executor settles producers as stages finish::

    store = ArtifactStore()
    store.expect("ostrich-x86_64-unknown-linux-musl", producer="build[...]")
    ...
    payload = await store.get("ostrich-x86_64-unknown-linux-musl")
"""

from __future__ import annotations

import asyncio
import typing as typ

from .errors import ArtifactUnavailable, DuplicateArtifact, PipelineError
from .models import Artifact, Payload, StageStatus

__all__ = ["ArtifactStore"]


class ArtifactStore:
    """Write-once, many-reader store scoped to one pipeline run."""

    def __init__(self) -> None:
        self._artifacts: dict[str, Artifact] = {}
        self._producers: dict[str, str] = {}
        self._settled: dict[str, asyncio.Event] = {}
        self._outcomes: dict[str, StageStatus] = {}

    def expect(self, name: str, producer: str) -> None:
        """Declare that ``producer`` is the only stage allowed to write ``name``."""
        if (existing := self._producers.get(name)) is not None and existing != producer:
            message = (
                f"Artifact {name!r} already has producer {existing!r}; "
                f"cannot also be produced by {producer!r}"
            )
            raise DuplicateArtifact(message)
        self._producers[name] = producer
        self._settled.setdefault(producer, asyncio.Event())

    def put(
        self,
        name: str,
        payload: Payload,
        producer: str,
        *,
        platform: str | None = None,
    ) -> Artifact:
        """Store ``payload`` under ``name`` on behalf of ``producer``.

        Raises
        ------
        DuplicateArtifact
            If ``name`` has already been written during this run.
        PipelineError
            If ``producer`` is not the declared writer of ``name``.
        """
        if name in self._artifacts:
            previous = self._artifacts[name].producer
            message = f"Artifact {name!r} was already written by {previous!r}"
            raise DuplicateArtifact(message)
        declared = self._producers.setdefault(name, producer)
        if declared != producer:
            message = f"Stage {producer!r} may not write {name!r}; it belongs to {declared!r}"
            raise PipelineError(message)
        self._settled.setdefault(producer, asyncio.Event())
        artifact = Artifact(name=name, payload=payload, producer=producer, platform=platform)
        self._artifacts[name] = artifact
        return artifact

    def settle(self, producer: str, status: StageStatus) -> None:
        """Record the terminal ``status`` of ``producer`` and wake its readers."""
        if not status.terminal:
            message = f"Cannot settle {producer!r} with non-terminal status {status}"
            raise PipelineError(message)
        self._outcomes[producer] = status
        self._settled.setdefault(producer, asyncio.Event()).set()

    def settled(self, name: str) -> bool:
        """Return ``True`` when :meth:`get` for ``name`` would not suspend."""
        producer = self._producers.get(name)
        return producer is None or self._settled[producer].is_set()

    async def get(self, name: str) -> Payload:
        """Return the payload for ``name`` once its producer has finished.

        Raises
        ------
        ArtifactUnavailable
            If ``name`` has no declared producer, or the producer did not
            succeed, or it succeeded without writing ``name``.
        """
        return (await self.get_artifact(name)).payload

    async def get_artifact(self, name: str) -> Artifact:
        """Return the full :class:`Artifact` record for ``name``."""
        producer = self._producers.get(name)
        if producer is None:
            message = f"No stage produces artifact {name!r}"
            raise ArtifactUnavailable(message)
        await self._settled[producer].wait()
        outcome = self._outcomes[producer]
        if outcome is not StageStatus.SUCCEEDED:
            message = f"Artifact {name!r} is unavailable: producer {producer!r} {outcome}"
            raise ArtifactUnavailable(message)
        if (artifact := self._artifacts.get(name)) is None:
            message = f"Producer {producer!r} succeeded without writing {name!r}"
            raise ArtifactUnavailable(message)
        return artifact

    def names(self) -> list[str]:
        """Return the names of artifacts written so far, sorted."""
        return sorted(self._artifacts)

    def __contains__(self, name: object) -> bool:
        return name in self._artifacts

    def __iter__(self) -> typ.Iterator[Artifact]:
        return iter([self._artifacts[name] for name in self.names()])
