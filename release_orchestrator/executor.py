"""Dependency-graph scheduler for pipeline stages.

Stages declare the names of the stages or groups they need. A stage runs once
every dependency has succeeded; if any dependency ends in any other state the
stage is skipped without running. A dependency on a group is satisfied only
when every member of the group succeeded.

All runnable stages are started concurrently as asyncio tasks, with at most
``max_workers`` actions executing at once. A stage that waits in
:meth:`StageContext.get` for an unfinished producer gives up its worker slot
until the artifact settles. Blocking work inside an action should go through
:func:`asyncio.to_thread`.
"""

from __future__ import annotations

import asyncio
import dataclasses
import graphlib
import sys
import typing as typ

from .artifacts import ArtifactStore
from .errors import GraphError
from .models import Payload, RunStatus, Stage, StageKind, StageStatus
from .workflow_commands import emit_error

__all__ = [
    "GraphResult",
    "StageAction",
    "StageContext",
    "StageDefinition",
    "StageGraph",
]


@dataclasses.dataclass(slots=True)
class StageContext:
    """Handle passed to a running stage action.

    ``slot`` is the worker-pool semaphore the stage currently holds. It is
    handed back while the stage waits on an unfinished producer so the
    producer can be scheduled even when the pool is full.
    """

    stage: Stage
    store: ArtifactStore
    slot: asyncio.Semaphore | None = None

    def put(self, name: str, payload: Payload) -> None:
        """Publish ``payload`` as an artifact produced by this stage."""
        self.store.put(name, payload, self.stage.name, platform=self.stage.target)

    async def get(self, name: str) -> Payload:
        """Return the artifact ``name``, waiting for its producer if needed."""
        if self.slot is None or self.store.settled(name):
            return await self.store.get(name)
        self.slot.release()
        try:
            return await self.store.get(name)
        finally:
            await self.slot.acquire()


StageAction = typ.Callable[[StageContext], typ.Awaitable[None]]


@dataclasses.dataclass(frozen=True, slots=True)
class StageDefinition:
    """Static description of a stage before it is scheduled.

    Parameters
    ----------
    name : str
        Unique stage name within the graph.
    kind : StageKind
        Role of the stage in the pipeline.
    action : StageAction
        Coroutine function invoked with a :class:`StageContext`.
    needs : tuple[str, ...]
        Names of stages or groups that must succeed first.
    target : str | None
        Platform classifier for matrix-expanded stages.
    group : str | None
        Name of the group the stage belongs to, if any.
    outputs : tuple[str, ...]
        Artifact names this stage is the sole producer of.
    """

    name: str
    kind: StageKind
    action: StageAction
    needs: tuple[str, ...] = ()
    target: str | None = None
    group: str | None = None
    outputs: tuple[str, ...] = ()


@dataclasses.dataclass(slots=True)
class GraphResult:
    """Terminal state of every stage after :meth:`StageGraph.run`."""

    stages: dict[str, Stage]

    @property
    def status(self) -> RunStatus:
        """``succeeded`` only when every non-skipped stage succeeded."""
        if all(
            stage.status in {StageStatus.SUCCEEDED, StageStatus.SKIPPED}
            for stage in self.stages.values()
        ):
            return RunStatus.SUCCEEDED
        return RunStatus.FAILED

    def status_of(self, name: str) -> StageStatus:
        """Return the terminal status of stage ``name``."""
        return self.stages[name].status

    def members(self, group: str) -> list[Stage]:
        """Return the stages belonging to ``group`` in definition order."""
        return [stage for stage in self.stages.values() if stage.group == group]

    def failed(self) -> list[Stage]:
        """Return the stages that ran and failed."""
        return [stage for stage in self.stages.values() if stage.status is StageStatus.FAILED]


class StageGraph:
    """Validated set of stage definitions that can be executed once per run.

    Parameters
    ----------
    definitions : Iterable[StageDefinition]
        Stages to schedule.
    max_workers : int, default=4
        Upper bound on concurrently running stage actions.
    fail_fast : bool, default=True
        When ``True`` a failing group member prevents siblings that have not
        started yet from running; they are marked ``skipped``. Siblings that
        are already running finish, but the group is failed regardless.
    """

    def __init__(
        self,
        definitions: typ.Iterable[StageDefinition],
        *,
        max_workers: int = 4,
        fail_fast: bool = True,
    ) -> None:
        if max_workers < 1:
            message = f"max_workers must be at least 1, got {max_workers}"
            raise GraphError(message)
        self._definitions: dict[str, StageDefinition] = {}
        for definition in definitions:
            if definition.name in self._definitions:
                message = f"Duplicate stage name: {definition.name}"
                raise GraphError(message)
            self._definitions[definition.name] = definition
        self._groups: dict[str, list[str]] = {}
        for definition in self._definitions.values():
            if definition.group is not None:
                self._groups.setdefault(definition.group, []).append(definition.name)
        self.max_workers = max_workers
        self.fail_fast = fail_fast
        self._validate()

    @property
    def definitions(self) -> list[StageDefinition]:
        """Stage definitions in insertion order."""
        return list(self._definitions.values())

    @property
    def groups(self) -> dict[str, list[str]]:
        """Mapping of group name to member stage names."""
        return {name: list(members) for name, members in self._groups.items()}

    def dependencies_of(self, name: str) -> list[str]:
        """Return the stage names ``name`` depends on, with groups expanded."""
        expanded: list[str] = []
        for needed in self._definitions[name].needs:
            for member in self._groups.get(needed, [needed]):
                if member not in expanded:
                    expanded.append(member)
        return expanded

    def _validate(self) -> None:
        if collisions := sorted(self._groups.keys() & self._definitions.keys()):
            message = f"Group names collide with stage names: {', '.join(collisions)}"
            raise GraphError(message)
        for definition in self._definitions.values():
            unknown = [
                needed
                for needed in definition.needs
                if needed not in self._definitions and needed not in self._groups
            ]
            if unknown:
                message = f"Stage {definition.name!r} needs unknown stage(s): {', '.join(unknown)}"
                raise GraphError(message)
        sorter = graphlib.TopologicalSorter(
            {name: self.dependencies_of(name) for name in self._definitions}
        )
        try:
            sorter.prepare()
        except graphlib.CycleError as exc:
            cycle = " -> ".join(exc.args[1])
            message = f"Stage dependencies contain a cycle: {cycle}"
            raise GraphError(message) from exc

    async def run(self, store: ArtifactStore | None = None) -> GraphResult:
        """Execute every stage and return their terminal states."""
        store = store if store is not None else ArtifactStore()
        for definition in self._definitions.values():
            for output in definition.outputs:
                store.expect(output, definition.name)

        run = _GraphRun(
            graph=self,
            store=store,
            stages={
                definition.name: Stage(
                    name=definition.name,
                    kind=definition.kind,
                    dependencies=frozenset(self.dependencies_of(definition.name)),
                    target=definition.target,
                    group=definition.group,
                )
                for definition in self._definitions.values()
            },
            finished={name: asyncio.Event() for name in self._definitions},
            semaphore=asyncio.Semaphore(self.max_workers),
        )
        async with asyncio.TaskGroup() as tasks:
            for definition in self._definitions.values():
                tasks.create_task(run.drive(definition), name=definition.name)
        return GraphResult(run.stages)


@dataclasses.dataclass(slots=True)
class _GraphRun:
    """Mutable bookkeeping for a single :meth:`StageGraph.run` call."""

    graph: StageGraph
    store: ArtifactStore
    stages: dict[str, Stage]
    finished: dict[str, asyncio.Event]
    semaphore: asyncio.Semaphore

    async def drive(self, definition: StageDefinition) -> None:
        stage = self.stages[definition.name]
        try:
            for dependency in sorted(stage.dependencies):
                await self.finished[dependency].wait()
            if blocked := sorted(
                name
                for name in stage.dependencies
                if self.stages[name].status is not StageStatus.SUCCEEDED
            ):
                self._skip(stage, f"dependencies did not succeed: {', '.join(blocked)}")
                return
            async with self.semaphore:
                if self.graph.fail_fast and (failed := self._failed_sibling(stage)):
                    self._skip(stage, f"sibling {failed!r} failed")
                    return
                await self._execute(definition, stage)
        finally:
            if not stage.status.terminal:
                stage.status = StageStatus.FAILED
            self.store.settle(stage.name, stage.status)
            self.finished[stage.name].set()

    async def _execute(self, definition: StageDefinition, stage: Stage) -> None:
        stage.status = StageStatus.RUNNING
        print(f"Running stage '{stage.name}'")
        try:
            await definition.action(
                StageContext(stage=stage, store=self.store, slot=self.semaphore)
            )
        except Exception as exc:  # noqa: BLE001 - stage failures become status
            stage.status = StageStatus.FAILED
            stage.error = exc
            emit_error("Stage Failure", f"{stage.name}: {exc}")
            return
        stage.status = StageStatus.SUCCEEDED
        print(f"Stage '{stage.name}' succeeded")

    def _failed_sibling(self, stage: Stage) -> str | None:
        if stage.group is None:
            return None
        for sibling in self.stages.values():
            if sibling.group == stage.group and sibling.status is StageStatus.FAILED:
                return sibling.name
        return None

    @staticmethod
    def _skip(stage: Stage, reason: str) -> None:
        stage.status = StageStatus.SKIPPED
        print(f"Skipping stage '{stage.name}': {reason}", file=sys.stderr)
