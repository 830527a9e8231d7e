"""Build stage driver: run the external build and capture its output."""

from __future__ import annotations

import asyncio
import dataclasses
import typing as typ
from pathlib import Path

from plumbum import local
from plumbum.commands import CommandNotFound, ProcessExecutionError

from .config import PipelineConfig, render_template
from .errors import BuildError
from .executor import StageAction, StageContext
from .models import BuildInputs, Bundle, Payload
from .packaging import PackagingPolicy

__all__ = [
    "BuildCommand",
    "BuildStage",
    "CommitInfo",
    "read_commit_info",
    "run_build_command",
    "snapshot_output",
]

_STDERR_TAIL = 20


class BuildCommand(typ.Protocol):
    """Callable that runs one external build and raises on failure."""

    def __call__(
        self, argv: typ.Sequence[str], environment: typ.Mapping[str, str], cwd: Path
    ) -> None:
        """Run ``argv`` in ``cwd`` with ``environment`` added."""


@dataclasses.dataclass(frozen=True, slots=True)
class CommitInfo:
    """Commit metadata exported to every build."""

    hash: str
    date: str


def _resolve_program(program: str, cwd: Path) -> str:
    if "/" in program and not Path(program).is_absolute():
        return (cwd / program).as_posix()
    return program


def run_build_command(
    argv: typ.Sequence[str], environment: typ.Mapping[str, str], cwd: Path
) -> None:
    """Run ``argv`` with ``plumbum`` and raise :class:`BuildError` on failure.

    Relative program paths such as ``./scripts/build_cross.sh`` resolve
    against ``cwd`` rather than the process working directory.
    """
    if not argv:
        message = "Build command is empty"
        raise BuildError(message)
    program, *arguments = argv
    try:
        command = local[_resolve_program(program, cwd)]
    except CommandNotFound as exc:
        message = f"Build program not found: {program}"
        raise BuildError(message) from exc
    bound = command[arguments].with_env(**environment).with_cwd(cwd)
    try:
        stdout = bound()
    except ProcessExecutionError as exc:
        tail = "\n".join(str(exc.stderr).splitlines()[-_STDERR_TAIL:])
        message = f"Build command {' '.join(argv)!r} exited with {exc.retcode}: {tail}"
        raise BuildError(message) from exc
    if stdout:
        print(stdout, end="" if stdout.endswith("\n") else "\n")


def read_commit_info(workspace: Path) -> CommitInfo:
    """Return the abbreviated hash and committer date of ``HEAD``."""
    try:
        git = local["git"].with_cwd(workspace)
        commit_hash = git["log", "--pretty=format:%h", "-n", "1"]().strip()
        commit_date = git["log", "--format=%ci", "-n", "1"]().strip()
    except (CommandNotFound, ProcessExecutionError) as exc:
        message = f"Cannot read commit metadata in {workspace}: {exc}"
        raise BuildError(message) from exc
    return CommitInfo(hash=commit_hash, date=commit_date)


def snapshot_output(path: Path) -> Payload:
    """Capture the build output at ``path`` as an immutable payload.

    Files become ``bytes`` and directories become a :class:`Bundle`.

    Raises
    ------
    BuildError
        If ``path`` is missing or empty.
    """
    if path.is_file():
        if not (data := path.read_bytes()):
            message = f"Build output {path} is empty"
            raise BuildError(message)
        return data
    if path.is_dir():
        bundle = Bundle.from_directory(path)
        if not len(bundle):
            message = f"Build output directory {path} contains no files"
            raise BuildError(message)
        return bundle
    message = f"Build did not produce {path}"
    raise BuildError(message)


@dataclasses.dataclass(slots=True)
class BuildStage:
    """Builds one target per matrix instance and stores the raw artifact."""

    config: PipelineConfig
    policy: PackagingPolicy
    commit: CommitInfo
    runner: BuildCommand = run_build_command

    def artifact_name(self, target: str) -> str:
        """Return the artifact name ``target``'s build writes."""
        return self.policy.rule_for(target).artifact_name(self.config.product, target)

    def outputs_for(self, target: str) -> tuple[str, ...]:
        return (self.artifact_name(target),)

    def action_for(self, target: str) -> StageAction:
        async def build(context: StageContext) -> None:
            await self.build(context, target)

        return build

    async def build(self, context: StageContext, target: str) -> None:
        """Run the build for ``target`` and publish its artifact."""
        target_config = self.config.target(target)
        artifact_name = self.artifact_name(target)
        template_context = self.config.template_context(target, artifact_name)
        argv = [render_template(part, template_context) for part in target_config.build_command]
        inputs = BuildInputs(
            commit_hash=self.commit.hash,
            commit_date=self.commit.date,
            target_triple=target,
        )
        workspace = self.config.workspace
        await asyncio.to_thread(self.runner, argv, inputs.as_environment(), workspace)
        output_path = workspace / render_template(target_config.artifact_path, template_context)
        payload = await asyncio.to_thread(snapshot_output, output_path)
        context.put(artifact_name, payload)
        print(f"Captured '{output_path}' as '{artifact_name}'")
