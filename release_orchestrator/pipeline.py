"""Release pipeline: parallel builds, one release, parallel publishing.

The stage graph has a fixed shape::

    build[<target>] ... ──▶ create-release ──▶ publish[<target>] ...

Every build leg must succeed before the release is created, and publish legs
only start once the release exists.
"""

from __future__ import annotations

import asyncio
import dataclasses
import typing as typ

from .artifacts import ArtifactStore
from .build import BuildCommand, BuildStage, CommitInfo, read_commit_info, run_build_command
from .config import PipelineConfig
from .executor import GraphResult, StageContext, StageDefinition, StageGraph
from .hosting import ReleaseHost
from .matrix import StageTemplate, expand_matrix
from .models import Release, RunStatus, StageKind, StageStatus
from .packaging import PackagingPolicy
from .publish import PublishedAsset, PublishStage, plan_assets
from .release import UPLOAD_ENDPOINT_ARTIFACT, ReleaseGate
from .trigger import TriggerEvent, is_release_trigger

__all__ = [
    "BUILD_GROUP",
    "PUBLISH_GROUP",
    "RELEASE_STAGE",
    "PipelineRun",
    "ReleasePipeline",
    "RunReport",
    "report_lines",
]

BUILD_GROUP = "build"
RELEASE_STAGE = "create-release"
PUBLISH_GROUP = "publish"


@dataclasses.dataclass(slots=True)
class RunReport:
    """Summary of a finished pipeline run."""

    trigger_ref: str
    tag: str
    status: RunStatus
    stages: dict[str, StageStatus]
    release: Release | None = None
    published: list[PublishedAsset] = dataclasses.field(default_factory=list)
    errors: dict[str, str] = dataclasses.field(default_factory=dict)

    @property
    def asset_names(self) -> list[str]:
        """Names of the uploaded assets, sorted."""
        return sorted(asset.name for asset in self.published)


class PipelineRun:
    """State for one activation of the pipeline by a tag push.

    Owns the run-scoped artifact store, the release gate and the stage graph.
    """

    def __init__(
        self,
        pipeline: ReleasePipeline,
        event: TriggerEvent,
        commit: CommitInfo,
    ) -> None:
        config = pipeline.config
        self.trigger_ref = event.ref
        self.tag = event.tag_name()
        self.store = ArtifactStore()
        self.gate = ReleaseGate(
            pipeline.host,
            self.store,
            producer=RELEASE_STAGE,
            draft=config.draft,
            prerelease=config.prerelease,
        )
        self.builder = BuildStage(
            config=config,
            policy=pipeline.policy,
            commit=commit,
            runner=pipeline.build_runner,
        )
        self.publisher = PublishStage(
            product=config.product,
            policy=pipeline.policy,
            host=pipeline.host,
            collision=config.asset_collision,
        )
        targets = config.target_names()
        build_stages = expand_matrix(
            StageTemplate(
                name=BUILD_GROUP,
                kind=StageKind.BUILD,
                action_for=self.builder.action_for,
                outputs_for=self.builder.outputs_for,
            ),
            targets,
        )
        gate_stage = StageDefinition(
            name=RELEASE_STAGE,
            kind=StageKind.GATE,
            action=self._create_release,
            needs=(BUILD_GROUP,),
            outputs=(UPLOAD_ENDPOINT_ARTIFACT,),
        )
        publish_stages = expand_matrix(
            StageTemplate(
                name=PUBLISH_GROUP,
                kind=StageKind.PUBLISH,
                action_for=self.publisher.action_for,
                needs=(RELEASE_STAGE,),
            ),
            targets,
        )
        self.graph = StageGraph(
            [*build_stages, gate_stage, *publish_stages],
            max_workers=config.max_workers,
            fail_fast=config.fail_fast,
        )

    async def _create_release(self, context: StageContext) -> None:
        await self.gate.ensure_release(self.tag)

    async def execute(self) -> RunReport:
        """Run every stage and summarise the outcome."""
        result = await self.graph.run(self.store)
        return RunReport(
            trigger_ref=self.trigger_ref,
            tag=self.tag,
            status=_run_status(result),
            stages={name: stage.status for name, stage in result.stages.items()},
            release=self.gate.releases.get(self.tag),
            published=sorted(self.publisher.published, key=lambda asset: asset.name),
            errors={stage.name: str(stage.error) for stage in result.failed()},
        )


def _run_status(result: GraphResult) -> RunStatus:
    if result.status is RunStatus.SUCCEEDED:
        return RunStatus.SUCCEEDED
    if result.status_of(RELEASE_STAGE) is StageStatus.SUCCEEDED:
        return RunStatus.PARTIAL
    return RunStatus.FAILED


class ReleasePipeline:
    """Entry point turning tag-push events into published releases.

    Parameters
    ----------
    config : PipelineConfig
        Product, targets and scheduling options.
    host : ReleaseHost
        Release-hosting collaborator used by the gate and publish stages.
    policy : PackagingPolicy, optional
        Packaging table; defaults to :meth:`PackagingPolicy.default`.
    build_runner : BuildCommand, optional
        Runs the external build command for each target.
    commit : CommitInfo, optional
        Commit metadata for builds; read from ``git`` when omitted.
    """

    def __init__(
        self,
        config: PipelineConfig,
        host: ReleaseHost,
        *,
        policy: PackagingPolicy | None = None,
        build_runner: BuildCommand = run_build_command,
        commit: CommitInfo | None = None,
    ) -> None:
        self.config = config
        self.host = host
        self.policy = policy if policy is not None else PackagingPolicy.default()
        self.build_runner = build_runner
        self.commit = commit

    def activates(self, event: TriggerEvent) -> bool:
        """Return ``True`` when ``event`` should start a release."""
        return is_release_trigger(event, self.config.tag_pattern)

    def planned_assets(self) -> dict[str, str]:
        """Return the asset name each configured target will publish."""
        return plan_assets(self.policy, self.config.product, self.config.target_names())

    def plan(self, event: TriggerEvent) -> list[str]:
        """Describe the stages and uploads a run for ``event`` would perform."""
        run = PipelineRun(self, event, self.commit or CommitInfo(hash="HEAD", date=""))
        lines = [f"Release {run.tag} from {event.ref}:"]
        for definition in run.graph.definitions:
            needs = run.graph.dependencies_of(definition.name)
            suffix = f" (after {', '.join(needs)})" if needs else ""
            lines.append(f"  - {definition.name}{suffix}")
        lines.append("Planned assets:")
        lines.extend(f"  - {name}" for name in sorted(self.planned_assets().values()))
        return lines

    async def run_async(self, event: TriggerEvent) -> RunReport | None:
        """Run the pipeline for ``event``; return ``None`` if it does not qualify."""
        if not self.activates(event):
            return None
        # Reject asset name collisions before any build starts.
        self.planned_assets()
        commit = self.commit
        if commit is None:
            commit = await asyncio.to_thread(read_commit_info, self.config.workspace)
        return await PipelineRun(self, event, commit).execute()

    def run(self, event: TriggerEvent) -> RunReport | None:
        """Synchronous wrapper around :meth:`run_async`."""
        return asyncio.run(self.run_async(event))


def report_lines(report: RunReport) -> typ.Iterator[str]:
    """Yield a human-readable summary of ``report``."""
    yield f"Release {report.tag}: {report.status}"
    for name, status in report.stages.items():
        yield f"  {status:<9} {name}"
    for asset in report.published:
        yield f"  uploaded  {asset.name} ({asset.size} bytes, sha256 {asset.sha256})"
