"""Public interface for the release orchestrator package."""

from .artifacts import ArtifactStore
from .build import BuildStage, CommitInfo, run_build_command
from .config import PipelineConfig, TargetConfig, load_config
from .errors import (
    ArtifactUnavailable,
    AssetCollision,
    BuildError,
    ConfigError,
    DuplicateArtifact,
    GraphError,
    PipelineError,
    ReleaseError,
    TriggerError,
    UnknownPlatformPolicy,
)
from .executor import GraphResult, StageContext, StageDefinition, StageGraph
from .hosting import CollisionPolicy, GitHubCliHost, ReleaseHost
from .matrix import StageTemplate, expand_matrix
from .models import (
    Artifact,
    Bundle,
    PackagedAsset,
    Release,
    RunStatus,
    Stage,
    StageKind,
    StageStatus,
    UploadEndpoint,
)
from .packaging import Compression, PackagingPolicy, PackagingRule
from .pipeline import PipelineRun, ReleasePipeline, RunReport
from .publish import PublishedAsset, PublishStage, plan_assets
from .release import UPLOAD_ENDPOINT_ARTIFACT, ReleaseGate
from .trigger import TriggerEvent, is_release_trigger, load_trigger

__all__ = [
    "Artifact",
    "ArtifactStore",
    "ArtifactUnavailable",
    "AssetCollision",
    "BuildError",
    "BuildStage",
    "Bundle",
    "CollisionPolicy",
    "CommitInfo",
    "Compression",
    "ConfigError",
    "DuplicateArtifact",
    "GitHubCliHost",
    "GraphError",
    "GraphResult",
    "PackagedAsset",
    "PackagingPolicy",
    "PackagingRule",
    "PipelineConfig",
    "PipelineError",
    "PipelineRun",
    "PublishStage",
    "PublishedAsset",
    "Release",
    "ReleaseError",
    "ReleaseGate",
    "ReleaseHost",
    "ReleasePipeline",
    "RunReport",
    "RunStatus",
    "Stage",
    "StageContext",
    "StageDefinition",
    "StageGraph",
    "StageKind",
    "StageStatus",
    "StageTemplate",
    "TargetConfig",
    "TriggerError",
    "TriggerEvent",
    "UPLOAD_ENDPOINT_ARTIFACT",
    "UnknownPlatformPolicy",
    "UploadEndpoint",
    "expand_matrix",
    "is_release_trigger",
    "load_config",
    "load_trigger",
    "plan_assets",
    "run_build_command",
]
