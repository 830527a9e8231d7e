"""Exception hierarchy shared by the release orchestrator."""

from __future__ import annotations

__all__ = [
    "ArtifactUnavailable",
    "AssetCollision",
    "BuildError",
    "ConfigError",
    "DuplicateArtifact",
    "GraphError",
    "PipelineError",
    "ReleaseError",
    "TriggerError",
    "UnknownPlatformPolicy",
]


class PipelineError(RuntimeError):
    """Raised when the release pipeline cannot proceed."""


class DuplicateArtifact(PipelineError):
    """Raised when an artifact name is written more than once in a run."""


class ArtifactUnavailable(PipelineError):
    """Raised when an artifact's producer did not succeed."""


class UnknownPlatformPolicy(PipelineError):
    """Raised when no packaging rule matches a platform classifier."""


class GraphError(PipelineError):
    """Raised when stage definitions do not form a valid graph."""


class BuildError(PipelineError):
    """Raised when a build command fails or leaves no output behind."""


class ReleaseError(PipelineError):
    """Raised when the release-hosting service rejects a request."""


class AssetCollision(PipelineError):
    """Raised when an asset name would be uploaded twice."""


class ConfigError(PipelineError):
    """Raised when the pipeline configuration is invalid."""


class TriggerError(PipelineError):
    """Raised when the trigger event cannot be interpreted."""
