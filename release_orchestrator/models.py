"""Data model shared by the release orchestrator stages."""

from __future__ import annotations

import dataclasses
import enum
import hashlib
import typing as typ
from pathlib import Path

__all__ = [
    "Artifact",
    "BuildInputs",
    "Bundle",
    "Payload",
    "PackagedAsset",
    "Release",
    "RunStatus",
    "Stage",
    "StageKind",
    "StageStatus",
    "UploadEndpoint",
]


class StageKind(enum.StrEnum):
    """Role a stage plays in the release pipeline."""

    BUILD = "build"
    GATE = "gate"
    PUBLISH = "publish"


class StageStatus(enum.StrEnum):
    """Lifecycle state of a single stage."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def terminal(self) -> bool:
        """Return ``True`` once the stage can no longer change state."""
        return self in {StageStatus.SUCCEEDED, StageStatus.FAILED, StageStatus.SKIPPED}


class RunStatus(enum.StrEnum):
    """Terminal status reported for a whole pipeline run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclasses.dataclass(slots=True)
class Stage:
    """Runtime record for one scheduled stage.

    Only the executor mutates :attr:`status` and :attr:`error`.
    """

    name: str
    kind: StageKind
    dependencies: frozenset[str] = frozenset()
    target: str | None = None
    group: str | None = None
    status: StageStatus = StageStatus.PENDING
    error: BaseException | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class Bundle:
    """Immutable snapshot of a multi-file build output.

    Entries are stored as ``(relative POSIX path, content)`` pairs sorted by
    path so that archives built from the bundle are reproducible.

    Examples
    --------
    >>> bundle = Bundle.from_mapping({"b.txt": b"2", "a.txt": b"1"})
    >>> [path for path, _ in bundle.entries]
    ['a.txt', 'b.txt']
    """

    entries: tuple[tuple[str, bytes], ...]

    @classmethod
    def from_mapping(cls, files: typ.Mapping[str, bytes]) -> Bundle:
        """Return a bundle built from ``files``."""
        return cls(tuple(sorted((str(key), bytes(value)) for key, value in files.items())))

    @classmethod
    def from_directory(cls, root: Path) -> Bundle:
        """Capture every regular file below ``root``."""
        files = {
            path.relative_to(root).as_posix(): path.read_bytes()
            for path in root.rglob("*")
            if path.is_file()
        }
        return cls.from_mapping(files)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def size(self) -> int:
        """Total number of content bytes held by the bundle."""
        return sum(len(content) for _, content in self.entries)


@dataclasses.dataclass(frozen=True, slots=True)
class Artifact:
    """Named build output written once by its producer stage."""

    name: str
    payload: Payload
    producer: str
    platform: str | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class UploadEndpoint:
    """Capability handle authorising uploads against one release.

    Hosts choose which field addresses the release: the GitHub CLI uploads by
    ``tag``, while ``release_id`` and ``url`` serve hosts that post assets to
    the upload URL directly.
    """

    release_id: str
    tag: str
    url: str


Payload = bytes | Bundle | UploadEndpoint


@dataclasses.dataclass(frozen=True, slots=True)
class Release:
    """Published release record for a single tag."""

    id: str
    tag: str
    upload_endpoint: UploadEndpoint
    draft: bool = False
    prerelease: bool = False


@dataclasses.dataclass(frozen=True, slots=True)
class PackagedAsset:
    """Final distributable derived from an artifact by the packaging policy."""

    name: str
    content_type: str
    payload: bytes

    @property
    def size(self) -> int:
        """Size of :attr:`payload` in bytes."""
        return len(self.payload)

    def sha256(self) -> str:
        """Return the hex SHA-256 digest of :attr:`payload`."""
        return hashlib.sha256(self.payload).hexdigest()


@dataclasses.dataclass(frozen=True, slots=True)
class BuildInputs:
    """Environment handed to an external build command."""

    commit_hash: str
    commit_date: str
    target_triple: str

    def as_environment(self) -> dict[str, str]:
        """Return the variables exported to the build command."""
        return {
            "CFG_COMMIT_HASH": self.commit_hash,
            "CFG_COMMIT_DATE": self.commit_date,
            "TARGET": self.target_triple,
        }
