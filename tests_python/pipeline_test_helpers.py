"""Shared helpers for the release pipeline test suites."""

from __future__ import annotations

import threading
import typing as typ
from pathlib import Path

from release_orchestrator import (
    AssetCollision,
    BuildError,
    CollisionPolicy,
    PackagingPolicy,
    PipelineConfig,
    Release,
    ReleaseError,
    TargetConfig,
    UploadEndpoint,
)

__all__ = [
    "BUNDLE_TARGETS",
    "FakeReleaseHost",
    "ScriptedBuild",
    "decode_output_file",
    "make_config",
]

BUNDLE_TARGETS = {"apple-xcframework", "android-libs"}


class FakeReleaseHost:
    """In-memory release host recording every call it receives."""

    def __init__(
        self,
        *,
        fail_create: bool = False,
        fail_uploads: typ.Iterable[str] = (),
    ) -> None:
        self.fail_create = fail_create
        self.fail_uploads = set(fail_uploads)
        self.releases: dict[str, Release] = {}
        self.assets: dict[str, dict[str, tuple[bytes, str]]] = {}
        self.create_calls: list[str] = []
        self.find_calls: list[str] = []
        self._lock = threading.Lock()

    def find_release(self, tag: str) -> Release | None:
        with self._lock:
            self.find_calls.append(tag)
            return self.releases.get(tag)

    def create_release(
        self, tag: str, *, title: str, draft: bool = False, prerelease: bool = False
    ) -> Release:
        with self._lock:
            self.create_calls.append(tag)
            if self.fail_create:
                message = f"cannot create {title}"
                raise ReleaseError(message)
            release_id = str(len(self.releases) + 1)
            endpoint = UploadEndpoint(
                release_id=release_id,
                tag=tag,
                url=f"https://uploads.example.invalid/releases/{release_id}/assets",
            )
            release = Release(
                id=release_id,
                tag=tag,
                upload_endpoint=endpoint,
                draft=draft,
                prerelease=prerelease,
            )
            self.releases[tag] = release
            return release

    def upload_asset(
        self,
        endpoint: UploadEndpoint,
        payload: bytes,
        name: str,
        content_type: str,
        *,
        collision: CollisionPolicy = CollisionPolicy.OVERWRITE,
    ) -> None:
        with self._lock:
            if name in self.fail_uploads:
                message = f"upload of {name} rejected"
                raise ReleaseError(message)
            assets = self.assets.setdefault(endpoint.tag, {})
            if name in assets and collision is CollisionPolicy.REJECT:
                message = f"{name} already exists"
                raise AssetCollision(message)
            assets[name] = (payload, content_type)

    def asset_names(self, tag: str) -> set[str]:
        """Return the asset names uploaded to ``tag``'s release."""
        return set(self.assets.get(tag, {}))


class ScriptedBuild:
    """Build command stand-in that writes outputs into the workspace.

    Targets listed in ``failures`` raise :class:`BuildError` instead.
    Outputs follow the default ``target/{target}/release/{artifact_name}``
    layout.
    """

    def __init__(self, product: str = "ostrich", *, failures: typ.Iterable[str] = ()) -> None:
        self.product = product
        self.failures = set(failures)
        self.calls: list[tuple[list[str], dict[str, str]]] = []
        self.policy = PackagingPolicy.default()
        self._lock = threading.Lock()

    def __call__(
        self, argv: typ.Sequence[str], environment: typ.Mapping[str, str], cwd: Path
    ) -> None:
        target = environment["TARGET"]
        with self._lock:
            self.calls.append((list(argv), dict(environment)))
        if target in self.failures:
            message = f"build for {target} failed"
            raise BuildError(message)
        artifact_name = self.policy.rule_for(target).artifact_name(self.product, target)
        output = cwd / "target" / target / "release" / artifact_name
        if target in BUNDLE_TARGETS:
            (output / "lib").mkdir(parents=True, exist_ok=True)
            (output / "Info.plist").write_text("<plist/>", encoding="utf-8")
            (output / "lib" / f"lib{self.product}.a").write_bytes(b"archive")
        else:
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_bytes(f"binary for {target}".encode())

    @property
    def targets(self) -> list[str]:
        """Targets the build was invoked for, in call order."""
        return [environment["TARGET"] for _, environment in self.calls]


def make_config(
    workspace: Path, targets: typ.Iterable[str], **overrides: typ.Any
) -> PipelineConfig:
    """Return a configuration building ``targets`` with test defaults."""
    options: dict[str, typ.Any] = {
        "workspace": workspace,
        "product": "ostrich",
        "targets": [
            TargetConfig(target=target, build_command=["build", "--target", "{target}"])
            for target in targets
        ],
    }
    return PipelineConfig(**(options | overrides))


def decode_output_file(path: Path) -> dict[str, str]:
    """Parse GitHub output records written with ``write_github_output``."""
    lines = path.read_text(encoding="utf-8").splitlines()
    values: dict[str, str] = {}
    index = 0
    while index < len(lines):
        key, delimiter = lines[index].split("<<", 1)
        index += 1
        buffer: list[str] = []
        while index < len(lines) and lines[index] != delimiter:
            buffer.append(lines[index])
            index += 1
        values[key] = "\n".join(buffer)
        index += 1  # Skip the delimiter terminator.
    return values
