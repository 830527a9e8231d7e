"""Release-hosting collaborators used by the release gate and publish stages.

:class:`GitHubCliHost` drives the GitHub CLI through ``plumbum``. Tests and
alternative hosts only need to satisfy the :class:`ReleaseHost` protocol.
"""

from __future__ import annotations

import enum
import json
import tempfile
import typing as typ
from pathlib import Path

from plumbum import local
from plumbum.commands import CommandNotFound, ProcessExecutionError

from .errors import AssetCollision, ReleaseError
from .models import Release, UploadEndpoint

if typ.TYPE_CHECKING:
    from plumbum.commands.base import BoundCommand

__all__ = ["CollisionPolicy", "GitHubCliHost", "ReleaseHost"]

_RELEASE_FIELDS = "databaseId,tagName,isDraft,isPrerelease,uploadUrl"


class CollisionPolicy(enum.StrEnum):
    """What to do when an asset name already exists on a release."""

    OVERWRITE = "overwrite"
    REJECT = "reject"


class ReleaseHost(typ.Protocol):
    """Operations the pipeline needs from a release-hosting service."""

    def find_release(self, tag: str) -> Release | None:
        """Return the release published for ``tag``, if any."""

    def create_release(
        self, tag: str, *, title: str, draft: bool = False, prerelease: bool = False
    ) -> Release:
        """Create and return a release for ``tag``."""

    def upload_asset(
        self,
        endpoint: UploadEndpoint,
        payload: bytes,
        name: str,
        content_type: str,
        *,
        collision: CollisionPolicy = CollisionPolicy.OVERWRITE,
    ) -> None:
        """Attach ``payload`` to the release behind ``endpoint`` as ``name``."""


class GitHubCliHost:
    """Release host backed by ``gh release`` commands.

    Parameters
    ----------
    repository : str | None, optional
        ``OWNER/REPO`` passed through ``--repo``; defaults to the repository
        of the current checkout (or ``GH_REPO``).
    executable : str, default="gh"
        Name or path of the GitHub CLI.

    Notes
    -----
    ``gh release upload`` addresses the release by tag and infers the content
    type from the file name. :meth:`upload_asset` therefore uses only
    ``endpoint.tag``; ``content_type`` appears in error messages alone.
    """

    def __init__(self, *, repository: str | None = None, executable: str = "gh") -> None:
        self.repository = repository
        self.executable = executable

    def _command(self, *args: str) -> BoundCommand:
        try:
            gh = local[self.executable]
        except CommandNotFound as exc:
            message = f"GitHub CLI {self.executable!r} is not available in PATH"
            raise ReleaseError(message) from exc
        repo_args = ("--repo", self.repository) if self.repository else ()
        return gh[(*args, *repo_args)]

    def find_release(self, tag: str) -> Release | None:
        """Return the release for ``tag`` or ``None`` when it does not exist."""
        command = self._command("release", "view", tag, "--json", _RELEASE_FIELDS)
        try:
            output = command()
        except ProcessExecutionError as exc:
            if "release not found" in str(exc.stderr).lower():
                return None
            message = f"gh release view {tag} failed: {str(exc.stderr).strip()}"
            raise ReleaseError(message) from exc
        return _parse_release(output)

    def create_release(
        self, tag: str, *, title: str, draft: bool = False, prerelease: bool = False
    ) -> Release:
        """Create the release for ``tag`` and return it as reported by GitHub."""
        args = ["release", "create", tag, "--verify-tag", "--title", title, "--notes", ""]
        if draft:
            args.append("--draft")
        if prerelease:
            args.append("--prerelease")
        try:
            self._command(*args)()
        except ProcessExecutionError as exc:
            message = f"gh release create {tag} failed: {str(exc.stderr).strip()}"
            raise ReleaseError(message) from exc
        if (release := self.find_release(tag)) is None:
            message = f"Release {tag} was created but cannot be read back"
            raise ReleaseError(message)
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
        """Upload ``payload`` as asset ``name`` on ``endpoint``'s release."""
        with tempfile.TemporaryDirectory(prefix="release-asset-") as scratch:
            path = Path(scratch) / name
            path.write_bytes(payload)
            args = ["release", "upload", endpoint.tag, path.as_posix()]
            if collision is CollisionPolicy.OVERWRITE:
                args.append("--clobber")
            try:
                self._command(*args)()
            except ProcessExecutionError as exc:
                stderr = str(exc.stderr).strip()
                if "already exists" in stderr:
                    message = f"Asset {name} already exists on release {endpoint.tag}"
                    raise AssetCollision(message) from exc
                message = f"Uploading {name} ({content_type}) failed: {stderr}"
                raise ReleaseError(message) from exc


def _parse_release(output: str) -> Release:
    try:
        data = json.loads(output)
        release_id = str(data["databaseId"])
        tag = data["tagName"]
        return Release(
            id=release_id,
            tag=tag,
            upload_endpoint=UploadEndpoint(release_id=release_id, tag=tag, url=data["uploadUrl"]),
            draft=bool(data.get("isDraft", False)),
            prerelease=bool(data.get("isPrerelease", False)),
        )
    except (json.JSONDecodeError, KeyError, TypeError) as exc:
        message = f"Unexpected release payload from gh: {exc}"
        raise ReleaseError(message) from exc
