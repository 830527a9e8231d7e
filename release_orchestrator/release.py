"""Idempotent release creation gate."""

from __future__ import annotations

import asyncio

from .artifacts import ArtifactStore
from .errors import ReleaseError
from .hosting import ReleaseHost
from .models import Release

__all__ = ["UPLOAD_ENDPOINT_ARTIFACT", "ReleaseGate"]

UPLOAD_ENDPOINT_ARTIFACT = "upload-endpoint"


class ReleaseGate:
    """Create at most one release per tag and publish its upload endpoint.

    The gate first consults its own cache, then asks ``host`` for an existing
    release (so a redelivered trigger reuses the release made by an earlier
    run) and only then creates one. The endpoint is written to the artifact
    store once, under :data:`UPLOAD_ENDPOINT_ARTIFACT`, on behalf of
    ``producer``.
    """

    def __init__(
        self,
        host: ReleaseHost,
        store: ArtifactStore,
        *,
        producer: str,
        draft: bool = False,
        prerelease: bool = False,
    ) -> None:
        self.host = host
        self.store = store
        self.producer = producer
        self.draft = draft
        self.prerelease = prerelease
        self._releases: dict[str, Release] = {}
        self._lock = asyncio.Lock()

    @property
    def releases(self) -> dict[str, Release]:
        """Releases resolved by this gate, keyed by tag."""
        return dict(self._releases)

    async def ensure_release(self, tag: str) -> Release:
        """Return the release for ``tag``, creating it only if none exists.

        Raises
        ------
        ReleaseError
            If the hosting service cannot look up or create the release.
        """
        async with self._lock:
            if (cached := self._releases.get(tag)) is not None:
                return cached
            release = await asyncio.to_thread(self.host.find_release, tag)
            if release is None:
                print(f"Creating release {tag}")
                release = await asyncio.to_thread(
                    self.host.create_release,
                    tag,
                    title=f"Release {tag}",
                    draft=self.draft,
                    prerelease=self.prerelease,
                )
            else:
                print(f"Reusing existing release {tag} (id {release.id})")
            if release.tag != tag:
                message = f"Release host returned tag {release.tag!r} for {tag!r}"
                raise ReleaseError(message)
            if UPLOAD_ENDPOINT_ARTIFACT not in self.store:
                self.store.put(
                    UPLOAD_ENDPOINT_ARTIFACT, release.upload_endpoint, self.producer
                )
            self._releases[tag] = release
            return release
