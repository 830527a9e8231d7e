"""Publish stage driver: package a built artifact and upload it."""

from __future__ import annotations

import asyncio
import dataclasses
import typing as typ

from .errors import AssetCollision, ArtifactUnavailable
from .executor import StageAction, StageContext
from .hosting import CollisionPolicy, ReleaseHost
from .models import UploadEndpoint
from .packaging import PackagingPolicy
from .release import UPLOAD_ENDPOINT_ARTIFACT

__all__ = ["PublishStage", "PublishedAsset", "plan_assets"]


@dataclasses.dataclass(frozen=True, slots=True)
class PublishedAsset:
    """Record of an asset uploaded to the release."""

    target: str
    name: str
    content_type: str
    size: int
    sha256: str


def plan_assets(
    policy: PackagingPolicy, product: str, targets: typ.Iterable[str]
) -> dict[str, str]:
    """Return the asset name each target will publish, keyed by target.

    Raises
    ------
    UnknownPlatformPolicy
        If a target has no packaging rule.
    AssetCollision
        If two targets would upload under the same asset name.

    Examples
    --------
    >>> plan_assets(PackagingPolicy.default(), "ostrich", ["x86_64-pc-windows-gnu"])
    {'x86_64-pc-windows-gnu': 'ostrich-x86_64-pc-windows-gnu.zip'}
    """
    planned: dict[str, str] = {}
    seen: dict[str, str] = {}
    for target in targets:
        asset_name = policy.rule_for(target).asset_name(product, target)
        if previous := seen.get(asset_name):
            message = (
                f"Asset name collision: {asset_name} would upload both {previous} and {target}"
            )
            raise AssetCollision(message)
        seen[asset_name] = target
        planned[target] = asset_name
    return planned


@dataclasses.dataclass(slots=True)
class PublishStage:
    """Packages and uploads one target per matrix instance."""

    product: str
    policy: PackagingPolicy
    host: ReleaseHost
    collision: CollisionPolicy = CollisionPolicy.OVERWRITE
    published: list[PublishedAsset] = dataclasses.field(default_factory=list)

    def action_for(self, target: str) -> StageAction:
        async def publish(context: StageContext) -> None:
            await self.publish(context, target)

        return publish

    async def publish(self, context: StageContext, target: str) -> None:
        """Upload ``target``'s packaged artifact to the release."""
        rule = self.policy.rule_for(target)
        payload = await context.get(rule.artifact_name(self.product, target))
        endpoint = await context.get(UPLOAD_ENDPOINT_ARTIFACT)
        if not isinstance(endpoint, UploadEndpoint):
            message = f"Artifact {UPLOAD_ENDPOINT_ARTIFACT!r} does not hold an upload endpoint"
            raise ArtifactUnavailable(message)

        asset = self.policy.package(target, self.product, payload)
        await asyncio.to_thread(
            self.host.upload_asset,
            endpoint,
            asset.payload,
            asset.name,
            asset.content_type,
            collision=self.collision,
        )
        self.published.append(
            PublishedAsset(
                target=target,
                name=asset.name,
                content_type=asset.content_type,
                size=asset.size,
                sha256=asset.sha256(),
            )
        )
        print(f"Uploaded '{asset.name}' ({asset.size} bytes) to release {endpoint.tag}")
