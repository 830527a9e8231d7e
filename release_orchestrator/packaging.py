"""Table-driven packaging policy for release assets.

A platform classifier is either a compilation target triple (for example
``x86_64-pc-windows-gnu``) or the name of a multi-architecture bundle
(``apple-xcframework`` or ``android-libs``). The policy maps it to a
:class:`PackagingRule` describing the raw artifact name, the published asset
name, the compression and the content type.

Examples
--------
>>> policy = PackagingPolicy.default()
>>> policy.rule_for("x86_64-unknown-linux-musl").asset_name("ostrich", "x86_64-unknown-linux-musl")
'ostrich-x86_64-unknown-linux-musl.gz'
"""

from __future__ import annotations

import dataclasses
import enum
import fnmatch
import gzip
import io
import typing as typ
import zipfile

from .errors import PipelineError, UnknownPlatformPolicy
from .models import Bundle, PackagedAsset, Payload

__all__ = [
    "Compression",
    "DEFAULT_RULES",
    "OCTET_STREAM",
    "PackagingPolicy",
    "PackagingRule",
]

OCTET_STREAM = "application/octet-stream"

# Earliest timestamp representable in a zip archive.
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


class Compression(enum.StrEnum):
    """Archive format applied to a raw artifact."""

    GZIP = "gzip"
    ZIP = "zip"
    NONE = "none"


@dataclasses.dataclass(frozen=True, slots=True)
class PackagingRule:
    """Rename and compression rule for one family of platform classifiers.

    Parameters
    ----------
    artifact_template : str
        ``str.format`` template for the raw artifact name written by the build
        stage. Receives ``product`` and ``target``.
    asset_template : str
        Template for the published asset name. Receives ``product``,
        ``target`` and ``artifact_name``.
    compression : Compression
        Archive format applied to the payload.
    content_type : str, default="application/octet-stream"
        MIME type announced to the release host.
    """

    artifact_template: str
    asset_template: str
    compression: Compression
    content_type: str = OCTET_STREAM

    def artifact_name(self, product: str, target: str) -> str:
        """Return the raw artifact name produced for ``target``."""
        return self.artifact_template.format(product=product, target=target)

    def asset_name(self, product: str, target: str) -> str:
        """Return the published asset name for ``target``."""
        return self.asset_template.format(
            product=product,
            target=target,
            artifact_name=self.artifact_name(product, target),
        )


DEFAULT_RULES: tuple[tuple[str, PackagingRule], ...] = (
    (
        "*-windows-*",
        PackagingRule("{product}-{target}.exe", "{product}-{target}.zip", Compression.ZIP),
    ),
    *(
        (
            pattern,
            PackagingRule("{product}-{target}", "{artifact_name}.gz", Compression.GZIP),
        )
        for pattern in ("*-linux-*", "*-apple-darwin", "*-freebsd", "*-netbsd")
    ),
    (
        "apple-xcframework",
        PackagingRule("{product}.xcframework", "{artifact_name}.zip", Compression.ZIP),
    ),
    (
        "android-libs",
        PackagingRule("{product}-android-libs", "{artifact_name}.zip", Compression.ZIP),
    ),
)


class PackagingPolicy:
    """Ordered classifier table; the first matching pattern wins."""

    def __init__(self, rules: typ.Iterable[tuple[str, PackagingRule]]) -> None:
        self._rules = tuple(rules)

    @classmethod
    def default(cls) -> PackagingPolicy:
        """Return the policy used for published releases."""
        return cls(DEFAULT_RULES)

    @property
    def patterns(self) -> list[str]:
        """Classifier patterns in lookup order."""
        return [pattern for pattern, _ in self._rules]

    def rule_for(self, classifier: str) -> PackagingRule:
        """Return the rule registered for ``classifier``.

        Raises
        ------
        UnknownPlatformPolicy
            If no pattern in the table matches ``classifier``.
        """
        for pattern, rule in self._rules:
            if fnmatch.fnmatchcase(classifier, pattern):
                return rule
        message = f"No packaging rule registered for platform {classifier!r}"
        raise UnknownPlatformPolicy(message)

    def package(self, classifier: str, product: str, payload: Payload) -> PackagedAsset:
        """Package ``payload`` built for ``classifier`` into a release asset.

        The result depends only on the arguments, so repeated calls yield
        byte-identical assets.
        """
        rule = self.rule_for(classifier)
        artifact_name = rule.artifact_name(product, classifier)
        match rule.compression:
            case Compression.GZIP:
                data = _gzip(_require_bytes(payload, artifact_name))
            case Compression.ZIP:
                data = _zip(artifact_name, payload)
            case Compression.NONE:
                data = _require_bytes(payload, artifact_name)
        return PackagedAsset(
            name=rule.asset_name(product, classifier),
            content_type=rule.content_type,
            payload=data,
        )


def _require_bytes(payload: Payload, artifact_name: str) -> bytes:
    if not isinstance(payload, bytes):
        message = f"Artifact {artifact_name!r} is not a single binary and must be zipped"
        raise PipelineError(message)
    return payload


def _gzip(data: bytes) -> bytes:
    return gzip.compress(data, compresslevel=9, mtime=0)


def _zip(artifact_name: str, payload: Payload) -> bytes:
    """Return a zip archive holding ``payload``.

    Single binaries are stored as ``artifact_name``; bundles are stored below
    an ``artifact_name/`` directory.
    """
    if isinstance(payload, Bundle):
        members = [
            (f"{artifact_name}/{path}", content, 0o644) for path, content in payload.entries
        ]
    else:
        members = [(artifact_name, _require_bytes(payload, artifact_name), 0o755)]

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
        for member_name, content, mode in members:
            info = zipfile.ZipInfo(member_name, date_time=_ZIP_EPOCH)
            info.compress_type = zipfile.ZIP_DEFLATED
            info.external_attr = (0o100000 | mode) << 16
            archive.writestr(info, content)
    return buffer.getvalue()
