"""Configuration models and loader for the release pipeline.

The TOML file has a ``[common]`` section shared by every target and one
``[targets.<classifier>]`` table per build target.

Usage
-----
Load the configuration checked into the repository::

    from pathlib import Path
    from release_orchestrator.config import load_config

    config = load_config(Path(".github/release-pipeline.toml"))
    print(config.target_names())
"""

from __future__ import annotations

import dataclasses
import os
import tomllib
import typing as typ
from pathlib import Path

from .errors import ConfigError
from .hosting import CollisionPolicy

__all__ = [
    "DEFAULT_ARTIFACT_PATH",
    "PipelineConfig",
    "TargetConfig",
    "load_config",
    "render_template",
]

DEFAULT_ARTIFACT_PATH = "target/{target}/release/{artifact_name}"


@dataclasses.dataclass(slots=True)
class TargetConfig:
    """Build instructions for a single platform classifier.

    Parameters
    ----------
    target : str
        Platform classifier, usually a compilation target triple.
    build_command : list[str]
        ``str.format`` templates forming the build command line.
    artifact_path : str
        Template for the file or bundle directory the build leaves behind,
        relative to the workspace.
    """

    target: str
    build_command: list[str]
    artifact_path: str = DEFAULT_ARTIFACT_PATH


@dataclasses.dataclass(slots=True)
class PipelineConfig:
    """Concrete configuration produced by :func:`load_config`.

    Examples
    --------
    >>> config = PipelineConfig(  # doctest: +SKIP
    ...     workspace=Path("/tmp/workspace"),
    ...     product="ostrich",
    ...     targets=[TargetConfig("x86_64-unknown-linux-musl", ["make"])],
    ... )
    >>> config.target_names()  # doctest: +SKIP
    ['x86_64-unknown-linux-musl']
    """

    workspace: Path
    product: str
    targets: list[TargetConfig]
    max_workers: int = 4
    fail_fast: bool = True
    asset_collision: CollisionPolicy = CollisionPolicy.OVERWRITE
    tag_pattern: str = "v*"
    draft: bool = False
    prerelease: bool = False

    def target_names(self) -> list[str]:
        """Return the configured classifiers in file order."""
        return [target.target for target in self.targets]

    def target(self, name: str) -> TargetConfig:
        """Return the configuration for classifier ``name``."""
        for target in self.targets:
            if target.target == name:
                return target
        message = f"Target {name!r} is not configured"
        raise ConfigError(message)

    def template_context(self, target: str, artifact_name: str) -> dict[str, str]:
        """Return the mapping used to render command and path templates."""
        return {
            "workspace": self.workspace.as_posix(),
            "product": self.product,
            "target": target,
            "artifact_name": artifact_name,
        }


def render_template(template: str, context: typ.Mapping[str, str]) -> str:
    """Return ``template`` formatted with ``context``."""
    try:
        return template.format(**context)
    except (KeyError, IndexError) as exc:
        message = f"Invalid template key {exc} in '{template}'"
        raise ConfigError(message) from exc


def load_config(config_file: Path) -> PipelineConfig:
    """Load the pipeline configuration from ``config_file``.

    Raises
    ------
    FileNotFoundError
        Raised when the configuration file is absent.
    ConfigError
        Raised when required keys are missing or values are invalid, or when
        ``GITHUB_WORKSPACE`` is unset.
    """
    config_file = Path(config_file)
    if not config_file.is_file():
        message = f"Configuration file not found at {config_file}"
        raise FileNotFoundError(message)

    with config_file.open("rb") as handle:
        try:
            data = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            message = f"Invalid TOML in {config_file}: {exc}"
            raise ConfigError(message) from exc

    common = _table(data, "common", config_file)
    targets_table = _table(data, "targets", config_file)
    _require_keys(common, {"product"}, "common", config_file)
    if not targets_table:
        message = f"No targets configured in {config_file}"
        raise ConfigError(message)

    default_command = common.get("build_command")
    default_path = common.get("artifact_path", DEFAULT_ARTIFACT_PATH)
    targets = [
        _make_target(key, entry, default_command, default_path, config_file)
        for key, entry in targets_table.items()
    ]

    return PipelineConfig(
        workspace=_workspace_root(config_file),
        product=_string(common["product"], "common.product", config_file),
        targets=targets,
        max_workers=_positive_int(common.get("max_workers", 4), config_file),
        fail_fast=_boolean(common.get("fail_fast", True), "common.fail_fast", config_file),
        asset_collision=_collision(common.get("asset_collision", "overwrite"), config_file),
        tag_pattern=_string(common.get("tag_pattern", "v*"), "common.tag_pattern", config_file),
        draft=_boolean(common.get("draft", False), "common.draft", config_file),
        prerelease=_boolean(common.get("prerelease", False), "common.prerelease", config_file),
    )


def _workspace_root(config_path: Path) -> Path:
    """Return the checkout that build commands and artifact paths resolve against."""
    if not (root := os.environ.get("GITHUB_WORKSPACE")):
        message = f"GITHUB_WORKSPACE must name the checkout to build {config_path} from"
        raise ConfigError(message)
    return Path(root)


def _table(data: dict[str, typ.Any], key: str, config_path: Path) -> dict[str, typ.Any]:
    try:
        section = data[key]
    except KeyError as exc:
        message = f"Missing configuration key in {config_path}: {exc}"
        raise ConfigError(message) from exc
    if not isinstance(section, dict):
        message = f"[{key}] in {config_path} must be a table"
        raise ConfigError(message)
    return section


def _require_keys(
    section: dict[str, typ.Any], keys: set[str], label: str, config_path: Path
) -> None:
    if missing := sorted(key for key in keys if key not in section):
        joined = ", ".join(missing)
        message = f"Missing required key(s) {joined} in [{label}] section of {config_path}"
        raise ConfigError(message)


def _make_target(
    key: str,
    entry: object,
    default_command: object,
    default_path: object,
    config_path: Path,
) -> TargetConfig:
    if not isinstance(entry, dict):
        message = f"[targets.{key}] in {config_path} must be a table"
        raise ConfigError(message)
    label = f"targets.{key}"
    command = entry.get("build_command", default_command)
    if command is None:
        message = f"No build_command for [{label}] and none in [common] of {config_path}"
        raise ConfigError(message)
    return TargetConfig(
        target=_string(entry.get("target", key), f"{label}.target", config_path),
        build_command=_command(command, label, config_path),
        artifact_path=_string(
            entry.get("artifact_path", default_path), f"{label}.artifact_path", config_path
        ),
    )


def _command(value: object, label: str, config_path: Path) -> list[str]:
    if isinstance(value, str):
        value = value.split()
    if (
        not isinstance(value, list)
        or not value
        or not all(isinstance(part, str) and part for part in value)
    ):
        message = f"{label}.build_command in {config_path} must be a non-empty list of strings"
        raise ConfigError(message)
    return list(value)


def _string(value: object, label: str, config_path: Path) -> str:
    if not isinstance(value, str) or not value.strip():
        message = f"{label} in {config_path} must be a non-empty string"
        raise ConfigError(message)
    return value.strip()


def _boolean(value: object, label: str, config_path: Path) -> bool:
    if not isinstance(value, bool):
        message = f"{label} in {config_path} must be true or false, got {value!r}"
        raise ConfigError(message)
    return value


def _positive_int(value: object, config_path: Path) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        message = f"common.max_workers in {config_path} must be a positive integer"
        raise ConfigError(message)
    return value


def _collision(value: object, config_path: Path) -> CollisionPolicy:
    try:
        return CollisionPolicy(str(value).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(policy.value for policy in CollisionPolicy)
        message = f"common.asset_collision in {config_path} must be one of: {allowed}"
        raise ConfigError(message) from exc
