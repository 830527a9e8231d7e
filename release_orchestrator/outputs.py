"""Export run results as GitHub Actions outputs."""

from __future__ import annotations

import json
import typing as typ
import uuid
from collections.abc import Mapping, Sequence
from pathlib import Path

if typ.TYPE_CHECKING:
    from .pipeline import RunReport

__all__ = ["run_outputs", "write_github_output"]


def run_outputs(report: RunReport) -> dict[str, str | list[str]]:
    """Return the workflow outputs describing ``report``.

    ``published_assets`` lists uploaded asset names and ``checksum_map`` maps
    each of them to its SHA-256 digest.
    """
    return {
        "run_status": str(report.status),
        "release_tag": report.tag,
        "release_id": report.release.id if report.release else "",
        "published_assets": report.asset_names,
        "checksum_map": json.dumps(
            {asset.name: asset.sha256 for asset in report.published}, sort_keys=True
        ),
    }


def write_github_output(file: Path, values: Mapping[str, str | Sequence[str]]) -> None:
    """Append ``values`` to ``file`` using GitHub's multiline syntax.

    Sequence values are joined with newlines; each entry gets a random
    heredoc delimiter so values cannot terminate it early.
    """
    file.parent.mkdir(parents=True, exist_ok=True)
    with file.open("a", encoding="utf-8") as handle:
        for key, value in values.items():
            delimiter = f"EOF_{uuid.uuid4().hex}"
            text = value if isinstance(value, str) else "\n".join(value)
            handle.write(f"{key}<<{delimiter}\n{text}\n{delimiter}\n")
