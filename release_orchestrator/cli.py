"""Command-line entry point for the release pipeline.

The pipeline is event driven: the trigger ref comes from the GitHub Actions
environment (``GITHUB_EVENT_PATH`` or ``GITHUB_REF``), never from arguments.

Examples
--------
Run the pipeline inside a tag-push workflow::

    export GITHUB_WORKSPACE="$(pwd)"
    export GITHUB_REF="refs/tags/v1.2.3"
    release-orchestrator .github/release-pipeline.toml

Inspect the stage graph and asset names without building or uploading::

    release-orchestrator .github/release-pipeline.toml --dry-run
"""

from __future__ import annotations

import os
import sys
import typing as typ
from pathlib import Path

import cyclopts
from cyclopts import Parameter

from .config import load_config
from .errors import PipelineError
from .hosting import GitHubCliHost
from .models import RunStatus
from .outputs import run_outputs, write_github_output
from .pipeline import ReleasePipeline, report_lines
from .trigger import load_trigger
from .workflow_commands import emit_error, emit_warning, log_group

app = cyclopts.App(help="Build, release and publish artefacts for a version tag.")


@app.default
def main(
    config_file: Path,
    *,
    repository: typ.Annotated[str | None, Parameter(env_var="GH_REPO")] = None,
    dry_run: bool = False,
) -> None:
    """Run the release pipeline described by ``config_file``.

    Parameters
    ----------
    config_file:
        Path to the TOML pipeline configuration.
    repository:
        ``OWNER/REPO`` the release belongs to; defaults to the checkout.
    dry_run:
        Print the stage graph and planned assets without running anything.
    """
    try:
        config = load_config(config_file)
        event = load_trigger(os.environ)
        pipeline = ReleasePipeline(config, GitHubCliHost(repository=repository))
        if not pipeline.activates(event):
            print(
                f"Ref '{event.ref}' does not match tag pattern "
                f"'{config.tag_pattern}'; nothing to release.",
                file=sys.stderr,
            )
            return
        if dry_run:
            with log_group("Release plan"):
                for line in pipeline.plan(event):
                    print(line)
            return
        report = pipeline.run(event)
    except (FileNotFoundError, PipelineError) as exc:
        emit_error("Release Failure", exc)
        raise SystemExit(1) from exc

    if report is None:  # pragma: no cover - activation checked above
        return
    if github_output := os.environ.get("GITHUB_OUTPUT"):
        write_github_output(Path(github_output), run_outputs(report))
    with log_group("Release summary"):
        for line in report_lines(report):
            print(line)
    if report.status is RunStatus.PARTIAL:
        emit_warning(
            "Partial Release",
            f"Release {report.tag} exists but is missing assets; re-run to complete it.",
        )
    if report.status is not RunStatus.SUCCEEDED:
        for stage, error in report.errors.items():
            emit_error("Release Failure", f"{stage}: {error}")
        raise SystemExit(1)


if __name__ == "__main__":
    app()
