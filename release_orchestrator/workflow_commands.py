"""Helpers for emitting GitHub Actions workflow commands."""

from __future__ import annotations

import sys
import typing as typ
from contextlib import contextmanager

__all__ = ["emit_error", "emit_warning", "log_group"]


def _escape(value: str) -> str:
    return value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def emit_error(title: str, message: object) -> None:
    """Print an ``::error`` annotation for ``message`` to stderr."""
    print(f"::error title={title}::{_escape(str(message))}", file=sys.stderr)


def emit_warning(title: str, message: object) -> None:
    """Print a ``::warning`` annotation for ``message`` to stderr."""
    print(f"::warning title={title}::{_escape(str(message))}", file=sys.stderr)


@contextmanager
def log_group(name: str) -> typ.Iterator[None]:
    """Fold the output printed inside the block under ``name``."""
    print(f"::group::{name}")
    try:
        yield
    finally:
        print("::endgroup::")
