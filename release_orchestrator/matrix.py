"""Matrix expansion of template stages into per-target instances."""

from __future__ import annotations

import dataclasses
import typing as typ

from .errors import GraphError
from .executor import StageAction, StageDefinition
from .models import StageKind

__all__ = ["StageTemplate", "expand_matrix", "instance_name"]


def instance_name(template: str, target: str) -> str:
    """Return the stage name for ``target``'s instance of ``template``.

    Examples
    --------
    >>> instance_name("build", "x86_64-unknown-linux-musl")
    'build[x86_64-unknown-linux-musl]'
    """
    return f"{template}[{target}]"


@dataclasses.dataclass(frozen=True, slots=True)
class StageTemplate:
    """Stage blueprint parameterised only by a target classifier.

    ``action_for`` builds the action for one target and ``outputs_for``
    names the artifacts that instance will write.
    """

    name: str
    kind: StageKind
    action_for: typ.Callable[[str], StageAction]
    needs: tuple[str, ...] = ()
    outputs_for: typ.Callable[[str], tuple[str, ...]] = lambda _target: ()


def expand_matrix(template: StageTemplate, targets: typ.Iterable[str]) -> list[StageDefinition]:
    """Return one :class:`StageDefinition` per entry in ``targets``.

    Every instance joins the group named after ``template`` so downstream
    stages can depend on the whole set at once.

    Raises
    ------
    GraphError
        If ``targets`` is empty or lists a classifier twice.
    """
    ordered = list(targets)
    if not ordered:
        message = f"Matrix for {template.name!r} has no targets"
        raise GraphError(message)
    if duplicates := sorted({target for target in ordered if ordered.count(target) > 1}):
        message = f"Matrix for {template.name!r} repeats target(s): {', '.join(duplicates)}"
        raise GraphError(message)
    return [
        StageDefinition(
            name=instance_name(template.name, target),
            kind=template.kind,
            action=template.action_for(target),
            needs=template.needs,
            target=target,
            group=template.name,
            outputs=template.outputs_for(target),
        )
        for target in ordered
    ]
