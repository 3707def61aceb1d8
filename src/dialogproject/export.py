"""Boundaries shared with downstream consumers of imported projects."""

from __future__ import annotations

import json
from typing import Protocol, Sequence

from .schema import DialogNode, Edge, Project


class LayoutFunction(Protocol):
    """Callable that repositions nodes based on the graph structure."""

    def __call__(
        self, nodes: Sequence[DialogNode], edges: Sequence[Edge]
    ) -> Sequence[DialogNode]:
        """Return the nodes with updated positions."""


def export_project(project: Project, *, indent: int | None = 2) -> str:
    """Serialise ``project`` to JSON text accepted unchanged by the importer.

    Only the current schema can be exported; there is no downgrade path.
    """

    return json.dumps(project.to_document(), indent=indent, ensure_ascii=False)


def apply_layout(project: Project, layout: LayoutFunction) -> Project:
    """Return a copy of ``project`` whose nodes were repositioned by ``layout``.

    Raises:
        ValueError: If the layout adds, removes or renames nodes.
    """

    repositioned = list(layout(tuple(project.nodes), tuple(project.edges)))
    expected = [node.id for node in project.nodes]
    received = [node.id for node in repositioned]
    if sorted(received) != sorted(expected):
        raise ValueError("Layout must return exactly the nodes it was given.")

    document = project.to_document()
    document["nodes"] = [
        node.model_dump(mode="json", by_alias=True, exclude_none=True)
        for node in repositioned
    ]
    return Project.model_validate(document)


__all__ = ["LayoutFunction", "apply_layout", "export_project"]
