"""Structural integrity checks for dialog project graphs."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Literal, Mapping, Sequence

from .schema import NODE_ID_PATTERN, Project

logger = logging.getLogger(__name__)

Severity = Literal["error", "warning", "info"]


class ValidationIssueType(str, Enum):
    """Kinds of findings reported by :func:`validate_project`."""

    EDGE_SOURCE_MISSING = "EDGE_SOURCE_MISSING"
    EDGE_TARGET_MISSING = "EDGE_TARGET_MISSING"
    EDGE_SELF_LOOP = "EDGE_SELF_LOOP"
    DUPLICATE_NODE_ID = "DUPLICATE_NODE_ID"
    DUPLICATE_EDGE_ID = "DUPLICATE_EDGE_ID"
    UNREACHABLE_NODES = "UNREACHABLE_NODES"
    CIRCULAR_DEPENDENCY = "CIRCULAR_DEPENDENCY"
    INVALID_NODE_ID_FORMAT = "INVALID_NODE_ID_FORMAT"
    NODE_ID_TYPE_MISMATCH = "NODE_ID_TYPE_MISMATCH"
    ORPHANED_NODES = "ORPHANED_NODES"
    MISSING_ROOT_NODES = "MISSING_ROOT_NODES"


CRITICAL_ISSUE_TYPES: frozenset[ValidationIssueType] = frozenset(
    {
        ValidationIssueType.EDGE_SOURCE_MISSING,
        ValidationIssueType.EDGE_TARGET_MISSING,
        ValidationIssueType.DUPLICATE_NODE_ID,
        ValidationIssueType.DUPLICATE_EDGE_ID,
    }
)


@dataclass(frozen=True)
class ValidationIssue:
    """A single finding about the project graph."""

    type: ValidationIssueType
    id: str
    message: str
    severity: Severity
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_critical(self) -> bool:
        """Return ``True`` when the issue must abort an import."""

        return self.type in CRITICAL_ISSUE_TYPES

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.type.value,
            "id": self.id,
            "message": self.message,
            "severity": self.severity,
        }
        if self.metadata:
            payload["metadata"] = dict(self.metadata)
        return payload


@dataclass(frozen=True)
class ValidationStatistics:
    """Structural counts gathered while validating a project."""

    total_nodes: int
    total_edges: int
    nodes_by_type: Mapping[str, int]
    root_nodes: int
    leaf_nodes: int
    orphaned_nodes: int
    unreachable_nodes: int
    cycle_count: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "totalNodes": self.total_nodes,
            "totalEdges": self.total_edges,
            "nodesByType": dict(self.nodes_by_type),
            "rootNodes": self.root_nodes,
            "leafNodes": self.leaf_nodes,
            "orphanedNodes": self.orphaned_nodes,
            "unreachableNodes": self.unreachable_nodes,
            "cycleCount": self.cycle_count,
        }


@dataclass(frozen=True)
class ValidationResult:
    """Complete outcome of validating a project graph."""

    errors: tuple[ValidationIssue, ...]
    warnings: tuple[ValidationIssue, ...]
    info: tuple[ValidationIssue, ...]
    statistics: ValidationStatistics

    @property
    def is_valid(self) -> bool:
        """Return ``True`` when no error-level issue was found."""

        return not self.errors

    @property
    def critical_errors(self) -> tuple[ValidationIssue, ...]:
        """Return the errors severe enough to reject an import."""

        return tuple(issue for issue in self.errors if issue.is_critical)

    def to_payload(self) -> dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "errors": [issue.to_payload() for issue in self.errors],
            "warnings": [issue.to_payload() for issue in self.warnings],
            "info": [issue.to_payload() for issue in self.info],
            "statistics": self.statistics.to_payload(),
        }


@dataclass(frozen=True)
class QuickValidationResult:
    """Result of the lightweight dangling-reference check."""

    is_valid: bool
    errors: tuple[str, ...]


def is_valid_node_id(node_id: str) -> bool:
    """Return ``True`` if ``node_id`` follows the ``type_unique`` pattern."""

    return bool(NODE_ID_PATTERN.match(node_id))


def _append(adjacency: dict[str, list[str]], key: str, value: str) -> None:
    adjacency.setdefault(key, []).append(value)


def _walk(start: Sequence[str], adjacency: Mapping[str, Sequence[str]]) -> set[str]:
    visited: set[str] = set()
    frontier = list(reversed(start))
    while frontier:
        current = frontier.pop()
        if current in visited:
            continue
        visited.add(current)
        for child in reversed(adjacency.get(current, ())):
            if child not in visited:
                frontier.append(child)
    return visited


def find_cycles(
    node_ids: Sequence[str], adjacency: Mapping[str, Sequence[str]]
) -> list[list[str]]:
    """Return every cycle found by a depth-first walk over ``adjacency``.

    Nodes are explored in ``node_ids`` order. Whenever a child is already on
    the current path, the sub-path from its earlier position back to the
    child is reported, e.g. ``["a", "b", "c", "a"]``.
    """

    visited: set[str] = set()
    cycles: list[list[str]] = []

    for start in node_ids:
        if start in visited:
            continue

        path: list[str] = [start]
        positions: dict[str, int] = {start: 0}
        iterators: list[Iterator[str]] = [iter(adjacency.get(start, ()))]
        visited.add(start)

        while iterators:
            child = next(iterators[-1], None)
            if child is None:
                iterators.pop()
                positions.pop(path.pop(), None)
                continue
            if child in positions:
                cycles.append(path[positions[child] :] + [child])
                continue
            if child in visited:
                continue
            visited.add(child)
            positions[child] = len(path)
            path.append(child)
            iterators.append(iter(adjacency.get(child, ())))

    return cycles


def validate_project(project: Project) -> ValidationResult:
    """Analyse the node/edge graph of ``project``.

    The check never mutates ``project`` and never raises for malformed
    free-form payloads; validating the same project twice yields equal
    results.
    """

    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []
    info: list[ValidationIssue] = []

    node_ids: list[str] = []
    known_nodes: set[str] = set()
    nodes_by_type: dict[str, int] = {}

    for node in project.nodes:
        if node.id in known_nodes:
            errors.append(
                ValidationIssue(
                    ValidationIssueType.DUPLICATE_NODE_ID,
                    node.id,
                    f"Duplicate node ID: {node.id}",
                    "error",
                )
            )
        else:
            node_ids.append(node.id)
            known_nodes.add(node.id)

        if not is_valid_node_id(node.id):
            errors.append(
                ValidationIssue(
                    ValidationIssueType.INVALID_NODE_ID_FORMAT,
                    node.id,
                    f"Invalid node ID format: {node.id}. Expected format: nodeType_uniqueId",
                    "error",
                )
            )
        elif node.id.split("_", 1)[0] != node.type:
            warnings.append(
                ValidationIssue(
                    ValidationIssueType.NODE_ID_TYPE_MISMATCH,
                    node.id,
                    f"Node ID {node.id} does not start with its type {node.type}",
                    "warning",
                    {"type": node.type},
                )
            )

        nodes_by_type[node.type] = nodes_by_type.get(node.type, 0) + 1

    edge_ids: set[str] = set()
    incoming: dict[str, list[str]] = {}
    outgoing: dict[str, list[str]] = {}

    for edge in project.edges:
        if edge.id in edge_ids:
            errors.append(
                ValidationIssue(
                    ValidationIssueType.DUPLICATE_EDGE_ID,
                    edge.id,
                    f"Duplicate edge ID: {edge.id}",
                    "error",
                )
            )
        edge_ids.add(edge.id)

        endpoints = {"source": edge.source, "target": edge.target}
        source_known = edge.source in known_nodes
        target_known = edge.target in known_nodes
        if not source_known:
            errors.append(
                ValidationIssue(
                    ValidationIssueType.EDGE_SOURCE_MISSING,
                    edge.id,
                    f"Edge {edge.id} references missing source node: {edge.source}",
                    "error",
                    endpoints,
                )
            )
        if not target_known:
            errors.append(
                ValidationIssue(
                    ValidationIssueType.EDGE_TARGET_MISSING,
                    edge.id,
                    f"Edge {edge.id} references missing target node: {edge.target}",
                    "error",
                    endpoints,
                )
            )

        if edge.source == edge.target:
            warnings.append(
                ValidationIssue(
                    ValidationIssueType.EDGE_SELF_LOOP,
                    edge.id,
                    f"Edge {edge.id} creates a self-loop on node: {edge.source}",
                    "warning",
                    {"node": edge.source},
                )
            )

        if source_known and target_known:
            _append(outgoing, edge.source, edge.target)
            _append(incoming, edge.target, edge.source)

    roots = [node_id for node_id in node_ids if not incoming.get(node_id)]
    leaves = [node_id for node_id in node_ids if not outgoing.get(node_id)]
    orphans = [
        node_id
        for node_id in node_ids
        if not incoming.get(node_id) and not outgoing.get(node_id)
    ]
    reached = _walk(roots, outgoing)
    unreachable = [node_id for node_id in node_ids if node_id not in reached]
    cycles = find_cycles(node_ids, outgoing)

    if node_ids and not roots:
        warnings.append(
            ValidationIssue(
                ValidationIssueType.MISSING_ROOT_NODES,
                "graph",
                "No root nodes found. All nodes have incoming connections.",
                "warning",
            )
        )

    for node_id in orphans:
        warnings.append(
            ValidationIssue(
                ValidationIssueType.ORPHANED_NODES,
                node_id,
                f"Node {node_id} has no connections (orphaned)",
                "warning",
            )
        )

    for node_id in unreachable:
        warnings.append(
            ValidationIssue(
                ValidationIssueType.UNREACHABLE_NODES,
                node_id,
                f"Node {node_id} is unreachable from root nodes",
                "warning",
            )
        )

    for cycle in cycles:
        rendered = " -> ".join(cycle)
        errors.append(
            ValidationIssue(
                ValidationIssueType.CIRCULAR_DEPENDENCY,
                rendered,
                f"Circular dependency detected: {rendered}",
                "error",
                {"cycle": tuple(cycle)},
            )
        )

    statistics = ValidationStatistics(
        total_nodes=len(project.nodes),
        total_edges=len(project.edges),
        nodes_by_type=nodes_by_type,
        root_nodes=len(roots),
        leaf_nodes=len(leaves),
        orphaned_nodes=len(orphans),
        unreachable_nodes=len(unreachable),
        cycle_count=len(cycles),
    )

    result = ValidationResult(
        errors=tuple(errors),
        warnings=tuple(warnings),
        info=tuple(info),
        statistics=statistics,
    )
    logger.debug(
        "Validated project: %d errors, %d warnings", len(result.errors), len(result.warnings)
    )
    return result


def quick_validate(project: Project) -> QuickValidationResult:
    """Check only that every edge endpoint references an existing node."""

    node_ids = {node.id for node in project.nodes}
    problems: list[str] = []
    for edge in project.edges:
        if edge.source not in node_ids:
            problems.append(f"Edge {edge.id} references missing source node: {edge.source}")
        if edge.target not in node_ids:
            problems.append(f"Edge {edge.id} references missing target node: {edge.target}")
    return QuickValidationResult(is_valid=not problems, errors=tuple(problems))


def _format_issue_section(title: str, issues: Sequence[ValidationIssue]) -> list[str]:
    if not issues:
        return []
    lines = [f"{title} ({len(issues)}):"]
    lines.extend(f"- [{issue.type.value}] {issue.message}" for issue in issues)
    return lines


def format_validation_report(result: ValidationResult) -> str:
    """Return a human-friendly report describing ``result``."""

    stats = result.statistics
    lines = [
        "Project Validation",
        "==================",
        f"Status: {'valid' if result.is_valid else 'invalid'}",
        f"Nodes: {stats.total_nodes}",
        f"Edges: {stats.total_edges}",
        (
            f"Roots: {stats.root_nodes} | Leaves: {stats.leaf_nodes} | "
            f"Orphans: {stats.orphaned_nodes} | Unreachable: {stats.unreachable_nodes}"
        ),
    ]

    if stats.nodes_by_type:
        lines.append(
            "Node types: "
            + ", ".join(
                f"{node_type}={count}"
                for node_type, count in sorted(stats.nodes_by_type.items())
            )
        )

    lines.extend(_format_issue_section("Errors", result.errors))
    lines.extend(_format_issue_section("Warnings", result.warnings))
    lines.extend(_format_issue_section("Info", result.info))

    if not result.errors and not result.warnings:
        lines.append("No structural issues detected.")

    return "\n".join(lines)


__all__ = [
    "CRITICAL_ISSUE_TYPES",
    "QuickValidationResult",
    "ValidationIssue",
    "ValidationIssueType",
    "ValidationResult",
    "ValidationStatistics",
    "find_cycles",
    "format_validation_report",
    "is_valid_node_id",
    "quick_validate",
    "validate_project",
]
