"""Upgrade legacy (``1.0.0``) dialog projects to the current schema."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Callable, Mapping

from pydantic import ValidationError

from .id_mapping import (
    IdRemapper,
    coerce_legacy_id,
    deterministic_suffix,
    sanitize_identifier,
)
from .schema import (
    CONDITION_OPERATORS,
    CURRENT_SCHEMA_VERSION,
    EFFECT_OPERATORS,
    LEGACY_SCHEMA_VERSION,
    TAG_TYPES,
    DialogNode,
    Edge,
    LegacyProject,
    Project,
    Tag,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

FALLBACK_NODE_TYPE = "customNode"
FALLBACK_CONDITION_OPERATOR = "=="
FALLBACK_EFFECT_OPERATOR = "set"
FALLBACK_TAG_TYPE = "general"

NODE_TYPE_MAP: Mapping[str, str] = MappingProxyType(
    {
        "npc": "npcDialog",
        "npcDialog": "npcDialog",
        "player": "playerResponse",
        "playerResponse": "playerResponse",
        "enemy": "enemyDialog",
        "enemyDialog": "enemyDialog",
        "narrator": "narratorNode",
        "narratorNode": "narratorNode",
        "choice": "choiceNode",
        "choiceNode": "choiceNode",
        "character": "characterDialogNode",
        "characterDialogNode": "characterDialogNode",
        "scene": "sceneNode",
        "sceneNode": "sceneNode",
        "sceneDescription": "sceneDescriptionNode",
        "sceneDescriptionNode": "sceneDescriptionNode",
        "branching": "branchingNode",
        "branchingNode": "branchingNode",
        "custom": "customNode",
        "customNode": "customNode",
    }
)

CONDITION_OPERATOR_MAP: Mapping[str, str] = MappingProxyType(
    {
        "=": "==",
        "eq": "==",
        "equals": "==",
        "ne": "!=",
        "neq": "!=",
        "not_equals": "!=",
        "gt": ">",
        "greater_than": ">",
        "lt": "<",
        "less_than": "<",
        "gte": ">=",
        "ge": ">=",
        "lte": "<=",
        "le": "<=",
        "contains": "includes",
    }
)

EFFECT_OPERATOR_MAP: Mapping[str, str] = MappingProxyType(
    {
        "add": "+=",
        "subtract": "-=",
        "sub": "-=",
        "assign": "set",
        "append": "push",
        "delete": "remove",
        "del": "remove",
    }
)

TAG_TYPE_MAP: Mapping[str, str] = MappingProxyType(
    {
        "char": "character",
        "npc": "npc",
        "loc": "location",
        "obj": "item",
        "org": "organization",
        "skill": "trait",
        "mood": "emotion",
    }
)


class MigrationError(RuntimeError):
    """Raised when a document cannot be upgraded to the current schema.

    Attributes:
        cause: The underlying exception, when one triggered the failure.
        item_id: Legacy identifier of the node or edge that failed, if any.
    """

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        *,
        item_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.cause = cause
        self.item_id = item_id


@dataclass(frozen=True)
class MigrationPlan:
    """Dry-run description of what :func:`migrate_project` would do."""

    needs_migration: bool
    current_version: str | None
    target_version: str
    node_count: int
    edge_count: int
    tag_count: int


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _format_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    stamp = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _first(*candidates: Any, default: Any = None) -> Any:
    """Return the first truthy candidate, mirroring legacy ``a || b`` lookups."""

    for candidate in candidates:
        if candidate:
            return candidate
    return default


def _compact(payload: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


def _lookup(table: Mapping[str, str], key: Any, allowed: frozenset[str], fallback: str) -> str:
    if not isinstance(key, str):
        return fallback
    if key in table:
        return table[key]
    if key in allowed:
        return key
    return fallback


def map_node_type(legacy_type: Any) -> str:
    """Translate a legacy node type, falling back to ``customNode``."""

    if isinstance(legacy_type, str) and legacy_type in NODE_TYPE_MAP:
        return NODE_TYPE_MAP[legacy_type]
    return FALLBACK_NODE_TYPE


def map_condition_operator(operator: Any) -> str:
    """Translate a legacy comparison operator, falling back to equality."""

    return _lookup(
        CONDITION_OPERATOR_MAP, operator, CONDITION_OPERATORS, FALLBACK_CONDITION_OPERATOR
    )


def map_effect_operator(operator: Any) -> str:
    """Translate a legacy mutation operator, falling back to assignment."""

    return _lookup(EFFECT_OPERATOR_MAP, operator, EFFECT_OPERATORS, FALLBACK_EFFECT_OPERATOR)


def map_tag_type(legacy_type: Any) -> str:
    """Translate a legacy tag type, falling back to ``general``."""

    return _lookup(TAG_TYPE_MAP, legacy_type, TAG_TYPES, FALLBACK_TAG_TYPE)


def _migrate_clauses(
    raw: Any,
    *,
    kind: str,
    default_operator: str,
    translate: Callable[[Any], str],
) -> list[dict[str, Any]]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError(f"Legacy {kind} must be provided as a list.")

    clauses: list[dict[str, Any]] = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, Mapping):
            raise ValueError(f"Legacy {kind} entry #{index} must be an object.")
        operator = _first(entry.get("op"), entry.get("operator"), default=default_operator)
        clauses.append(
            _compact(
                {
                    "variable": _first(
                        entry.get("var"), entry.get("variable"), default="unknown"
                    ),
                    "operator": translate(operator),
                    "value": entry.get("value"),
                    "description": entry.get("description"),
                }
            )
        )
    return clauses


def _string_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, list) else []


def _migrate_node(legacy: Any, remapper: IdRemapper) -> dict[str, Any]:
    if not isinstance(legacy, Mapping):
        raise ValueError("Legacy node must be an object.")

    node_type = map_node_type(_first(legacy.get("type"), default=FALLBACK_NODE_TYPE))
    new_id = remapper.map_id(legacy.get("id"), node_type)

    data = _mapping(legacy.get("data"))
    position = _mapping(legacy.get("position"))
    metadata = _mapping(legacy.get("metadata"))
    data_style = _mapping(data.get("style"))
    node_style = _mapping(legacy.get("style"))

    node_data = _compact(
        {
            "color": _first(data.get("color"), legacy.get("color")),
            "size": data.get("size"),
        }
    )

    return _compact(
        {
            "id": new_id,
            "type": node_type,
            "position": {
                "x": _first(position.get("x"), default=0),
                "y": _first(position.get("y"), default=0),
            },
            "data": _compact(
                {
                    "text": _first(data.get("text"), legacy.get("text"), default=""),
                    "speaker": _first(data.get("speaker"), legacy.get("speaker")),
                    "conditions": _migrate_clauses(
                        data.get("conditions"),
                        kind="conditions",
                        default_operator=FALLBACK_CONDITION_OPERATOR,
                        translate=map_condition_operator,
                    ),
                    "effects": _migrate_clauses(
                        data.get("effects"),
                        kind="effects",
                        default_operator=FALLBACK_EFFECT_OPERATOR,
                        translate=map_effect_operator,
                    ),
                    "tags": _string_list(data.get("tags")),
                    "metadata": _compact(
                        {
                            "tags": _string_list(metadata.get("tags")),
                            "customPrompt": data.get("customPrompt"),
                            "systemMessage": data.get("systemMessage"),
                            "isProcessing": _first(
                                data.get("isProcessing"), legacy.get("isProcessing")
                            ),
                            "nodeData": node_data or None,
                        }
                    ),
                    "style": _compact(
                        {
                            "primaryColor": _first(
                                data_style.get("primaryColor"),
                                node_style.get("primaryColor"),
                            ),
                            "backgroundColor": data_style.get("backgroundColor"),
                            "borderColor": data_style.get("borderColor"),
                        }
                    ),
                }
            ),
            "width": legacy.get("width"),
            "height": legacy.get("height"),
            "selected": False,
            "dragging": False,
        }
    )


def _optional_id(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return coerce_legacy_id(value)


def _migrate_edge(legacy: Any, remapper: IdRemapper, index: int) -> dict[str, Any]:
    if not isinstance(legacy, Mapping):
        raise ValueError("Legacy edge must be an object.")

    source = remapper.map_id(_first(legacy.get("source"), legacy.get("from")))
    target = remapper.map_id(_first(legacy.get("target"), legacy.get("to")))
    edge_id = _optional_id(legacy.get("id")) or (
        f"edge_{source}_{target}_"
        f"{deterministic_suffix(f'{source}{target}', f'edge{index}')}"
    )
    animated = legacy.get("animated")

    return _compact(
        {
            "id": edge_id,
            "source": source,
            "target": target,
            "sourceHandle": legacy.get("sourceHandle"),
            "targetHandle": legacy.get("targetHandle"),
            "type": _first(legacy.get("type"), default="default"),
            "label": legacy.get("label"),
            "animated": animated if animated is not None else False,
            "style": legacy.get("style"),
            "data": legacy.get("data"),
        }
    )


def _migrate_tag(legacy: Any, index: int) -> dict[str, Any]:
    if not isinstance(legacy, Mapping):
        raise ValueError("Legacy tag must be an object.")

    metadata = _mapping(legacy.get("metadata"))
    label = _first(legacy.get("label"), legacy.get("name"), default="Unnamed Tag")
    minted_id = (
        f"tag_{sanitize_identifier(str(label))}"
        f"{deterministic_suffix(str(label), f'tag{index}')}"
    )
    return _compact(
        {
            "id": _optional_id(legacy.get("id")) or minted_id,
            "label": label,
            "type": map_tag_type(legacy.get("type")),
            "content": _first(legacy.get("content"), legacy.get("description")),
            "projectType": legacy.get("projectType"),
            "metadata": _compact(
                {
                    "importance": _first(
                        metadata.get("importance"), legacy.get("importance"), default=3
                    ),
                    "color": _first(metadata.get("color"), legacy.get("color")),
                    "characterVoice": metadata.get("characterVoice"),
                    "narrativePacing": metadata.get("narrativePacing"),
                }
            ),
            "value": legacy.get("value"),
        }
    )


def _legacy_label(entry: Any) -> str:
    if isinstance(entry, Mapping):
        return str(entry.get("id"))
    return repr(entry)


def _legacy_edges(legacy: LegacyProject) -> list[Any]:
    if legacy.edges is not None:
        return legacy.edges
    return legacy.connections or []


def _upgrade(legacy: LegacyProject, clock: Clock) -> Project:
    remapper = IdRemapper()

    nodes: list[dict[str, Any]] = []
    for entry in legacy.nodes:
        label = _legacy_label(entry)
        try:
            node = _migrate_node(entry, remapper)
            DialogNode.model_validate(node)
        except (ValueError, TypeError) as exc:
            logger.error("Failed to migrate node %s: %s", label, exc)
            raise MigrationError(
                f"Failed to migrate node {label}", exc, item_id=label
            ) from exc
        nodes.append(node)

    edges: list[dict[str, Any]] = []
    for index, entry in enumerate(_legacy_edges(legacy)):
        label = _legacy_label(entry)
        try:
            edge = _migrate_edge(entry, remapper, index)
            Edge.model_validate(edge)
        except (ValueError, TypeError) as exc:
            logger.error("Failed to migrate edge %s: %s", label, exc)
            raise MigrationError(
                f"Failed to migrate edge {label}", exc, item_id=label
            ) from exc
        edges.append(edge)

    tags: list[dict[str, Any]] = []
    for index, entry in enumerate(legacy.tags):
        try:
            tag = _migrate_tag(entry, index)
            Tag.model_validate(tag)
        except (ValueError, TypeError) as exc:
            logger.warning("Skipping tag %s: %s", _legacy_label(entry), exc)
            continue
        tags.append(tag)

    timestamp = _format_timestamp(clock())
    document = {
        "schemaVersion": CURRENT_SCHEMA_VERSION,
        "nodes": nodes,
        "edges": edges,
        "tags": tags,
        "metadata": {
            "createdAt": timestamp,
            "lastModified": timestamp,
            "projectType": "game",
            "title": "Migrated Project",
            "totalNodes": len(nodes),
            "totalEdges": len(edges),
        },
    }

    try:
        project = Project.model_validate(document)
    except ValidationError as exc:
        raise MigrationError(
            "Migration produced invalid current-schema project", exc
        ) from exc

    logger.info(
        "Migration completed: %d nodes, %d edges, %d tags",
        len(nodes),
        len(edges),
        len(tags),
    )
    return project


def migrate_project(raw: Any, *, clock: Clock | None = None) -> Project:
    """Return ``raw`` upgraded to the current project schema.

    Documents that already satisfy the current schema are returned unchanged.
    Legacy documents are translated node by node; any node or edge failure
    aborts the whole migration while invalid tags are skipped.

    Args:
        raw: Parsed JSON document.
        clock: Optional callable returning the timestamp recorded in the
            migrated project's metadata.

    Raises:
        MigrationError: If the document cannot be upgraded.
    """

    try:
        current = Project.model_validate(raw)
    except ValidationError:
        current = None
    if current is not None:
        logger.info("Project already uses schema %s; no migration needed", CURRENT_SCHEMA_VERSION)
        return current

    try:
        legacy = LegacyProject.model_validate(raw)
    except ValidationError as exc:
        raise MigrationError(
            "Invalid project format - cannot parse as legacy or current schema", exc
        ) from exc

    logger.info(
        "Migrating project from schema %s to %s",
        legacy.schema_version or LEGACY_SCHEMA_VERSION,
        CURRENT_SCHEMA_VERSION,
    )
    try:
        return _upgrade(legacy, clock or _utc_now)
    except MigrationError:
        raise
    except Exception as exc:
        raise MigrationError("Migration failed with unexpected error", exc) from exc


def describe_migration(raw: Any) -> MigrationPlan:
    """Inspect ``raw`` and report whether and how it would be migrated."""

    try:
        Project.model_validate(raw)
    except ValidationError:
        pass
    else:
        return MigrationPlan(
            needs_migration=False,
            current_version=CURRENT_SCHEMA_VERSION,
            target_version=CURRENT_SCHEMA_VERSION,
            node_count=0,
            edge_count=0,
            tag_count=0,
        )

    try:
        legacy = LegacyProject.model_validate(raw)
    except ValidationError:
        return MigrationPlan(
            needs_migration=True,
            current_version=None,
            target_version=CURRENT_SCHEMA_VERSION,
            node_count=0,
            edge_count=0,
            tag_count=0,
        )

    return MigrationPlan(
        needs_migration=True,
        current_version=legacy.schema_version or LEGACY_SCHEMA_VERSION,
        target_version=CURRENT_SCHEMA_VERSION,
        node_count=len(legacy.nodes),
        edge_count=len(_legacy_edges(legacy)),
        tag_count=len(legacy.tags),
    )


__all__ = [
    "CONDITION_OPERATOR_MAP",
    "EFFECT_OPERATOR_MAP",
    "MigrationError",
    "MigrationPlan",
    "NODE_TYPE_MAP",
    "TAG_TYPE_MAP",
    "describe_migration",
    "map_condition_operator",
    "map_effect_operator",
    "map_node_type",
    "map_tag_type",
    "migrate_project",
]
