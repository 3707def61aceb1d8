"""Tests for upgrading legacy projects to the current schema."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Callable

import pytest

from dialogproject.migration import (
    MigrationError,
    describe_migration,
    map_condition_operator,
    map_effect_operator,
    map_node_type,
    map_tag_type,
    migrate_project,
)
from dialogproject.schema import Project

Clock = Callable[[], datetime]


def test_current_projects_pass_through_unchanged(current_document: dict[str, Any]) -> None:
    expected = Project.model_validate(current_document)

    result = migrate_project(current_document)

    assert result == expected
    assert result.metadata is None
    assert [node.id for node in result.nodes] == [
        "npcDialog_greeting",
        "playerResponse_thanks",
    ]


def test_migration_is_idempotent(legacy_document: dict[str, Any], fixed_clock: Clock) -> None:
    migrated = migrate_project(legacy_document, clock=fixed_clock)

    again = migrate_project(migrated.to_document())

    assert again == migrated


def test_basic_legacy_project(fixed_clock: Clock) -> None:
    legacy = {
        "schemaVersion": "1.0.0",
        "nodes": [
            {
                "id": "oldNode1",
                "type": "npc",
                "position": {"x": 100, "y": 200},
                "data": {"text": "Hello from V1!", "speaker": "Old NPC"},
            }
        ],
        "connections": [{"id": "oldEdge1", "source": "oldNode1", "target": "oldNode2"}],
        "tags": [],
    }

    result = migrate_project(legacy, clock=fixed_clock)

    assert result.schema_version == "2.0.0"
    assert len(result.nodes) == 1
    assert len(result.edges) == 1
    node = result.nodes[0]
    assert node.type == "npcDialog"
    assert node.data.text == "Hello from V1!"
    assert node.data.speaker == "Old NPC"
    assert (node.position.x, node.position.y) == (100, 200)
    assert re.match(r"^npcDialog_[a-zA-Z0-9]+$", node.id)
    assert result.edges[0].source == node.id
    # The unknown target stays unresolved and is left for validation to flag.
    assert result.edges[0].target != node.id


def test_metadata_records_counts_and_timestamps(
    legacy_document: dict[str, Any], fixed_clock: Clock
) -> None:
    result = migrate_project(legacy_document, clock=fixed_clock)

    assert result.metadata is not None
    assert result.metadata.created_at == "2025-08-11T14:56:03.855Z"
    assert result.metadata.last_modified == result.metadata.created_at
    assert result.metadata.title == "Migrated Project"
    assert result.metadata.project_type == "game"
    assert result.metadata.total_nodes == 2
    assert result.metadata.total_edges == 1


def test_node_types_are_translated() -> None:
    legacy = {
        "nodes": [
            {"id": str(index), "type": legacy_type, "data": {"text": legacy_type}}
            for index, legacy_type in enumerate(
                ["npc", "player", "enemy", "narrator", "choice", "unknown"], start=1
            )
        ],
        "edges": [],
    }

    result = migrate_project(legacy)

    assert [node.type for node in result.nodes] == [
        "npcDialog",
        "playerResponse",
        "enemyDialog",
        "narratorNode",
        "choiceNode",
        "customNode",
    ]
    for node in result.nodes:
        assert node.id.startswith(f"{node.type}_n")


def test_missing_type_falls_back_to_custom_node() -> None:
    result = migrate_project({"nodes": [{"id": "x"}]})

    assert result.nodes[0].type == "customNode"
    assert result.nodes[0].data.text == ""


def test_conditions_and_effects_are_translated() -> None:
    legacy = {
        "nodes": [
            {
                "id": "nodeWithConditions",
                "type": "choice",
                "data": {
                    "text": "Choice with conditions",
                    "conditions": [
                        {"var": "health", "op": "gt", "value": 50},
                        {"variable": "level", "operator": "gte", "value": 5},
                        {"variable": "mood", "operator": "vibes", "value": "calm"},
                        {"variable": "items", "operator": "contains", "value": "key"},
                        {"value": 1},
                    ],
                    "effects": [
                        {"var": "gold", "op": "add", "value": 100},
                        {"variable": "xp", "operator": "assign", "value": 1000},
                        {"variable": "flags", "operator": "teleport"},
                    ],
                },
            }
        ],
        "edges": [],
    }

    node = migrate_project(legacy).nodes[0]

    assert [c.operator for c in node.data.conditions] == [">", ">=", "==", "includes", "=="]
    assert node.data.conditions[0].variable == "health"
    assert node.data.conditions[4].variable == "unknown"
    assert [e.operator for e in node.data.effects] == ["+=", "set", "set"]
    assert node.data.effects[0].variable == "gold"
    assert node.data.effects[2].value is None


def test_operator_tables() -> None:
    assert map_condition_operator("neq") == "!="
    assert map_condition_operator("<=") == "<="
    assert map_condition_operator(None) == "=="
    assert map_condition_operator(["gt"]) == "=="
    assert map_effect_operator("del") == "remove"
    assert map_effect_operator("push") == "push"
    assert map_effect_operator(3) == "set"
    assert map_node_type("sceneDescription") == "sceneDescriptionNode"
    assert map_node_type("subgraphNode") == "customNode"
    assert map_tag_type("mood") == "emotion"
    assert map_tag_type("quest") == "quest"
    assert map_tag_type("nonsense") == "general"


def test_legacy_fields_are_read_from_fallback_locations() -> None:
    legacy = {
        "nodes": [
            {
                "id": "legacy1",
                "type": "npc",
                "text": "Legacy text",
                "speaker": "Top-level speaker",
                "color": "#123456",
                "isProcessing": True,
                "style": {"primaryColor": "#abcdef"},
                "metadata": {"tags": ["mood"]},
                "width": 240,
                "height": 80,
            }
        ],
        "connections": [],
    }

    node = migrate_project(legacy).nodes[0]

    assert node.data.text == "Legacy text"
    assert node.data.speaker == "Top-level speaker"
    assert node.data.metadata is not None
    assert node.data.metadata.is_processing is True
    assert node.data.metadata.tags == ["mood"]
    assert node.data.metadata.node_data is not None
    assert node.data.metadata.node_data.color == "#123456"
    assert node.data.style is not None
    assert node.data.style.primary_color == "#abcdef"
    assert (node.width, node.height) == (240, 80)
    assert node.selected is False
    assert node.dragging is False


def test_tags_are_renamed_and_translated() -> None:
    legacy = {
        "nodes": [],
        "edges": [],
        "tags": [
            {
                "id": "oldTag1",
                "name": "Old Tag Name",
                "type": "char",
                "description": "Old tag description",
                "importance": 4,
                "color": "#ff0000",
            },
            {"label": "Missing ID Tag", "type": "loc"},
        ],
    }

    result = migrate_project(legacy)

    assert len(result.tags) == 2
    first, second = result.tags
    assert first.id == "oldTag1"
    assert first.label == "Old Tag Name"
    assert first.type == "character"
    assert first.content == "Old tag description"
    assert first.metadata is not None
    assert first.metadata.importance == 4
    assert first.metadata.color == "#ff0000"
    assert second.id.startswith("tag_")
    assert second.type == "location"
    assert second.label == "Missing ID Tag"


def test_invalid_tags_are_skipped_not_fatal(caplog: pytest.LogCaptureFixture) -> None:
    legacy = {
        "nodes": [{"id": "a", "type": "npc", "data": {"text": "Hi"}}],
        "edges": [],
        "tags": [
            {"id": "ok", "label": "Fine"},
            {"id": "loud", "label": "Too important", "importance": 9},
            {"id": "long", "label": "x" * 101},
            "not a tag",
            None,
        ],
    }

    with caplog.at_level("WARNING", logger="dialogproject.migration"):
        result = migrate_project(legacy)

    assert [tag.id for tag in result.tags] == ["ok"]
    assert len(result.nodes) == 1
    assert "Skipping tag" in caplog.text


def test_edges_accept_from_and_to_and_prefer_edges_collection() -> None:
    legacy = {
        "nodes": [
            {"id": "a", "type": "npc"},
            {"id": "b", "type": "player"},
        ],
        "edges": [{"from": "a", "to": "b", "label": "next", "animated": True}],
        "connections": [{"id": "ignored", "source": "b", "target": "a"}],
    }

    result = migrate_project(legacy)

    assert len(result.edges) == 1
    edge = result.edges[0]
    assert edge.source == result.nodes[0].id
    assert edge.target == result.nodes[1].id
    assert edge.id.startswith(f"edge_{edge.source}_{edge.target}_")
    assert edge.label == "next"
    assert edge.animated is True
    assert edge.type == "default"


def test_minted_edge_and_tag_ids_are_stable_across_runs(fixed_clock: Clock) -> None:
    legacy = {
        "nodes": [{"id": "a", "type": "npc"}, {"id": "b", "type": "player"}],
        "connections": [
            {"source": "a", "target": "b"},
            {"source": "a", "target": "b"},
        ],
        "tags": [{"name": "Harbour"}, {"name": "Harbour"}],
    }

    first = migrate_project(legacy, clock=fixed_clock)
    second = migrate_project(legacy, clock=fixed_clock)

    assert first == second
    edge_ids = [edge.id for edge in first.edges]
    assert len(set(edge_ids)) == 2
    tag_ids = [tag.id for tag in first.tags]
    assert len(set(tag_ids)) == 2
    assert all(tag_id.startswith("tag_Harbour") for tag_id in tag_ids)


def test_duplicate_legacy_ids_get_unique_ids_and_edges_use_first() -> None:
    legacy = {
        "nodes": [
            {"id": "dup", "type": "npc"},
            {"id": "dup", "type": "npc"},
            {"id": "end", "type": "player"},
        ],
        "connections": [
            {"id": "e1", "source": "dup", "target": "end"},
            {"id": "e2", "source": "end", "target": "dup"},
        ],
    }

    result = migrate_project(legacy)

    ids = [node.id for node in result.nodes]
    assert len(set(ids)) == 3
    first_dup, _, end = ids
    assert (result.edges[0].source, result.edges[0].target) == (first_dup, end)
    assert (result.edges[1].source, result.edges[1].target) == (end, first_dup)


def test_counts_are_preserved() -> None:
    nodes = [{"id": f"n{i}", "type": "narrator"} for i in range(25)]
    connections = [
        {"id": f"e{i}", "source": f"n{i}", "target": f"n{i + 1}"} for i in range(24)
    ]

    result = migrate_project({"nodes": nodes, "connections": connections})

    assert len(result.nodes) == 25
    assert len(result.edges) == 24
    assert len({node.id for node in result.nodes}) == 25
    for node in result.nodes:
        assert re.match(rf"^{node.type}_[a-zA-Z0-9]+$", node.id)


@pytest.mark.parametrize("invalid", ["not an object", 42, None, [], {"edges": []}])
def test_unrecognised_documents_raise(invalid: Any) -> None:
    with pytest.raises(MigrationError) as excinfo:
        migrate_project(invalid)

    assert "cannot parse" in str(excinfo.value)
    assert excinfo.value.cause is not None


def test_snake_case_keys_are_not_the_current_schema(fixed_clock: Clock) -> None:
    document = {"schema_version": "2.0.0", "nodes": [], "edges": []}

    result = migrate_project(document, clock=fixed_clock)

    assert result.metadata is not None
    assert result.metadata.title == "Migrated Project"
    assert describe_migration(document).needs_migration is True
    with pytest.raises(ValueError):
        Project.model_validate(document)


def test_current_version_with_broken_nodes_is_rejected(current_document: dict[str, Any]) -> None:
    current_document["nodes"][0]["id"] = "not valid!"

    with pytest.raises(MigrationError):
        migrate_project(current_document)


def test_node_failure_aborts_whole_migration() -> None:
    legacy = {
        "nodes": [
            {"id": "good", "type": "npc"},
            {"id": "bad", "type": "npc", "data": {"text": "x" * 5001}},
        ],
        "edges": [],
    }

    with pytest.raises(MigrationError) as excinfo:
        migrate_project(legacy)

    assert str(excinfo.value) == "Failed to migrate node bad"
    assert excinfo.value.item_id == "bad"
    assert excinfo.value.cause is not None


def test_node_without_id_fails() -> None:
    with pytest.raises(MigrationError, match="Failed to migrate node"):
        migrate_project({"nodes": [{"type": "npc"}]})


def test_edge_without_endpoint_fails() -> None:
    legacy = {
        "nodes": [{"id": "a", "type": "npc"}],
        "edges": [{"id": "broken", "source": "a"}],
    }

    with pytest.raises(MigrationError) as excinfo:
        migrate_project(legacy)

    assert excinfo.value.item_id == "broken"


def test_malformed_conditions_fail_the_node() -> None:
    legacy = {
        "nodes": [{"id": "a", "type": "npc", "data": {"conditions": {"var": "x"}}}],
    }

    with pytest.raises(MigrationError, match="Failed to migrate node a"):
        migrate_project(legacy)


def test_describe_current_project(current_document: dict[str, Any]) -> None:
    plan = describe_migration(current_document)

    assert plan.needs_migration is False
    assert plan.current_version == "2.0.0"
    assert plan.target_version == "2.0.0"


def test_describe_legacy_project() -> None:
    plan = describe_migration(
        {
            "schemaVersion": "1.0.0",
            "nodes": [{"id": "1"}, {"id": "2"}],
            "connections": [{"id": "e1"}],
            "tags": [{"id": "t1"}],
        }
    )

    assert plan.needs_migration is True
    assert plan.current_version == "1.0.0"
    assert (plan.node_count, plan.edge_count, plan.tag_count) == (2, 1, 1)


def test_describe_unversioned_and_invalid_documents() -> None:
    unversioned = describe_migration({"nodes": [{"id": "1"}, {"id": "2"}, {"id": "3"}]})
    invalid = describe_migration("not valid")

    assert unversioned.current_version == "1.0.0"
    assert unversioned.node_count == 3
    assert invalid.needs_migration is True
    assert invalid.current_version is None
    assert invalid.node_count == 0
