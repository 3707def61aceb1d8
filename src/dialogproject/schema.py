"""Pydantic models describing legacy and current dialog project documents."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Annotated, Any, Literal, get_args

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    field_validator,
)
from pydantic.alias_generators import to_camel

CURRENT_SCHEMA_VERSION = "2.0.0"
LEGACY_SCHEMA_VERSION = "1.0.0"

NODE_ID_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9]*_[a-zA-Z0-9]+$")

NodeType = Literal[
    "npcDialog",
    "playerResponse",
    "enemyDialog",
    "narratorNode",
    "choiceNode",
    "characterDialogNode",
    "sceneDescriptionNode",
    "sceneNode",
    "branchingNode",
    "customNode",
    "subgraphNode",
]

ConditionOperator = Literal["==", "!=", ">", "<", ">=", "<=", "in", "includes", "contains"]

EffectOperator = Literal["+=", "-=", "set", "push", "remove"]

TagType = Literal[
    "character",
    "player",
    "enemy",
    "npc",
    "quest",
    "side_quest",
    "main_quest",
    "item",
    "weapon",
    "armor",
    "consumable",
    "location",
    "world",
    "scene",
    "emotion",
    "trait",
    "relationship",
    "faction",
    "group",
    "organization",
    "choice",
    "branch_yes",
    "branch_no",
    "comedy",
    "drama",
    "suspense",
    "action",
    "chapter",
    "intro",
    "climax",
    "ending",
    "dialogue_scene",
    "monologue",
    "action_scene",
    "general",
]

ProjectType = Literal["game", "interactive_story", "novel"]

NODE_TYPES: frozenset[str] = frozenset(get_args(NodeType))
CONDITION_OPERATORS: frozenset[str] = frozenset(get_args(ConditionOperator))
EFFECT_OPERATORS: frozenset[str] = frozenset(get_args(EffectOperator))
TAG_TYPES: frozenset[str] = frozenset(get_args(TagType))

Number = Annotated[float, Field(strict=True)]
PositiveNumber = Annotated[float, Field(strict=True, gt=0)]


class _CurrentModel(BaseModel):
    """Base class for the closed, immutable current-schema models."""

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        alias_generator=to_camel,
    )


class Position(_CurrentModel):
    """Canvas coordinates of a node."""

    x: Number
    y: Number


class NodeCondition(_CurrentModel):
    """Predicate gating whether a node can be visited."""

    variable: str = Field(..., min_length=1)
    operator: ConditionOperator
    value: Any = None
    description: str | None = None


class NodeEffect(_CurrentModel):
    """Mutation applied to a story variable when a node is visited."""

    variable: str = Field(..., min_length=1)
    operator: EffectOperator
    value: Any = None
    description: str | None = None


class NodeSize(_CurrentModel):
    width: PositiveNumber
    height: PositiveNumber


class NodeVisualData(_CurrentModel):
    color: str | None = None
    size: NodeSize | None = None


class SubgraphPort(_CurrentModel):
    id: str
    label: str
    data_type: str | None = None


class SubgraphData(_CurrentModel):
    """Nested graph embedded in a ``subgraphNode``."""

    nodes: list[Any] = Field(default_factory=list)
    edges: list[Any] = Field(default_factory=list)
    inputs: list[SubgraphPort] = Field(default_factory=list)
    outputs: list[SubgraphPort] = Field(default_factory=list)


class NodeMetadata(_CurrentModel):
    is_processing: StrictBool | None = None
    custom_prompt: str | None = None
    system_message: str | None = None
    speaker: str | None = None
    tags: list[str] = Field(default_factory=list)
    node_data: NodeVisualData | None = None
    subgraph: SubgraphData | None = None


class NodeStyle(_CurrentModel):
    primary_color: str | None = None
    background_color: str | None = None
    border_color: str | None = None


class DialogNodeData(_CurrentModel):
    """Dialog content carried by a node."""

    text: str = Field("", max_length=5000)
    speaker: str | None = None
    conditions: list[NodeCondition] = Field(default_factory=list)
    effects: list[NodeEffect] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    metadata: NodeMetadata | None = None
    style: NodeStyle | None = None


class DialogNode(_CurrentModel):
    """A dialog unit positioned on the canvas.

    The identifier must follow the ``<nodeType>_<alphanumeric>`` pattern.
    """

    id: str = Field(..., pattern=NODE_ID_PATTERN.pattern)
    type: NodeType
    position: Position
    data: DialogNodeData
    width: PositiveNumber | None = None
    height: PositiveNumber | None = None
    selected: StrictBool | None = None
    dragging: StrictBool | None = None
    drag_handle: str | None = None


class Edge(_CurrentModel):
    """Directed link between two nodes."""

    id: str
    source: str
    target: str
    source_handle: str | None = None
    target_handle: str | None = None
    type: str | None = None
    label: str | None = None
    animated: StrictBool | None = None
    style: dict[str, Any] | None = None
    data: dict[str, Any] | None = None


class RelationshipDynamic(_CurrentModel):
    trust: Number
    tension: Number
    history: str


class CharacterVoice(_CurrentModel):
    """Characterisation hints attached to a character tag."""

    speech_patterns: list[str] | None = None
    emotional_range: dict[str, Number] | None = None
    vocabulary_level: Literal["simple", "moderate", "complex", "archaic"] | None = None
    dialect_markers: list[str] | None = None
    conversation_style: (
        Literal["formal", "casual", "aggressive", "passive", "sarcastic"] | None
    ) = None
    conflict_avoidance: Number | None = None
    trust_level: Number | None = None
    secrets_known: list[str] | None = None
    personal_motivations: list[str] | None = None
    relationship_dynamics: dict[str, RelationshipDynamic] | None = None


class NarrativePacing(_CurrentModel):
    tension_level: Number | None = None
    pacing_speed: Literal["slow", "moderate", "fast", "climactic"] | None = None
    emotional_beat: (
        Literal["setup", "building", "climax", "resolution", "transition"] | None
    ) = None
    story_arc: (
        Literal["exposition", "rising_action", "climax", "falling_action", "resolution"]
        | None
    ) = None
    thematic_weight: Number | None = None


class TagMetadata(_CurrentModel):
    importance: Annotated[float, Field(strict=True, ge=1, le=5)] = 3
    color: str | None = None
    description: str | None = None
    character_voice: CharacterVoice | None = None
    narrative_pacing: NarrativePacing | None = None


class Tag(_CurrentModel):
    """Reusable annotation carrying characterisation or context metadata."""

    id: str
    label: str = Field(..., min_length=1, max_length=100)
    type: TagType
    content: str | None = Field(None, max_length=1000)
    project_type: ProjectType | None = None
    metadata: TagMetadata | None = None
    value: Any = None


class ProjectMetadata(_CurrentModel):
    created_at: str
    last_modified: str
    project_type: ProjectType = "game"
    title: str | None = Field(None, max_length=200)
    description: str | None = Field(None, max_length=1000)
    author: str | None = Field(None, max_length=100)
    version: str | None = None
    total_nodes: Annotated[int, Field(strict=True, ge=0)] | None = None
    total_edges: Annotated[int, Field(strict=True, ge=0)] | None = None

    @field_validator("created_at", "last_modified")
    @classmethod
    def _validate_timestamp(cls, value: str) -> str:
        try:
            datetime.fromisoformat(value)
        except ValueError as exc:
            raise ValueError("Timestamps must be ISO-8601 datetimes.") from exc
        return value


class Viewport(_CurrentModel):
    x: Number
    y: Number
    zoom: PositiveNumber


class Project(_CurrentModel):
    """A dialog project in the current (``2.0.0``) schema."""

    schema_version: Literal["2.0.0"]
    nodes: list[DialogNode]
    edges: list[Edge]
    tags: list[Tag] = Field(default_factory=list)
    metadata: ProjectMetadata | None = None
    viewport: Viewport | None = None

    def to_document(self) -> dict[str, Any]:
        """Return the camelCase, JSON-ready mapping for this project."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class LegacyProject(BaseModel):
    """Loosely typed ``1.0.0`` project accepted before migration.

    Unknown top-level fields are preserved rather than rejected, and the
    version marker may be omitted entirely.
    """

    model_config = ConfigDict(
        extra="allow",
        alias_generator=to_camel,
    )

    schema_version: Literal["1.0.0"] | None = None
    nodes: list[Any]
    connections: list[Any] | None = None
    edges: list[Any] | None = None
    tags: list[Any] = Field(default_factory=list)


__all__ = [
    "CONDITION_OPERATORS",
    "CURRENT_SCHEMA_VERSION",
    "CharacterVoice",
    "ConditionOperator",
    "DialogNode",
    "DialogNodeData",
    "EFFECT_OPERATORS",
    "Edge",
    "EffectOperator",
    "LEGACY_SCHEMA_VERSION",
    "LegacyProject",
    "NODE_ID_PATTERN",
    "NODE_TYPES",
    "NarrativePacing",
    "NodeCondition",
    "NodeEffect",
    "NodeMetadata",
    "NodeSize",
    "NodeStyle",
    "NodeType",
    "NodeVisualData",
    "Position",
    "Project",
    "ProjectMetadata",
    "ProjectType",
    "RelationshipDynamic",
    "SubgraphData",
    "SubgraphPort",
    "TAG_TYPES",
    "Tag",
    "TagMetadata",
    "TagType",
    "Viewport",
]
