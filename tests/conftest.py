"""Test configuration for the dialog project engine."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import json
from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from dialogproject.settings import EngineSettings

FIXED_MOMENT = datetime(2025, 8, 11, 14, 56, 3, 855000, tzinfo=timezone.utc)


@pytest.fixture()
def fixed_clock() -> Callable[[], datetime]:
    """Clock returning the same instant on every call."""

    return lambda: FIXED_MOMENT


@pytest.fixture()
def in_process_settings() -> EngineSettings:
    """Default limits with the worker process disabled."""

    return EngineSettings(use_isolation=False)


@pytest.fixture()
def legacy_document() -> dict[str, Any]:
    """Minimal two-node legacy project linked by a single connection."""

    return {
        "schemaVersion": "1.0.0",
        "nodes": [
            {"id": "a", "type": "npc", "data": {"text": "Hi"}},
            {"id": "b", "type": "player", "data": {"text": "Hey"}},
        ],
        "connections": [{"id": "e1", "source": "a", "target": "b"}],
    }


@pytest.fixture()
def current_document() -> dict[str, Any]:
    """Small project already in the current schema."""

    return {
        "schemaVersion": "2.0.0",
        "nodes": [
            {
                "id": "npcDialog_greeting",
                "type": "npcDialog",
                "position": {"x": 0, "y": 0},
                "data": {
                    "text": "Welcome, traveller.",
                    "speaker": "Innkeeper",
                    "conditions": [],
                    "effects": [],
                    "tags": [],
                },
            },
            {
                "id": "playerResponse_thanks",
                "type": "playerResponse",
                "position": {"x": 0, "y": 120},
                "data": {
                    "text": "Thank you.",
                    "conditions": [{"variable": "gold", "operator": ">=", "value": 5}],
                    "effects": [{"variable": "gold", "operator": "-=", "value": 5}],
                    "tags": ["tag_inn"],
                },
            },
        ],
        "edges": [
            {
                "id": "edge_greeting_thanks",
                "source": "npcDialog_greeting",
                "target": "playerResponse_thanks",
            }
        ],
        "tags": [
            {
                "id": "tag_inn",
                "label": "Inn",
                "type": "location",
                "metadata": {"importance": 2},
            }
        ],
    }


@pytest.fixture()
def as_json() -> Callable[[Any], str]:
    """Serialise a document the way a saved project file would be."""

    return lambda document: json.dumps(document)
