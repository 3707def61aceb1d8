"""Configuration helpers for the project import pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

DEFAULT_MAX_FILE_SIZE = 15 * 1024 * 1024
DEFAULT_MAX_NODES = 10_000
DEFAULT_MAX_EDGES = 20_000
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_DEPTH = 200

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def _normalise_string(value: str | None) -> str | None:
    if value is None:
        return None

    trimmed = value.strip()
    return trimmed or None


def _parse_positive_int(name: str, value: str | None, *, default: int) -> int:
    trimmed = _normalise_string(value)
    if trimmed is None:
        return default
    try:
        parsed = int(trimmed)
    except ValueError as exc:
        raise ValueError(f"{name} must be a positive integer.") from exc
    if parsed < 1:
        raise ValueError(f"{name} must be greater than zero.")
    return parsed


def _parse_positive_float(name: str, value: str | None, *, default: float) -> float:
    trimmed = _normalise_string(value)
    if trimmed is None:
        return default
    try:
        parsed = float(trimmed)
    except ValueError as exc:
        raise ValueError(f"{name} must be a positive number of seconds.") from exc
    if not parsed > 0:
        raise ValueError(f"{name} must be greater than zero.")
    return parsed


def _parse_bool(name: str, value: str | None, *, default: bool) -> bool:
    trimmed = _normalise_string(value)
    if trimmed is None:
        return default
    lowered = trimmed.casefold()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean flag (true/false).")


@dataclass(frozen=True)
class EngineSettings:
    """Resource ceilings and execution options for project imports.

    Values can be read from environment variables so deployments can tune the
    limits without code changes. Empty strings are treated as if the variable
    was unset.
    """

    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    max_nodes: int = DEFAULT_MAX_NODES
    max_edges: int = DEFAULT_MAX_EDGES
    max_depth: int = DEFAULT_MAX_DEPTH
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    use_isolation: bool = True
    start_method: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "EngineSettings":
        """Return settings populated from ``environ``.

        Args:
            environ: Optional mapping of environment variables. When omitted,
                :data:`os.environ` is used.
        """

        source = environ if environ is not None else os.environ

        return cls(
            max_file_size=_parse_positive_int(
                "DIALOGPROJECT_MAX_FILE_SIZE",
                source.get("DIALOGPROJECT_MAX_FILE_SIZE"),
                default=DEFAULT_MAX_FILE_SIZE,
            ),
            max_nodes=_parse_positive_int(
                "DIALOGPROJECT_MAX_NODES",
                source.get("DIALOGPROJECT_MAX_NODES"),
                default=DEFAULT_MAX_NODES,
            ),
            max_edges=_parse_positive_int(
                "DIALOGPROJECT_MAX_EDGES",
                source.get("DIALOGPROJECT_MAX_EDGES"),
                default=DEFAULT_MAX_EDGES,
            ),
            max_depth=_parse_positive_int(
                "DIALOGPROJECT_MAX_DEPTH",
                source.get("DIALOGPROJECT_MAX_DEPTH"),
                default=DEFAULT_MAX_DEPTH,
            ),
            timeout_seconds=_parse_positive_float(
                "DIALOGPROJECT_IMPORT_TIMEOUT",
                source.get("DIALOGPROJECT_IMPORT_TIMEOUT"),
                default=DEFAULT_TIMEOUT_SECONDS,
            ),
            use_isolation=_parse_bool(
                "DIALOGPROJECT_USE_ISOLATION",
                source.get("DIALOGPROJECT_USE_ISOLATION"),
                default=True,
            ),
            start_method=_normalise_string(source.get("DIALOGPROJECT_START_METHOD")),
        )


__all__ = ["EngineSettings"]
