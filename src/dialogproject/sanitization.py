"""Best-effort hardening applied to untrusted project payloads before parsing."""

from __future__ import annotations

import re
from typing import Any, Mapping

DANGEROUS_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"<script[\s\S]*?</script>", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"eval\s*\(", re.IGNORECASE),
    re.compile(r"Function\s*\(", re.IGNORECASE),
    re.compile(r"setTimeout\s*\(", re.IGNORECASE),
    re.compile(r"setInterval\s*\(", re.IGNORECASE),
)

_EXHAUSTED = object()


def payload_size(payload: str | bytes) -> int:
    """Return the size of ``payload`` in bytes (UTF-8 for text)."""

    if isinstance(payload, bytes):
        return len(payload)
    return len(payload.encode("utf-8", "surrogatepass"))


def sanitize_text(text: str) -> str:
    """Remove script-like fragments from ``text``.

    This is a coarse filter, not a sandbox: it only strips the fixed
    :data:`DANGEROUS_PATTERNS` and makes no promise about what remains.
    """

    sanitized = text
    for pattern in DANGEROUS_PATTERNS:
        sanitized = pattern.sub("", sanitized)
    return sanitized


def has_circular_references(document: Any) -> bool:
    """Return ``True`` if a container in ``document`` contains itself.

    Only containers on the current path count, so a sub-object shared by two
    siblings is not treated as a cycle.
    """

    if not isinstance(document, (Mapping, list, tuple)):
        return False

    on_path: set[int] = set()
    # Each frame holds the container id and an iterator over its children.
    stack: list[tuple[int, Any]] = []

    def _enter(container: Any) -> bool:
        marker = id(container)
        if marker in on_path:
            return True
        on_path.add(marker)
        children = container.values() if isinstance(container, Mapping) else container
        stack.append((marker, iter(children)))
        return False

    if _enter(document):
        return True

    while stack:
        marker, children = stack[-1]
        child = next(children, _EXHAUSTED)
        if child is _EXHAUSTED:
            stack.pop()
            on_path.discard(marker)
            continue
        if isinstance(child, (Mapping, list, tuple)) and _enter(child):
            return True
    return False


def exceeds_nesting_depth(document: Any, limit: int) -> bool:
    """Return ``True`` if containers in ``document`` nest deeper than ``limit``.

    The top-level container sits at depth one. Scalars never count.
    """

    stack: list[tuple[Any, int]] = [(document, 1)]
    while stack:
        value, depth = stack.pop()
        if not isinstance(value, (Mapping, list, tuple)):
            continue
        if depth > limit:
            return True
        children = value.values() if isinstance(value, Mapping) else value
        stack.extend((child, depth + 1) for child in children)
    return False


def count_collection(document: Mapping[str, Any], *keys: str) -> int:
    """Return the length of the first list found under ``keys``."""

    for key in keys:
        value = document.get(key)
        if value is not None:
            return len(value) if isinstance(value, list) else 0
    return 0


__all__ = [
    "DANGEROUS_PATTERNS",
    "count_collection",
    "exceeds_nesting_depth",
    "has_circular_references",
    "payload_size",
    "sanitize_text",
]
