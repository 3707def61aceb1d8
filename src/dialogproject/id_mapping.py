"""Deterministic identifier remapping used while migrating legacy projects."""

from __future__ import annotations

import re
from typing import Any

_SUFFIX_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"
_SUFFIX_LENGTH = 4
_NON_ALPHANUMERIC = re.compile(r"[^a-zA-Z0-9]")
_UNKNOWN_TYPE = "unknown"


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return value


def _rolling_hash(text: str) -> int:
    """Return the 32-bit ``h * 31 + c`` hash of ``text``.

    Characters are consumed as UTF-16 code units so identifiers produced here
    match those minted by earlier releases of the editor.
    """

    encoded = text.encode("utf-16-le", "surrogatepass")
    value = 0
    for index in range(0, len(encoded), 2):
        code_unit = encoded[index] | (encoded[index + 1] << 8)
        value = _to_int32(_to_int32(value << 5) - value + code_unit)
    return value


def deterministic_suffix(seed: str, node_type: str) -> str:
    """Return a short alphanumeric tail derived from ``seed`` and ``node_type``.

    The suffix only exists to keep remapped identifiers apart; it is not a
    security primitive.
    """

    value = _rolling_hash(seed + node_type)
    return "".join(
        _SUFFIX_ALPHABET[abs(value + offset) % len(_SUFFIX_ALPHABET)]
        for offset in range(_SUFFIX_LENGTH)
    )


def sanitize_identifier(old_id: str) -> str:
    """Strip non-alphanumerics and guarantee a leading letter."""

    cleaned = _NON_ALPHANUMERIC.sub("", old_id) or "migrated"
    if cleaned[0].isdigit():
        cleaned = "n" + cleaned
    return cleaned


def coerce_legacy_id(value: Any) -> str:
    """Return ``value`` as a string identifier.

    Legacy documents used both string and integer identifiers. Anything else
    (including booleans and missing values) cannot be remapped.
    """

    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ValueError(f"Legacy identifier must be a string or integer, got {value!r}")
    return str(value)


class IdRemapper:
    """Mint collision-free node identifiers for a single migration run.

    Instances hold per-run counters only and must not be shared between
    migrations. Node identifiers are minted by passing ``node_type``; edge
    endpoints are resolved by omitting it, which returns the identifier minted
    for the *first* node seen with that legacy id.
    """

    def __init__(self) -> None:
        self._first_occurrence: dict[str, str] = {}
        self._occurrences: dict[tuple[str, str], int] = {}
        self._minted: dict[tuple[str, str, int], str] = {}

    def map_id(self, old_id: Any, node_type: str | None = None) -> str:
        """Return the remapped identifier for ``old_id``.

        Args:
            old_id: Identifier found in the legacy document.
            node_type: Current node type when minting a node identifier. When
                omitted the call resolves an edge endpoint.

        Raises:
            ValueError: If ``old_id`` is not a string or integer.
        """

        key = coerce_legacy_id(old_id)
        if node_type is None and key in self._first_occurrence:
            return self._first_occurrence[key]

        type_name = node_type or _UNKNOWN_TYPE
        occurrence = self._occurrences.get((key, type_name), 0)
        self._occurrences[(key, type_name)] = occurrence + 1

        body = sanitize_identifier(key) + deterministic_suffix(
            key + str(occurrence), type_name
        )
        # Unresolved endpoints get no type prefix so they never match a node.
        new_id = f"{node_type}_{body}" if node_type else body

        self._minted[(key, type_name, occurrence)] = new_id
        if node_type and key not in self._first_occurrence:
            self._first_occurrence[key] = new_id
        return new_id

    def is_known(self, old_id: Any) -> bool:
        """Return ``True`` when ``old_id`` was minted for a node."""

        return coerce_legacy_id(old_id) in self._first_occurrence

    def mapping(self) -> dict[tuple[str, str, int], str]:
        """Return a copy of every identifier minted so far."""

        return dict(self._minted)


__all__ = [
    "IdRemapper",
    "coerce_legacy_id",
    "deterministic_suffix",
    "sanitize_identifier",
]
