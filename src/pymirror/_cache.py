"""Persistent cache collaborator.

Cached values are JSON text of a type's records, stored per
``(namespace_id, type_name)``.
"""

from __future__ import annotations

import json
from typing import Any, Protocol

from pymirror.state.store import decode_json


def cache_key(namespace_id: str, type_name: str) -> str:
    return f"store-{namespace_id}-{type_name}"


class CacheBackend(Protocol):
    """Structural key-value interface used for cross-session caching."""

    def get(self, namespace_id: str, type_name: str) -> str | None:
        ...

    def set(self, namespace_id: str, type_name: str, serialized: str) -> None:
        ...


class MemoryCacheBackend:
    """Dict-backed cache; survives namespace switches, not the process."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get(self, namespace_id: str, type_name: str) -> str | None:
        return self._items.get(cache_key(namespace_id, type_name))

    def set(self, namespace_id: str, type_name: str, serialized: str) -> None:
        self._items[cache_key(namespace_id, type_name)] = serialized


def serialize_records(records: Any) -> str:
    return json.dumps(records, separators=(",", ":"))


def load_records(backend: CacheBackend, namespace_id: str, type_name: str) -> Any:
    """Decoded cache entry, or ``None`` when nothing is cached."""
    raw = backend.get(namespace_id, type_name)
    if raw is None:
        return None
    return decode_json(raw, source="cache")
