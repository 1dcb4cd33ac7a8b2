"""In-memory entity store.

This is the only component allowed to merge incoming records. One instance
holds the data of one namespace: a mapping from type name to a mapping from
key to record, where the key is either the record's ``localCreateTime``
(not yet synced) or its identity value (synced), never both.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any

from pymirror._constants import LOCAL_CREATE_TIME
from pymirror.exceptions import InvalidQueryError, MalformedResponseError
from pymirror.schema import SchemaRegistry
from pymirror.state.events import ChangeNotifier

_logger = logging.getLogger(__name__)

Record = dict[str, Any]

_WORD_RE = re.compile(r"[A-Z]?[a-z]+|[A-Z]+(?![a-z])|\d+")


def start_case(name: str) -> str:
    """``"task_lists"`` -> ``"Task Lists"``; used for envelope keys."""
    return " ".join(word[:1].upper() + word[1:] for word in _WORD_RE.findall(name))


def decode_json(payload: Any, *, source: str = "response") -> Any:
    """Decode JSON text; already-parsed payloads pass through."""
    if isinstance(payload, bytes | bytearray):
        payload = payload.decode("utf-8")
    if not isinstance(payload, str):
        return payload
    try:
        return json.loads(payload)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(f"Invalid JSON from the {source}: {payload[:200]}") from exc


def has_value(value: Any) -> bool:
    """True for usable key values (``None`` and ``""`` are not keys)."""
    return value is not None and value != ""


def _matches(value: Any, pattern: Any) -> bool:
    """Partial deep match: every key in *pattern* must match in *value*."""
    if isinstance(pattern, Mapping):
        if not isinstance(value, Mapping):
            return False
        return all(key in value and _matches(value[key], expected) for key, expected in pattern.items())
    return bool(value == pattern)


def _sort_key(attribute: str) -> Any:
    def key(record: Record) -> str:
        value = record.get(attribute)
        return "" if value is None else str(value).lower()

    return key


class EntityStore:
    """Per-namespace mapping of type -> key -> record.

    Reads return deep copies so callers can never mutate stored state
    without going through :meth:`merge` / :meth:`delete`.
    """

    def __init__(self, registry: SchemaRegistry, *, notifier: ChangeNotifier | None = None) -> None:
        self._registry = registry
        self._notifier = notifier
        self._types: dict[str, dict[Any, Record]] = {}

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _slot(self, type_name: str) -> dict[Any, Record]:
        slot = self._types.get(type_name)
        if slot is None:
            slot = {}
            self._types[type_name] = slot
        return slot

    def _emit_change(self, type_name: str, silent: bool) -> None:
        if self._notifier is not None:
            self._notifier.notify(type_name, silent=silent)

    def _normalize(self, type_name: str, payload: Any) -> list[Any]:
        entry = self._registry.require(type_name)
        payload = decode_json(payload)

        if isinstance(payload, Mapping):
            for envelope_key in (type_name, start_case(type_name)):
                if isinstance(payload.get(envelope_key), list | Mapping):
                    payload = payload[envelope_key]
                    break

        if isinstance(payload, list):
            return payload
        if entry.parse is not None:
            payload = entry.parse(payload)
            if isinstance(payload, list):
                return payload
        return [payload]

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def merge(
        self,
        type_name: str,
        payload: Any,
        *,
        prune_missing: bool = False,
        silent: bool = False,
    ) -> Record | list[Record]:
        """Merge one record, a list of records, or a response envelope.

        An incoming record replaces the stored record at its slot as a
        whole (last write wins). A record carrying an identity replaces any
        entry stored under its ``localCreateTime`` and that temporary key
        is removed in the same step.

        Parameters
        ----------
        prune_missing
            Treat *payload* as the authoritative full collection: stored
            records whose identity is absent from it are deleted. Must not
            be used for partial or paged responses.
        silent
            Skip the change notification (cache hydration).

        Returns
        -------
        dict or list
            The merged record when exactly one was merged, else the list.
        """
        identity_field = self._registry.identity_field(type_name)
        slot = self._slot(type_name)
        records: list[Record] = []
        for item in self._normalize(type_name, payload):
            if not isinstance(item, Mapping):
                raise MalformedResponseError(f"Expected {type_name} records to be objects, got {type(item).__name__}")
            records.append(copy.deepcopy(dict(item)))

        if prune_missing:
            incoming_ids = {record.get(identity_field) for record in records if has_value(record.get(identity_field))}
            stale = [
                key
                for key, stored in slot.items()
                if has_value(stored.get(identity_field)) and stored.get(identity_field) not in incoming_ids
            ]
            for key in stale:
                del slot[key]
            if stale:
                _logger.debug("Pruned %d stale %s record(s)", len(stale), type_name)

        for record in records:
            identity = record.get(identity_field)
            temp_key = record.get(LOCAL_CREATE_TIME)
            if has_value(identity):
                record.pop(LOCAL_CREATE_TIME, None)
                if has_value(temp_key) and temp_key != identity:
                    slot.pop(temp_key, None)
                slot[identity] = record
            elif has_value(temp_key):
                slot[temp_key] = record
            else:
                _logger.warning("Skipping %s record without %s or %s", type_name, identity_field, LOCAL_CREATE_TIME)

        _logger.debug("Merged %d %s record(s)", len(records), type_name)
        self._emit_change(type_name, silent)

        result = copy.deepcopy(records)
        return result[0] if len(result) == 1 else result

    def delete(self, type_name: str, key: Any, *, silent: bool = False) -> bool:
        """Remove the entry stored under *key*; absent keys are not an error."""
        self._registry.require(type_name)
        removed = self._slot(type_name).pop(key, None) is not None
        self._emit_change(type_name, silent)
        return removed

    def delete_record(self, type_name: str, record: Mapping[str, Any], *, silent: bool = False) -> bool:
        """Remove *record* by whichever of its keys is stored."""
        slot = self._slot(type_name)
        removed = False
        for key in (record.get(self._registry.identity_field(type_name)), record.get(LOCAL_CREATE_TIME)):
            if has_value(key) and slot.pop(key, None) is not None:
                removed = True
        self._emit_change(type_name, silent)
        return removed

    def clear(self, type_name: str) -> None:
        self._types[type_name] = {}

    def load_snapshot(self, type_name: str, entries: Mapping[Any, Record]) -> None:
        """Replace a type's entries wholesale with a deep copy of *entries*."""
        self._types[type_name] = copy.deepcopy(dict(entries))

    def snapshot(self, type_name: str) -> dict[Any, Record]:
        return copy.deepcopy(self._types.get(type_name, {}))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_records(self, type_name: str) -> bool:
        return bool(self._types.get(type_name))

    def keys(self, type_name: str) -> list[Any]:
        return list(self._types.get(type_name, {}))

    def lookup(self, type_name: str, record: Mapping[str, Any]) -> Record | None:
        """Stored version of *record*, addressed by temporary key or identity."""
        slot = self._types.get(type_name, {})
        for key in (record.get(LOCAL_CREATE_TIME), record.get(self._registry.identity_field(type_name))):
            if has_value(key) and key in slot:
                return copy.deepcopy(slot[key])
        return None

    def find(self, type_name: str, query: Any = None) -> Record | None:
        """Find a single record.

        ``None`` returns nothing, a string or number is a direct key lookup,
        and a mapping returns the first record matching all its attributes.
        """
        self._registry.require(type_name)
        slot = self._types.get(type_name)
        if query is None or not slot:
            return None
        if isinstance(query, Mapping):
            for record in slot.values():
                if _matches(record, query):
                    return copy.deepcopy(record)
            return None
        if isinstance(query, str | int | float) and not isinstance(query, bool):
            found = slot.get(query)
            return copy.deepcopy(found) if found is not None else None
        raise InvalidQueryError("query must be string, number or mapping")

    def find_all(self, type_name: str, query: Mapping[str, Any] | None = None) -> list[Record]:
        """All records of a type, optionally filtered, in schema order."""
        entry = self._registry.require(type_name)
        slot = self._types.get(type_name)
        if not slot:
            return []
        results: Iterable[Record]
        if query is None:
            results = slot.values()
        elif isinstance(query, Mapping):
            results = [record for record in slot.values() if _matches(record, query)]
        else:
            raise InvalidQueryError("Invalid query for find_all")

        ordered = list(results)
        order = entry.order
        if order is not None:
            attribute, descending = order
            ordered.sort(key=_sort_key(attribute))
            if descending:
                ordered.reverse()
        return copy.deepcopy(ordered)
