"""Relation resolution between entity types.

Two directions:

* :func:`reduce_related` (outbound) replaces nested related objects with
  their identity values before a record is sent to the server.
* :func:`expand_related` (inbound) replaces identity values with the
  related records, looking in the local store first and fetching only what
  is missing.

Expansion is one hop: the related records are returned as stored, their own
relations are not expanded, so cyclic schemas cannot recurse.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from pymirror.schema import SchemaRegistry
from pymirror.state.store import Record, has_value

FindFn = Callable[[str, Any], Record | None]
FetchFn = Callable[[str, Any], Awaitable[Any]]


def _identity_of(value: Any, identity_field: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(identity_field)
    return value


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _as_record(result: Any) -> Record | None:
    """A single resolved record, or ``None`` when nothing was found."""
    if isinstance(result, dict):
        return result
    if isinstance(result, list) and len(result) == 1 and isinstance(result[0], dict):
        return result[0]
    return None


def reduce_related(registry: SchemaRegistry, type_name: str, record: Mapping[str, Any]) -> Record:
    """Return a copy of *record* with relation objects reduced to identities.

    ``one_to_many`` attributes become lists of identities and
    ``foreign_key`` attributes a single identity (the first one when a
    list was supplied). Values that are already identities pass through.
    """
    entry = registry.require(type_name)
    reduced: Record = copy.deepcopy(dict(record))

    for attr, related_type in entry.one_to_many.items():
        related = reduced.get(attr)
        if _is_empty(related):
            continue
        identity_field = registry.identity_field(related_type)
        if isinstance(related, list):
            reduced[attr] = [_identity_of(item, identity_field) for item in related]
        elif isinstance(related, Mapping):
            reduced[attr] = [_identity_of(related, identity_field)]

    for attr, related_type in entry.foreign_key.items():
        related = reduced.get(attr)
        if _is_empty(related):
            continue
        identity_field = registry.identity_field(related_type)
        if isinstance(related, list):
            reduced[attr] = _identity_of(related[0], identity_field)
        elif isinstance(related, Mapping):
            reduced[attr] = _identity_of(related, identity_field)

    return reduced


async def expand_related(
    registry: SchemaRegistry,
    type_name: str,
    record: Mapping[str, Any],
    *,
    find: FindFn,
    fetch: FetchFn,
    attribute: str | None = None,
) -> Record:
    """Return a copy of *record* with relation identities replaced by records.

    Every identity is resolved concurrently; the call completes once all of
    them have settled. ``one_to_many`` lists keep the order of the original
    identities. A failed fetch is raised only after its siblings have
    settled. Identities that resolve to nothing become ``None`` for a
    ``foreign_key`` and are left out of a ``one_to_many`` list.

    Parameters
    ----------
    find
        Synchronous local lookup ``find(type, identity)``.
    fetch
        Remote fallback ``await fetch(type, identity)`` for identities not
        present locally.
    attribute
        Restrict expansion to a single relation attribute.
    """
    entry = registry.require(type_name)
    expanded: Record = copy.deepcopy(dict(record))

    async def _resolve(related_type: str, identity: Any) -> Any:
        found = find(related_type, identity)
        if isinstance(found, dict):
            return found
        return await fetch(related_type, identity)

    plan: list[tuple[str, int]] = []
    pending: list[Awaitable[Any]] = []
    for attr, related_type in entry.relations.items():
        if attribute is not None and attribute != attr:
            continue
        value = expanded.get(attr)
        if _is_empty(value):
            continue
        identity_field = registry.identity_field(related_type)
        values = value if isinstance(value, list) else [value]
        identities = [_identity_of(item, identity_field) for item in values]
        identities = [identity for identity in identities if has_value(identity)]
        plan.append((attr, len(identities)))
        pending.extend(_resolve(related_type, identity) for identity in identities)

    # Let every sibling fetch settle before surfacing a failure.
    results = await asyncio.gather(*pending, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result

    offset = 0
    for attr, count in plan:
        resolved = [_as_record(result) for result in results[offset : offset + count]]
        offset += count
        if attr in entry.foreign_key:
            expanded[attr] = resolved[0] if resolved else None
        else:
            expanded[attr] = [item for item in resolved if item is not None]
    return expanded
