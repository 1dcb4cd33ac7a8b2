"""Internal write operations for :class:`pymirror.client.MirrorClient`.

Every flow reduces relations before anything leaves the process and merges
the server's answer back into the store of the namespace that issued the
call, promoting the record from its temporary key when it gains an
identity.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import itertools
import logging
import time
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from pymirror._api._common import (
    absolute_url,
    record_url,
    send_json,
    type_url,
    unwrap_entity_root,
    wrap_entity_root,
)
from pymirror._constants import LOCAL_CREATE_TIME
from pymirror.exceptions import MissingIdentityError, SaveFailedError
from pymirror.relations import reduce_related
from pymirror.schema import ValidationRule
from pymirror.state.store import EntityStore, Record, has_value

if TYPE_CHECKING:
    from pymirror.client import MirrorClient

_logger = logging.getLogger(__name__)

_temp_key_counter = itertools.count(1)

_MISSING = object()


def new_temp_key(store: EntityStore, type_name: str) -> str:
    """Store-unique ``localCreateTime`` value (millisecond clock + counter)."""
    taken = set(store.keys(type_name))
    while True:
        key = f"{int(time.time() * 1000)}{next(_temp_key_counter)}"
        if key not in taken:
            return key


def _get_path(record: Mapping[str, Any], path: str) -> Any:
    value: Any = record
    for part in path.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _missing_identity(client: MirrorClient, type_name: str) -> MissingIdentityError:
    identity_field = client.registry.identity_field(type_name)
    return MissingIdentityError(f"Missing required url or {identity_field} attribute for {type_name}")


def _carry_temp_key(body: Any, sent: Mapping[str, Any]) -> Any:
    """Attach the sent record's temporary key to a response lacking one."""
    temp_key = sent.get(LOCAL_CREATE_TIME)
    if isinstance(body, Mapping) and has_value(temp_key) and LOCAL_CREATE_TIME not in body:
        return {**body, LOCAL_CREATE_TIME: temp_key}
    return body


async def run_after_update_hooks(
    client: MirrorClient,
    type_name: str,
    record: Mapping[str, Any],
    previous: Mapping[str, Any],
) -> None:
    """Await the hooks of every rule whose field changed.

    Hooks run concurrently. Their results are not written back to the
    record and a failing hook does not stop the merge; failures are logged.
    """
    entry = client.registry.require(type_name)
    identity_field = client.registry.identity_field(type_name)
    triggered: list[ValidationRule] = [
        rule
        for rule in entry.validation
        if rule.after_update is not None and _get_path(record, rule.path) != _get_path(previous, rule.path)
    ]
    if not triggered:
        return

    async def _call(rule: ValidationRule) -> Any:
        assert rule.after_update is not None  # noqa: S101
        result = rule.after_update(client, identity_field, copy.deepcopy(dict(record)))
        if inspect.isawaitable(result):
            result = await result
        return result

    results = await asyncio.gather(*(_call(rule) for rule in triggered), return_exceptions=True)
    for rule, result in zip(triggered, results, strict=True):
        if isinstance(result, Exception):
            _logger.warning("after_update hook for %s.%s failed", type_name, rule.path, exc_info=result)


async def create(
    client: MirrorClient,
    type_name: str,
    record: Mapping[str, Any],
    *,
    persist: bool = False,
    url: str | None = None,
) -> Record | list[Record]:
    entry = client.registry.require(type_name)
    store = client.store
    data = reduce_related(client.registry, type_name, record)

    if not persist or entry.is_local:
        data[LOCAL_CREATE_TIME] = new_temp_key(store, type_name)
        return store.merge(type_name, data)

    target = absolute_url(client.config, url) if url else type_url(client.config, client.registry, type_name)
    assert target is not None  # noqa: S101
    decoded = await send_json(
        config=client.config,
        transport=client._require_transport(),
        method="POST",
        url=target,
        body=wrap_entity_root(client.config, type_name, data),
    )
    body = unwrap_entity_root(client.config, type_name, decoded)
    if not body:
        raise SaveFailedError(f"Save failed, invalid response from server for {type_name}")
    return store.merge(type_name, _carry_temp_key(body, data))


async def update(client: MirrorClient, type_name: str, record: Mapping[str, Any]) -> Record | list[Record]:
    entry = client.registry.require(type_name)
    store = client.store
    previous = store.lookup(type_name, record) or dict(record)
    data = reduce_related(client.registry, type_name, record)
    identity_field = client.registry.identity_field(type_name)

    target = None if entry.is_local else record_url(client.config, client.registry, type_name, data)
    if target is None:
        if has_value(data.get(LOCAL_CREATE_TIME)) or (entry.is_local and has_value(data.get(identity_field))):
            await run_after_update_hooks(client, type_name, data, previous)
            return store.merge(type_name, data)
        raise _missing_identity(client, type_name)

    decoded = await send_json(
        config=client.config,
        transport=client._require_transport(),
        method="PUT",
        url=target,
        body=wrap_entity_root(client.config, type_name, data),
    )
    body = unwrap_entity_root(client.config, type_name, decoded)
    if not body:
        # No representation returned; what was sent is the current state.
        body = data
    body = _carry_temp_key(body, data)
    if isinstance(body, Mapping):
        await run_after_update_hooks(client, type_name, body, previous)
    return store.merge(type_name, body)


async def update_local(
    client: MirrorClient,
    type_name: str,
    record: Mapping[str, Any],
    changes: Mapping[str, Any] | None = None,
) -> Record | list[Record]:
    client.registry.require(type_name)
    store = client.store
    previous = store.lookup(type_name, record) or dict(record)
    data: Record = copy.deepcopy(dict(record))
    data.update(copy.deepcopy(dict(changes or {})))
    identity_field = client.registry.identity_field(type_name)
    if not has_value(data.get(LOCAL_CREATE_TIME)) and not has_value(data.get(identity_field)):
        raise _missing_identity(client, type_name)
    await run_after_update_hooks(client, type_name, data, previous)
    return store.merge(type_name, data)


async def save(
    client: MirrorClient,
    type_name: str,
    record: Mapping[str, Any],
    *,
    url: str | None = None,
    no_update: bool = False,
) -> Record | list[Record]:
    entry = client.registry.require(type_name)
    store = client.store

    if entry.is_local or record_url(client.config, client.registry, type_name, record) is not None:
        if no_update:
            return copy.deepcopy(dict(record))
        return await update(client, type_name, record)

    previous = store.lookup(type_name, record) or dict(record)
    data = reduce_related(client.registry, type_name, record)
    target = absolute_url(client.config, url) if url else type_url(client.config, client.registry, type_name)
    assert target is not None  # noqa: S101
    decoded = await send_json(
        config=client.config,
        transport=client._require_transport(),
        method="POST",
        url=target,
        body=wrap_entity_root(client.config, type_name, data),
    )
    body = unwrap_entity_root(client.config, type_name, decoded)
    if not body or not isinstance(body, Mapping):
        raise SaveFailedError(f"Save failed, invalid response from server for {type_name}")

    saved: Record = copy.deepcopy(dict(record))
    for field_name, value in body.items():
        # Keep locally attached lists (e.g. related objects) the server echoed back.
        if not saved.get(field_name) or not isinstance(value, list):
            saved[field_name] = copy.deepcopy(value)

    await run_after_update_hooks(client, type_name, saved, previous)
    return store.merge(type_name, saved)


async def remove(client: MirrorClient, type_name: str, record: Mapping[str, Any]) -> bool:
    """Delete remotely (when addressable) and locally.

    Returns whether a local entry was removed.
    """
    entry = client.registry.require(type_name)
    store = client.store
    identity_field = client.registry.identity_field(type_name)

    target = None if entry.is_local else record_url(client.config, client.registry, type_name, record)
    if target is None:
        if has_value(record.get(LOCAL_CREATE_TIME)) or (entry.is_local and has_value(record.get(identity_field))):
            return store.delete_record(type_name, record)
        raise _missing_identity(client, type_name)

    await send_json(
        config=client.config,
        transport=client._require_transport(),
        method="DELETE",
        url=target,
        body=reduce_related(client.registry, type_name, record),
    )
    return store.delete_record(type_name, record)
