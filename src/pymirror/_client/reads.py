"""Internal read operations for :class:`pymirror.client.MirrorClient`.

These functions keep `client.py` small without changing the public API.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from pymirror._api._common import absolute_url, send_json, type_url
from pymirror._constants import LOCAL_CREATE_TIME, SCOPE_ID_PARAM, SCOPE_TYPE_PARAM
from pymirror.exceptions import MirrorConfigError
from pymirror.relations import expand_related
from pymirror.state.store import Record, has_value

if TYPE_CHECKING:
    from pymirror.client import MirrorClient

_logger = logging.getLogger(__name__)


def scope_params(client: MirrorClient, type_name: str) -> dict[str, str]:
    """Scope discriminator parameters for *type_name* in the active namespace."""
    entry = client.registry.require(type_name)
    if not entry.scope:
        return {}
    scope_ids = client.namespaces.active.scope_ids
    if entry.scope not in scope_ids:
        raise MirrorConfigError(
            f"{type_name} is scoped by {entry.scope!r} but namespace "
            f"{client.namespaces.active_id!r} has no id for that scope"
        )
    return {SCOPE_TYPE_PARAM: entry.scope, SCOPE_ID_PARAM: scope_ids[entry.scope]}


async def fetch(
    client: MirrorClient,
    type_name: str,
    params: Mapping[str, Any] | None = None,
    *,
    url: str | None = None,
) -> Record | list[Record]:
    entry = client.registry.require(type_name)
    namespaces = client.namespaces
    if params is None and url is None:
        namespaces.mark_fetched(type_name)

    if entry.segment and namespaces.is_base:
        return []

    store = namespaces.store
    if entry.is_local:
        if params and has_value(params.get(LOCAL_CREATE_TIME)):
            found = store.find(type_name, dict(params))
            return found if found is not None else []
        return store.find_all(type_name, dict(params) if params else None)

    identity_field = client.registry.identity_field(type_name)
    query: dict[str, Any] = dict(params or {})
    query.update(scope_params(client, type_name))

    request_url = absolute_url(client.config, url) if url else type_url(
        client.config, client.registry, type_name, query.get(identity_field)
    )
    assert request_url is not None  # noqa: S101

    decoded = await send_json(
        config=client.config,
        transport=client._require_transport(),
        method="GET",
        url=request_url,
        params=query,
        exclude_params=(identity_field,),
    )

    # Only an unfiltered request for the collection is authoritative.
    full_collection = not params and url is None
    return store.merge(type_name, [] if decoded is None else decoded, prune_missing=full_collection)


async def get_related(
    client: MirrorClient,
    type_name: str,
    record: Mapping[str, Any],
    attribute: str | None = None,
) -> Record:
    store = client.store

    async def _fetch_by_identity(related_type: str, identity: Any) -> Any:
        if client.registry.require(related_type).is_local:
            # Nothing to ask the server for; a miss stays unresolved.
            return None
        _logger.debug("Fetching %s %s for relation expansion", related_type, identity)
        return await fetch(client, related_type, {client.registry.identity_field(related_type): identity})

    return await expand_related(
        client.registry,
        type_name,
        record,
        find=store.find,
        fetch=_fetch_by_identity,
        attribute=attribute,
    )
