"""High-level async client: a local mirror of schema-described REST resources."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

import aiohttp

from pymirror._cache import CacheBackend, MemoryCacheBackend, load_records, serialize_records
from pymirror._client import reads as _reads
from pymirror._client import writes as _writes
from pymirror._transport import AiohttpTransport, Transport
from pymirror.config import MirrorConfig
from pymirror.exceptions import MirrorError
from pymirror.schema import SchemaEntry, SchemaRegistry
from pymirror.state.events import CHANGE_EVENT, ChangeNotifier, EventEmitter, Listener
from pymirror.state.namespaces import NamespaceManager
from pymirror.state.store import EntityStore, Record

_logger = logging.getLogger(__name__)


class MirrorClient:
    """Async client keeping a queryable local copy of remote collections.

    Usage::

        async with MirrorClient(config, schema) as client:
            tasks = await client.fetch("tasks")
            draft = await client.create("tasks", {"title": "write docs"})
            saved = await client.save("tasks", draft)
            open_tasks = client.find_all("tasks", {"done": False})
    """

    def __init__(
        self,
        config: MirrorConfig,
        schema: SchemaRegistry | Mapping[str, SchemaEntry | Mapping[str, Any]],
        *,
        transport: Transport | None = None,
        session: aiohttp.ClientSession | None = None,
        cache: CacheBackend | None = None,
        scope_ids: Mapping[str, str] | None = None,
    ) -> None:
        self._config = config
        self._registry = (
            schema
            if isinstance(schema, SchemaRegistry)
            else SchemaRegistry(schema, default_identity_field=config.identity_field)
        )
        self._external_session = session is not None
        self._http_session = session
        self._external_transport = transport is not None
        self._transport: Transport | None = transport
        self._cache: CacheBackend = cache if cache is not None else MemoryCacheBackend()

        self._emitter = EventEmitter()
        self._notifier = ChangeNotifier(self._emitter, window=config.debounce_seconds)
        self._namespaces = NamespaceManager(
            self._registry,
            self._notifier,
            initial=config.namespace,
            cache=self._cache if config.persist_cache else None,
            scope_ids=scope_ids,
        )
        if config.persist_cache:
            self._emitter.on(CHANGE_EVENT, self._mirror_to_cache)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> MirrorClient:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = AiohttpTransport(self._http_session, timeout=self._config.request_timeout)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        # Deliver pending notifications so listeners (and the cache) see final state.
        self._notifier.flush()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        if not self._external_transport:
            self._transport = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> MirrorConfig:
        return self._config

    @property
    def registry(self) -> SchemaRegistry:
        return self._registry

    @property
    def namespaces(self) -> NamespaceManager:
        return self._namespaces

    @property
    def namespace(self) -> str:
        """Id of the active namespace."""
        return self._namespaces.active_id

    @property
    def store(self) -> EntityStore:
        """Entity store of the active namespace."""
        return self._namespaces.store

    @property
    def notifier(self) -> ChangeNotifier:
        return self._notifier

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise MirrorError("Client not initialized. Use 'async with MirrorClient(...) as client:'")
        return self._transport

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def on(self, event: str, fn: Listener | None = None) -> Any:
        """Subscribe to ``change`` (receives the type name) or ``change:<type>``."""
        return self._emitter.on(event, fn)

    def off(self, event: str, fn: Listener) -> None:
        self._emitter.off(event, fn)

    def _mirror_to_cache(self, type_name: str) -> None:
        self.set_cache(type_name, self.find_all(type_name))

    # ------------------------------------------------------------------
    # Sync operations
    # ------------------------------------------------------------------

    async def fetch(
        self,
        type_name: str,
        params: Mapping[str, Any] | None = None,
        *,
        url: str | None = None,
    ) -> Record | list[Record]:
        """Read *type_name* from the server (or the store for local types) and merge it.

        A fetch without *params* is treated as the authoritative full
        collection: stored records missing from the response are dropped.
        """
        return await _reads.fetch(self, type_name, params, url=url)

    get = fetch

    async def create(
        self,
        type_name: str,
        record: Mapping[str, Any],
        *,
        persist: bool = False,
        url: str | None = None,
    ) -> Record | list[Record]:
        """Add a record locally under a fresh temporary key, or POST it when *persist*."""
        return await _writes.create(self, type_name, record, persist=persist, url=url)

    add = create

    async def update(self, type_name: str, record: Mapping[str, Any]) -> Record | list[Record]:
        """PUT *record* to its URL and merge the response.

        Records that are only known by their temporary key are merged
        locally instead.
        """
        return await _writes.update(self, type_name, record)

    async def update_local(
        self,
        type_name: str,
        record: Mapping[str, Any],
        changes: Mapping[str, Any] | None = None,
    ) -> Record | list[Record]:
        """Apply *changes* to *record* and merge it without contacting the server."""
        return await _writes.update_local(self, type_name, record, changes)

    async def save(
        self,
        type_name: str,
        record: Mapping[str, Any],
        *,
        url: str | None = None,
        no_update: bool = False,
    ) -> Record | list[Record]:
        """Persist *record*: POST when it has no URL or identity yet, else update."""
        return await _writes.save(self, type_name, record, url=url, no_update=no_update)

    async def remove(self, type_name: str, record: Mapping[str, Any]) -> bool:
        """DELETE *record* remotely when addressable, then drop it locally."""
        return await _writes.remove(self, type_name, record)

    async def get_related(
        self,
        type_name: str,
        record: Mapping[str, Any],
        attribute: str | None = None,
    ) -> Record:
        """Expand relation identities on *record* into records (one hop)."""
        return await _reads.get_related(self, type_name, record, attribute)

    # ------------------------------------------------------------------
    # Local store access
    # ------------------------------------------------------------------

    def merge(
        self,
        type_name: str,
        payload: Any,
        *,
        prune_missing: bool = False,
        silent: bool = False,
    ) -> Record | list[Record]:
        return self.store.merge(type_name, payload, prune_missing=prune_missing, silent=silent)

    def find(self, type_name: str, query: Any = None) -> Record | None:
        return self.store.find(type_name, query)

    def find_all(self, type_name: str, query: Mapping[str, Any] | None = None) -> list[Record]:
        return self.store.find_all(type_name, query)

    # ------------------------------------------------------------------
    # Persistent cache
    # ------------------------------------------------------------------

    def set_cache(self, type_name: str, records: Any) -> None:
        self._registry.require(type_name)
        self._cache.set(self.namespace, type_name, serialize_records(records))

    def get_cache(self, type_name: str) -> Any:
        self._registry.require(type_name)
        return load_records(self._cache, self.namespace, type_name)

    # ------------------------------------------------------------------
    # Namespaces
    # ------------------------------------------------------------------

    async def switch_namespace(
        self,
        namespace_id: str,
        *,
        scope_ids: Mapping[str, str] | None = None,
    ) -> None:
        """Activate *namespace_id*, then re-fetch previously fetched segment types.

        The switch itself completes before anything is awaited; the
        re-fetches run concurrently afterwards.
        """
        refetch = self._namespaces.switch(namespace_id, scope_ids=scope_ids)
        if refetch:
            await asyncio.gather(*(self.fetch(type_name) for type_name in refetch))
