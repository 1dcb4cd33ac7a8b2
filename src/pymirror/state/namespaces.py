"""Namespace ("store switching") management.

A namespace is an isolated :class:`EntityStore` sharing the schema registry
and change notifier with every other namespace. Exactly one namespace is
active; the reserved base namespace is where a client starts unless
configured otherwise and can never be a switch target.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from pymirror._cache import CacheBackend, load_records
from pymirror._constants import BASE_NAMESPACE
from pymirror.exceptions import MalformedResponseError, ReservedNamespaceError
from pymirror.schema import SchemaRegistry
from pymirror.state.events import ChangeNotifier
from pymirror.state.store import EntityStore

_logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Namespace:
    """One data context: its store plus the scope ids scoped fetches send."""

    namespace_id: str
    store: EntityStore
    scope_ids: dict[str, str] = field(default_factory=dict)


class NamespaceManager:
    """Owns every namespace and the process-wide set of fetched types."""

    def __init__(
        self,
        registry: SchemaRegistry,
        notifier: ChangeNotifier,
        *,
        initial: str = BASE_NAMESPACE,
        cache: CacheBackend | None = None,
        scope_ids: Mapping[str, str] | None = None,
    ) -> None:
        self._registry = registry
        self._notifier = notifier
        self._cache = cache
        self._namespaces: dict[str, Namespace] = {}
        self._fetched_types: set[str] = set()
        self._active = self._create(initial, scope_ids)
        self.hydrate(self._active)

    @property
    def active(self) -> Namespace:
        return self._active

    @property
    def active_id(self) -> str:
        return self._active.namespace_id

    @property
    def store(self) -> EntityStore:
        return self._active.store

    @property
    def is_base(self) -> bool:
        return self._active.namespace_id == BASE_NAMESPACE

    @property
    def namespace_ids(self) -> tuple[str, ...]:
        return tuple(self._namespaces)

    def get(self, namespace_id: str) -> Namespace | None:
        return self._namespaces.get(namespace_id)

    def mark_fetched(self, type_name: str) -> None:
        self._fetched_types.add(type_name)

    def was_fetched(self, type_name: str) -> bool:
        return type_name in self._fetched_types

    def _create(self, namespace_id: str, scope_ids: Mapping[str, str] | None) -> Namespace:
        namespace = Namespace(
            namespace_id=namespace_id,
            store=EntityStore(self._registry, notifier=self._notifier),
            scope_ids=dict(scope_ids or {}),
        )
        self._namespaces[namespace_id] = namespace
        return namespace

    def hydrate(self, namespace: Namespace) -> list[str]:
        """Silently load cached records for empty, never-fetched types.

        Returns the hydrated type names. Undecodable cache entries are
        logged and skipped so one bad entry cannot block activation.
        """
        if self._cache is None:
            return []
        hydrated: list[str] = []
        for type_name in self._registry:
            if self.was_fetched(type_name) or namespace.store.has_records(type_name):
                continue
            try:
                records = load_records(self._cache, namespace.namespace_id, type_name)
            except MalformedResponseError:
                _logger.warning(
                    "Ignoring undecodable cache entry for %s in namespace %s",
                    type_name,
                    namespace.namespace_id,
                )
                continue
            if not records:
                continue
            namespace.store.merge(type_name, records, silent=True)
            hydrated.append(type_name)
        if hydrated:
            _logger.debug("Hydrated %s in namespace %s", ", ".join(hydrated), namespace.namespace_id)
        return hydrated

    def switch(self, namespace_id: str, *, scope_ids: Mapping[str, str] | None = None) -> list[str]:
        """Activate *namespace_id*.

        Runs without suspension points so no other operation can observe
        or mutate either store mid-switch. Returns the segment types that
        were fetched before and must now be re-fetched for the new
        namespace; the caller performs those fetches.
        """
        if namespace_id == BASE_NAMESPACE:
            raise ReservedNamespaceError(f"namespace id {BASE_NAMESPACE!r} is an internal name and can't be used")

        if namespace_id == self.active_id:
            if scope_ids is not None:
                self._active.scope_ids = dict(scope_ids)
            return []

        source = self._active
        target = self._namespaces.get(namespace_id)
        first_activation = target is None
        if target is None:
            target = self._create(namespace_id, scope_ids)
        elif scope_ids is not None:
            target.scope_ids = dict(scope_ids)

        refetch: list[str] = []
        for type_name, entry in self._registry.items():
            if entry.segment:
                target.store.clear(type_name)
                if self.was_fetched(type_name):
                    refetch.append(type_name)
            elif first_activation:
                target.store.load_snapshot(type_name, source.store.snapshot(type_name))

        self._active = target
        self.hydrate(target)
        _logger.debug(
            "Switched namespace %s -> %s (first_activation=%s, refetch=%s)",
            source.namespace_id,
            namespace_id,
            first_activation,
            refetch,
        )
        return refetch
