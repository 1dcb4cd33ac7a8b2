"""pymirror - Async client-side mirror store for schema-described REST resources."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pymirror")
except PackageNotFoundError:
    __version__ = "0+local"
from pymirror._cache import CacheBackend, MemoryCacheBackend
from pymirror._transport import AiohttpTransport, Transport, TransportResponse
from pymirror.client import MirrorClient
from pymirror.config import MirrorConfig
from pymirror.exceptions import (
    InvalidQueryError,
    MalformedResponseError,
    MirrorConfigError,
    MirrorError,
    MissingIdentityError,
    RemoteError,
    ReservedNamespaceError,
    SaveFailedError,
    TransportError,
    UnknownTypeError,
)
from pymirror.relations import expand_related, reduce_related
from pymirror.schema import SchemaEntry, SchemaRegistry, ValidationRule
from pymirror.state.events import ChangeNotifier, EventEmitter
from pymirror.state.namespaces import NamespaceManager
from pymirror.state.store import EntityStore

__all__ = [
    "__version__",
    "AiohttpTransport",
    "CacheBackend",
    "ChangeNotifier",
    "EntityStore",
    "EventEmitter",
    "InvalidQueryError",
    "MalformedResponseError",
    "MemoryCacheBackend",
    "MirrorClient",
    "MirrorConfig",
    "MirrorConfigError",
    "MirrorError",
    "MissingIdentityError",
    "NamespaceManager",
    "RemoteError",
    "ReservedNamespaceError",
    "SaveFailedError",
    "SchemaEntry",
    "SchemaRegistry",
    "Transport",
    "TransportError",
    "TransportResponse",
    "UnknownTypeError",
    "ValidationRule",
    "expand_related",
    "reduce_related",
]
