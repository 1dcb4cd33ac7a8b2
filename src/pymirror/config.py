"""Client configuration for pymirror."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Callable, Mapping
from typing import Any

from pymirror._constants import (
    BASE_NAMESPACE,
    DEFAULT_DEBOUNCE_SECONDS,
    DEFAULT_IDENTITY_FIELD,
    DEFAULT_REQUEST_TIMEOUT,
)

HeaderValue = str | Callable[[], str]


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class MirrorConfig:
    """Client configuration.

    Parameters
    ----------
    api_url : str
        Prefix joined to every schema URL and to record URLs that start
        with ``/``.
    identity_field : str
        Store-wide default for the attribute holding the server-assigned
        key. Schema entries may override it per type.
    namespace : str
        Namespace active when the client starts. Defaults to the reserved
        base namespace.
    headers : Mapping
        Extra request headers. Values may be strings or zero-argument
        callables evaluated on every request (e.g. for rotating tokens).
    entity_root : bool
        Wrap outbound bodies under the start-cased type name
        (``"tasks"`` -> ``{"Tasks": {...}}``) and unwrap create responses
        the same way.
    persist_cache : bool
        Hydrate namespaces from the persistent cache backend and mirror
        every changed type back to it.
    debounce_seconds : float
        Coalescing window for per-type change notifications.
    request_timeout : float
        Total timeout in seconds applied by the aiohttp transport.
    api_trace_enabled : bool
        Log redacted request headers and request and response bodies at
        DEBUG level.
    sensitive_fields : tuple of str
        Record attributes masked in traces, on top of the built-in
        credential names and the configured header names.
    """

    api_url: str = ""
    identity_field: str = DEFAULT_IDENTITY_FIELD
    namespace: str = BASE_NAMESPACE
    headers: Mapping[str, HeaderValue] = dataclasses.field(default_factory=dict)
    entity_root: bool = False
    persist_cache: bool = False
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    api_trace_enabled: bool = False
    sensitive_fields: tuple[str, ...] = ()

    @classmethod
    def from_env(cls, **overrides: Any) -> MirrorConfig:
        """Create configuration from environment variables.

        Reads ``MIRROR_API_URL``, ``MIRROR_IDENTITY_FIELD``,
        ``MIRROR_NAMESPACE`` and the optional numeric / boolean
        ``MIRROR_*`` variables. Explicit keyword arguments override
        environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        MirrorConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "MIRROR_API_URL": "api_url",
            "MIRROR_IDENTITY_FIELD": "identity_field",
            "MIRROR_NAMESPACE": "namespace",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        debounce_env = env.get("MIRROR_DEBOUNCE_SECONDS")
        if debounce_env is not None and "debounce_seconds" not in overrides:
            config_kwargs["debounce_seconds"] = float(debounce_env)

        timeout_env = env.get("MIRROR_REQUEST_TIMEOUT")
        if timeout_env is not None and "request_timeout" not in overrides:
            config_kwargs["request_timeout"] = float(timeout_env)

        if "entity_root" not in overrides:
            config_kwargs["entity_root"] = _env_bool(env.get("MIRROR_ENTITY_ROOT"), False)

        if "persist_cache" not in overrides:
            config_kwargs["persist_cache"] = _env_bool(env.get("MIRROR_PERSIST_CACHE"), False)

        if "api_trace_enabled" not in overrides:
            config_kwargs["api_trace_enabled"] = _env_bool(
                env.get("MIRROR_API_TRACE_ENABLED"),
                False,
            )

        config_kwargs.update(overrides)

        return cls(**config_kwargs)

    def resolve_headers(self) -> dict[str, str]:
        """Evaluate callable header values for a single request."""
        resolved: dict[str, str] = {}
        for name, value in self.headers.items():
            resolved[name] = value() if callable(value) else value
        return resolved
