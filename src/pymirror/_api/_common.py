"""Shared request helpers for the sync engine.

This module centralizes the repeated request patterns:
- composing schema and record URLs
- serializing GET parameters into a querystring
- wrapping outbound bodies under an entity root
- sending through the transport and mapping failures to exceptions
- JSON-decoding response bodies

It is internal to pymirror and may change at any time.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

from pymirror._constants import ERROR_MESSAGE_FIELD, JSON_CONTENT_TYPE, RECORD_URL
from pymirror._redact import TraceRedactor
from pymirror._transport import Transport
from pymirror.config import MirrorConfig
from pymirror.exceptions import MalformedResponseError, RemoteError, TransportError
from pymirror.schema import SchemaRegistry
from pymirror.state.store import decode_json, has_value, start_case

_logger = logging.getLogger(__name__)


def absolute_url(config: MirrorConfig, url: str) -> str:
    """Prefix paths starting with ``/`` with the configured API URL."""
    if url.startswith("/"):
        return config.api_url + url
    return url


def type_url(config: MirrorConfig, registry: SchemaRegistry, type_name: str, identity: Any = None) -> str | None:
    """Schema URL for a type, with ``/<identity>`` appended when given."""
    entry = registry.require(type_name)
    if not entry.url:
        return None
    url = absolute_url(config, entry.url)
    if has_value(identity):
        url = f"{url}/{identity}"
    return url


def record_url(
    config: MirrorConfig,
    registry: SchemaRegistry,
    type_name: str,
    record: Mapping[str, Any],
) -> str | None:
    """Resolve a record's address: explicit ``url`` first, then schema URL + identity."""
    explicit = record.get(RECORD_URL)
    if isinstance(explicit, str) and explicit:
        return absolute_url(config, explicit)
    identity = record.get(registry.identity_field(type_name))
    if not has_value(identity):
        return None
    return type_url(config, registry, type_name, identity)


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list | tuple):
        return ",".join(_query_value(item) for item in value)
    return str(value)


def serialize_query(params: Mapping[str, Any], *, exclude: tuple[str, ...] = ()) -> str:
    """Translate *params* into a querystring, skipping ``None`` and *exclude*."""
    pairs = [(key, _query_value(value)) for key, value in params.items() if key not in exclude and value is not None]
    return urlencode(pairs)


def wrap_entity_root(config: MirrorConfig, type_name: str, body: Any) -> Any:
    if not config.entity_root:
        return body
    return {start_case(type_name): body}


def unwrap_entity_root(config: MirrorConfig, type_name: str, body: Any) -> Any:
    if not config.entity_root or not isinstance(body, Mapping):
        return body
    return body.get(start_case(type_name), body)


def _error_message(decoded: Any) -> str | None:
    if isinstance(decoded, Mapping) and decoded.get(ERROR_MESSAGE_FIELD):
        return str(decoded[ERROR_MESSAGE_FIELD])
    return None


async def send_json(
    *,
    config: MirrorConfig,
    transport: Transport,
    method: str,
    url: str,
    params: Mapping[str, Any] | None = None,
    body: Any = None,
    exclude_params: tuple[str, ...] = (),
) -> Any:
    """Send a request and return the decoded JSON body (``None`` when empty).

    Raises
    ------
    TransportError
        Network failure or a non-2xx status. Carries the status and the
        server-supplied ``errorMessage`` when there is one.
    RemoteError
        2xx response whose body carries an ``errorMessage`` field.
    MalformedResponseError
        2xx response whose body is not valid JSON.
    """
    if method == "GET" and params:
        query = serialize_query(params, exclude=exclude_params)
        if query:
            url = f"{url}?{query}"

    payload: str | None = None
    content_type: str | None = None
    if method != "GET" and body is not None:
        payload = json.dumps(body, separators=(",", ":"))
        content_type = JSON_CONTENT_TYPE

    headers = config.resolve_headers()
    redactor = TraceRedactor.from_config(config) if config.api_trace_enabled else None
    if redactor is not None:
        _logger.debug(
            "%s %s headers=%s body=%s",
            method,
            url,
            redactor.headers(headers),
            redactor.record(body) if payload is not None else None,
        )

    response = await transport.send(
        method,
        url,
        body=payload,
        content_type=content_type,
        headers=headers,
    )

    raw = response.body
    empty = raw is None or (isinstance(raw, str | bytes) and not raw.strip())
    if 200 <= response.status < 300:
        decoded = None if empty else decode_json(raw)
        if redactor is not None:
            _logger.debug("%s %s -> %s %s", method, url, response.status, redactor.record(decoded))
        message = _error_message(decoded)
        if message is not None:
            raise RemoteError(
                f"Request returned an unknown error: {message}",
                status=response.status,
                url=url,
            )
        return decoded

    message = None
    if not empty:
        try:
            message = _error_message(decode_json(raw))
        except MalformedResponseError:
            _logger.debug("Undecodable error body from %s", url)
    raise TransportError(
        message or f"Request failed with status code {response.status}",
        status=response.status,
        url=url,
    )
