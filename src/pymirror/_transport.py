"""HTTP transport collaborator and its aiohttp implementation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp
from pydantic import BaseModel, ConfigDict

from pymirror._constants import USER_AGENT
from pymirror.exceptions import TransportError

_logger = logging.getLogger(__name__)


class TransportResponse(BaseModel):
    """Status plus the raw (text) or already-parsed response body."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    status: int
    body: Any = None


class Transport(Protocol):
    """Structural transport interface used by the sync engine.

    Implementations must raise :class:`TransportError` on network failure
    and return the body undecoded (or already parsed); status checking
    and JSON decoding are the caller's job.
    """

    async def send(
        self,
        method: str,
        url: str,
        *,
        body: str | None = None,
        content_type: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> TransportResponse:
        ...


class AiohttpTransport:
    """Transport backed by a shared :class:`aiohttp.ClientSession`."""

    def __init__(self, http_session: aiohttp.ClientSession, *, timeout: float | None = None) -> None:
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=timeout) if timeout else None

    async def send(
        self,
        method: str,
        url: str,
        *,
        body: str | None = None,
        content_type: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> TransportResponse:
        request_headers: dict[str, str] = {"user-agent": USER_AGENT, "accept": "application/json"}
        if content_type:
            request_headers["content-type"] = content_type
        if headers:
            request_headers.update(headers)

        _logger.debug("%s %s", method, url)

        request_kwargs: dict[str, Any] = {"data": body, "headers": request_headers}
        if self._timeout is not None:
            request_kwargs["timeout"] = self._timeout

        try:
            async with self._http.request(method, url, **request_kwargs) as resp:
                text = await resp.text()
                return TransportResponse(status=resp.status, body=text)
        except aiohttp.ClientError as exc:
            raise TransportError(f"Unable to send request to {url}: {exc}", url=url) from exc
        except asyncio.TimeoutError as exc:
            raise TransportError(f"Request to {url} timed out", url=url) from exc
