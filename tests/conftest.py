from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any

import pytest

from pymirror._transport import TransportResponse
from pymirror.config import MirrorConfig

API = "https://api.example.com"

SCHEMA: dict[str, Any] = {
    "tasks": {
        "url": "/tasks",
        "foreignKey": {"owner": "users"},
        "oneToMany": {"tags": "tags"},
    },
    "users": {"url": "/users", "orderBy": "-name"},
    "tags": {"url": "/tags", "identityField": "slug"},
    "members": {"url": "/members", "segment": True, "scope": "team"},
    "drafts": {"localOnly": True},
}


@dataclass
class FakeBackend:
    """Routes ``(method, url)`` to canned bodies and records every call."""

    routes: dict[tuple[str, str], Any] = field(default_factory=dict)
    calls: list[tuple[str, str, Any, dict[str, str]]] = field(default_factory=list)
    delays: dict[tuple[str, str], float] = field(default_factory=dict)

    def route(self, method: str, url: str, body: Any = None, *, status: int = 200, raw: bool = False) -> None:
        text = body if raw or body is None else json.dumps(body)
        self.routes[(method, url)] = TransportResponse(status=status, body=text)

    def count(self, method: str, url: str) -> int:
        return sum(1 for call in self.calls if call[0] == method and call[1] == url)

    def sent_body(self, method: str, url: str) -> Any:
        for call in reversed(self.calls):
            if call[0] == method and call[1] == url:
                return json.loads(call[2]) if call[2] else None
        raise AssertionError(f"No {method} {url} call recorded")

    async def send(
        self,
        method: str,
        url: str,
        *,
        body: str | None = None,
        content_type: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> TransportResponse:
        self.calls.append((method, url, body, dict(headers or {})))
        delay = self.delays.get((method, url))
        if delay:
            await asyncio.sleep(delay)
        response = self.routes.get((method, url))
        if response is None:
            raise AssertionError(f"Unexpected request: {method} {url}")
        return response


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def config() -> MirrorConfig:
    return MirrorConfig(api_url=API, debounce_seconds=0.01)
