from __future__ import annotations

from pymirror._api._common import record_url, serialize_query, type_url
from pymirror.config import MirrorConfig
from pymirror.schema import SchemaRegistry

from .conftest import API, SCHEMA

CONFIG = MirrorConfig(api_url=API)
REGISTRY = SchemaRegistry(SCHEMA)


def test_serialize_query() -> None:
    query = serialize_query(
        {"id": 3, "done": True, "tags": ["a", "b"], "q": "x y", "skip": None},
        exclude=("id",),
    )

    assert query == "done=true&tags=a%2Cb&q=x+y"


def test_type_and_record_urls() -> None:
    assert type_url(CONFIG, REGISTRY, "tasks") == f"{API}/tasks"
    assert type_url(CONFIG, REGISTRY, "tasks", 4) == f"{API}/tasks/4"
    assert type_url(CONFIG, REGISTRY, "drafts") is None

    assert record_url(CONFIG, REGISTRY, "tags", {"slug": "red"}) == f"{API}/tags/red"
    assert record_url(CONFIG, REGISTRY, "tasks", {"id": 1, "url": "/custom/1"}) == f"{API}/custom/1"
    assert record_url(CONFIG, REGISTRY, "tasks", {"url": "https://other.example.com/t/1"}) == "https://other.example.com/t/1"
    assert record_url(CONFIG, REGISTRY, "tasks", {"localCreateTime": "123"}) is None
