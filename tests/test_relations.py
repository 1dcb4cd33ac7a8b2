from __future__ import annotations

import pytest

from pymirror.client import MirrorClient
from pymirror.config import MirrorConfig
from pymirror.exceptions import TransportError
from pymirror.relations import reduce_related
from pymirror.schema import SchemaRegistry

from .conftest import API, SCHEMA, FakeBackend


@pytest.fixture
def registry() -> SchemaRegistry:
    return SchemaRegistry(SCHEMA)


def test_reduce_foreign_key_object_to_identity(registry: SchemaRegistry) -> None:
    record = {"id": 1, "owner": {"id": 5, "name": "ann"}}

    reduced = reduce_related(registry, "tasks", record)

    assert reduced["owner"] == 5
    assert record["owner"] == {"id": 5, "name": "ann"}


def test_reduce_one_to_many_objects_use_related_identity_field(registry: SchemaRegistry) -> None:
    reduced = reduce_related(registry, "tasks", {"tags": [{"slug": "red"}, "blue", {"slug": "green"}]})

    assert reduced["tags"] == ["red", "blue", "green"]


def test_reduce_foreign_key_list_takes_first(registry: SchemaRegistry) -> None:
    reduced = reduce_related(registry, "tasks", {"owner": [{"id": 5}, {"id": 6}]})

    assert reduced["owner"] == 5


def test_reduce_leaves_identities_and_unrelated_attributes(registry: SchemaRegistry) -> None:
    record = {"id": 1, "owner": 5, "tags": ["red"], "meta": {"id": 9}}

    assert reduce_related(registry, "tasks", record) == record


@pytest.mark.asyncio
async def test_expand_uses_store_before_network(config: MirrorConfig, backend: FakeBackend) -> None:
    client = MirrorClient(config, SCHEMA, transport=backend)
    client.merge("users", {"id": 5, "name": "ann"})

    expanded = await client.get_related("tasks", {"id": 1, "owner": 5})

    assert expanded["owner"] == {"id": 5, "name": "ann"}
    assert backend.calls == []


@pytest.mark.asyncio
async def test_expand_fetches_missing_identity_once(config: MirrorConfig, backend: FakeBackend) -> None:
    backend.route("GET", f"{API}/users/9", {"id": 9, "name": "zed"})
    client = MirrorClient(config, SCHEMA, transport=backend)

    expanded = await client.get_related("tasks", {"id": 1, "owner": 9})

    assert expanded["owner"] == {"id": 9, "name": "zed"}
    assert backend.count("GET", f"{API}/users/9") == 1
    assert client.find("users", 9) == {"id": 9, "name": "zed"}


@pytest.mark.asyncio
async def test_expand_one_to_many_keeps_identity_order(config: MirrorConfig, backend: FakeBackend) -> None:
    backend.route("GET", f"{API}/tags/a", {"slug": "a"})
    backend.route("GET", f"{API}/tags/b", {"slug": "b"})
    # "a" settles last; order must still follow the identities.
    backend.delays[("GET", f"{API}/tags/a")] = 0.03
    client = MirrorClient(config, SCHEMA, transport=backend)
    client.merge("tags", {"slug": "c"})

    expanded = await client.get_related("tasks", {"id": 1, "tags": ["a", "c", "b"]})

    assert [tag["slug"] for tag in expanded["tags"]] == ["a", "c", "b"]


@pytest.mark.asyncio
async def test_expand_single_attribute_filter(config: MirrorConfig, backend: FakeBackend) -> None:
    client = MirrorClient(config, SCHEMA, transport=backend)
    client.merge("users", {"id": 5})

    expanded = await client.get_related("tasks", {"owner": 5, "tags": ["x"]}, "owner")

    assert expanded == {"owner": {"id": 5}, "tags": ["x"]}


@pytest.mark.asyncio
async def test_expand_is_one_hop_for_cyclic_schemas(backend: FakeBackend) -> None:
    schema = {
        "parents": {"url": "/parents", "oneToMany": {"children": "children"}},
        "children": {"url": "/children", "foreignKey": {"parent": "parents"}},
    }
    client = MirrorClient(MirrorConfig(api_url=API), schema, transport=backend)
    client.merge("parents", {"id": 1, "children": [2]})
    client.merge("children", {"id": 2, "parent": 1})

    expanded = await client.get_related("parents", {"id": 1, "children": [2]})

    assert expanded["children"] == [{"id": 2, "parent": 1}]
    assert backend.calls == []


@pytest.mark.asyncio
async def test_failed_fetch_surfaces_after_siblings_settle(config: MirrorConfig, backend: FakeBackend) -> None:
    backend.route("GET", f"{API}/users/9", {"errorMessage": "boom"}, status=500)
    backend.route("GET", f"{API}/tags/a", {"slug": "a"})
    backend.delays[("GET", f"{API}/tags/a")] = 0.05
    client = MirrorClient(config, SCHEMA, transport=backend)

    with pytest.raises(TransportError, match="boom"):
        await client.get_related("tasks", {"id": 1, "owner": 9, "tags": ["a"]})

    assert client.find("tags", "a") == {"slug": "a"}


@pytest.mark.asyncio
async def test_unresolved_local_foreign_key_expands_to_none(backend: FakeBackend) -> None:
    schema = {
        "tasks": {"url": "/tasks", "foreignKey": {"draft": "drafts"}},
        "drafts": {"localOnly": True},
    }
    client = MirrorClient(MirrorConfig(api_url=API), schema, transport=backend)
    client.merge("drafts", {"id": 3, "body": "kept"})

    missing = await client.get_related("tasks", {"id": 1, "draft": 42})
    present = await client.get_related("tasks", {"id": 2, "draft": 3})

    assert missing["draft"] is None
    assert present["draft"] == {"id": 3, "body": "kept"}
    assert backend.calls == []
