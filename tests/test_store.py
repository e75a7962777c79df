"""Tests for the document stores and their snapshot delivery."""

from unittest.mock import patch

import pytest
from conftest import settle

from roadmap_mentor.errors import IndexUnavailable, StoreWriteError
from roadmap_mentor.infrastructure.store import sort_documents


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, store, sqlite_store):
    return store if request.param == "memory" else sqlite_store


class TestDocuments:
    async def test_write_then_read(self, any_store):
        await any_store.write("roadmaps/p1", {"phases": []})
        assert await any_store.read("roadmaps/p1") == {"phases": []}
        assert await any_store.read("roadmaps/missing") is None

    async def test_read_returns_a_copy(self, any_store):
        await any_store.write("projects/p1", {"techStack": ["Python"]})
        doc = await any_store.read("projects/p1")
        doc["techStack"].append("Go")
        assert (await any_store.read("projects/p1"))["techStack"] == ["Python"]

    async def test_update_merges_shallowly(self, any_store):
        await any_store.write("projects/p1", {"name": "A", "status": "active"})
        merged = await any_store.update("projects/p1", {"status": "done"})
        assert merged == {"name": "A", "status": "done"}

    async def test_add_assigns_id_and_created_at(self, any_store, clock):
        first = await any_store.add("projects/p1/messages", {"role": "user", "content": "hi"})
        second = await any_store.add("projects/p1/messages", {"role": "user", "content": "again"})
        assert first["id"] != second["id"]
        assert first["createdAt"] < second["createdAt"]
        docs = await any_store.query("projects/p1/messages", order_by="createdAt", descending=True)
        assert [d["content"] for d in docs] == ["again", "hi"]

    async def test_query_filters_by_field(self, any_store):
        await any_store.write("projects/a", {"userId": "u1"})
        await any_store.write("projects/b", {"userId": "u2"})
        await any_store.write("projects/a/messages/m", {"userId": "u1"})
        docs = await any_store.query("projects", where={"userId": "u1"})
        assert docs == [{"userId": "u1"}]

    async def test_ordering_on_unindexed_field_is_rejected(self, any_store):
        with pytest.raises(IndexUnavailable):
            await any_store.query("projects", order_by="name")
        with pytest.raises(IndexUnavailable):
            any_store.subscribe_query("projects", lambda docs: None, order_by="name")


class TestSubscriptions:
    async def test_initial_snapshot_then_updates_in_order(self, store):
        seen = []
        store.subscribe("roadmaps/p1", seen.append)
        await store.write("roadmaps/p1", {"v": 1})
        await store.write("roadmaps/p1", {"v": 2})
        await settle()
        assert seen == [None, {"v": 1}, {"v": 2}]

    async def test_query_subscription_sees_collection_changes(self, store):
        seen = []
        store.subscribe_query("projects/p1/messages", seen.append, order_by="createdAt")
        await store.add("projects/p1/messages", {"content": "a"})
        await store.add("projects/p2/messages", {"content": "other project"})
        await settle()
        assert [[d["content"] for d in snap] for snap in seen] == [[], ["a"]]

    async def test_unsubscribe_drops_queued_deliveries(self, store):
        seen = []
        unsubscribe = store.subscribe("roadmaps/p1", seen.append)
        await settle()
        await store.write("roadmaps/p1", {"v": 1})  # delivery queued, not yet run
        unsubscribe()
        await settle()
        assert seen == [None]

    async def test_handlers_get_independent_copies(self, store):
        first, second = [], []
        store.subscribe("roadmaps/p1", first.append)
        store.subscribe("roadmaps/p1", second.append)
        await store.write("roadmaps/p1", {"phases": []})
        await settle()
        first[-1]["phases"].append("mutated")
        assert second[-1] == {"phases": []}


async def test_sqlite_write_failure_raises_store_write_error(sqlite_store):
    sqlite_store.conn.close()
    with pytest.raises(StoreWriteError) as exc_info:
        await sqlite_store.write("roadmaps/p1", {"phases": []})
    assert exc_info.value.key == "roadmaps/p1"


async def test_failed_write_publishes_nothing(store):
    seen = []
    store.subscribe("roadmaps/p1", seen.append)
    await settle()
    with patch.object(store, "_put", side_effect=StoreWriteError("roadmaps/p1", "disk full")):
        with pytest.raises(StoreWriteError):
            await store.write("roadmaps/p1", {"phases": []})
    await settle()
    assert seen == [None]


def test_sort_documents_puts_missing_field_last():
    docs = [{"id": "x"}, {"id": "b", "createdAt": "2025-01-02T00:00:00+00:00"}, {"id": "a", "createdAt": "2025-01-01T00:00:00+00:00"}]
    assert [d["id"] for d in sort_documents(docs, "createdAt")] == ["a", "b", "x"]
    assert [d["id"] for d in sort_documents(docs, "createdAt", descending=True)] == ["b", "a", "x"]


def test_sort_documents_tolerates_mixed_values():
    docs = [
        {"id": "text", "createdAt": "yesterday"},
        {"id": "aware", "createdAt": "2025-01-02T00:00:00+00:00"},
        {"id": "naive", "createdAt": "2025-01-01T00:00:00"},
        {"id": "number", "createdAt": 5},
    ]
    assert [d["id"] for d in sort_documents(docs, "createdAt")] == ["naive", "aware", "number", "text"]
