"""Tests for the subscription broker and its missing-index fallback."""

from unittest.mock import patch

from conftest import settle

from roadmap_mentor.errors import SubscriptionError
from roadmap_mentor.infrastructure.broker import SubscriptionBroker
from roadmap_mentor.infrastructure.store import InMemoryDocumentStore


async def test_ordered_watch_delivers_sorted_snapshots(store):
    seen = []
    SubscriptionBroker(store).watch_collection("projects/p/messages", seen.append)
    await store.add("projects/p/messages", {"content": "first"})
    await store.add("projects/p/messages", {"content": "second"})
    await settle()
    assert [d["content"] for d in seen[-1]] == ["first", "second"]


async def test_missing_index_falls_back_to_client_side_sort(clock):
    store = InMemoryDocumentStore(clock=clock, indexed_fields=())
    seen = []
    SubscriptionBroker(store).watch_collection("c", seen.append)
    await store.write("c/b", {"id": "b", "createdAt": "2025-01-02T00:00:00+00:00"})
    await store.write("c/a", {"id": "a", "createdAt": "2025-01-01T00:00:00+00:00"})
    await settle()
    assert [d["id"] for d in seen[-1]] == ["a", "b"]


async def test_descending_fallback(clock):
    store = InMemoryDocumentStore(clock=clock, indexed_fields=())
    seen = []
    SubscriptionBroker(store).watch_collection("c", seen.append, descending=True)
    await store.write("c/a", {"id": "a", "createdAt": "2025-01-01T00:00:00+00:00"})
    await store.write("c/b", {"id": "b", "createdAt": "2025-01-02T00:00:00+00:00"})
    await settle()
    assert [d["id"] for d in seen[-1]] == ["b", "a"]


async def test_gives_up_with_empty_snapshot(store):
    seen = []
    with patch.object(store, "_list", side_effect=SubscriptionError("backend offline")):
        SubscriptionBroker(store).watch_collection("c", seen.append)
    assert seen == [[]]


async def test_give_up_is_reported_to_on_failure(store):
    seen, failures = [], []
    with patch.object(store, "_list", side_effect=SubscriptionError("backend offline")):
        SubscriptionBroker(store).watch_collection("c", seen.append, on_failure=failures.append)
    await settle()
    assert seen == []
    assert [str(e) for e in failures] == ["backend offline"]


async def test_subscription_broken_later_switches_to_fallback(store):
    seen = []
    unsubscribe = SubscriptionBroker(store).watch_collection("c", seen.append)
    await settle()
    assert seen == [[]]

    real_list = store._list
    calls = []

    def flaky(collection):
        calls.append(collection)
        if len(calls) == 1:
            raise SubscriptionError("listener dropped")
        return real_list(collection)

    with patch.object(store, "_list", side_effect=flaky):
        await store.write("c/x", {"id": "x", "createdAt": "2025-01-01T00:00:00+00:00"})
        await settle()
    assert [d["id"] for d in seen[-1]] == ["x"]

    unsubscribe()
    assert store._subscriptions == []
    await store.write("c/y", {"id": "y"})
    await settle()
    assert [d["id"] for d in seen[-1]] == ["x"]


async def test_watch_document(store):
    seen = []
    SubscriptionBroker(store).watch_document("roadmaps/p", seen.append)
    await store.write("roadmaps/p", {"phases": []})
    await settle()
    assert seen == [None, {"phases": []}]
