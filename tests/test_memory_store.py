"""Tests for InMemoryDocumentStore: atomic batches, snapshots and failure injection."""

import pytest

from avail.application import SERVER_TIMESTAMP, DeleteWrite, SetWrite, StoreError
from avail.infrastructure import InMemoryDocumentStore


def test_set_merge_and_replace(store, clock):
    store.set_merge("users/a", {"name": "A", "available": True})
    store.set_merge("users/a", {"available": False})
    assert store.get("users/a") == {"name": "A", "available": False}

    store.commit([SetWrite("users/a", {"name": "B"})])
    assert store.get("users/a") == {"name": "B"}


def test_server_timestamp_resolved_to_commit_time(store, clock):
    clock.advance(42)
    store.set_merge("users/a", {"lastChanged": SERVER_TIMESTAMP})
    assert store.get("users/a")["lastChanged"] == clock.now


def test_returned_data_is_a_copy(store):
    store.set_merge("users/a", {"tags": ["x"]})
    store.get("users/a")["tags"].append("y")
    assert store.get("users/a") == {"tags": ["x"]}


def test_list_documents_only_direct_children(store):
    store.commit(
        [
            SetWrite("users/a", {}),
            SetWrite("users/a/friends/b", {}),
            SetWrite("users/b", {}),
        ]
    )
    assert [d.id for d in store.list_documents("users")] == ["a", "b"]
    assert [d.id for d in store.list_documents("users/a/friends")] == ["b"]


def test_deleting_parent_keeps_subcollection(store):
    store.commit([SetWrite("users/a", {}), SetWrite("users/a/friends/b", {})])
    store.delete("users/a")
    assert store.paths() == ["users/a/friends/b"]


def test_failed_commit_changes_nothing(store):
    store.fail_next_commits(1)
    with pytest.raises(StoreError):
        store.commit([SetWrite("users/a", {}), DeleteWrite("users/b")])
    assert store.paths() == []
    store.commit([SetWrite("users/a", {})])
    assert store.paths() == ["users/a"]


def test_fail_after_some_commits(store):
    store.fail_next_commits(1, after=2)
    store.set_merge("users/a", {})
    store.set_merge("users/b", {})
    with pytest.raises(StoreError):
        store.set_merge("users/c", {})
    store.set_merge("users/d", {})
    assert store.paths() == ["users/a", "users/b", "users/d"]


def test_batch_limit(clock):
    store = InMemoryDocumentStore(clock=clock, max_batch_writes=2)
    with pytest.raises(StoreError):
        store.commit([DeleteWrite("a/1"), DeleteWrite("a/2"), DeleteWrite("a/3")])


def test_offline_store_raises(store):
    store.offline = True
    with pytest.raises(StoreError):
        store.get("users/a")
    with pytest.raises(StoreError):
        store.subscribe_collection("users", lambda docs: None)


def test_collection_subscription_gets_one_snapshot_per_batch(store):
    seen = []
    store.subscribe_collection("users/a/friends", seen.append)
    store.commit([SetWrite("users/a/friends/b", {}), SetWrite("users/a/friends/c", {})])
    store.set_merge("users/b/friends/a", {})
    assert [[d.id for d in docs] for docs in seen] == [[], ["b", "c"]]


def test_ids_subscription_only_sees_its_ids(store):
    seen = []
    store.subscribe_ids("users", ["a", "b"], seen.append)
    store.set_merge("users/c", {})
    store.set_merge("users/a", {"name": "A"})
    assert [[d.id for d in docs] for docs in seen] == [[], ["a"]]


def test_ids_subscription_limit(store):
    with pytest.raises(StoreError):
        store.subscribe_ids("users", [], lambda docs: None)
    with pytest.raises(StoreError):
        store.subscribe_ids("users", [str(i) for i in range(11)], lambda docs: None)


def test_document_subscription_and_cancel(store):
    seen = []
    sub = store.subscribe_document("users/a", seen.append)
    store.set_merge("users/a", {"name": "A"})
    store.delete("users/a")
    sub.cancel()
    sub.cancel()
    store.set_merge("users/a", {"name": "B"})
    assert [[d.data for d in docs] for docs in seen] == [[], [{"name": "A"}], []]
    assert store.active_subscriptions == 0
