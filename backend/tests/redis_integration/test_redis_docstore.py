import asyncio
import json

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from feedgraph.domain.social.exceptions import AlreadyRelated, StoreUnavailable
from feedgraph.domain.social.friendships import FriendshipService
from feedgraph.domain.social.models import FRIENDSHIPS, RelationshipStatus
from feedgraph.domain.social.store import RelationshipStore
from feedgraph.infra.docstore import (
    DocumentExists,
    PreconditionFailed,
    RedisDocumentStore,
    StoreConnectionError,
    Where,
)
from feedgraph.infra.redis import redis_client


async def _eventually(predicate, timeout: float = 2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_documents_are_json_under_namespaced_keys(fake_redis):
    store = RedisDocumentStore(redis_client, namespace="t")
    await store.create("things", "k1", {"owner": "a"})
    raw = await fake_redis.get("t:doc:things:k1")
    assert json.loads(raw) == {"owner": "a"}
    assert await fake_redis.smembers("t:idx:things") == {"k1"}
    with pytest.raises(DocumentExists):
        await store.create("things", "k1", {"owner": "b"})


@pytest.mark.asyncio
async def test_update_and_delete_check_expectations(fake_redis):
    store = RedisDocumentStore(redis_client, namespace="t")
    await store.create("things", "k1", {"status": "pending"})
    with pytest.raises(PreconditionFailed):
        await store.update("things", "k1", {"status": "accepted"}, expect={"status": "accepted"})
    doc = await store.update("things", "k1", {"status": "accepted"}, expect={"status": "pending"})
    assert doc.data == {"status": "accepted"}

    with pytest.raises(PreconditionFailed):
        await store.delete("things", "k1", expect={"status": "pending"})
    assert await store.delete("things", "k1") is True
    assert await store.delete("things", "k1") is False
    assert await store.query("things") == []


@pytest.mark.asyncio
async def test_query_filters_and_orders_by_key(fake_redis):
    store = RedisDocumentStore(redis_client, namespace="t")
    await store.create("things", "b", {"owner": "x"})
    await store.create("things", "a", {"owner": "x"})
    await store.create("things", "c", {"owner": "y"})
    docs = await store.query("things", Where("owner", "x"))
    assert [doc.key for doc in docs] == ["a", "b"]


@pytest.mark.asyncio
async def test_friendship_flow_on_redis(fake_redis):
    friendships = FriendshipService(RelationshipStore(RedisDocumentStore(redis_client)))
    results = await asyncio.gather(
        friendships.send_request("alice", "bob"),
        friendships.send_request("bob", "alice"),
        return_exceptions=True,
    )
    assert sum(isinstance(r, AlreadyRelated) for r in results) == 1
    created = next(r for r in results if not isinstance(r, Exception))

    await friendships.accept(created.id, created.user_b)
    assert await friendships.status("alice", "bob") is RelationshipStatus.FRIENDS
    assert await fake_redis.exists(f"feedgraph:doc:{FRIENDSHIPS}:alice_bob") == 1


@pytest.mark.asyncio
async def test_watch_delivers_changes(fake_redis):
    store = RedisDocumentStore(redis_client, namespace="t")
    snapshots = []
    sub = await store.watch("things", Where("owner", "a"), lambda docs: snapshots.append([d.key for d in docs]))
    try:
        await _eventually(lambda: snapshots == [[]])
        await store.create("things", "k1", {"owner": "a"})
        await _eventually(lambda: snapshots[-1] == ["k1"])
        await store.create("things", "k2", {"owner": "b"})
        await store.delete("things", "k1")
        await _eventually(lambda: snapshots[-1] == [])
        assert all(len(s) <= 1 for s in snapshots)
    finally:
        await sub.unsubscribe()
        await store.close()


class _FlakyStore(RedisDocumentStore):
    """Fails the listed query calls (1-based) with a transport error."""

    def __init__(self, *args, failures=(), **kwargs):
        super().__init__(*args, **kwargs)
        self.failures = set(failures)
        self.calls = 0

    async def query(self, collection, where=None):
        self.calls += 1
        if self.calls in self.failures:
            raise StoreConnectionError("connection reset")
        return await super().query(collection, where)


@pytest.mark.asyncio
async def test_watch_recovers_after_failed_refreshes(fake_redis):
    store = _FlakyStore(redis_client, namespace="t", reconnect_base=0.01, failures=(1, 2, 5))
    snapshots = []
    sub = await store.watch("things", Where("owner", "a"), lambda docs: snapshots.append([d.key for d in docs]))
    try:
        # Calls 1 and 2 fail; the initial snapshot still arrives after reconnecting
        await _eventually(lambda: snapshots == [[]])
        await store.create("things", "k1", {"owner": "a"})
        await _eventually(lambda: snapshots[-1] == ["k1"])

        # Call 5 fails; the resubscribed watch re-reads and catches up
        await store.create("things", "k2", {"owner": "a"})
        await _eventually(lambda: snapshots[-1] == ["k1", "k2"])
        assert store.calls >= 6
        assert sub.active
    finally:
        await sub.unsubscribe()
        await store.close()


class _DownClient:
    async def get(self, key):
        raise RedisConnectionError("connection refused")

    async def ping(self):
        raise RedisConnectionError("connection refused")


@pytest.mark.asyncio
async def test_transport_failures_become_store_unavailable():
    store = RelationshipStore(RedisDocumentStore(_DownClient()))
    with pytest.raises(StoreUnavailable):
        await store.get_friendship("alice_bob")
