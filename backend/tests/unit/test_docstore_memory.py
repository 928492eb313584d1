import pytest

from feedgraph.infra.docstore import (
    And,
    DocumentExists,
    DocumentNotFound,
    InMemoryDocumentStore,
    Or,
    PreconditionFailed,
    Where,
)


def test_filters_compose():
    data = {"user1": "a", "user2": "b", "status": "pending"}
    assert Where("user1", "a").matches(data)
    assert not Where("missing", None).matches(data)
    assert And(Or(Where("user1", "b"), Where("user2", "b")), Where("status", "pending")).matches(data)
    assert not And(Where("user1", "a"), Where("status", "accepted")).matches(data)
    assert And(Where("a", 1)) == And(Where("a", 1))


@pytest.mark.asyncio
async def test_create_is_keyed_and_exclusive(memory_store):
    await memory_store.create("things", "k1", {"v": 1})
    with pytest.raises(DocumentExists):
        await memory_store.create("things", "k1", {"v": 2})
    doc = await memory_store.get("things", "k1")
    assert doc.data == {"v": 1}


@pytest.mark.asyncio
async def test_generated_keys_are_unique(memory_store):
    first = await memory_store.create("things", None, {"v": 1})
    second = await memory_store.create("things", None, {"v": 1})
    assert first != second


@pytest.mark.asyncio
async def test_update_respects_expectations(memory_store):
    await memory_store.create("things", "k1", {"status": "pending", "owner": "a"})
    with pytest.raises(PreconditionFailed):
        await memory_store.update("things", "k1", {"status": "accepted"}, expect={"status": "accepted"})
    doc = await memory_store.update("things", "k1", {"status": "accepted"}, expect={"status": "pending"})
    assert doc.data == {"status": "accepted", "owner": "a"}
    with pytest.raises(DocumentNotFound):
        await memory_store.update("things", "missing", {"status": "x"})


@pytest.mark.asyncio
async def test_delete_is_idempotent(memory_store):
    await memory_store.create("things", "k1", {"status": "pending"})
    with pytest.raises(PreconditionFailed):
        await memory_store.delete("things", "k1", expect={"status": "accepted"})
    assert await memory_store.delete("things", "k1") is True
    assert await memory_store.delete("things", "k1") is False


@pytest.mark.asyncio
async def test_returned_documents_are_copies(memory_store):
    await memory_store.create("things", "k1", {"tags": ["a"]})
    doc = await memory_store.get("things", "k1")
    doc.data["tags"].append("b")
    again = await memory_store.get("things", "k1")
    assert again.data["tags"] == ["a"]


@pytest.mark.asyncio
async def test_watch_delivers_initial_and_matching_changes(memory_store):
    await memory_store.create("things", "k1", {"owner": "a"})
    snapshots = []
    sub = await memory_store.watch("things", Where("owner", "a"), lambda docs: snapshots.append([d.key for d in docs]))
    await memory_store.settle()
    assert snapshots == [["k1"]]

    await memory_store.create("things", "k2", {"owner": "b"})
    await memory_store.create("things", "k3", {"owner": "a"})
    await memory_store.update("things", "k1", {"owner": "b"})
    await memory_store.settle()
    assert snapshots == [["k1"], ["k1", "k3"], ["k3"]]

    await sub.unsubscribe()
    await memory_store.create("things", "k4", {"owner": "a"})
    await memory_store.settle()
    assert snapshots[-1] == ["k3"]


@pytest.mark.asyncio
async def test_watch_callback_failure_does_not_stop_delivery(memory_store):
    seen = []

    async def flaky(docs):
        seen.append(len(docs))
        if len(seen) == 1:
            raise RuntimeError("boom")

    await memory_store.watch("things", None, flaky)
    await memory_store.create("things", "k1", {})
    await memory_store.settle()
    assert seen == [0, 1]


@pytest.mark.asyncio
async def test_close_stops_every_watch():
    store = InMemoryDocumentStore()
    seen = []
    await store.watch("things", None, seen.append)
    await store.settle()
    await store.close()
    await store.create("things", "k1", {})
    await store.settle()
    assert len(seen) == 1
    assert await store.ping() is True
