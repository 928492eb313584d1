import asyncio

import pytest

from feedgraph.domain.social.container import SocialContainer
from feedgraph.domain.social.exceptions import Blocked, InvalidTarget
from feedgraph.domain.social.models import BLOCKS, FRIENDSHIPS, RelationshipStatus
from feedgraph.infra.docstore import InMemoryDocumentStore


@pytest.mark.asyncio
async def test_block_severs_friendship(social):
    request = await social.friendships.send_request("alice", "bob")
    await social.friendships.accept(request.id, "bob")

    block = await social.blocks.block("alice", "bob")

    assert block.blocker_id == "alice"
    assert await social.friendships.status("alice", "bob") is RelationshipStatus.NONE
    assert await social.store.get_friendship(request.id) is None
    assert await social.blocks.is_blocked("alice", "bob")
    assert await social.blocks.is_blocked("bob", "alice")


@pytest.mark.asyncio
async def test_block_severs_pending_request(social):
    await social.friendships.send_request("bob", "alice")
    await social.blocks.block("alice", "bob")
    assert await social.friendships.list_incoming("alice") == []


@pytest.mark.asyncio
async def test_block_is_idempotent(social):
    first = await social.blocks.block("alice", "bob")
    second = await social.blocks.block("alice", "bob")
    assert first.created_at == second.created_at
    assert len(await social.blocks.list_blocked_by("alice")) == 1


@pytest.mark.asyncio
async def test_concurrent_blocks_leave_one_record(social):
    await asyncio.gather(social.blocks.block("alice", "bob"), social.blocks.block("alice", "bob"))
    assert await social.blocks.blocked_ids("alice") == {"bob"}


@pytest.mark.asyncio
async def test_self_block_is_invalid(social):
    with pytest.raises(InvalidTarget):
        await social.blocks.block("alice", "alice")
    assert await social.blocks.is_blocked("alice", "alice") is False


@pytest.mark.asyncio
async def test_unblock_does_not_restore_friendship(social):
    request = await social.friendships.send_request("alice", "bob")
    await social.friendships.accept(request.id, "bob")
    await social.blocks.block("alice", "bob")

    await social.blocks.unblock("alice", "bob")
    await social.blocks.unblock("alice", "bob")

    assert not await social.blocks.is_blocked("alice", "bob")
    assert await social.friendships.status("alice", "bob") is RelationshipStatus.NONE


@pytest.mark.asyncio
async def test_only_the_blocker_can_lift_a_block(social):
    await social.blocks.block("alice", "bob")
    await social.blocks.unblock("bob", "alice")
    assert await social.blocks.is_blocked("alice", "bob")


@pytest.mark.asyncio
async def test_hidden_ids_cover_both_directions(social):
    await social.blocks.block("alice", "bob")
    await social.blocks.block("carol", "alice")

    assert await social.blocks.blocked_ids("alice") == {"bob"}
    assert await social.blocks.hidden_ids("alice") == {"bob", "carol"}
    assert [b.blocked_id for b in await social.blocks.list_blocked_by("alice")] == ["bob"]


@pytest.mark.asyncio
async def test_block_keys_do_not_leak_to_other_pairs(social):
    await social.blocks.block("x_y", "z")

    assert await social.blocks.is_blocked("x_y", "z")
    assert not await social.blocks.is_blocked("x", "y_z")
    assert await social.visibility.can_view("x", "y_z", False) is True


class _LaggingStore(InMemoryDocumentStore):
    """Yields to the event loop before every call, a few times per collection."""

    def __init__(self, lag):
        super().__init__()
        self._lag = lag

    async def _pause(self, collection):
        for _ in range(self._lag.get(collection, 1)):
            await asyncio.sleep(0)

    async def create(self, collection, key, data):
        await self._pause(collection)
        return await super().create(collection, key, data)

    async def get(self, collection, key):
        await self._pause(collection)
        return await super().get(collection, key)

    async def delete(self, collection, key, *, expect=None):
        await self._pause(collection)
        return await super().delete(collection, key, expect=expect)


@pytest.mark.asyncio
@pytest.mark.parametrize("friendship_lag", [0, 3, 10, 20])
@pytest.mark.parametrize("block_lag", [0, 3, 10, 20])
async def test_block_racing_a_request_leaves_no_friendship(friendship_lag, block_lag):
    store = _LaggingStore({FRIENDSHIPS: friendship_lag, BLOCKS: block_lag})
    social = SocialContainer(store)
    try:
        results = await asyncio.gather(
            social.friendships.send_request("bob", "alice"),
            social.blocks.block("alice", "bob"),
            return_exceptions=True,
        )
        assert not isinstance(results[1], Exception)
        assert results[0] is not None
        if isinstance(results[0], Exception):
            assert isinstance(results[0], Blocked)

        assert await social.blocks.is_blocked("alice", "bob")
        assert await social.store.get_friendship_between("alice", "bob") is None
        assert await social.friendships.list_incoming("alice") == []
    finally:
        await social.close()
