import pytest

from feedgraph.domain.social.models import ContentItem
from feedgraph.domain.social.visibility import ViewerGraph, VisibleContent, decide, filter_content


async def _befriend(social, a, b):
    request = await social.friendships.send_request(a, b)
    await social.friendships.accept(request.id, b)


def test_decide_order():
    assert decide("alice", "alice", True, blocked=True, friends=False) == (True, "owner")
    assert decide(None, "alice", False, blocked=False, friends=False) == (True, "anonymous")
    assert decide(None, "alice", True, blocked=False, friends=True) == (False, "anonymous")
    assert decide("bob", "alice", False, blocked=True, friends=True) == (False, "blocked")
    assert decide("bob", "alice", False, blocked=False, friends=False) == (True, "public")
    assert decide("bob", "alice", True, blocked=False, friends=True) == (True, "friend")
    assert decide("bob", "alice", True, blocked=False, friends=False) == (False, "private")


@pytest.mark.asyncio
async def test_private_content_needs_friendship(social):
    assert not await social.visibility.can_view("bob", "alice", True)
    await _befriend(social, "alice", "bob")
    assert await social.visibility.can_view("bob", "alice", True)


@pytest.mark.asyncio
async def test_block_overrides_friendship_and_public(social):
    await _befriend(social, "alice", "bob")
    await social.blocks.block("alice", "bob")
    # Re-create the friendship without block enforcement to prove the override
    await social.store.create_request("alice", "bob")
    await social.store.mark_accepted("alice_bob", recipient_id="bob")

    assert await social.friendships.are_friends("alice", "bob")
    assert not await social.visibility.can_view("bob", "alice", True)
    assert not await social.visibility.can_view("bob", "alice", False)
    assert not await social.visibility.can_view("alice", "bob", False)


@pytest.mark.asyncio
async def test_owner_and_anonymous_viewers(social):
    assert await social.visibility.can_view("alice", "alice", True)
    assert await social.visibility.can_view(None, "alice", False)
    assert not await social.visibility.can_view(None, "alice", True)


@pytest.mark.asyncio
async def test_filter_content_matches_per_item_decisions(social):
    await _befriend(social, "friend", "viewer")
    await social.blocks.block("blocker", "viewer")
    items = [
        ContentItem(id="1", owner_id="viewer", owner_is_private=True),
        ContentItem(id="2", owner_id="stranger", owner_is_private=True),
        ContentItem(id="3", owner_id="public", owner_is_private=False),
        ContentItem(id="4", owner_id="blocker", owner_is_private=False),
        ContentItem(id="5", owner_id="friend", owner_is_private=True),
    ]

    visible = await social.visibility.filter_content(items, "viewer")

    expected = [item for item in items if await social.visibility.can_view("viewer", item.owner_id, item.owner_is_private)]
    assert [item.id for item in visible] == ["1", "3", "5"]
    assert list(visible) == expected


@pytest.mark.asyncio
async def test_filter_content_for_anonymous_viewer(social):
    items = [
        ContentItem(id="1", owner_id="alice", owner_is_private=True),
        ContentItem(id="2", owner_id="bob", owner_is_private=False),
    ]
    visible = await social.visibility.filter_content(items, None)
    assert [item.id for item in visible] == ["2"]
    assert visible.graph == ViewerGraph.anonymous()


@pytest.mark.asyncio
async def test_graph_for_collects_friends_and_blocks(social):
    await _befriend(social, "alice", "bob")
    await social.blocks.block("carol", "alice")
    graph = await social.visibility.graph_for("alice")
    assert graph.friend_ids == frozenset({"bob"})
    assert graph.hidden_ids == frozenset({"carol"})


class _CountingItem:
    def __init__(self, owner_id, owner_is_private=False):
        self._owner_id = owner_id
        self.owner_is_private = owner_is_private
        self.reads = 0

    @property
    def owner_id(self):
        self.reads += 1
        return self._owner_id


def test_visible_content_is_lazy_and_restartable():
    items = [_CountingItem("a"), _CountingItem("b"), _CountingItem("c", owner_is_private=True)]
    visible = filter_content(iter(items), ViewerGraph(viewer_id="viewer", hidden_ids=frozenset({"b"})))

    iterator = iter(visible)
    assert next(iterator) is items[0]
    assert [item.reads for item in items] == [1, 0, 0]

    assert list(visible) == [items[0]]
    assert list(visible) == [items[0]]
    assert [item.reads for item in items] == [3, 2, 2]


def test_visible_content_is_a_plain_iterable():
    visible = VisibleContent([], ViewerGraph.anonymous())
    assert list(visible) == []
