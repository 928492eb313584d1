"""Who may see a user's content.

The rule, in order: owners see their own content; anonymous viewers see public
content only; a block in either direction denies; public content is allowed;
private content is allowed to friends of the owner only.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Generic, Iterable, Iterator, Optional, Protocol, Sequence, TypeVar

from feedgraph.domain.social.blocks import BlockService
from feedgraph.domain.social.friendships import FriendshipService
from feedgraph.domain.social.models import RelationshipStatus
from feedgraph.obs import metrics


class OwnedContent(Protocol):
	owner_id: str
	owner_is_private: bool


ItemT = TypeVar("ItemT", bound=OwnedContent)


def decide(
	viewer_id: Optional[str],
	owner_id: str,
	owner_is_private: bool,
	*,
	blocked: bool,
	friends: bool,
) -> tuple[bool, str]:
	"""Return ``(allowed, reason)`` for one item."""
	if viewer_id is not None and viewer_id == owner_id:
		return True, "owner"
	if viewer_id is None:
		return (not owner_is_private), "anonymous"
	if blocked:
		return False, "blocked"
	if not owner_is_private:
		return True, "public"
	return friends, "friend" if friends else "private"


@dataclass(frozen=True, slots=True)
class ViewerGraph:
	"""Snapshot of the viewer's friends and block-separated users."""

	viewer_id: Optional[str]
	friend_ids: frozenset[str] = frozenset()
	hidden_ids: frozenset[str] = frozenset()

	@classmethod
	def anonymous(cls) -> "ViewerGraph":
		return cls(viewer_id=None)

	def decide(self, owner_id: str, owner_is_private: bool) -> tuple[bool, str]:
		return decide(
			self.viewer_id,
			owner_id,
			owner_is_private,
			blocked=owner_id in self.hidden_ids,
			friends=owner_id in self.friend_ids,
		)

	def can_view(self, owner_id: str, owner_is_private: bool) -> bool:
		allowed, _ = self.decide(owner_id, owner_is_private)
		return allowed


class VisibleContent(Generic[ItemT]):
	"""Lazily filtered view of a content list; every iteration is a fresh single pass."""

	def __init__(self, items: Iterable[ItemT], graph: ViewerGraph) -> None:
		self._items: Sequence[ItemT] = items if isinstance(items, Sequence) else tuple(items)
		self._graph = graph

	@property
	def graph(self) -> ViewerGraph:
		return self._graph

	def __iter__(self) -> Iterator[ItemT]:
		for item in self._items:
			allowed, reason = self._graph.decide(item.owner_id, item.owner_is_private)
			metrics.inc_visibility(allowed, reason)
			if allowed:
				yield item


def filter_content(items: Iterable[ItemT], graph: ViewerGraph) -> VisibleContent[ItemT]:
	return VisibleContent(items, graph)


class VisibilityResolver:
	"""Combines friendship and block state into view decisions."""

	def __init__(self, friendships: FriendshipService, blocks: BlockService) -> None:
		self._friendships = friendships
		self._blocks = blocks

	async def can_view(self, viewer_id: Optional[str], owner_id: str, owner_is_private: bool) -> bool:
		blocked = friends = False
		if viewer_id is not None and viewer_id != owner_id:
			blocked = await self._blocks.is_blocked(viewer_id, owner_id)
			if not blocked and owner_is_private:
				friends = await self._friendships.status(owner_id, viewer_id) is RelationshipStatus.FRIENDS
		allowed, reason = decide(viewer_id, owner_id, owner_is_private, blocked=blocked, friends=friends)
		metrics.inc_visibility(allowed, reason)
		return allowed

	async def graph_for(self, viewer_id: Optional[str]) -> ViewerGraph:
		if viewer_id is None:
			return ViewerGraph.anonymous()
		friend_ids, hidden_ids = await asyncio.gather(
			self._friendships.friend_ids(viewer_id),
			self._blocks.hidden_ids(viewer_id),
		)
		return ViewerGraph(viewer_id=viewer_id, friend_ids=frozenset(friend_ids), hidden_ids=frozenset(hidden_ids))

	async def filter_content(self, items: Iterable[ItemT], viewer_id: Optional[str]) -> VisibleContent[ItemT]:
		"""Read the viewer's graph once and return the lazily filtered items.

		Re-run whenever the viewer's friendships or blocks change, not only
		when the content does.
		"""
		return filter_content(items, await self.graph_for(viewer_id))
