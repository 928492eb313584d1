"""Blocking: asymmetric records that sever friendships and override privacy."""

from __future__ import annotations

import asyncio

from feedgraph.domain.social import audit
from feedgraph.domain.social.friendships import FriendshipService, guard_not_self
from feedgraph.domain.social.models import Block
from feedgraph.domain.social.store import RelationshipStore


class BlockService:
	def __init__(self, store: RelationshipStore, friendships: FriendshipService) -> None:
		self._store = store
		self._friendships = friendships

	async def block(self, blocker_id: str, target_id: str) -> Block:
		"""Record the block, then sever any friendship. Repeating it is harmless.

		A request created concurrently is either severed here or withdrawn by
		its own block re-check in FriendshipService.send_request.
		"""
		guard_not_self(blocker_id, target_id)
		block, created = await self._store.create_block(blocker_id, target_id)
		severed = await self._friendships.sever(blocker_id, target_id)
		audit.inc_block("block" if created else "block_noop")
		if created:
			audit.log_block_event(
				"created",
				{
					"blocker": blocker_id,
					"blocked": target_id,
					"severed": severed.status.value if severed else "none",
				},
			)
		return block

	async def unblock(self, blocker_id: str, target_id: str) -> None:
		"""Remove the block if present. A prior friendship is not restored."""
		deleted = await self._store.delete_block(blocker_id, target_id)
		audit.inc_block("unblock" if deleted else "unblock_noop")
		if deleted:
			audit.log_block_event("removed", {"blocker": blocker_id, "blocked": target_id})

	async def is_blocked(self, user_a: str, user_b: str) -> bool:
		"""True when a block exists in either direction."""
		if user_a == user_b:
			return False
		return await self._store.blocked_either_way(user_a, user_b)

	async def list_blocked_by(self, user_id: str) -> list[Block]:
		"""Users ``user_id`` blocked; never the users who blocked them."""
		return await self._store.list_blocks_by(user_id)

	async def blocked_ids(self, user_id: str) -> set[str]:
		return {block.blocked_id for block in await self.list_blocked_by(user_id)}

	async def hidden_ids(self, user_id: str) -> set[str]:
		"""Users separated from ``user_id`` by a block in either direction."""
		mine, theirs = await asyncio.gather(
			self._store.list_blocks_by(user_id),
			self._store.list_blocks_against(user_id),
		)
		return {block.blocked_id for block in mine} | {block.blocker_id for block in theirs}
