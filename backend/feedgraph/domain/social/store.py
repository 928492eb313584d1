"""Persistence for friendship and block records on top of a document store.

No business rules live here: keys, document shapes, store error translation
and live-query registration only.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterator, Awaitable, Callable, Optional, Union

from feedgraph.domain.social.exceptions import AlreadyRelated, NotFound, StoreUnavailable
from feedgraph.domain.social.models import (
	BLOCKS,
	FRIENDSHIPS,
	USERS,
	Block,
	Friendship,
	FriendshipStatus,
	Pending,
	UserRef,
	block_key,
	pair_key,
	utcnow,
)
from feedgraph.infra.docstore import (
	And,
	Document,
	DocumentExists,
	DocumentNotFound,
	DocumentStore,
	Filter,
	Or,
	PreconditionFailed,
	StoreConnectionError,
	Subscription,
	Where,
)
from feedgraph.obs import metrics

logger = logging.getLogger(__name__)

FriendshipListener = Callable[[list[Friendship]], Union[None, Awaitable[None]]]
BlockListener = Callable[[list[Block]], Union[None, Awaitable[None]]]
UserListener = Callable[[list[UserRef]], Union[None, Awaitable[None]]]


def _friendships_of(user_id: str, status: Optional[FriendshipStatus] = None) -> Filter:
	either_side = Or(Where("user1", user_id), Where("user2", user_id))
	if status is None:
		return either_side
	return And(either_side, Where("status", status.value))


def _incoming_of(user_id: str) -> Filter:
	return And(Where("user2", user_id), Where("status", FriendshipStatus.PENDING.value))


def _outgoing_of(user_id: str) -> Filter:
	return And(Where("user1", user_id), Where("status", FriendshipStatus.PENDING.value))


def _to_friendships(docs: list[Document]) -> list[Friendship]:
	return [Friendship.from_document(doc.key, doc.data) for doc in docs]


def _to_blocks(docs: list[Document]) -> list[Block]:
	return [Block.from_document(doc.data) for doc in docs]


def _to_users(docs: list[Document]) -> list[UserRef]:
	return [UserRef.from_document(doc.key, doc.data) for doc in docs]


class RelationshipStore:
	"""Owns every Friendship and Block record."""

	def __init__(self, documents: DocumentStore) -> None:
		self._documents = documents

	@property
	def documents(self) -> DocumentStore:
		return self._documents

	@contextlib.asynccontextmanager
	async def _guard(self, operation: str) -> AsyncIterator[None]:
		try:
			yield
		except StoreConnectionError as exc:
			metrics.inc_store_error(operation)
			logger.warning("relationship_store_unavailable", extra={"operation": operation, "error": str(exc)})
			raise StoreUnavailable() from exc

	# Friendships -----------------------------------------------------------

	async def get_friendship(self, friendship_id: str) -> Optional[Friendship]:
		async with self._guard("friendship.get"):
			doc = await self._documents.get(FRIENDSHIPS, friendship_id)
		return Friendship.from_document(doc.key, doc.data) if doc else None

	async def get_friendship_between(self, user_a: str, user_b: str) -> Optional[Friendship]:
		friendship = await self.get_friendship(pair_key(user_a, user_b))
		if friendship is None or not (friendship.involves(user_a) and friendship.involves(user_b)):
			return None
		return friendship

	async def create_request(self, initiator_id: str, recipient_id: str) -> Friendship:
		"""Create a pending record keyed by the unordered pair."""
		now = utcnow()
		friendship = Friendship(
			id=pair_key(initiator_id, recipient_id),
			user_a=initiator_id,
			user_b=recipient_id,
			state=Pending(initiator=initiator_id),
			created_at=now,
			updated_at=now,
		)
		async with self._guard("friendship.create"):
			try:
				await self._documents.create(FRIENDSHIPS, friendship.id, friendship.to_document())
			except DocumentExists:
				raise AlreadyRelated() from None
		return friendship

	async def mark_accepted(self, friendship_id: str, *, recipient_id: str) -> Friendship:
		"""Flip a pending record to accepted if ``recipient_id`` is still its recipient."""
		async with self._guard("friendship.accept"):
			try:
				doc = await self._documents.update(
					FRIENDSHIPS,
					friendship_id,
					{"status": FriendshipStatus.ACCEPTED.value, "updated_at": utcnow().isoformat()},
					expect={"status": FriendshipStatus.PENDING.value, "user2": recipient_id},
				)
			except (DocumentNotFound, PreconditionFailed):
				raise NotFound("request_missing") from None
		return Friendship.from_document(doc.key, doc.data)

	async def delete_friendship(self, friendship_id: str, *, status: Optional[FriendshipStatus] = None) -> bool:
		"""Delete the record, optionally only while it is in ``status``; False when nothing was deleted."""
		expect = {"status": status.value} if status is not None else None
		async with self._guard("friendship.delete"):
			try:
				return await self._documents.delete(FRIENDSHIPS, friendship_id, expect=expect)
			except PreconditionFailed:
				return False

	async def list_friendships(self, user_id: str, status: Optional[FriendshipStatus] = None) -> list[Friendship]:
		async with self._guard("friendship.list"):
			docs = await self._documents.query(FRIENDSHIPS, _friendships_of(user_id, status))
		return _to_friendships(docs)

	async def list_incoming(self, user_id: str) -> list[Friendship]:
		async with self._guard("friendship.incoming"):
			docs = await self._documents.query(FRIENDSHIPS, _incoming_of(user_id))
		return _to_friendships(docs)

	async def list_outgoing(self, user_id: str) -> list[Friendship]:
		async with self._guard("friendship.outgoing"):
			docs = await self._documents.query(FRIENDSHIPS, _outgoing_of(user_id))
		return _to_friendships(docs)

	# Blocks ----------------------------------------------------------------

	async def get_block(self, blocker_id: str, blocked_id: str) -> Optional[Block]:
		async with self._guard("block.get"):
			doc = await self._documents.get(BLOCKS, block_key(blocker_id, blocked_id))
		return Block.from_document(doc.data) if doc else None

	async def create_block(self, blocker_id: str, blocked_id: str) -> tuple[Block, bool]:
		"""Create the block record; returns the stored block and whether it is new."""
		block = Block(blocker_id=blocker_id, blocked_id=blocked_id, created_at=utcnow())
		async with self._guard("block.create"):
			# A concurrent unblock can delete the record between create and get
			for _ in range(3):
				try:
					await self._documents.create(BLOCKS, block.id, block.to_document())
				except DocumentExists:
					existing = await self._documents.get(BLOCKS, block.id)
					if existing is not None:
						return Block.from_document(existing.data), False
					continue
				return block, True
		raise StoreUnavailable("block_contention")

	async def blocked_either_way(self, user_a: str, user_b: str) -> bool:
		forward, backward = await asyncio.gather(
			self.get_block(user_a, user_b),
			self.get_block(user_b, user_a),
		)
		return forward is not None or backward is not None

	async def delete_block(self, blocker_id: str, blocked_id: str) -> bool:
		async with self._guard("block.delete"):
			return await self._documents.delete(BLOCKS, block_key(blocker_id, blocked_id))

	async def list_blocks_by(self, blocker_id: str) -> list[Block]:
		async with self._guard("block.list_by"):
			docs = await self._documents.query(BLOCKS, Where("blocker", blocker_id))
		return _to_blocks(docs)

	async def list_blocks_against(self, blocked_id: str) -> list[Block]:
		async with self._guard("block.list_against"):
			docs = await self._documents.query(BLOCKS, Where("blocked", blocked_id))
		return _to_blocks(docs)

	# Users (read-only; profiles are written by the profile service) --------

	async def get_user(self, user_id: str) -> Optional[UserRef]:
		async with self._guard("user.get"):
			doc = await self._documents.get(USERS, user_id)
		return UserRef.from_document(doc.key, doc.data) if doc else None

	async def list_users(self) -> list[UserRef]:
		async with self._guard("user.list"):
			docs = await self._documents.query(USERS)
		return _to_users(docs)

	# Live queries ----------------------------------------------------------

	async def watch_friends(self, user_id: str, listener: FriendshipListener) -> Subscription:
		return await self._watch(FRIENDSHIPS, _friendships_of(user_id, FriendshipStatus.ACCEPTED), _to_friendships, listener)

	async def watch_incoming(self, user_id: str, listener: FriendshipListener) -> Subscription:
		return await self._watch(FRIENDSHIPS, _incoming_of(user_id), _to_friendships, listener)

	async def watch_outgoing(self, user_id: str, listener: FriendshipListener) -> Subscription:
		return await self._watch(FRIENDSHIPS, _outgoing_of(user_id), _to_friendships, listener)

	async def watch_blocked_by(self, blocker_id: str, listener: BlockListener) -> Subscription:
		return await self._watch(BLOCKS, Where("blocker", blocker_id), _to_blocks, listener)

	async def watch_users(self, listener: UserListener) -> Subscription:
		return await self._watch(USERS, None, _to_users, listener)

	async def _watch(self, collection: str, where: Optional[Filter], convert, listener) -> Subscription:
		def _on_snapshot(docs: list[Document]):
			return listener(convert(docs))

		async with self._guard(f"{collection}.watch"):
			return await self._documents.watch(collection, where, _on_snapshot)
