"""Friendship state machine: request, accept, reject, cancel, remove."""

from __future__ import annotations

import logging
from typing import Optional

from feedgraph.domain.social import audit
from feedgraph.domain.social.exceptions import Blocked, Forbidden, InvalidTarget, NotFound
from feedgraph.domain.social.models import Friendship, FriendshipStatus, RelationshipStatus
from feedgraph.domain.social.store import RelationshipStore

logger = logging.getLogger(__name__)


def guard_not_self(user_id: str, target_id: str) -> None:
	if str(user_id) == str(target_id):
		raise InvalidTarget()


def _ensure_party(friendship: Friendship, actor_id: str) -> None:
	if not friendship.involves(actor_id):
		raise Forbidden("not_a_party")


class FriendshipService:
	"""State machine over the single friendship record per unordered pair.

	Creates are keyed by the pair, so two users requesting each other at the
	same time produce exactly one record. Delete-style operations are
	idempotent: acting on a record that is already gone is a no-op.
	"""

	def __init__(self, store: RelationshipStore, *, enforce_blocks: bool = True) -> None:
		self._store = store
		self._enforce_blocks = enforce_blocks

	async def send_request(self, initiator_id: str, recipient_id: str) -> Friendship:
		guard_not_self(initiator_id, recipient_id)
		if self._enforce_blocks and await self._store.blocked_either_way(initiator_id, recipient_id):
			audit.inc_transition("request", "blocked")
			raise Blocked()
		try:
			friendship = await self._store.create_request(initiator_id, recipient_id)
		except Exception as exc:
			audit.inc_transition("request", getattr(exc, "reason", "error"))
			raise
		if self._enforce_blocks and await self._store.blocked_either_way(initiator_id, recipient_id):
			# A block landed between the first check and the create
			await self._store.delete_friendship(friendship.id)
			logger.info("friendship_request_withdrawn_blocked", extra={"friendship_id": friendship.id})
			audit.inc_transition("request", "blocked")
			raise Blocked()
		audit.inc_transition("request")
		audit.log_friend_event(
			"requested",
			{"friendship_id": friendship.id, "initiator": initiator_id, "recipient": recipient_id},
		)
		return friendship

	async def accept(self, request_id: str, actor_id: str) -> Friendship:
		friendship = await self._store.get_friendship(request_id)
		if friendship is None or not friendship.is_pending:
			audit.inc_transition("accept", "not_found")
			raise NotFound("request_missing")
		if actor_id != friendship.user_b:
			audit.inc_transition("accept", "forbidden")
			raise Forbidden("not_recipient")
		accepted = await self._store.mark_accepted(request_id, recipient_id=actor_id)
		audit.inc_transition("accept")
		audit.log_friend_event(
			"accepted",
			{"friendship_id": accepted.id, "initiator": accepted.user_a, "recipient": accepted.user_b},
		)
		return accepted

	async def reject(self, request_id: str, actor_id: str) -> None:
		await self._drop_request(request_id, actor_id, action="reject")

	async def cancel(self, request_id: str, actor_id: str) -> None:
		await self._drop_request(request_id, actor_id, action="cancel")

	async def remove(self, friendship_id: str, actor_id: str) -> None:
		friendship = await self._store.get_friendship(friendship_id)
		if friendship is None:
			audit.inc_transition("remove", "noop")
			return
		_ensure_party(friendship, actor_id)
		if not friendship.is_accepted:
			logger.info("friendship_remove_not_accepted", extra={"friendship_id": friendship_id})
			audit.inc_transition("remove", "noop")
			return
		deleted = await self._store.delete_friendship(friendship_id, status=FriendshipStatus.ACCEPTED)
		audit.inc_transition("remove", "ok" if deleted else "noop")
		if deleted:
			audit.log_friend_event(
				"removed",
				{"friendship_id": friendship_id, "actor": actor_id, "other": friendship.counterpart(actor_id)},
			)

	async def sever(self, user_a: str, user_b: str) -> Optional[Friendship]:
		"""Delete whatever record exists between the pair, pending or accepted."""
		friendship = await self._store.get_friendship_between(user_a, user_b)
		if friendship is None:
			return None
		deleted = await self._store.delete_friendship(friendship.id)
		if deleted:
			audit.inc_transition("sever")
			audit.log_friend_event(
				"severed",
				{"friendship_id": friendship.id, "status": friendship.status.value},
			)
		return friendship

	async def status(self, viewer_id: str, other_id: str) -> RelationshipStatus:
		if viewer_id == other_id:
			return RelationshipStatus.NONE
		friendship = await self._store.get_friendship_between(viewer_id, other_id)
		if friendship is None:
			return RelationshipStatus.NONE
		return friendship.status_for(viewer_id)

	async def are_friends(self, user_a: str, user_b: str) -> bool:
		return await self.status(user_a, user_b) is RelationshipStatus.FRIENDS

	async def list_friends(self, user_id: str) -> list[Friendship]:
		return await self._store.list_friendships(user_id, FriendshipStatus.ACCEPTED)

	async def friend_ids(self, user_id: str) -> set[str]:
		return {friendship.counterpart(user_id) for friendship in await self.list_friends(user_id)}

	async def list_incoming(self, user_id: str) -> list[Friendship]:
		return await self._store.list_incoming(user_id)

	async def list_outgoing(self, user_id: str) -> list[Friendship]:
		return await self._store.list_outgoing(user_id)

	async def _drop_request(self, request_id: str, actor_id: str, *, action: str) -> None:
		friendship = await self._store.get_friendship(request_id)
		if friendship is None:
			audit.inc_transition(action, "noop")
			return
		_ensure_party(friendship, actor_id)
		if not friendship.is_pending:
			logger.info("friendship_request_already_resolved", extra={"friendship_id": request_id, "action": action})
			audit.inc_transition(action, "noop")
			return
		deleted = await self._store.delete_friendship(request_id, status=FriendshipStatus.PENDING)
		audit.inc_transition(action, "ok" if deleted else "noop")
		if deleted:
			audit.log_friend_event(
				"rejected" if action == "reject" else "cancelled",
				{
					"friendship_id": request_id,
					"actor": actor_id,
					"role": "recipient" if actor_id == friendship.user_b else "initiator",
				},
			)

