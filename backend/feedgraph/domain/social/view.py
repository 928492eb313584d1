"""Per-viewer relationship buckets kept live from five independent watches."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Union

from feedgraph.domain.social.models import (
	BUCKET_ACTIONS,
	Block,
	Bucket,
	Friendship,
	FriendshipStatus,
	UserAction,
	UserRef,
)
from feedgraph.domain.social.store import RelationshipStore
from feedgraph.infra.docstore import Subscription
from feedgraph.obs import metrics

logger = logging.getLogger(__name__)

_SLOTS = ("friends", "incoming", "outgoing", "blocked", "users")

# Resolution order when watches disagree for a moment.
_PRECEDENCE = (Bucket.BLOCKED, Bucket.FRIENDS, Bucket.INCOMING, Bucket.OUTGOING)


@dataclass(frozen=True, slots=True)
class RelationshipBuckets:
	viewer_id: str
	friends: frozenset[str] = frozenset()
	incoming: frozenset[str] = frozenset()
	outgoing: frozenset[str] = frozenset()
	blocked: frozenset[str] = frozenset()
	discoverable: frozenset[str] = frozenset()
	overlaps: Mapping[Bucket, int] = field(default_factory=dict, compare=False, hash=False)

	def members(self, bucket: Bucket) -> frozenset[str]:
		if bucket is Bucket.SELF:
			return frozenset({self.viewer_id})
		return getattr(self, bucket.value)

	def bucket_of(self, user_id: str) -> Optional[Bucket]:
		"""Bucket holding ``user_id``; None for users the view has not seen."""
		if user_id == self.viewer_id:
			return Bucket.SELF
		for bucket in (*_PRECEDENCE, Bucket.DISCOVERABLE):
			if user_id in self.members(bucket):
				return bucket
		return None

	def action_for(self, user_id: str) -> UserAction:
		bucket = self.bucket_of(user_id)
		if bucket is None:
			return UserAction.NONE
		return BUCKET_ACTIONS[bucket]

	def changed_since(self, previous: Optional["RelationshipBuckets"]) -> list[Bucket]:
		buckets = [*_PRECEDENCE, Bucket.DISCOVERABLE]
		if previous is None:
			return buckets
		return [bucket for bucket in buckets if self.members(bucket) != previous.members(bucket)]

	def as_dict(self) -> dict[str, Any]:
		return {
			"viewer_id": self.viewer_id,
			"friends": sorted(self.friends),
			"incoming": sorted(self.incoming),
			"outgoing": sorted(self.outgoing),
			"blocked": sorted(self.blocked),
			"discoverable": sorted(self.discoverable),
		}


def _counterparts(viewer_id: str, records: Iterable[Friendship]) -> set[str]:
	return {record.counterpart(viewer_id) for record in records if record.involves(viewer_id)}


def compute_buckets(
	viewer_id: str,
	*,
	friends: Iterable[Friendship] = (),
	incoming: Iterable[Friendship] = (),
	outgoing: Iterable[Friendship] = (),
	blocked: Iterable[Block] = (),
	users: Iterable[UserRef] = (),
) -> RelationshipBuckets:
	"""Derive pairwise disjoint buckets from possibly inconsistent snapshots.

	A user reported by more than one input lands in the bucket that comes first
	in ``blocked > friends > incoming > outgoing``; every such overlap is counted
	in ``overlaps`` under the bucket it was resolved to. ``discoverable`` is the
	rest of ``users`` minus the viewer.
	"""
	candidates = {
		Bucket.BLOCKED: {block.blocked_id for block in blocked if block.blocker_id == viewer_id},
		Bucket.FRIENDS: _counterparts(viewer_id, (f for f in friends if f.status is FriendshipStatus.ACCEPTED)),
		Bucket.INCOMING: _counterparts(viewer_id, (f for f in incoming if f.is_pending and f.user_b == viewer_id)),
		Bucket.OUTGOING: _counterparts(viewer_id, (f for f in outgoing if f.is_pending and f.user_a == viewer_id)),
	}
	taken: set[str] = {viewer_id}
	resolved: dict[Bucket, frozenset[str]] = {}
	overlaps: dict[Bucket, int] = {}
	for index, bucket in enumerate(_PRECEDENCE):
		members = candidates[bucket] - taken
		for later in _PRECEDENCE[index + 1:]:
			clash = len(members & candidates[later])
			if clash:
				overlaps[bucket] = overlaps.get(bucket, 0) + clash
		resolved[bucket] = frozenset(members)
		taken |= members
	discoverable = frozenset({user.id for user in users} - taken)
	return RelationshipBuckets(
		viewer_id=viewer_id,
		friends=resolved[Bucket.FRIENDS],
		incoming=resolved[Bucket.INCOMING],
		outgoing=resolved[Bucket.OUTGOING],
		blocked=resolved[Bucket.BLOCKED],
		discoverable=discoverable,
		overlaps=overlaps,
	)


async def snapshot_buckets(store: RelationshipStore, viewer_id: str) -> RelationshipBuckets:
	"""One-shot bucket computation for request/response callers."""
	friends, incoming, outgoing, blocked, users = await asyncio.gather(
		store.list_friendships(viewer_id, FriendshipStatus.ACCEPTED),
		store.list_incoming(viewer_id),
		store.list_outgoing(viewer_id),
		store.list_blocks_by(viewer_id),
		store.list_users(),
	)
	return compute_buckets(
		viewer_id,
		friends=friends,
		incoming=incoming,
		outgoing=outgoing,
		blocked=blocked,
		users=users,
	)


ViewListener = Callable[[RelationshipBuckets, list[Bucket]], Union[None, Awaitable[None]]]


class RelationshipView:
	"""Live buckets for one viewer.

	Every watch only replaces its own latest snapshot and calls ``_recompute``;
	the buckets are always derived from whatever each watch delivered last, so a
	watch that lags behind a mutation is corrected on its next delivery.
	"""

	def __init__(self, store: RelationshipStore, viewer_id: str) -> None:
		self._store = store
		self.viewer_id = viewer_id
		self._latest: dict[str, Optional[list]] = dict.fromkeys(_SLOTS)
		self._users: dict[str, UserRef] = {}
		self._buckets = RelationshipBuckets(viewer_id=viewer_id)
		self._listeners: list[ViewListener] = []
		self._subscriptions: list[Subscription] = []
		self._lock = asyncio.Lock()
		self._started = False
		self._closed = False

	async def __aenter__(self) -> "RelationshipView":
		return await self.start()

	async def __aexit__(self, *exc_info: object) -> None:
		await self.close()

	@property
	def buckets(self) -> RelationshipBuckets:
		return self._buckets

	@property
	def is_complete(self) -> bool:
		"""True once every watch delivered at least one snapshot."""
		return all(value is not None for value in self._latest.values())

	async def start(self) -> "RelationshipView":
		if self._started:
			return self
		self._started = True
		viewer = self.viewer_id
		try:
			self._subscriptions.append(await self._store.watch_friends(viewer, self._slot("friends")))
			self._subscriptions.append(await self._store.watch_incoming(viewer, self._slot("incoming")))
			self._subscriptions.append(await self._store.watch_outgoing(viewer, self._slot("outgoing")))
			self._subscriptions.append(await self._store.watch_blocked_by(viewer, self._slot("blocked")))
			self._subscriptions.append(await self._store.watch_users(self._slot("users")))
		except Exception:
			await self.close()
			raise
		return self

	async def close(self) -> None:
		if self._closed:
			return
		self._closed = True
		self._listeners.clear()
		subscriptions, self._subscriptions = self._subscriptions, []
		await asyncio.gather(*(sub.unsubscribe() for sub in subscriptions), return_exceptions=True)

	def subscribe(self, listener: ViewListener) -> Callable[[], None]:
		"""Call ``listener(buckets, changed)`` after every recompute that changed a bucket."""
		self._listeners.append(listener)

		def _unsubscribe() -> None:
			if listener in self._listeners:
				self._listeners.remove(listener)

		return _unsubscribe

	def bucket_of(self, user_id: str) -> Optional[Bucket]:
		return self._buckets.bucket_of(user_id)

	def action_for(self, user_id: str) -> UserAction:
		return self._buckets.action_for(user_id)

	def search(self, term: str) -> list[UserRef]:
		"""Discoverable users whose handle contains ``term``, case-insensitively."""
		needle = term.strip().casefold()
		found = [
			self._users[user_id]
			for user_id in self._buckets.discoverable
			if user_id in self._users and needle in (self._users[user_id].handle or "").casefold()
		]
		return sorted(found, key=lambda user: ((user.handle or "").casefold(), user.id))

	def _slot(self, name: str) -> Callable[[list], Awaitable[None]]:
		async def _on_snapshot(values: list) -> None:
			self._latest[name] = values
			await self._recompute()

		return _on_snapshot

	async def _recompute(self) -> None:
		async with self._lock:
			if self._closed:
				return
			users = self._latest["users"] or []
			buckets = compute_buckets(
				self.viewer_id,
				friends=self._latest["friends"] or [],
				incoming=self._latest["incoming"] or [],
				outgoing=self._latest["outgoing"] or [],
				blocked=self._latest["blocked"] or [],
				users=users,
			)
			self._users = {user.id: user for user in users}
			for bucket, count in buckets.overlaps.items():
				metrics.inc_view_overlap(bucket.value, count)
			if buckets.overlaps:
				logger.debug(
					"relationship_view_overlap",
					extra={"viewer_id": self.viewer_id, "overlaps": {b.value: n for b, n in buckets.overlaps.items()}},
				)
			changed = buckets.changed_since(self._buckets)
			metrics.inc_view_recompute(bool(changed))
			self._buckets = buckets
			if changed:
				await self._notify(buckets, changed)

	async def _notify(self, buckets: RelationshipBuckets, changed: list[Bucket]) -> None:
		for listener in list(self._listeners):
			try:
				result = listener(buckets, changed)
				if inspect.isawaitable(result):
					await result
			except Exception:  # noqa: BLE001
				logger.exception("relationship_view_listener_failed", extra={"viewer_id": self.viewer_id})
