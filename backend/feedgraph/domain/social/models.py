"""Domain models for friendships, blocks and content visibility."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional, Union


FRIENDSHIPS = "friendships"
BLOCKS = "blocks"
USERS = "users"


class FriendshipStatus(str, Enum):
	"""Stored friendship states; removal deletes the record."""

	PENDING = "pending"
	ACCEPTED = "accepted"


class RelationshipStatus(str, Enum):
	"""Relationship between two users as seen by one of them."""

	NONE = "none"
	PENDING_SENT = "pending_sent"
	PENDING_RECEIVED = "pending_received"
	FRIENDS = "friends"


class Bucket(str, Enum):
	"""Mutually exclusive relationship categories of a viewer's user universe."""

	SELF = "self"
	FRIENDS = "friends"
	INCOMING = "incoming"
	OUTGOING = "outgoing"
	BLOCKED = "blocked"
	DISCOVERABLE = "discoverable"


class UserAction(str, Enum):
	"""Action a client offers for a user, fully determined by the bucket."""

	NONE = "none"
	ADD = "add"
	ACCEPT_OR_REJECT = "accept_or_reject"
	WITHDRAW = "withdraw"
	REMOVE = "remove"
	UNBLOCK = "unblock"


BUCKET_ACTIONS: Mapping[Bucket, UserAction] = {
	Bucket.SELF: UserAction.NONE,
	Bucket.FRIENDS: UserAction.REMOVE,
	Bucket.INCOMING: UserAction.ACCEPT_OR_REJECT,
	Bucket.OUTGOING: UserAction.WITHDRAW,
	Bucket.BLOCKED: UserAction.UNBLOCK,
	Bucket.DISCOVERABLE: UserAction.ADD,
}


def utcnow() -> datetime:
	return datetime.now(timezone.utc)


def _key_part(user_id: str) -> str:
	# Escaped ids never contain "_", so the joined key splits back into exactly one pair
	return str(user_id).replace("%", "%25").replace("_", "%5F")


def pair_key(user_a: str, user_b: str) -> str:
	"""Deterministic key for the unordered pair; one friendship record per pair."""
	low, high = sorted((str(user_a), str(user_b)))
	return f"{_key_part(low)}_{_key_part(high)}"


def block_key(blocker_id: str, blocked_id: str) -> str:
	return f"{_key_part(blocker_id)}_{_key_part(blocked_id)}"


def _parse_ts(value: Any) -> datetime:
	if isinstance(value, datetime):
		return value
	return datetime.fromisoformat(str(value))


@dataclass(frozen=True, slots=True)
class Pending:
	initiator: str


@dataclass(frozen=True, slots=True)
class Accepted:
	pass


FriendshipState = Union[Pending, Accepted]


@dataclass(slots=True)
class Friendship:
	"""The single relation between an initiator (``user_a``) and a recipient (``user_b``)."""

	id: str
	user_a: str
	user_b: str
	state: FriendshipState
	created_at: datetime
	updated_at: datetime

	@property
	def status(self) -> FriendshipStatus:
		if isinstance(self.state, Pending):
			return FriendshipStatus.PENDING
		return FriendshipStatus.ACCEPTED

	@property
	def is_pending(self) -> bool:
		return isinstance(self.state, Pending)

	@property
	def is_accepted(self) -> bool:
		return isinstance(self.state, Accepted)

	def involves(self, user_id: str) -> bool:
		return user_id in (self.user_a, self.user_b)

	def counterpart(self, user_id: str) -> str:
		if user_id == self.user_a:
			return self.user_b
		if user_id == self.user_b:
			return self.user_a
		raise ValueError(f"{user_id} is not a party to {self.id}")

	def status_for(self, viewer_id: str) -> RelationshipStatus:
		if not self.involves(viewer_id):
			return RelationshipStatus.NONE
		if isinstance(self.state, Accepted):
			return RelationshipStatus.FRIENDS
		if self.state.initiator == viewer_id:
			return RelationshipStatus.PENDING_SENT
		return RelationshipStatus.PENDING_RECEIVED

	@classmethod
	def from_document(cls, key: str, data: Mapping[str, Any]) -> "Friendship":
		status = FriendshipStatus(data["status"])
		state: FriendshipState = Pending(initiator=str(data["user1"])) if status is FriendshipStatus.PENDING else Accepted()
		return cls(
			id=key,
			user_a=str(data["user1"]),
			user_b=str(data["user2"]),
			state=state,
			created_at=_parse_ts(data["created_at"]),
			updated_at=_parse_ts(data["updated_at"]),
		)

	def to_document(self) -> dict[str, Any]:
		return {
			"user1": self.user_a,
			"user2": self.user_b,
			"status": self.status.value,
			"created_at": self.created_at.isoformat(),
			"updated_at": self.updated_at.isoformat(),
		}


@dataclass(slots=True)
class Block:
	"""Directed "blocker blocks blocked" relation."""

	blocker_id: str
	blocked_id: str
	created_at: datetime

	@property
	def id(self) -> str:
		return block_key(self.blocker_id, self.blocked_id)

	@classmethod
	def from_document(cls, data: Mapping[str, Any]) -> "Block":
		return cls(
			blocker_id=str(data["blocker"]),
			blocked_id=str(data["blocked"]),
			created_at=_parse_ts(data["created_at"]),
		)

	def to_document(self) -> dict[str, Any]:
		return {
			"blocker": self.blocker_id,
			"blocked": self.blocked_id,
			"created_at": self.created_at.isoformat(),
		}


@dataclass(frozen=True, slots=True)
class UserRef:
	"""The slice of a profile the engine reads; profiles are owned elsewhere."""

	id: str
	handle: Optional[str] = None
	is_private: bool = False

	@classmethod
	def from_document(cls, key: str, data: Mapping[str, Any]) -> "UserRef":
		handle = data.get("handle")
		return cls(id=key, handle=str(handle) if handle is not None else None, is_private=bool(data.get("is_private", False)))


@dataclass(frozen=True, slots=True)
class ContentItem:
	"""Anything owned by a user, with the owner's privacy flag copied at write time."""

	id: str
	owner_id: str
	owner_is_private: bool = False
	kind: str = "post"
	payload: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)
