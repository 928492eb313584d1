"""Pydantic schemas for friend requests, blocks, buckets and visibility."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from feedgraph.domain.social.models import Block, Friendship, RelationshipStatus, UserAction
from feedgraph.domain.social.view import RelationshipBuckets


class FriendRequestCreate(BaseModel):
	to_user_id: str = Field(..., min_length=1, description="Recipient of the friend request")


class FriendshipSummary(BaseModel):
	id: str
	initiator_id: str
	recipient_id: str
	status: Literal["pending", "accepted"]
	created_at: datetime
	updated_at: datetime

	@classmethod
	def from_model(cls, friendship: Friendship) -> "FriendshipSummary":
		return cls(
			id=friendship.id,
			initiator_id=friendship.user_a,
			recipient_id=friendship.user_b,
			status=friendship.status.value,
			created_at=friendship.created_at,
			updated_at=friendship.updated_at,
		)


class FriendRow(BaseModel):
	friendship_id: str
	friend_id: str
	since: datetime


class BlockSummary(BaseModel):
	blocker_id: str
	blocked_id: str
	created_at: datetime

	@classmethod
	def from_model(cls, block: Block) -> "BlockSummary":
		return cls(blocker_id=block.blocker_id, blocked_id=block.blocked_id, created_at=block.created_at)


class RelationshipSummary(BaseModel):
	user_id: str
	target_id: str
	status: RelationshipStatus
	blocked: bool
	action: UserAction


class BucketsResponse(BaseModel):
	viewer_id: str
	friends: list[str] = Field(default_factory=list)
	incoming: list[str] = Field(default_factory=list)
	outgoing: list[str] = Field(default_factory=list)
	blocked: list[str] = Field(default_factory=list)
	discoverable: list[str] = Field(default_factory=list)

	@classmethod
	def from_buckets(cls, buckets: RelationshipBuckets) -> "BucketsResponse":
		return cls(**buckets.as_dict())


class ContentItemIn(BaseModel):
	id: str
	owner_id: str
	owner_is_private: bool = False
	kind: str = "post"
	payload: dict[str, Any] = Field(default_factory=dict)


class VisibilityFilterRequest(BaseModel):
	items: list[ContentItemIn] = Field(default_factory=list, max_length=500)


class VisibilityFilterResponse(BaseModel):
	viewer_id: Optional[str] = None
	items: list[ContentItemIn]


class RelationshipsUpdatePayload(BaseModel):
	"""Socket payload for ``relationships:update``."""

	viewer_id: str
	changed: list[str]
	buckets: BucketsResponse
