"""REST API surface for friend requests, blocks, buckets and visibility."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status

from feedgraph.domain.social.container import SocialContainer
from feedgraph.domain.social.exceptions import (
	AlreadyRelated,
	Blocked,
	Forbidden,
	InvalidTarget,
	NotFound,
	SocialError,
	StoreUnavailable,
)
from feedgraph.domain.social.models import ContentItem, FriendshipStatus, RelationshipStatus, UserRef
from feedgraph.domain.social.schemas import (
	BlockSummary,
	BucketsResponse,
	ContentItemIn,
	FriendRequestCreate,
	FriendRow,
	FriendshipSummary,
	RelationshipSummary,
	VisibilityFilterRequest,
	VisibilityFilterResponse,
)
from feedgraph.domain.social.view import compute_buckets
from feedgraph.infra.auth import AuthenticatedUser, get_current_user, get_optional_user

router = APIRouter()

RETRY_AFTER_SECONDS = "1"


def get_container(request: Request) -> SocialContainer:
	return request.app.state.social


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, StoreUnavailable):
		return HTTPException(
			status.HTTP_503_SERVICE_UNAVAILABLE,
			detail=exc.reason,
			headers={"Retry-After": RETRY_AFTER_SECONDS},
		)
	if isinstance(exc, AlreadyRelated):
		return HTTPException(status.HTTP_409_CONFLICT, detail=exc.reason)
	if isinstance(exc, Blocked) or isinstance(exc, Forbidden):
		return HTTPException(status.HTTP_403_FORBIDDEN, detail=exc.reason)
	if isinstance(exc, NotFound):
		return HTTPException(status.HTTP_404_NOT_FOUND, detail=exc.reason)
	if isinstance(exc, InvalidTarget):
		return HTTPException(status.HTTP_400_BAD_REQUEST, detail=exc.reason)
	return HTTPException(status.HTTP_400_BAD_REQUEST, detail=getattr(exc, "reason", str(exc)))


@router.post("/friends/requests", response_model=FriendshipSummary)
async def send_request(
	payload: FriendRequestCreate,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	social: SocialContainer = Depends(get_container),
) -> FriendshipSummary:
	try:
		friendship = await social.friendships.send_request(auth_user.id, payload.to_user_id.strip())
	except SocialError as exc:
		raise _map_error(exc) from None
	return FriendshipSummary.from_model(friendship)


@router.post("/friends/requests/{request_id}/accept", response_model=FriendshipSummary)
async def accept_request(
	request_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	social: SocialContainer = Depends(get_container),
) -> FriendshipSummary:
	try:
		friendship = await social.friendships.accept(request_id, auth_user.id)
	except SocialError as exc:
		raise _map_error(exc) from None
	return FriendshipSummary.from_model(friendship)


@router.post("/friends/requests/{request_id}/reject")
async def reject_request(
	request_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	social: SocialContainer = Depends(get_container),
) -> dict:
	try:
		await social.friendships.reject(request_id, auth_user.id)
	except SocialError as exc:
		raise _map_error(exc) from None
	return {"status": "ok"}


@router.post("/friends/requests/{request_id}/cancel")
async def cancel_request(
	request_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	social: SocialContainer = Depends(get_container),
) -> dict:
	try:
		await social.friendships.cancel(request_id, auth_user.id)
	except SocialError as exc:
		raise _map_error(exc) from None
	return {"status": "ok"}


@router.post("/friendships/{friendship_id}/remove")
async def remove_friend(
	friendship_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	social: SocialContainer = Depends(get_container),
) -> dict:
	try:
		await social.friendships.remove(friendship_id, auth_user.id)
	except SocialError as exc:
		raise _map_error(exc) from None
	return {"status": "ok"}


@router.get("/friends/list", response_model=List[FriendRow])
async def friends_list(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	social: SocialContainer = Depends(get_container),
) -> List[FriendRow]:
	try:
		friendships = await social.friendships.list_friends(auth_user.id)
	except SocialError as exc:
		raise _map_error(exc) from None
	return [
		FriendRow(friendship_id=item.id, friend_id=item.counterpart(auth_user.id), since=item.updated_at)
		for item in friendships
	]


@router.get("/friends/requests/incoming", response_model=List[FriendshipSummary])
async def incoming_requests(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	social: SocialContainer = Depends(get_container),
) -> List[FriendshipSummary]:
	try:
		requests = await social.friendships.list_incoming(auth_user.id)
	except SocialError as exc:
		raise _map_error(exc) from None
	return [FriendshipSummary.from_model(item) for item in requests]


@router.get("/friends/requests/outgoing", response_model=List[FriendshipSummary])
async def outgoing_requests(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	social: SocialContainer = Depends(get_container),
) -> List[FriendshipSummary]:
	try:
		requests = await social.friendships.list_outgoing(auth_user.id)
	except SocialError as exc:
		raise _map_error(exc) from None
	return [FriendshipSummary.from_model(item) for item in requests]


@router.get("/relationships", response_model=BucketsResponse)
async def relationship_buckets(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	social: SocialContainer = Depends(get_container),
) -> BucketsResponse:
	try:
		buckets = await social.buckets_for(auth_user.id)
	except SocialError as exc:
		raise _map_error(exc) from None
	return BucketsResponse.from_buckets(buckets)


@router.get("/relationships/{target_id}", response_model=RelationshipSummary)
async def relationship_with(
	target_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	social: SocialContainer = Depends(get_container),
) -> RelationshipSummary:
	"""Status plus the single action a client should offer for ``target_id``."""
	viewer = auth_user.id
	try:
		friendship = await social.store.get_friendship_between(viewer, target_id) if viewer != target_id else None
		mine = await social.store.get_block(viewer, target_id)
		blocked = await social.blocks.is_blocked(viewer, target_id)
	except SocialError as exc:
		raise _map_error(exc) from None
	records = [friendship] if friendship is not None else []
	buckets = compute_buckets(
		viewer,
		friends=[f for f in records if f.status is FriendshipStatus.ACCEPTED],
		incoming=records,
		outgoing=records,
		blocked=[mine] if mine is not None else [],
		# Users blocked by the target get no action; otherwise the target is addable
		users=[] if blocked and mine is None else [UserRef(id=target_id)],
	)
	status_value = friendship.status_for(viewer) if friendship is not None else RelationshipStatus.NONE
	return RelationshipSummary(
		user_id=viewer,
		target_id=target_id,
		status=status_value,
		blocked=blocked,
		action=buckets.action_for(target_id),
	)


@router.post("/blocks/{user_id}", response_model=BlockSummary)
async def block_user(
	user_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	social: SocialContainer = Depends(get_container),
) -> BlockSummary:
	try:
		block = await social.blocks.block(auth_user.id, user_id)
	except SocialError as exc:
		raise _map_error(exc) from None
	return BlockSummary.from_model(block)


@router.delete("/blocks/{user_id}")
async def unblock_user(
	user_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	social: SocialContainer = Depends(get_container),
) -> dict:
	try:
		await social.blocks.unblock(auth_user.id, user_id)
	except SocialError as exc:
		raise _map_error(exc) from None
	return {"status": "ok"}


@router.get("/blocks", response_model=List[BlockSummary])
async def list_blocks(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	social: SocialContainer = Depends(get_container),
) -> List[BlockSummary]:
	try:
		blocks = await social.blocks.list_blocked_by(auth_user.id)
	except SocialError as exc:
		raise _map_error(exc) from None
	return [BlockSummary.from_model(block) for block in blocks]


@router.post("/visibility/filter", response_model=VisibilityFilterResponse)
async def filter_visible(
	payload: VisibilityFilterRequest,
	auth_user: Optional[AuthenticatedUser] = Depends(get_optional_user),
	social: SocialContainer = Depends(get_container),
) -> VisibilityFilterResponse:
	"""Drop the items the caller may not see; anonymous callers only see public items."""
	viewer_id = auth_user.id if auth_user else None
	items = [
		ContentItem(id=item.id, owner_id=item.owner_id, owner_is_private=item.owner_is_private, kind=item.kind, payload=item.payload)
		for item in payload.items
	]
	try:
		visible = await social.visibility.filter_content(items, viewer_id)
	except SocialError as exc:
		raise _map_error(exc) from None
	return VisibilityFilterResponse(
		viewer_id=viewer_id,
		items=[
			ContentItemIn(id=item.id, owner_id=item.owner_id, owner_is_private=item.owner_is_private, kind=item.kind, payload=dict(item.payload))
			for item in visible
		],
	)
