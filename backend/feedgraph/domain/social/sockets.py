"""Socket.IO namespace pushing relationship bucket changes to each viewer."""

from __future__ import annotations

import logging
from typing import Optional

import socketio

from feedgraph.domain.social.container import SocialContainer
from feedgraph.domain.social.exceptions import StoreUnavailable
from feedgraph.domain.social.models import Bucket
from feedgraph.domain.social.schemas import BucketsResponse, RelationshipsUpdatePayload
from feedgraph.domain.social.view import RelationshipBuckets, RelationshipView
from feedgraph.infra import jwt as jwt_helper
from feedgraph.infra.auth import AuthenticatedUser
from feedgraph.obs import logging as obs_logging
from feedgraph.obs import metrics as obs_metrics
from feedgraph.settings import settings

logger = logging.getLogger(__name__)


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


def _resolve_user(auth_payload: dict, scope: dict) -> Optional[AuthenticatedUser]:
	token = auth_payload.get("token")
	if token:
		try:
			payload = jwt_helper.decode_access(str(token))
		except Exception:
			raise ConnectionRefusedError("invalid_token")
		return AuthenticatedUser(id=str(payload["sub"]).strip(), handle=payload.get("handle"))
	if not settings.is_dev():
		return None
	user_id = auth_payload.get("userId") or _header(scope, "x-user-id")
	if not user_id or not str(user_id).strip():
		return None
	return AuthenticatedUser(id=str(user_id).strip())


class SocialNamespace(socketio.AsyncNamespace):
	"""Keeps each client in their personal room and one live view per connection."""

	def __init__(self, container: SocialContainer) -> None:
		super().__init__("/social")
		self._container = container
		self._sessions: dict[str, AuthenticatedUser] = {}
		self._views: dict[str, RelationshipView] = {}

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		obs_metrics.socket_connected(self.namespace)
		scope = environ.get("asgi.scope", environ)
		auth_payload = auth or environ.get("auth") or scope.get("auth") or {}
		try:
			user = _resolve_user(auth_payload, scope)
		except ConnectionRefusedError:
			obs_metrics.socket_disconnected(self.namespace)
			raise
		if user is None:
			obs_metrics.socket_disconnected(self.namespace)
			raise ConnectionRefusedError("missing user id")
		with obs_logging.log_context(channel="socket", sid=sid, viewer_id=user.id):
			try:
				view = await self._container.open_view(user.id, self._forwarder(sid, user.id))
			except StoreUnavailable:
				obs_metrics.socket_disconnected(self.namespace)
				logger.warning("social_connect_store_unavailable")
				raise ConnectionRefusedError(StoreUnavailable.reason) from None
			except Exception:
				obs_metrics.socket_disconnected(self.namespace)
				raise
		self._views[sid] = view
		self._sessions[sid] = user
		await self.enter_room(sid, self.user_room(user.id))
		await self.emit("social:ack", {"ok": True, "userId": user.id}, room=sid)

	async def on_disconnect(self, sid: str, *args) -> None:
		obs_metrics.socket_disconnected(self.namespace)
		view = self._views.pop(sid, None)
		if view is not None:
			await self._container.close_view(view)
		user = self._sessions.pop(sid, None)
		if user:
			await self.leave_room(sid, self.user_room(user.id))

	async def on_relationships_snapshot(self, sid: str, payload: dict | None = None) -> dict:
		"""Client pull of the current buckets, e.g. after a reconnect."""
		obs_metrics.socket_event(self.namespace, "relationships:snapshot")
		view = self._views.get(sid)
		if view is None:
			raise ConnectionRefusedError("unauthenticated")
		return BucketsResponse.from_buckets(view.buckets).model_dump()

	def _forwarder(self, sid: str, viewer_id: str):
		async def _forward(buckets: RelationshipBuckets, changed: list[Bucket]) -> None:
			obs_metrics.socket_event(self.namespace, "relationships:update")
			payload = RelationshipsUpdatePayload(
				viewer_id=viewer_id,
				changed=[bucket.value for bucket in changed],
				buckets=BucketsResponse.from_buckets(buckets),
			)
			with obs_logging.log_context(channel="socket", sid=sid, viewer_id=viewer_id):
				logger.debug("relationships_update_pushed", extra={"changed": payload.changed})
				await self.emit("relationships:update", payload.model_dump(), room=sid)

		return _forward

	@staticmethod
	def user_room(user_id: str) -> str:
		return f"user:{user_id}"
