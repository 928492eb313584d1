"""Wiring for the relationship engine.

Built once when the app starts and closed on shutdown; every collaborator
receives the store explicitly instead of reaching for a global handle.
"""

from __future__ import annotations

import logging
from typing import Optional

from feedgraph.domain.social.blocks import BlockService
from feedgraph.domain.social.friendships import FriendshipService
from feedgraph.domain.social.store import RelationshipStore
from feedgraph.domain.social.view import RelationshipBuckets, RelationshipView, ViewListener, snapshot_buckets
from feedgraph.domain.social.visibility import VisibilityResolver
from feedgraph.infra.docstore import DocumentStore, InMemoryDocumentStore, RedisDocumentStore
from feedgraph.infra.redis import redis_client
from feedgraph.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)


def build_document_store(config: Settings) -> DocumentStore:
	if config.store_backend == "redis":
		return RedisDocumentStore(redis_client, namespace=config.store_namespace)
	return InMemoryDocumentStore()


class SocialContainer:
	def __init__(self, documents: DocumentStore, *, enforce_blocks: bool = True) -> None:
		self.documents = documents
		self.store = RelationshipStore(documents)
		self.friendships = FriendshipService(self.store, enforce_blocks=enforce_blocks)
		self.blocks = BlockService(self.store, self.friendships)
		self.visibility = VisibilityResolver(self.friendships, self.blocks)
		self._views: set[RelationshipView] = set()

	@classmethod
	def from_settings(cls, config: Optional[Settings] = None) -> "SocialContainer":
		config = config or default_settings
		documents = build_document_store(config)
		logger.info("social_container_ready", extra={"store_backend": config.store_backend})
		return cls(documents, enforce_blocks=config.enforce_blocks_on_requests)

	async def open_view(self, viewer_id: str, listener: Optional[ViewListener] = None) -> RelationshipView:
		"""Start a live view for ``viewer_id``; ``listener`` sees every change including the first snapshots."""
		view = RelationshipView(self.store, viewer_id)
		if listener is not None:
			view.subscribe(listener)
		await view.start()
		self._views.add(view)
		return view

	async def close_view(self, view: RelationshipView) -> None:
		self._views.discard(view)
		await view.close()

	async def buckets_for(self, viewer_id: str) -> RelationshipBuckets:
		return await snapshot_buckets(self.store, viewer_id)

	async def close(self) -> None:
		views, self._views = list(self._views), set()
		for view in views:
			await view.close()
		await self.documents.close()
