"""Shared Redis client for the document store.

``RedisDocumentStore`` instances hold ``redis_client`` rather than a concrete
connection, so the backing client (a real server, or fakeredis in tests) can be
replaced after the social container has been built.
"""

from __future__ import annotations

import redis.asyncio as redis

from feedgraph.settings import settings


class RedisProxy:
	"""Forwards commands, pipelines and pub/sub to whichever client is installed."""

	def __init__(self, client: redis.Redis):
		self._client: redis.Redis = client

	def set_client(self, client: redis.Redis) -> None:
		self._client = client

	@property
	def client(self) -> redis.Redis:
		return self._client

	def __getattr__(self, item):
		return getattr(self._client, item)


# Documents are JSON text; from_url does not connect until the first command
redis_client: RedisProxy = RedisProxy(redis.from_url(settings.redis_url, decode_responses=True))


def set_redis_client(client: redis.Redis) -> None:
	redis_client.set_client(client)
