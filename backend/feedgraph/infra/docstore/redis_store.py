"""Redis-backed document store.

Documents are JSON strings under ``{namespace}:doc:{collection}:{key}`` with a
per-collection key index set. Keyed creates use ``SET NX``; guarded updates and
deletes run inside WATCH/MULTI so the precondition and the write are atomic for
the document. Every mutation publishes the document key on
``{namespace}:changes:{collection}``; live queries re-run on each notification.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import random
from typing import Any, AsyncIterator, Mapping, Optional, Union
from uuid import uuid4

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.exceptions import WatchError

from feedgraph.infra.docstore.base import (
	Document,
	DocumentExists,
	DocumentNotFound,
	Filter,
	SnapshotCallback,
	StoreConnectionError,
	Subscription,
	check_expect,
	deliver,
	matches,
)
from feedgraph.infra.redis import RedisProxy

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError)


def _dumps(data: Mapping[str, Any]) -> str:
	return json.dumps(dict(data), separators=(",", ":"), sort_keys=True)


def _fingerprint(snapshot: list[Document]) -> tuple[tuple[str, str], ...]:
	return tuple((doc.key, _dumps(doc.data)) for doc in snapshot)


class _RedisWatch(Subscription):
	def __init__(
		self,
		store: "RedisDocumentStore",
		collection: str,
		where: Optional[Filter],
		callback: SnapshotCallback,
	) -> None:
		super().__init__(collection, where, callback)
		self._store = store
		self._pubsub = store.redis.pubsub()
		self._last: Optional[tuple[tuple[str, str], ...]] = None
		self._task: Optional[asyncio.Task] = None

	async def start(self) -> None:
		# Subscribe before the initial read so no change falls between the two
		await self._pubsub.subscribe(self._store.channel(self.collection))
		self._task = asyncio.create_task(self._run(), name=f"docstore-redis-watch:{self.collection}")

	async def _refresh(self) -> None:
		snapshot = await self._store.query(self.collection, self.where)
		fingerprint = _fingerprint(snapshot)
		if fingerprint == self._last:
			return
		self._last = fingerprint
		try:
			await deliver(self.callback, snapshot)
		except Exception:
			logger.exception("docstore_watch_callback_failed", extra={"collection": self.collection})

	async def _resubscribe(self) -> None:
		with contextlib.suppress(*_TRANSPORT_ERRORS):
			await self._pubsub.aclose()
		self._pubsub = self._store.redis.pubsub()
		await self._pubsub.subscribe(self._store.channel(self.collection))

	async def _run(self) -> None:
		attempt = 0
		while self.active:
			try:
				if attempt:
					await self._resubscribe()
				await self._refresh()
				attempt = 0
				async for message in self._pubsub.listen():
					if not self.active:
						return
					if message.get("type") == "message":
						await self._refresh()
				if not self.active:
					return
				raise StoreConnectionError("change feed closed")
			except asyncio.CancelledError:
				raise
			except (StoreConnectionError, *_TRANSPORT_ERRORS) as exc:
				attempt += 1
				delay = self._store.retry_delay(attempt)
				logger.warning(
					"docstore_watch_reconnecting",
					extra={"collection": self.collection, "attempt": attempt, "delay": delay, "error": str(exc)},
				)
				await asyncio.sleep(delay)
			except Exception:
				logger.exception("docstore_watch_stopped", extra={"collection": self.collection})
				return

	async def unsubscribe(self) -> None:
		if not self.active:
			return
		await super().unsubscribe()
		self._store._forget(self)
		if self._task is not None:
			self._task.cancel()
			with contextlib.suppress(asyncio.CancelledError):
				await self._task
		with contextlib.suppress(*_TRANSPORT_ERRORS):
			await self._pubsub.unsubscribe()
			await self._pubsub.aclose()


class RedisDocumentStore:
	"""Document store persisted in Redis."""

	def __init__(
		self,
		client: Union[Redis, RedisProxy],
		*,
		namespace: str = "feedgraph",
		max_retries: int = 5,
		reconnect_base: float = 0.1,
		reconnect_max: float = 5.0,
	) -> None:
		self._redis = client
		self._namespace = namespace
		self._max_retries = max_retries
		self._reconnect_base = reconnect_base
		self._reconnect_max = reconnect_max
		self._watches: list[_RedisWatch] = []

	@property
	def redis(self) -> Union[Redis, RedisProxy]:
		return self._redis

	def doc_key(self, collection: str, key: str) -> str:
		return f"{self._namespace}:doc:{collection}:{key}"

	def index_key(self, collection: str) -> str:
		return f"{self._namespace}:idx:{collection}"

	def channel(self, collection: str) -> str:
		return f"{self._namespace}:changes:{collection}"

	def retry_delay(self, attempt: int) -> float:
		"""Doubling reconnect delay, capped, with up to 30% jitter."""
		delay = min(self._reconnect_base * (2 ** (attempt - 1)), self._reconnect_max)
		return delay * random.uniform(0.7, 1.0)

	@contextlib.asynccontextmanager
	async def _guard(self, operation: str) -> AsyncIterator[None]:
		try:
			yield
		except _TRANSPORT_ERRORS as exc:
			raise StoreConnectionError(f"{operation}: {exc}") from exc

	async def create(self, collection: str, key: Optional[str], data: Mapping[str, Any]) -> str:
		key = key or uuid4().hex
		async with self._guard("create"):
			async with self._redis.pipeline(transaction=True) as pipe:
				pipe.set(self.doc_key(collection, key), _dumps(data), nx=True)
				pipe.sadd(self.index_key(collection), key)
				created, _ = await pipe.execute()
			if not created:
				raise DocumentExists(collection, key)
			await self._redis.publish(self.channel(collection), key)
		return key

	async def get(self, collection: str, key: str) -> Optional[Document]:
		async with self._guard("get"):
			raw = await self._redis.get(self.doc_key(collection, key))
		if raw is None:
			return None
		return Document(key=key, data=json.loads(raw))

	async def update(
		self,
		collection: str,
		key: str,
		fields: Mapping[str, Any],
		*,
		expect: Optional[Mapping[str, Any]] = None,
	) -> Document:
		doc_key = self.doc_key(collection, key)
		async with self._guard("update"):
			for _ in range(self._max_retries):
				async with self._redis.pipeline(transaction=True) as pipe:
					try:
						await pipe.watch(doc_key)
						raw = await pipe.get(doc_key)
						if raw is None:
							raise DocumentNotFound(collection, key)
						current = json.loads(raw)
						check_expect(collection, key, current, expect)
						updated = {**current, **dict(fields)}
						pipe.multi()
						pipe.set(doc_key, _dumps(updated))
						await pipe.execute()
					except WatchError:
						continue
				await self._redis.publish(self.channel(collection), key)
				return Document(key=key, data=updated)
		raise StoreConnectionError(f"update: contention on {collection}/{key}")

	async def delete(self, collection: str, key: str, *, expect: Optional[Mapping[str, Any]] = None) -> bool:
		doc_key = self.doc_key(collection, key)
		async with self._guard("delete"):
			for _ in range(self._max_retries):
				async with self._redis.pipeline(transaction=True) as pipe:
					try:
						await pipe.watch(doc_key)
						raw = await pipe.get(doc_key)
						if raw is None:
							await pipe.unwatch()
							return False
						check_expect(collection, key, json.loads(raw), expect)
						pipe.multi()
						pipe.delete(doc_key)
						pipe.srem(self.index_key(collection), key)
						await pipe.execute()
					except WatchError:
						continue
				await self._redis.publish(self.channel(collection), key)
				return True
		raise StoreConnectionError(f"delete: contention on {collection}/{key}")

	async def query(self, collection: str, where: Optional[Filter] = None) -> list[Document]:
		async with self._guard("query"):
			keys = sorted(await self._redis.smembers(self.index_key(collection)))
			if not keys:
				return []
			raws = await self._redis.mget([self.doc_key(collection, key) for key in keys])
		snapshot: list[Document] = []
		for key, raw in zip(keys, raws):
			if raw is None:
				continue
			data = json.loads(raw)
			if matches(where, data):
				snapshot.append(Document(key=key, data=data))
		return snapshot

	async def watch(self, collection: str, where: Optional[Filter], callback: SnapshotCallback) -> Subscription:
		watch = _RedisWatch(self, collection, where, callback)
		async with self._guard("watch"):
			await watch.start()
		self._watches.append(watch)
		return watch

	async def ping(self) -> bool:
		async with self._guard("ping"):
			return bool(await self._redis.ping())

	async def close(self) -> None:
		for watch in list(self._watches):
			await watch.unsubscribe()

	def _forget(self, watch: _RedisWatch) -> None:
		with contextlib.suppress(ValueError):
			self._watches.remove(watch)
