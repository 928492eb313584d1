"""In-process document store with asynchronously delivered live queries."""

from __future__ import annotations

import asyncio
import contextlib
import copy
import logging
from typing import Any, Mapping, Optional
from uuid import uuid4

from feedgraph.infra.docstore.base import (
	Document,
	DocumentExists,
	DocumentNotFound,
	Filter,
	SnapshotCallback,
	Subscription,
	check_expect,
	deliver,
	matches,
)

logger = logging.getLogger(__name__)


class _MemoryWatch(Subscription):
	"""Live query whose snapshots are delivered by its own task.

	Each watch drains its queue independently, so two watches over related
	data can observe a mutation in different event-loop turns.
	"""

	def __init__(
		self,
		store: "InMemoryDocumentStore",
		collection: str,
		where: Optional[Filter],
		callback: SnapshotCallback,
	) -> None:
		super().__init__(collection, where, callback)
		self._store = store
		self._queue: asyncio.Queue[list[Document]] = asyncio.Queue()
		self._pending = 0
		self._task = asyncio.create_task(self._run(), name=f"docstore-watch:{collection}")

	@property
	def idle(self) -> bool:
		return self._pending == 0

	def offer(self, snapshot: list[Document]) -> None:
		if not self.active:
			return
		self._pending += 1
		self._queue.put_nowait(snapshot)

	async def join(self) -> None:
		await self._queue.join()

	async def _run(self) -> None:
		while True:
			snapshot = await self._queue.get()
			try:
				if self.active:
					await deliver(self.callback, snapshot)
			except Exception:
				logger.exception("docstore_watch_callback_failed", extra={"collection": self.collection})
			finally:
				self._pending -= 1
				self._queue.task_done()

	async def unsubscribe(self) -> None:
		if not self.active:
			return
		await super().unsubscribe()
		self._store._forget(self)
		self._task.cancel()
		with contextlib.suppress(asyncio.CancelledError):
			await self._task


class InMemoryDocumentStore:
	"""Dictionary-backed store; every operation completes without yielding."""

	def __init__(self) -> None:
		self._collections: dict[str, dict[str, dict[str, Any]]] = {}
		self._watches: list[_MemoryWatch] = []

	async def create(self, collection: str, key: Optional[str], data: Mapping[str, Any]) -> str:
		key = key or uuid4().hex
		docs = self._collections.setdefault(collection, {})
		if key in docs:
			raise DocumentExists(collection, key)
		docs[key] = copy.deepcopy(dict(data))
		self._notify(collection, None, docs[key])
		return key

	async def get(self, collection: str, key: str) -> Optional[Document]:
		data = self._collections.get(collection, {}).get(key)
		if data is None:
			return None
		return Document(key=key, data=copy.deepcopy(data))

	async def update(
		self,
		collection: str,
		key: str,
		fields: Mapping[str, Any],
		*,
		expect: Optional[Mapping[str, Any]] = None,
	) -> Document:
		docs = self._collections.get(collection, {})
		current = docs.get(key)
		if current is None:
			raise DocumentNotFound(collection, key)
		check_expect(collection, key, current, expect)
		updated = {**current, **copy.deepcopy(dict(fields))}
		docs[key] = updated
		self._notify(collection, current, updated)
		return Document(key=key, data=copy.deepcopy(updated))

	async def delete(self, collection: str, key: str, *, expect: Optional[Mapping[str, Any]] = None) -> bool:
		docs = self._collections.get(collection, {})
		current = docs.get(key)
		if current is None:
			return False
		check_expect(collection, key, current, expect)
		del docs[key]
		self._notify(collection, current, None)
		return True

	async def query(self, collection: str, where: Optional[Filter] = None) -> list[Document]:
		return self._snapshot(collection, where)

	async def watch(self, collection: str, where: Optional[Filter], callback: SnapshotCallback) -> Subscription:
		watch = _MemoryWatch(self, collection, where, callback)
		self._watches.append(watch)
		watch.offer(self._snapshot(collection, where))
		return watch

	async def settle(self) -> None:
		"""Wait until every queued snapshot has been handed to its callback."""
		while any(not watch.idle for watch in self._watches):
			await asyncio.gather(*(watch.join() for watch in list(self._watches)))

	async def ping(self) -> bool:
		return True

	async def close(self) -> None:
		for watch in list(self._watches):
			await watch.unsubscribe()

	def _snapshot(self, collection: str, where: Optional[Filter]) -> list[Document]:
		docs = self._collections.get(collection, {})
		return [
			Document(key=key, data=copy.deepcopy(data))
			for key, data in sorted(docs.items())
			if matches(where, data)
		]

	def _notify(
		self,
		collection: str,
		before: Optional[Mapping[str, Any]],
		after: Optional[Mapping[str, Any]],
	) -> None:
		for watch in list(self._watches):
			if watch.collection != collection:
				continue
			if matches(watch.where, before) or matches(watch.where, after):
				watch.offer(self._snapshot(collection, watch.where))

	def _forget(self, watch: _MemoryWatch) -> None:
		with contextlib.suppress(ValueError):
			self._watches.remove(watch)
