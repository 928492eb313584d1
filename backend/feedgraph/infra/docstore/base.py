"""Storage contracts shared by the document store backends.

A store holds JSON-like documents grouped in collections. Every operation is a
single round trip and atomic per document; there is no cross-document
transaction. Live queries deliver an initial snapshot and then a fresh snapshot
whenever a change touches a document matching the query.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional, Protocol, Sequence, Union


class StoreError(Exception):
	"""Base class for document store failures."""


class DocumentExists(StoreError):
	def __init__(self, collection: str, key: str) -> None:
		super().__init__(f"{collection}/{key} already exists")
		self.collection = collection
		self.key = key


class DocumentNotFound(StoreError):
	def __init__(self, collection: str, key: str) -> None:
		super().__init__(f"{collection}/{key} not found")
		self.collection = collection
		self.key = key


class PreconditionFailed(StoreError):
	def __init__(self, collection: str, key: str, field: str) -> None:
		super().__init__(f"{collection}/{key} precondition on {field!r} failed")
		self.collection = collection
		self.key = key
		self.field = field


class StoreConnectionError(StoreError):
	"""Transport-level failure; the operation may be retried."""


@dataclass(frozen=True, slots=True)
class Document:
	key: str
	data: Mapping[str, Any]

	def get(self, field: str, default: Any = None) -> Any:
		return self.data.get(field, default)


@dataclass(frozen=True, slots=True)
class Where:
	"""Equality clause: ``data[field] == value``."""

	field: str
	value: Any

	def matches(self, data: Mapping[str, Any]) -> bool:
		return self.field in data and data[self.field] == self.value


class And:
	__slots__ = ("clauses",)

	def __init__(self, *clauses: "Filter") -> None:
		self.clauses = tuple(clauses)

	def matches(self, data: Mapping[str, Any]) -> bool:
		return all(clause.matches(data) for clause in self.clauses)

	def __eq__(self, other: object) -> bool:
		return isinstance(other, And) and other.clauses == self.clauses

	def __hash__(self) -> int:
		return hash(("and", self.clauses))

	def __repr__(self) -> str:
		return f"And{self.clauses!r}"


class Or:
	__slots__ = ("clauses",)

	def __init__(self, *clauses: "Filter") -> None:
		self.clauses = tuple(clauses)

	def matches(self, data: Mapping[str, Any]) -> bool:
		return any(clause.matches(data) for clause in self.clauses)

	def __eq__(self, other: object) -> bool:
		return isinstance(other, Or) and other.clauses == self.clauses

	def __hash__(self) -> int:
		return hash(("or", self.clauses))

	def __repr__(self) -> str:
		return f"Or{self.clauses!r}"


Filter = Union[Where, And, Or]
SnapshotCallback = Callable[[list[Document]], Union[None, Awaitable[None]]]


def matches(where: Optional[Filter], data: Optional[Mapping[str, Any]]) -> bool:
	if data is None:
		return False
	return where is None or where.matches(data)


def check_expect(collection: str, key: str, data: Mapping[str, Any], expect: Optional[Mapping[str, Any]]) -> None:
	if not expect:
		return
	for field, value in expect.items():
		if data.get(field) != value:
			raise PreconditionFailed(collection, key, field)


async def deliver(callback: SnapshotCallback, snapshot: list[Document]) -> None:
	result = callback(snapshot)
	if inspect.isawaitable(result):
		await result


class Subscription:
	"""Handle for a registered live query."""

	def __init__(self, collection: str, where: Optional[Filter], callback: SnapshotCallback) -> None:
		self.collection = collection
		self.where = where
		self.callback = callback
		self.active = True

	async def unsubscribe(self) -> None:
		self.active = False


class DocumentStore(Protocol):
	"""Abstract document store consumed by the relationship engine."""

	async def create(self, collection: str, key: Optional[str], data: Mapping[str, Any]) -> str:
		"""Create a document; raises DocumentExists when the key is taken."""

	async def get(self, collection: str, key: str) -> Optional[Document]:
		"""Fetch a document by key."""

	async def update(
		self,
		collection: str,
		key: str,
		fields: Mapping[str, Any],
		*,
		expect: Optional[Mapping[str, Any]] = None,
	) -> Document:
		"""Merge fields into a document, optionally guarded by field preconditions."""

	async def delete(self, collection: str, key: str, *, expect: Optional[Mapping[str, Any]] = None) -> bool:
		"""Delete a document, returning False when it did not exist."""

	async def query(self, collection: str, where: Optional[Filter] = None) -> list[Document]:
		"""Return every matching document ordered by key."""

	async def watch(self, collection: str, where: Optional[Filter], callback: SnapshotCallback) -> Subscription:
		"""Register a live query."""

	async def ping(self) -> bool:
		"""True when the backend answers."""

	async def close(self) -> None:
		"""Stop every live query owned by the store."""


__all__: Sequence[str] = (
	"And",
	"Document",
	"DocumentExists",
	"DocumentNotFound",
	"DocumentStore",
	"Filter",
	"Or",
	"PreconditionFailed",
	"SnapshotCallback",
	"StoreConnectionError",
	"StoreError",
	"Subscription",
	"Where",
	"check_expect",
	"deliver",
	"matches",
)
