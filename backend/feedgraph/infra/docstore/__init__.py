"""Document store contracts and backends."""

from feedgraph.infra.docstore.base import (  # noqa: F401
	And,
	Document,
	DocumentExists,
	DocumentNotFound,
	DocumentStore,
	Filter,
	Or,
	PreconditionFailed,
	StoreConnectionError,
	StoreError,
	Subscription,
	Where,
)
from feedgraph.infra.docstore.memory import InMemoryDocumentStore  # noqa: F401
from feedgraph.infra.docstore.redis_store import RedisDocumentStore  # noqa: F401
