import os
import sys
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

os.environ.setdefault("ENV", "test")

from feedgraph.domain.social.container import SocialContainer
from feedgraph.domain.social.models import USERS
from feedgraph.infra.docstore import InMemoryDocumentStore
from feedgraph.main import app
from feedgraph.settings import settings


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from feedgraph.infra.redis import redis_client, set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Ensure a consistent test environment.

	API and socket tests identify callers with the X-User-Id header, which is only
	accepted in dev mode.
	"""
	original_env = settings.environment
	original_enforce = settings.enforce_blocks_on_requests
	settings.environment = "test"
	settings.enforce_blocks_on_requests = True
	try:
		yield
	finally:
		settings.environment = original_env
		settings.enforce_blocks_on_requests = original_enforce


@pytest_asyncio.fixture
async def memory_store():
	store = InMemoryDocumentStore()
	try:
		yield store
	finally:
		await store.close()


@pytest_asyncio.fixture
async def social(memory_store):
	container = SocialContainer(memory_store)
	try:
		yield container
	finally:
		await container.close()


@pytest.fixture
def seed_users(memory_store):
	async def _seed(*user_ids: str, private: tuple[str, ...] = ()) -> None:
		for user_id in user_ids:
			await memory_store.create(USERS, user_id, {"handle": user_id, "is_private": user_id in private})

	return _seed


@pytest_asyncio.fixture
async def api_client(social):
	original = app.state.social
	app.state.social = social
	transport = ASGITransport(app=app)
	try:
		async with AsyncClient(transport=transport, base_url="http://testserver") as client:
			yield client
	finally:
		app.state.social = original
