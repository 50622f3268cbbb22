import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

from engine_fakes import FakePool
from gigmatch.infra import postgres
from gigmatch.infra.redis import redis_client, set_redis_client
from gigmatch.main import app
from gigmatch.settings import settings


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	"""Every test gets an empty in-memory redis behind the shared proxy."""
	original = redis_client._client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def no_database_lifecycle(monkeypatch):
	# App startup must not try to reach a real Postgres
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture
def fake_pool():
	pool = FakePool()
	postgres.set_pool(pool)
	try:
		yield pool
	finally:
		postgres.set_pool(None)


@pytest.fixture(autouse=True)
def dev_environment(monkeypatch):
	"""Header authentication (X-User-Id / X-User-Role) is only honoured in dev."""
	monkeypatch.setattr(settings, "environment", "dev")


@pytest_asyncio.fixture
async def api_client():
	async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
		yield client
