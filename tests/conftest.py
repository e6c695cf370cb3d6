"""
Test infrastructure for the Conduit API.

Strategy
--------
- SQLite in-memory via aiosqlite so the suite needs no running Postgres.
- StaticPool makes every session share the one in-memory connection; a
  second connection would see an empty database.
- A fresh engine is built per test on the test's own event loop, with the
  query counter and the foreign-key pragma registered exactly as in
  production.
- The app's get_db dependency is overridden to use that engine.
- The Redis cache is disabled by setting cache._redis = None; CacheManager
  treats that as a no-op backend, so tests exercise the real query paths.
  Cache tests opt in to ``fake_redis``, an in-memory stand-in for the few
  redis.asyncio calls CacheManager makes.
"""
import fnmatch

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from conduit.cache import cache
from conduit.database import Base, enable_sqlite_foreign_keys, get_db
from conduit.main import app
from conduit.middleware import install_query_counter

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def session_factory():
    """Create all tables on a fresh engine, override get_db, tear down after."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    install_query_counter(engine)
    enable_sqlite_foreign_keys(engine)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            await cache.run_pending(session)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    app.dependency_overrides[get_db] = override_get_db

    yield factory

    app.dependency_overrides.pop(get_db, None)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncSession:
    """
    Yield a live AsyncSession for tests that call services directly
    (seeding rows, asserting ORM state).
    """
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

class FakeRedis:
    """Dict-backed double for the redis.asyncio methods CacheManager uses."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                self.ttls.pop(key, None)
                removed += 1
        return removed

    async def scan_iter(self, match: str = "*"):
        for key in list(self.store):
            if fnmatch.fnmatchcase(key, match):
                yield key

    async def aclose(self) -> None:
        pass

    def keys_with_prefix(self, prefix: str) -> list[str]:
        return [key for key in self.store if key.startswith(prefix)]


@pytest_asyncio.fixture(autouse=True)
async def disable_cache():
    cache._redis = None
    yield
    cache._redis = None


@pytest_asyncio.fixture
async def fake_redis(disable_cache) -> FakeRedis:
    """Back the shared CacheManager with an in-memory store for one test."""
    fake = FakeRedis()
    cache._redis = fake
    yield fake


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    """Yield an httpx.AsyncClient wired to the FastAPI app via ASGITransport."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# ---------------------------------------------------------------------------
# Helpers shared by the endpoint tests
# ---------------------------------------------------------------------------

async def register(client: AsyncClient, username: str, password: str = "secret123") -> dict:
    """Register *username* (email ``<username>@example.com``) and return the user body."""
    resp = await client.post("/api/users", json={"user": {
        "username": username,
        "email": f"{username}@example.com",
        "password": password,
    }})
    assert resp.status_code == 201, resp.text
    return resp.json()["user"]


def auth(user: dict) -> dict:
    return {"Authorization": f"Token {user['token']}"}


async def create_article(client: AsyncClient, user: dict, title: str = "How to train your dragon",
                         tags: list[str] | None = None, description: str = "Ever wonder how?",
                         body: str = "You have to believe") -> dict:
    payload = {
        "title": title,
        "description": description,
        "body": body,
        "tagList": tags if tags is not None else [],
    }
    resp = await client.post("/api/articles", json={"article": payload}, headers=auth(user))
    assert resp.status_code == 201, resp.text
    return resp.json()["article"]
