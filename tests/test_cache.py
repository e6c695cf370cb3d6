"""
Cache tests: anonymous listings and the tag list are stored in Redis and
dropped by the writes that change them.

The ``fake_redis`` fixture backs the shared CacheManager with an
in-memory store, so these tests see exactly which keys exist between
requests.
"""
import json

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.cache import ARTICLE_LIST_PREFIX, PENDING_INVALIDATIONS, TAGS_KEY, article_list_key, cache
from conduit.models import User
from conduit.schemas import ArticleCreate
from conduit.services import article_service
from conftest import auth, create_article, register


async def _warm_listing(client: AsyncClient, fake_redis) -> str:
    """Request the default anonymous listing and return the key it was stored under."""
    resp = await client.get("/api/articles")
    assert resp.status_code == 200
    keys = fake_redis.keys_with_prefix(ARTICLE_LIST_PREFIX)
    assert len(keys) == 1
    return keys[0]


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------

def test_article_list_key_separates_values_containing_colons():
    assert article_list_key("x:y", "z", None, 20, 0) != article_list_key("x", "y:z", None, 20, 0)
    assert article_list_key(None, "a:b", "c", 20, 0) != article_list_key(None, "a", "b:c", 20, 0)


def test_article_list_key_treats_empty_filter_as_absent():
    assert article_list_key("", None, "", 20, 0) == article_list_key(None, None, None, 20, 0)
    assert article_list_key(None, None, None, 20, 0) != article_list_key(None, None, None, 20, 20)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_anonymous_listing_served_from_cache(async_client: AsyncClient, fake_redis):
    user = await register(async_client, "cached")
    await create_article(async_client, user, "Cached article")

    first = await async_client.get("/api/articles", params={"limit": 5})
    key = article_list_key(None, None, None, 5, 0)
    assert key in fake_redis.store
    assert json.loads(fake_redis.store[key])["articlesCount"] == 1

    second = await async_client.get("/api/articles", params={"limit": 5})
    assert second.json() == first.json()
    assert second.headers["x-query-count"] == "0"


@pytest.mark.asyncio
async def test_authenticated_listing_bypasses_cache(async_client: AsyncClient, fake_redis):
    user = await register(async_client, "viewer")
    await create_article(async_client, user, "Personal view")
    # A stale payload under the anonymous key must not leak to a signed-in viewer.
    fake_redis.store[article_list_key(None, None, None, 20, 0)] = json.dumps(
        {"articles": [], "articlesCount": 99}
    )

    resp = await async_client.get("/api/articles", headers=auth(user))
    assert resp.json()["articlesCount"] == 1
    assert list(fake_redis.store) == [article_list_key(None, None, None, 20, 0)]


@pytest.mark.asyncio
async def test_tags_cached_until_tag_set_changes(async_client: AsyncClient, fake_redis):
    user = await register(async_client, "tagger")
    article = await create_article(async_client, user, "Tagged", tags=["first"])

    resp = await async_client.get("/api/tags")
    assert resp.json() == {"tags": ["first"]}
    assert TAGS_KEY in fake_redis.store

    # A body edit leaves the tag list alone.
    await async_client.put(f"/api/articles/{article['slug']}", headers=auth(user),
                           json={"article": {"body": "new body"}})
    assert TAGS_KEY in fake_redis.store

    await async_client.put(f"/api/articles/{article['slug']}", headers=auth(user),
                           json={"article": {"tagList": ["second"]}})
    assert TAGS_KEY not in fake_redis.store
    resp = await async_client.get("/api/tags")
    assert "second" in resp.json()["tags"]


@pytest.mark.asyncio
async def test_creating_tagged_article_clears_tags(async_client: AsyncClient, fake_redis):
    user = await register(async_client, "newtags")
    await async_client.get("/api/tags")
    assert TAGS_KEY in fake_redis.store

    await create_article(async_client, user, "Untagged")
    assert TAGS_KEY in fake_redis.store

    await create_article(async_client, user, "Fresh tag", tags=["fresh"])
    assert TAGS_KEY not in fake_redis.store


# ---------------------------------------------------------------------------
# Invalidation on writes
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_article_clears_listings(async_client: AsyncClient, fake_redis):
    user = await register(async_client, "poster")
    await _warm_listing(async_client, fake_redis)

    await create_article(async_client, user, "Brand new")
    assert fake_redis.keys_with_prefix(ARTICLE_LIST_PREFIX) == []

    resp = await async_client.get("/api/articles")
    assert [a["title"] for a in resp.json()["articles"]] == ["Brand new"]


@pytest.mark.asyncio
async def test_update_and_delete_clear_listings(async_client: AsyncClient, fake_redis):
    user = await register(async_client, "reworker")
    article = await create_article(async_client, user, "Draft")

    await _warm_listing(async_client, fake_redis)
    await async_client.put(f"/api/articles/{article['slug']}", headers=auth(user),
                           json={"article": {"title": "Final"}})
    assert fake_redis.keys_with_prefix(ARTICLE_LIST_PREFIX) == []

    await _warm_listing(async_client, fake_redis)
    resp = await async_client.delete("/api/articles/final", headers=auth(user))
    assert resp.status_code == 204
    assert fake_redis.keys_with_prefix(ARTICLE_LIST_PREFIX) == []


@pytest.mark.asyncio
async def test_favorite_and_unfavorite_clear_listings(async_client: AsyncClient, fake_redis):
    author = await register(async_client, "liked")
    fan = await register(async_client, "liker")
    article = await create_article(async_client, author, "Popular")

    await _warm_listing(async_client, fake_redis)
    await async_client.post(f"/api/articles/{article['slug']}/favorite", headers=auth(fan))
    assert fake_redis.keys_with_prefix(ARTICLE_LIST_PREFIX) == []

    resp = await async_client.get("/api/articles")
    assert resp.json()["articles"][0]["favoritesCount"] == 1

    await async_client.delete(f"/api/articles/{article['slug']}/favorite", headers=auth(fan))
    assert fake_redis.keys_with_prefix(ARTICLE_LIST_PREFIX) == []
    resp = await async_client.get("/api/articles")
    assert resp.json()["articles"][0]["favoritesCount"] == 0


@pytest.mark.asyncio
async def test_profile_update_clears_listings(async_client: AsyncClient, fake_redis):
    """Listings embed the author's profile, so renames and bio edits drop them."""
    user = await register(async_client, "oldname")
    await create_article(async_client, user, "Signed")

    await _warm_listing(async_client, fake_redis)
    await async_client.put("/api/user", headers=auth(user), json={"user": {"bio": "hello"}})
    assert fake_redis.keys_with_prefix(ARTICLE_LIST_PREFIX) == []

    await _warm_listing(async_client, fake_redis)
    await async_client.put("/api/user", headers=auth(user), json={"user": {"username": "newname"}})
    assert fake_redis.keys_with_prefix(ARTICLE_LIST_PREFIX) == []

    resp = await async_client.get("/api/articles")
    author = resp.json()["articles"][0]["author"]
    assert author["username"] == "newname"
    assert author["bio"] == "hello"


@pytest.mark.asyncio
async def test_rejected_write_keeps_cache(async_client: AsyncClient, fake_redis):
    owner = await register(async_client, "keeper")
    intruder = await register(async_client, "intruder")
    article = await create_article(async_client, owner, "Guarded")

    key = await _warm_listing(async_client, fake_redis)
    resp = await async_client.put(f"/api/articles/{article['slug']}", headers=auth(intruder),
                                  json={"article": {"body": "defaced"}})
    assert resp.status_code == 403
    assert key in fake_redis.store


# ---------------------------------------------------------------------------
# Commit ordering
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_invalidation_waits_for_commit(db_session: AsyncSession, fake_redis):
    user = User(username="committer", email="committer@example.com", password="unused")
    db_session.add(user)
    await db_session.flush()

    key = article_list_key(None, None, None, 20, 0)
    await cache.set(key, {"articles": [], "articlesCount": 0})
    await cache.set(TAGS_KEY, [])

    await article_service.create_article(
        db_session, user, ArticleCreate(title="Queued", description="d", body="b", tag_list=["t"])
    )
    assert key in fake_redis.store
    assert db_session.info[PENDING_INVALIDATIONS] == {"articles", "tags"}

    await db_session.commit()
    await cache.run_pending(db_session)
    assert key not in fake_redis.store
    assert TAGS_KEY not in fake_redis.store
    assert PENDING_INVALIDATIONS not in db_session.info


@pytest.mark.asyncio
async def test_run_pending_without_writes_is_noop(db_session: AsyncSession, fake_redis):
    key = article_list_key(None, None, None, 20, 0)
    await cache.set(key, {"articles": [], "articlesCount": 0})
    await cache.run_pending(db_session)
    assert key in fake_redis.store
