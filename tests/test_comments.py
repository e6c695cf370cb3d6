"""
Comment endpoint tests: adding, listing and deleting comments on an
article, including the author-only delete rule.
"""
import uuid

import pytest
from httpx import AsyncClient

from conftest import auth, create_article, register


async def _comment(client: AsyncClient, user: dict, slug: str, body: str) -> dict:
    resp = await client.post(f"/api/articles/{slug}/comments", headers=auth(user),
                             json={"comment": {"body": body}})
    assert resp.status_code == 201, resp.text
    return resp.json()["comment"]


# ---------------------------------------------------------------------------
# Create + list
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_add_comment(async_client: AsyncClient):
    author = await register(async_client, "poster")
    commenter = await register(async_client, "commenter")
    article = await create_article(async_client, author, "Discuss")

    comment = await _comment(async_client, commenter, article["slug"], "Thank you so much!")
    assert comment["body"] == "Thank you so much!"
    assert comment["author"]["username"] == "commenter"
    assert comment["author"]["following"] is False
    assert uuid.UUID(comment["id"])
    assert comment["createdAt"]
    assert comment["updatedAt"]


@pytest.mark.asyncio
async def test_list_comments_oldest_first(async_client: AsyncClient):
    user = await register(async_client, "chatty")
    article = await create_article(async_client, user, "Thread")
    for body in ("first", "second", "third"):
        await _comment(async_client, user, article["slug"], body)

    resp = await async_client.get(f"/api/articles/{article['slug']}/comments")
    assert resp.status_code == 200
    assert [c["body"] for c in resp.json()["comments"]] == ["first", "second", "third"]


@pytest.mark.asyncio
async def test_list_comments_empty(async_client: AsyncClient):
    user = await register(async_client, "quiet")
    article = await create_article(async_client, user, "Silence")
    resp = await async_client.get(f"/api/articles/{article['slug']}/comments")
    assert resp.json() == {"comments": []}


@pytest.mark.asyncio
async def test_list_comments_following_flag(async_client: AsyncClient):
    author = await register(async_client, "host")
    guest = await register(async_client, "guest")
    viewer = await register(async_client, "watcher")
    article = await create_article(async_client, author, "Party")
    await _comment(async_client, guest, article["slug"], "hello")
    await async_client.post("/api/profiles/guest/follow", headers=auth(viewer))

    resp = await async_client.get(f"/api/articles/{article['slug']}/comments", headers=auth(viewer))
    assert resp.json()["comments"][0]["author"]["following"] is True
    resp = await async_client.get(f"/api/articles/{article['slug']}/comments")
    assert resp.json()["comments"][0]["author"]["following"] is False


@pytest.mark.asyncio
async def test_comments_are_scoped_to_article(async_client: AsyncClient):
    user = await register(async_client, "scoper")
    one = await create_article(async_client, user, "One")
    two = await create_article(async_client, user, "Two")
    await _comment(async_client, user, one["slug"], "on one")

    resp = await async_client.get(f"/api/articles/{two['slug']}/comments")
    assert resp.json()["comments"] == []


@pytest.mark.asyncio
async def test_add_comment_requires_auth(async_client: AsyncClient):
    user = await register(async_client, "closed")
    article = await create_article(async_client, user, "Members only")
    resp = await async_client.post(f"/api/articles/{article['slug']}/comments",
                                   json={"comment": {"body": "anon"}})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_add_comment_unknown_article_returns_404(async_client: AsyncClient):
    user = await register(async_client, "lost")
    resp = await async_client.post("/api/articles/missing/comments", headers=auth(user),
                                   json={"comment": {"body": "hello?"}})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_add_empty_comment_returns_422(async_client: AsyncClient):
    user = await register(async_client, "blank")
    article = await create_article(async_client, user, "Empty talk")
    resp = await async_client.post(f"/api/articles/{article['slug']}/comments", headers=auth(user),
                                   json={"comment": {"body": ""}})
    assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_delete_comment(async_client: AsyncClient):
    user = await register(async_client, "eraser")
    article = await create_article(async_client, user, "Erasable")
    comment = await _comment(async_client, user, article["slug"], "oops")

    resp = await async_client.delete(f"/api/articles/{article['slug']}/comments/{comment['id']}",
                                     headers=auth(user))
    assert resp.status_code == 204

    resp = await async_client.get(f"/api/articles/{article['slug']}/comments")
    assert resp.json()["comments"] == []


@pytest.mark.asyncio
async def test_delete_comment_by_other_user_returns_403(async_client: AsyncClient):
    author = await register(async_client, "speaker")
    other = await register(async_client, "censor")
    article = await create_article(async_client, author, "Free speech")
    comment = await _comment(async_client, author, article["slug"], "keep me")

    resp = await async_client.delete(f"/api/articles/{article['slug']}/comments/{comment['id']}",
                                     headers=auth(other))
    assert resp.status_code == 403

    resp = await async_client.get(f"/api/articles/{article['slug']}/comments")
    assert len(resp.json()["comments"]) == 1


@pytest.mark.asyncio
async def test_delete_comment_wrong_article_returns_404(async_client: AsyncClient):
    """A comment id only resolves under the article it belongs to."""
    user = await register(async_client, "mixer")
    one = await create_article(async_client, user, "Home")
    two = await create_article(async_client, user, "Away")
    comment = await _comment(async_client, user, one["slug"], "stay home")

    resp = await async_client.delete(f"/api/articles/{two['slug']}/comments/{comment['id']}",
                                     headers=auth(user))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_delete_comment_unknown_id_returns_404(async_client: AsyncClient):
    user = await register(async_client, "nocomment")
    article = await create_article(async_client, user, "No comments here")
    resp = await async_client.delete(f"/api/articles/{article['slug']}/comments/{uuid.uuid4()}",
                                     headers=auth(user))
    assert resp.status_code == 404
    assert resp.json() == {"errors": {"body": ["Comment not found"]}}


@pytest.mark.asyncio
async def test_delete_comment_malformed_id_returns_422(async_client: AsyncClient):
    user = await register(async_client, "typo")
    article = await create_article(async_client, user, "Typos")
    resp = await async_client.delete(f"/api/articles/{article['slug']}/comments/not-a-uuid",
                                     headers=auth(user))
    assert resp.status_code == 422
