"""
Article service: business logic for the Article aggregate.

Design notes
------------
- Every read goes through ``_article_rows``: one SELECT that returns the
  Article together with three computed columns (``favorites_count``,
  ``favorited`` and ``following``) evaluated for the requesting user,
  with the author joined and tags loaded by a single ``selectinload``.
- Listing filters (tag, author, favorited-by, feed) are expressed as
  ``EXISTS`` / ``IN`` sub-queries so the same WHERE clause drives both
  the page query and the ``articlesCount`` COUNT.
- Anonymous listings are cached in Redis; writes that change what a
  listing shows queue ``cache.invalidate_articles_on_commit``, and the keys
  are dropped once ``get_db`` has committed.
- Service functions flush but do not commit; the transaction boundary
  is owned by the ``get_db`` dependency in the router layer.
"""
import logging
import re
import uuid
from datetime import datetime, timezone

from sqlalchemy import delete, false, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from conduit.cache import article_list_key, cache
from conduit.config import settings
from conduit.exceptions import PermissionDeniedError
from conduit.models import Article, Tag, User, article_tags, favorited_articles, followers
from conduit.schemas import ArticleCreate, ArticleUpdate
from conduit.services.profile_service import is_followed_by, profile_to_dict

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_SPACE_RE = re.compile(r"[\s_]+")
_SLUG_DASH_RE = re.compile(r"-+")


def slugify(text: str) -> str:
    """Return a URL-safe, lowercase slug derived from *text*."""
    text = _SLUG_STRIP_RE.sub("", text.lower().strip())
    text = _SLUG_SPACE_RE.sub("-", text)
    return _SLUG_DASH_RE.sub("-", text).strip("-") or "article"


def _clean_tag_names(names: list[str]) -> list[str]:
    """Strip whitespace, drop empties and duplicates, keep first-seen order."""
    seen: dict[str, None] = {}
    for name in names:
        name = name.strip()
        if name:
            seen.setdefault(name, None)
    return list(seen)


async def _unique_slug(db: AsyncSession, title: str, current: Article | None = None) -> str:
    """
    Slug for *title*; a short random suffix is appended when another
    article already owns the plain slug.
    """
    slug = slugify(title)
    result = await db.execute(select(Article.id).where(Article.slug == slug))
    owner = result.scalar_one_or_none()
    if owner is None or (current is not None and owner == current.id):
        return slug
    return f"{slug}-{uuid.uuid4().hex[:8]}"


# ---------------------------------------------------------------------------
# Query building
# ---------------------------------------------------------------------------

def _favorites_count():
    return (
        select(func.count())
        .select_from(favorited_articles)
        .where(favorited_articles.c.article_id == Article.id)
        .correlate(Article)
        .scalar_subquery()
    )


def _favorited_by_viewer(viewer_id: uuid.UUID | None):
    if viewer_id is None:
        return false()
    return (
        select(favorited_articles.c.article_id)
        .where(
            favorited_articles.c.article_id == Article.id,
            favorited_articles.c.user_id == viewer_id,
        )
        .exists()
    )


def _article_filters(
    tag: str | None = None,
    author: str | None = None,
    favorited: str | None = None,
    feed_of: uuid.UUID | None = None,
) -> list:
    """WHERE clauses for a listing; empty filter values are ignored."""
    clauses = []
    if tag:
        clauses.append(Article.tags.any(Tag.name == tag))
    if author:
        clauses.append(Article.author.has(User.username == author))
    if favorited:
        clauses.append(
            Article.id.in_(
                select(favorited_articles.c.article_id)
                .join(User, User.id == favorited_articles.c.user_id)
                .where(User.username == favorited)
            )
        )
    if feed_of is not None:
        clauses.append(
            Article.author_id.in_(
                select(followers.c.user_id).where(followers.c.follower_id == feed_of)
            )
        )
    return clauses


def _article_rows(viewer_id: uuid.UUID | None):
    return select(
        Article,
        _favorites_count().label("favorites_count"),
        _favorited_by_viewer(viewer_id).label("favorited"),
        is_followed_by(Article.author_id, viewer_id).label("following"),
    ).options(joinedload(Article.author), selectinload(Article.tags))


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _article_to_dict(article: Article, favorites_count: int, favorited: bool, following: bool) -> dict:
    return {
        "slug": article.slug,
        "title": article.title,
        "description": article.description,
        "body": article.body,
        "tagList": sorted(t.name for t in article.tags),
        "createdAt": article.created_at.isoformat(),
        "updatedAt": article.updated_at.isoformat(),
        "favorited": bool(favorited),
        "favoritesCount": int(favorites_count or 0),
        "author": profile_to_dict(article.author, following),
    }


def _row_to_dict(row) -> dict:
    return _article_to_dict(row.Article, row.favorites_count, row.favorited, row.following)


# ---------------------------------------------------------------------------
# Tag resolution helper (used by create / update)
# ---------------------------------------------------------------------------

async def _resolve_tags(db: AsyncSession, tag_names: list[str]) -> list[Tag]:
    """
    Return Tag ORM instances for each name in *tag_names*, creating any
    that do not yet exist.  All inserts are flushed within the caller's
    transaction.
    """
    names = _clean_tag_names(tag_names)
    if not names:
        return []

    result = await db.execute(select(Tag).where(Tag.name.in_(names)))
    existing = {tag.name: tag for tag in result.scalars().all()}

    tags: list[Tag] = []
    for name in names:
        tag = existing.get(name)
        if tag is None:
            tag = Tag(name=name)
            db.add(tag)
        tags.append(tag)
    await db.flush()
    return tags


async def _set_article_tags(db: AsyncSession, article: Article, tag_names: list[str]) -> None:
    """Replace the tag links of a persisted *article*."""
    tags = await _resolve_tags(db, tag_names)
    await db.execute(delete(article_tags).where(article_tags.c.article_id == article.id))
    if tags:
        await db.execute(
            insert(article_tags),
            [{"article_id": article.id, "tag_id": tag.id} for tag in tags],
        )


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def get_article_model(db: AsyncSession, slug: str) -> Article | None:
    result = await db.execute(select(Article).where(Article.slug == slug))
    return result.scalar_one_or_none()


async def _fetch_article(db: AsyncSession, article_id: uuid.UUID, viewer_id: uuid.UUID | None) -> dict | None:
    q = (
        _article_rows(viewer_id)
        .where(Article.id == article_id)
        .execution_options(populate_existing=True)
    )
    row = (await db.execute(q)).unique().one_or_none()
    return _row_to_dict(row) if row is not None else None


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def count_articles(db: AsyncSession, **filters) -> int:
    q = select(func.count()).select_from(Article).where(*_article_filters(**filters))
    return (await db.execute(q)).scalar_one()


async def list_articles(
    db: AsyncSession,
    viewer_id: uuid.UUID | None = None,
    tag: str | None = None,
    author: str | None = None,
    favorited: str | None = None,
    limit: int = settings.DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> dict:
    """
    Return ``{"articles": [...], "articlesCount": n}``, most recently updated first.

    ``articlesCount`` is the number of matches before limit/offset.
    Listings requested without a viewer are served from the cache when
    possible.
    """
    cache_key = None
    if viewer_id is None:
        cache_key = article_list_key(tag, author, favorited, limit, offset)
        cached = await cache.get(cache_key)
        if cached:
            return cached

    filters = _article_filters(tag=tag, author=author, favorited=favorited)
    total = await count_articles(db, tag=tag, author=author, favorited=favorited)

    q = (
        _article_rows(viewer_id)
        .where(*filters)
        .order_by(Article.updated_at.desc())
        .offset(offset)
        .limit(limit)
    )
    rows = (await db.execute(q)).unique().all()

    response = {"articles": [_row_to_dict(r) for r in rows], "articlesCount": total}
    if cache_key is not None:
        await cache.set(cache_key, response, ttl=settings.CACHE_TTL_LIST)
    return response


async def feed_articles(
    db: AsyncSession,
    viewer_id: uuid.UUID,
    limit: int = settings.DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> dict:
    """Articles written by the users *viewer_id* follows, most recently updated first."""
    total = await count_articles(db, feed_of=viewer_id)
    q = (
        _article_rows(viewer_id)
        .where(*_article_filters(feed_of=viewer_id))
        .order_by(Article.updated_at.desc())
        .offset(offset)
        .limit(limit)
    )
    rows = (await db.execute(q)).unique().all()
    return {"articles": [_row_to_dict(r) for r in rows], "articlesCount": total}


async def get_article(db: AsyncSession, slug: str, viewer_id: uuid.UUID | None = None) -> dict | None:
    q = _article_rows(viewer_id).where(Article.slug == slug)
    row = (await db.execute(q)).unique().one_or_none()
    return _row_to_dict(row) if row is not None else None


async def create_article(db: AsyncSession, author: User, data: ArticleCreate) -> dict:
    now = datetime.now(timezone.utc)
    article = Article(
        slug=await _unique_slug(db, data.title),
        title=data.title,
        description=data.description,
        body=data.body,
        author_id=author.id,
        created_at=now,
        updated_at=now,
    )
    article.tags = await _resolve_tags(db, data.tag_list)

    db.add(article)
    await db.flush()
    logger.info("Article %s created by %s", article.slug, author.username)

    cache.invalidate_articles_on_commit(db, tags_changed=bool(article.tags))
    return await _fetch_article(db, article.id, author.id)


async def update_article(db: AsyncSession, slug: str, editor: User, data: ArticleUpdate) -> dict | None:
    """
    Partially update the article at *slug*.

    Returns None when it does not exist; raises ``PermissionDeniedError``
    unless *editor* is the author.  A new title regenerates the slug and
    a ``tagList`` replaces the whole tag set.
    """
    article = await get_article_model(db, slug)
    if article is None:
        return None
    if article.author_id != editor.id:
        raise PermissionDeniedError(context={"slug": slug, "user": editor.username})

    update_data = data.model_dump(exclude_unset=True, exclude_none=True)
    tags_data: list[str] | None = update_data.pop("tag_list", None)

    if "title" in update_data and update_data["title"] != article.title:
        article.slug = await _unique_slug(db, update_data["title"], current=article)

    for field, value in update_data.items():
        setattr(article, field, value)

    if update_data or tags_data is not None:
        article.updated_at = datetime.now(timezone.utc)

    if tags_data is not None:
        await _set_article_tags(db, article, tags_data)

    await db.flush()
    cache.invalidate_articles_on_commit(db, tags_changed=tags_data is not None)
    return await _fetch_article(db, article.id, editor.id)


async def delete_article(db: AsyncSession, slug: str, editor: User) -> bool:
    """
    Delete the article at *slug* along with its comments, favorites and
    tag links (database cascades).

    Returns False when it does not exist.
    """
    article = await get_article_model(db, slug)
    if article is None:
        return False
    if article.author_id != editor.id:
        raise PermissionDeniedError(context={"slug": slug, "user": editor.username})

    await db.delete(article)
    await db.flush()
    logger.info("Article %s deleted by %s", slug, editor.username)
    cache.invalidate_articles_on_commit(db)
    return True


async def favorite_article(db: AsyncSession, slug: str, user: User) -> dict | None:
    """Mark the article as favorited by *user*; idempotent."""
    article = await get_article_model(db, slug)
    if article is None:
        return None

    exists_q = select(favorited_articles.c.article_id).where(
        favorited_articles.c.article_id == article.id,
        favorited_articles.c.user_id == user.id,
    )
    if (await db.execute(exists_q)).first() is None:
        await db.execute(insert(favorited_articles).values(article_id=article.id, user_id=user.id))
        cache.invalidate_articles_on_commit(db)
    return await _fetch_article(db, article.id, user.id)


async def unfavorite_article(db: AsyncSession, slug: str, user: User) -> dict | None:
    article = await get_article_model(db, slug)
    if article is None:
        return None

    result = await db.execute(
        delete(favorited_articles).where(
            favorited_articles.c.article_id == article.id,
            favorited_articles.c.user_id == user.id,
        )
    )
    if result.rowcount:
        cache.invalidate_articles_on_commit(db)
    return await _fetch_article(db, article.id, user.id)
