import json
import logging

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.config import settings

logger = logging.getLogger(__name__)

TAGS_KEY = "tags:list"
ARTICLE_LIST_PREFIX = "articles:list:"

# session.info slot holding invalidations queued until commit
PENDING_INVALIDATIONS = "conduit.cache.pending"


class CacheManager:
    """
    Cache-aside manager backed by Redis.

    Only viewer-independent payloads are stored (the tag list and
    anonymous article listings), since ``favorited`` and ``following``
    differ per requester.

    Every method tolerates Redis being unavailable: reads return None
    and writes are skipped.
    """

    def __init__(self) -> None:
        self._redis: redis.Redis | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        self._redis = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except Exception as exc:  # pragma: no cover
            logger.warning("Redis ping failed, cache disabled: %s", exc)
            await self._redis.aclose()
            self._redis = None

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Core cache operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> dict | list | None:
        if not self._redis:
            return None
        try:
            data = await self._redis.get(key)
            return json.loads(data) if data is not None else None
        except Exception as exc:
            logger.debug("Cache GET error for key=%r: %s", key, exc)
            return None

    async def set(self, key: str, value: dict | list, ttl: int | None = None) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(key, json.dumps(value, default=str), ex=ttl)
        except Exception as exc:
            logger.debug("Cache SET error for key=%r: %s", key, exc)

    async def delete_pattern(self, pattern: str) -> None:
        """Delete all keys matching *pattern* using SCAN (avoids blocking KEYS)."""
        if not self._redis:
            return
        try:
            keys: list[str] = [key async for key in self._redis.scan_iter(match=pattern)]
            if keys:
                await self._redis.delete(*keys)
                logger.debug("Cache invalidated %d key(s) matching %r", len(keys), pattern)
        except Exception as exc:
            logger.debug("Cache DELETE_PATTERN error for pattern=%r: %s", pattern, exc)

    # ------------------------------------------------------------------
    # Domain-level invalidation helpers
    # ------------------------------------------------------------------

    def invalidate_articles_on_commit(self, session: AsyncSession, tags_changed: bool = False) -> None:
        """
        Queue an ``invalidate_articles`` call on *session*.

        ``get_db`` runs the queue after its commit, so a concurrent anonymous
        read cannot re-cache rows the transaction has not published yet.
        A rolled-back session simply drops the queue.
        """
        pending = session.info.setdefault(PENDING_INVALIDATIONS, set())
        pending.add("articles")
        if tags_changed:
            pending.add("tags")

    async def run_pending(self, session: AsyncSession) -> None:
        pending = session.info.pop(PENDING_INVALIDATIONS, None)
        if pending:
            await self.invalidate_articles(tags_changed="tags" in pending)

    async def invalidate_articles(self, tags_changed: bool = False) -> None:
        """
        Purge anonymous listings after any article or favorite write.

        The tag list only changes when an article's tag set does, so it is
        dropped only when *tags_changed* is set.
        """
        await self.delete_pattern(f"{ARTICLE_LIST_PREFIX}*")
        if tags_changed:
            await self.delete_pattern(TAGS_KEY)


def article_list_key(tag: str | None, author: str | None, favorited: str | None,
                     limit: int, offset: int) -> str:
    # JSON keeps each value quoted, so a ":" inside a tag or username cannot
    # shift it into the neighbouring field.
    params = json.dumps([tag or None, author or None, favorited or None, limit, offset],
                        separators=(",", ":"))
    return f"{ARTICLE_LIST_PREFIX}{params}"


# Module-level singleton shared across all request handlers.
cache = CacheManager()
