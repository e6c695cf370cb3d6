import logging
from typing import Optional

from fastapi import Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.config import settings
from conduit.database import get_db
from conduit.models import User

logger = logging.getLogger(__name__)


class PaginationParams:
    """
    Reusable FastAPI dependency that parses ``limit`` / ``offset`` query
    parameters for article listings.

    Values that are not non-negative integers are ignored and the default
    applies, so ``?limit=abc`` behaves like no ``limit`` at all.

    Attributes
    ----------
    limit:
        Number of articles to return, clamped to ``settings.MAX_PAGE_SIZE``
        regardless of the value supplied by the caller.  Zero yields an
        empty page.
    offset:
        Number of matching articles to skip.
    """

    def __init__(
        self,
        limit: Optional[str] = Query(
            None,
            description="Maximum number of articles returned.",
        ),
        offset: Optional[str] = Query(
            None,
            description="Number of articles to skip.",
        ),
    ) -> None:
        self.limit = min(_non_negative_int(limit, settings.DEFAULT_PAGE_SIZE), settings.MAX_PAGE_SIZE)
        self.offset = _non_negative_int(offset, 0)


def _non_negative_int(raw: Optional[str], default: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value >= 0 else default


def get_token(request: Request) -> Optional[dict]:
    """Claims stored by ``TokenAuthMiddleware``, or None for anonymous requests."""
    return getattr(request.state, "token", None)


async def get_optional_user(
    token: Optional[dict] = Depends(get_token),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    if token is None:
        return None
    return await db.get(User, token["id"])


async def get_current_user(
    token: Optional[dict] = Depends(get_token),
    db: AsyncSession = Depends(get_db),
) -> User:
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization token",
            headers={"WWW-Authenticate": "Token"},
        )
    user = await db.get(User, token["id"])
    if user is None:
        logger.warning("Token references unknown user %s", token["id"])
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found for token",
            headers={"WWW-Authenticate": "Token"},
        )
    return user
