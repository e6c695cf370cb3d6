"""
Profile service: public user views and the follow relation.
"""
import logging
import uuid

from sqlalchemy import delete, false, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.exceptions import UnprocessableError
from conduit.models import User, followers
from conduit.services.user_service import get_user_by_username

logger = logging.getLogger(__name__)


def is_followed_by(user_id_column, viewer_id: uuid.UUID | None):
    """
    SQL boolean expression: does *viewer_id* follow the user in
    *user_id_column*?  Constant false for anonymous viewers.
    """
    if viewer_id is None:
        return false()
    return (
        select(followers.c.user_id)
        .where(followers.c.user_id == user_id_column, followers.c.follower_id == viewer_id)
        .exists()
    )


def profile_to_dict(user: User, following: bool) -> dict:
    return {
        "username": user.username,
        "bio": user.bio,
        "image": user.image,
        "following": bool(following),
    }


async def get_profile(db: AsyncSession, username: str, viewer_id: uuid.UUID | None) -> dict | None:
    """Return the profile of *username* as seen by *viewer_id*, or None."""
    q = (
        select(User, is_followed_by(User.id, viewer_id).label("following"))
        .where(User.username == username)
    )
    row = (await db.execute(q)).one_or_none()
    if row is None:
        return None
    return profile_to_dict(row.User, row.following)


async def _is_following(db: AsyncSession, user_id: uuid.UUID, follower_id: uuid.UUID) -> bool:
    q = select(followers.c.user_id).where(
        followers.c.user_id == user_id, followers.c.follower_id == follower_id
    )
    return (await db.execute(q)).first() is not None


async def follow_user(db: AsyncSession, username: str, viewer: User) -> dict | None:
    """
    Make *viewer* follow *username*.  Following twice is a no-op.

    Returns None when *username* does not exist.
    """
    target = await get_user_by_username(db, username)
    if target is None:
        return None
    if target.id == viewer.id:
        raise UnprocessableError("You cannot follow yourself")

    if not await _is_following(db, target.id, viewer.id):
        await db.execute(insert(followers).values(user_id=target.id, follower_id=viewer.id))
        logger.info("%s followed %s", viewer.username, target.username)
    return profile_to_dict(target, True)


async def unfollow_user(db: AsyncSession, username: str, viewer: User) -> dict | None:
    """Remove the follow edge if present.  Returns None when *username* does not exist."""
    target = await get_user_by_username(db, username)
    if target is None:
        return None

    await db.execute(
        delete(followers).where(
            followers.c.user_id == target.id, followers.c.follower_id == viewer.id
        )
    )
    return profile_to_dict(target, False)
