"""
User service: registration, login and self-service profile updates.

Uniqueness of username and email is checked up front so the client gets
a specific message; the unique constraints in the schema still back it
up for concurrent requests (rendered as 422 by the global handler).
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.cache import cache
from conduit.exceptions import InvalidCredentialsError, UnprocessableError
from conduit.models import User
from conduit.schemas import LoginUser, NewUser, UserUpdate
from conduit.security import create_token, hash_password, verify_password

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _user_to_dict(user: User) -> dict:
    """Serialise a User with a freshly issued token."""
    return {
        "email": user.email,
        "token": create_token(user.id),
        "username": user.username,
        "bio": user.bio,
        "image": user.image,
    }


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def get_user_by_username(db: AsyncSession, username: str) -> User | None:
    result = await db.execute(select(User).where(User.username == username))
    return result.scalar_one_or_none()


async def _ensure_available(
    db: AsyncSession,
    username: str | None,
    email: str | None,
    exclude: User | None = None,
) -> None:
    errors: list[str] = []
    if username is not None:
        taken = await get_user_by_username(db, username)
        if taken is not None and taken is not exclude:
            errors.append("username has already been taken")
    if email is not None:
        taken = await get_user_by_email(db, email)
        if taken is not None and taken is not exclude:
            errors.append("email has already been taken")
    if errors:
        raise UnprocessableError("; ".join(errors))


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def register_user(db: AsyncSession, data: NewUser) -> dict:
    await _ensure_available(db, data.username, data.email)

    user = User(
        username=data.username,
        email=data.email,
        password=hash_password(data.password),
    )
    db.add(user)
    await db.flush()
    logger.info("User registered: %s", user.username)
    return _user_to_dict(user)


async def login_user(db: AsyncSession, data: LoginUser) -> dict:
    user = await get_user_by_email(db, data.email)
    if user is None or not verify_password(data.password, user.password):
        logger.warning("Login failed for %s", data.email)
        raise InvalidCredentialsError(context={"email": data.email, "user_exists": user is not None})
    return _user_to_dict(user)


def current_user(user: User) -> dict:
    return _user_to_dict(user)


async def update_user(db: AsyncSession, user: User, data: UserUpdate) -> dict:
    """
    Apply the fields present in *data* to *user*.

    A new password is hashed before storage; ``bio`` and ``image`` may be
    cleared by sending null explicitly.
    """
    update_data = data.model_dump(exclude_unset=True)
    # username, email and password cannot be nulled out.
    for field in ("username", "email", "password"):
        if update_data.get(field, "") is None:
            update_data.pop(field)

    await _ensure_available(db, update_data.get("username"), update_data.get("email"), exclude=user)

    if "password" in update_data:
        update_data["password"] = hash_password(update_data["password"])

    for field, value in update_data.items():
        setattr(user, field, value)

    await db.flush()
    if update_data.keys() & {"username", "bio", "image"}:
        # Cached listings embed the author profile.
        cache.invalidate_articles_on_commit(db)
    return _user_to_dict(user)
