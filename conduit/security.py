"""
Password hashing and JWT helpers.

Tokens are HS256 JWTs whose claims carry the user's UUID under ``id``
plus an ``exp`` timestamp.  Clients send them back in the
``Authorization`` header using the ``Token`` scheme (``Bearer`` is
accepted as well).
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from conduit.config import settings

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

TOKEN_SCHEMES = ("token", "bearer")


class TokenError(Exception):
    pass


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(plain_password, password_hash)
    except ValueError:
        # Unrecognised or corrupt hash in the database.
        return False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_token(user_id: uuid.UUID, expires_minutes: Optional[int] = None) -> str:
    expire = _utcnow() + timedelta(
        minutes=expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    claims: Dict[str, Any] = {"id": str(user_id), "exp": expire}
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """
    Return the claims of *token*.

    Raises ``TokenError`` when the signature is wrong, the token is
    expired, or the ``id`` claim is missing or not a UUID.
    """
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        raise TokenError(str(exc)) from exc

    try:
        claims["id"] = uuid.UUID(str(claims["id"]))
    except (KeyError, ValueError) as exc:
        raise TokenError("Invalid token subject") from exc
    return claims


def parse_authorization_header(value: str) -> str:
    """Strip the ``Token``/``Bearer`` scheme from an Authorization header value."""
    scheme, _, credentials = value.strip().partition(" ")
    if scheme.lower() not in TOKEN_SCHEMES or not credentials.strip():
        raise TokenError("Unsupported authorization scheme")
    return credentials.strip()
