"""
TechStore Server Authentication

- Passwords are stored as salted bcrypt hashes.
- Bearer tokens are HS256 JWTs carrying the user id.
- Catalog admin operations use env-configured service keys.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends
from fastapi.security import APIKeyHeader, HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

from .settings import settings
from .errors import AuthenticationError, AuthorizationError
from . import db


logger = logging.getLogger(__name__)

# Security headers
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
bearer_scheme = HTTPBearer(auto_error=False)


class UserContext(BaseModel):
    """
    Authenticated user context.
    """
    user_id: Optional[int] = None
    name: Optional[str] = None
    email: Optional[str] = None
    is_admin: bool = False  # True if authenticated via env admin/service keys


# --- Passwords ---


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time comparison of a password against a stored bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


# --- Bearer tokens ---


def create_access_token(user_id: int, expires_in: Optional[timedelta] = None) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "id": user_id,
        "iat": now,
        "exp": now + (expires_in or timedelta(days=settings.jwt_expires_days)),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> int:
    """
    Verify a bearer token and return the user id it was issued for.
    Raises AuthenticationError for expired, tampered or malformed tokens.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "id"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Not authorized, token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Not authorized, token failed")

    user_id = payload.get("id")
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        raise AuthenticationError("Not authorized, token failed")
    return user_id


async def resolve_identity(credential: Optional[str]) -> UserContext:
    """
    Resolve a bearer credential to the account it belongs to.

    The account must still exist; a valid signature for a deleted user is
    rejected.
    """
    if not credential:
        raise AuthenticationError("Not authorized, no token")

    user_id = decode_access_token(credential)
    user = await db.get_user_by_id(user_id)
    if not user:
        logger.info("Token for unknown user id=%s rejected", user_id)
        raise AuthenticationError("Not authorized, user not found")
    return UserContext(user_id=user["id"], name=user["name"], email=user["email"])


def _extract_bearer(bearer: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if bearer and bearer.scheme and bearer.scheme.lower() == "bearer":
        return bearer.credentials
    return None


async def get_current_user(
    bearer: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> UserContext:
    """Require `Authorization: Bearer <token>` and return the caller's context."""
    return await resolve_identity(_extract_bearer(bearer))


async def get_admin_user(
    api_key: Optional[str] = Depends(api_key_header),
    bearer: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> UserContext:
    """Require an env-configured admin/service key (not user tokens)."""
    raw_key = api_key or _extract_bearer(bearer)
    if not raw_key:
        raise AuthenticationError(
            "Missing API key. Provide X-API-Key header or Authorization: Bearer <key>."
        )
    if raw_key not in settings.api_keys:
        raise AuthorizationError("Admin API key required.")
    return UserContext(is_admin=True)
