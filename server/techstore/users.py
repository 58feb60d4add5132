"""
Account endpoints: registration, login and profile.
"""

import logging

import asyncpg
from fastapi import APIRouter, Depends, Request, status

from .auth import get_current_user, UserContext, hash_password, verify_password, create_access_token
from .errors import AuthenticationError, ConflictError, NotFoundError
from .models import RegisterRequest, LoginRequest, AuthResponse, UserProfile
from .rate_limit import limiter
from .settings import settings
from .validation import validate_registration
from . import db


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.auth_rate_limit)
async def register_user(
    request: Request,  # Required for rate limiter
    payload: RegisterRequest,
):
    """Create an account and return it with a bearer token."""
    data = validate_registration(payload.name, payload.email, payload.password)

    if await db.get_user_by_email(data["email"]):
        raise ConflictError("User already exists with this email")

    try:
        user = await db.create_user(
            name=data["name"],
            email=data["email"],
            password_hash=hash_password(data["password"]),
        )
    except asyncpg.UniqueViolationError:
        # Lost a race with a concurrent registration for the same email
        raise ConflictError("User already exists with this email")
    logger.info("Registered user id=%s", user["id"])
    return AuthResponse(
        id=user["id"],
        name=user["name"],
        email=user["email"],
        token=create_access_token(user["id"]),
    )


@router.post("/login", response_model=AuthResponse)
@limiter.limit(settings.auth_rate_limit)
async def login_user(
    request: Request,  # Required for rate limiter
    payload: LoginRequest,
):
    """Exchange email + password for a bearer token."""
    user = await db.get_user_by_email(payload.email.strip().lower())
    if not user or not verify_password(payload.password, user["password_hash"]):
        raise AuthenticationError("Invalid email or password")

    return AuthResponse(
        id=user["id"],
        name=user["name"],
        email=user["email"],
        token=create_access_token(user["id"]),
    )


@router.get("/profile", response_model=UserProfile)
async def get_user_profile(user: UserContext = Depends(get_current_user)):
    profile = await db.get_user_by_id(user.user_id)
    if not profile:
        raise NotFoundError("User not found")
    return UserProfile(id=profile["id"], name=profile["name"], email=profile["email"])
