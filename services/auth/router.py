"""
services/auth/router.py
Email/password authentication endpoints.
Implements: Register → Login (JWT issue) → Logout (JWT revoke) → Me
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.redis_client import get_redis
from config.settings import settings
from services.auth.identity import IdentityProvider
from shared.middleware.auth import SessionContext, get_current_user, get_session_context
from shared.models.models import User
from shared.schemas.schemas import (
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def get_identity_provider(
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
) -> IdentityProvider:
    return IdentityProvider(db, redis)


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a customer account",
)
async def register(
    data: RegisterRequest,
    identity: IdentityProvider = Depends(get_identity_provider),
):
    """Public sign-up always creates a customer; companies are created by admins."""
    user = await identity.register(
        email=data.email,
        password=data.password,
        full_name=data.full_name,
        phone=data.phone,
    )
    await identity.db.commit()
    return UserResponse.model_validate(user)


@router.post("/login", response_model=TokenResponse, summary="Sign in")
async def login(
    data: LoginRequest,
    identity: IdentityProvider = Depends(get_identity_provider),
):
    user, access_token = await identity.login(data.email, data.password)
    return TokenResponse(
        access_token=access_token,
        expires_in=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=UserResponse.model_validate(user),
    )


@router.post("/logout", response_model=MessageResponse, summary="Sign out")
async def logout(
    session: SessionContext = Depends(get_session_context),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    """Deny-list the current access token in Redis."""
    await identity.logout(session)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserResponse, summary="Get current user")
async def get_me(current_user: User = Depends(get_current_user)):
    """Returns the authenticated user's profile."""
    return UserResponse.model_validate(current_user)
