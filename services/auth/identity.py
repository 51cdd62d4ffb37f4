"""
services/auth/identity.py
Email/password identity provider.

register → creates the User with a bcrypt hash
login    → verifies credentials and issues a session (JWT access token)
logout   → destroys the session by deny-listing its jti until expiry

Every failure is one of IdentityErrorCode; callers never see raw
driver exceptions from here.
"""

import logging
import re
from contextlib import contextmanager
from typing import Optional

from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from config.redis_client import RedisCache
from config.settings import settings
from shared.exceptions import IdentityError, IdentityErrorCode
from shared.middleware.auth import SessionContext
from shared.models.models import User, UserRole
from shared.utils.security import (
    create_access_token,
    get_token_remaining_ttl,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@contextmanager
def _upstream():
    """Map store/cache connectivity failures to NETWORK_FAILURE."""
    try:
        yield
    except (OperationalError, InterfaceError, RedisError, OSError) as e:
        logger.error(f"Identity backend unavailable: {e}")
        raise IdentityError(IdentityErrorCode.NETWORK_FAILURE) from e


def normalize_email(email: str) -> str:
    return email.strip().lower()


class IdentityProvider:
    def __init__(self, db: AsyncSession, redis):
        self.db = db
        self.cache = RedisCache(redis) if redis is not None else None

    async def register(
        self,
        email: str,
        password: str,
        full_name: str,
        role: UserRole = UserRole.CUSTOMER,
        phone: Optional[str] = None,
    ) -> User:
        """Create an identity. Flushes but does not commit; the caller owns the transaction."""
        email = normalize_email(email)
        if not EMAIL_PATTERN.match(email):
            raise IdentityError(IdentityErrorCode.INVALID_EMAIL)
        if len(password) < settings.PASSWORD_MIN_LENGTH:
            raise IdentityError(IdentityErrorCode.WEAK_PASSWORD)

        with _upstream():
            existing = await self.db.scalar(select(User).where(User.email == email))
            if existing:
                raise IdentityError(IdentityErrorCode.EMAIL_IN_USE)

            user = User(
                email=email,
                full_name=full_name.strip(),
                phone=phone,
                role=role,
                password_hash=hash_password(password),
            )
            self.db.add(user)
            try:
                await self.db.flush()
            except IntegrityError as e:
                raise IdentityError(IdentityErrorCode.EMAIL_IN_USE) from e

        logger.info(f"Registered {role.value} identity {user.id}")
        return user

    async def login(self, email: str, password: str) -> tuple[User, str]:
        """Verify credentials and open a session. Returns (user, access_token)."""
        email = normalize_email(email)
        if not EMAIL_PATTERN.match(email):
            raise IdentityError(IdentityErrorCode.INVALID_EMAIL)

        with _upstream():
            if self.cache and await self.cache.failed_login_count(email) >= settings.LOGIN_MAX_ATTEMPTS:
                raise IdentityError(IdentityErrorCode.TOO_MANY_ATTEMPTS)

            user = await self.db.scalar(select(User).where(User.email == email))
            if not user or not verify_password(password, user.password_hash):
                if self.cache:
                    await self.cache.record_failed_login(email)
                raise IdentityError(IdentityErrorCode.INVALID_CREDENTIALS)

            if user.is_disabled:
                raise IdentityError(IdentityErrorCode.USER_DISABLED)

            if self.cache:
                await self.cache.clear_failed_logins(email)

        access_token, _ = create_access_token(
            user_id=str(user.id),
            role=user.role.value,
            email=user.email,
        )
        return user, access_token

    async def logout(self, session: SessionContext) -> None:
        """Revoke the session's token for the rest of its lifetime."""
        ttl = get_token_remaining_ttl(session.expires_at)
        if ttl <= 0 or not self.cache:
            return
        with _upstream():
            await self.cache.revoke_token(session.jti, ttl)
