"""
config/redis_client.py
Async Redis client for the JWT deny-list, login-attempt throttling
and the unauthenticated rate limiter.
"""

from typing import Optional
import redis.asyncio as aioredis

from config.settings import settings


# ── Global client (initialized on startup) ───────────────────
redis_client: Optional[aioredis.Redis] = None


async def init_redis() -> None:
    """Initialize the Redis connection pool."""
    global redis_client
    redis_client = aioredis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
    )
    # Test connection
    await redis_client.ping()


async def close_redis() -> None:
    """Close Redis connection pool."""
    global redis_client
    if redis_client:
        await redis_client.aclose()


def get_redis() -> aioredis.Redis:
    """FastAPI dependency to get Redis client."""
    if not redis_client:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return redis_client


# ── Session Helpers ───────────────────────────────────────────
class RedisCache:
    """Helper class for the session and throttling keys kept in Redis."""

    def __init__(self, client: aioredis.Redis):
        self.client = client

    # ── JWT Deny List ─────────────────────────────────────────
    async def revoke_token(self, jti: str, ttl_seconds: int) -> None:
        """Add JWT ID to deny list until it expires."""
        await self.client.setex(f"jwt_revoked:{jti}", ttl_seconds, "1")

    async def is_token_revoked(self, jti: str) -> bool:
        return await self.client.exists(f"jwt_revoked:{jti}") == 1

    # ── Login Attempts ────────────────────────────────────────
    @staticmethod
    def _login_key(email: str) -> str:
        return f"login_failures:{email.lower()}"

    async def record_failed_login(self, email: str) -> int:
        """Count a failed sign-in. The window starts at the first failure."""
        key = self._login_key(email)
        count = await self.client.incr(key)
        if count == 1:
            await self.client.expire(key, settings.LOGIN_ATTEMPT_WINDOW_SECONDS)
        return count

    async def failed_login_count(self, email: str) -> int:
        value = await self.client.get(self._login_key(email))
        return int(value) if value else 0

    async def clear_failed_logins(self, email: str) -> None:
        await self.client.delete(self._login_key(email))
