"""
shared/exceptions.py
Domain error taxonomy raised by the service layer.
main.py renders every AppError as a JSON error response.
"""

import functools
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from fastapi import status

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AppError(Exception):
    """Base class for errors that carry a user-facing message."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class InvalidArgumentError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_argument"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class InvalidTransitionError(ConflictError):
    code = "invalid_transition"


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class ServiceError(AppError):
    """An unexpected failure behind a service operation."""
    code = "service_error"


# ── Identity Provider ─────────────────────────────────────────

class IdentityErrorCode(str, Enum):
    INVALID_EMAIL = "invalid_email"
    INVALID_CREDENTIALS = "invalid_credentials"
    EMAIL_IN_USE = "email_in_use"
    WEAK_PASSWORD = "weak_password"
    NETWORK_FAILURE = "network_failure"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    USER_DISABLED = "user_disabled"


IDENTITY_ERRORS = {
    IdentityErrorCode.INVALID_EMAIL: (
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Please enter a valid email address.",
    ),
    IdentityErrorCode.INVALID_CREDENTIALS: (
        status.HTTP_401_UNAUTHORIZED,
        "Invalid email or password. Please check your credentials and try again.",
    ),
    IdentityErrorCode.EMAIL_IN_USE: (
        status.HTTP_409_CONFLICT,
        "This email address is already registered. Please use a different email or try logging in instead.",
    ),
    IdentityErrorCode.WEAK_PASSWORD: (
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Password is too weak. Please use at least 6 characters with a mix of letters and numbers.",
    ),
    IdentityErrorCode.NETWORK_FAILURE: (
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Network connection failed. Please check your internet connection and try again.",
    ),
    IdentityErrorCode.TOO_MANY_ATTEMPTS: (
        status.HTTP_429_TOO_MANY_REQUESTS,
        "Too many failed login attempts. Please wait a few minutes before trying again.",
    ),
    IdentityErrorCode.USER_DISABLED: (
        status.HTTP_403_FORBIDDEN,
        "This account has been disabled. Please contact support for assistance.",
    ),
}


class IdentityError(AppError):
    """One of the closed set of identity-provider failures."""

    def __init__(self, code: IdentityErrorCode, message: Optional[str] = None):
        http_status, default_message = IDENTITY_ERRORS[code]
        super().__init__(message or default_message)
        self.code = code.value
        self.identity_code = code
        self.status_code = http_status


# ── Service Boundary ──────────────────────────────────────────

def service_boundary(default_message: str):
    """
    Wrap an async service operation so domain errors pass through and
    anything else is re-raised as ServiceError with a readable message.
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except AppError:
                raise
            except Exception as e:
                logger.error(f"{func.__qualname__} failed: {e}", exc_info=True)
                raise ServiceError(str(e) or default_message) from e

        return wrapper

    return decorator
