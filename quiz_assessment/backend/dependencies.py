"""
Quiz Assessment Platform
Dependency injection components: settings, bearer tokens, rate limiting
"""

import logging
from typing import Optional, Dict, Any

import jwt
import redis.asyncio as redis
from redis.exceptions import RedisError

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .exceptions import (
    AuthenticationException,
    AuthorizationException,
    RateLimitException,
    TokenExpiredException,
    TokenInvalidException
)
from ..config import Settings

# Configure logging
logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)

ROLE_ADMIN = "admin"
ROLE_STUDENT = "student"


def get_app_settings(request: Request) -> Settings:
    """Settings object the application was built with"""
    return request.app.state.settings


def create_redis_client(settings: Settings) -> Optional[redis.Redis]:
    """Redis client for rate limiting; None when rate limiting is off"""
    if not settings.RATE_LIMIT_ENABLED:
        return None

    return redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_keepalive=True,
        health_check_interval=30
    )


def verify_jwt_token(token: str, settings: Settings) -> Dict[str, Any]:
    """Verify and decode a bearer token"""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpiredException()
    except jwt.InvalidTokenError:
        raise TokenInvalidException()

    if not payload.get("sub") or payload.get("role") not in (ROLE_ADMIN, ROLE_STUDENT):
        raise TokenInvalidException("Invalid token payload")

    return payload


async def get_token_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_app_settings)
) -> Optional[Dict[str, Any]]:
    """Decoded bearer token, or None when no token was sent"""
    if not credentials:
        return None

    return verify_jwt_token(credentials.credentials, settings)


async def require_authentication(
    payload: Optional[Dict[str, Any]] = Depends(get_token_payload)
) -> Dict[str, Any]:
    """Require a valid bearer token"""
    if not payload:
        raise AuthenticationException("Authentication required")

    return payload


async def require_admin(
    payload: Dict[str, Any] = Depends(require_authentication)
) -> Dict[str, Any]:
    """Require an admin bearer token"""
    if payload["role"] != ROLE_ADMIN:
        raise AuthorizationException(required_role=ROLE_ADMIN)

    return payload


async def get_optional_student(
    payload: Optional[Dict[str, Any]] = Depends(get_token_payload)
) -> Optional[int]:
    """Authenticated student id, or None for guests and non-student tokens"""
    if not payload or payload["role"] != ROLE_STUDENT:
        return None

    try:
        return int(payload["sub"])
    except (TypeError, ValueError):
        raise TokenInvalidException("Invalid token payload")


class RateLimiter:
    """Fixed-window attempt counter backed by Redis.

    Allows every request when rate limiting is disabled or Redis cannot be
    reached.
    """

    def __init__(
        self,
        redis_client: Optional[redis.Redis],
        max_attempts: int,
        window: int,
        enabled: bool = True
    ):
        self.redis_client = redis_client
        self.max_attempts = max_attempts
        self.window = window
        self.enabled = enabled

    @classmethod
    def from_settings(cls, settings: Settings, redis_client: Optional[redis.Redis]) -> "RateLimiter":
        return cls(
            redis_client=redis_client,
            max_attempts=settings.RATE_LIMIT_MAX_ATTEMPTS,
            window=settings.RATE_LIMIT_WINDOW,
            enabled=settings.RATE_LIMIT_ENABLED
        )

    async def is_allowed(self, key: str) -> bool:
        if not self.enabled:
            return True

        if self.redis_client is None:
            logger.warning("Rate limiting disabled: Redis not available")
            return True

        key = f"rate_limit:{key}"

        try:
            current_attempts = await self.redis_client.get(key)

            if current_attempts is None:
                # First attempt in window
                await self.redis_client.setex(key, self.window, 1)
                return True
            elif int(current_attempts) < self.max_attempts:
                await self.redis_client.incr(key)
                return True
            else:
                return False

        except RedisError as e:
            logger.warning(f"⚠️ Rate limit check failed, allowing request: {e}")
            return True

    async def reset(self, key: str) -> None:
        if self.redis_client is None:
            return

        try:
            await self.redis_client.delete(f"rate_limit:{key}")
        except RedisError as e:
            logger.warning(f"⚠️ Rate limit reset failed: {e}")


def rate_limit_key(request: Request) -> str:
    client_host = request.client.host if request.client else "unknown"
    return f"{request.url.path}:{client_host}"


async def enforce_rate_limit(request: Request) -> None:
    """Reject the request once the caller's address exceeds its budget for this path"""
    limiter: RateLimiter = request.app.state.rate_limiter
    key = rate_limit_key(request)

    if not await limiter.is_allowed(key):
        logger.warning(f"Rate limit exceeded for {key}")
        raise RateLimitException(retry_after=limiter.window)


__all__ = [
    "ROLE_ADMIN",
    "ROLE_STUDENT",
    "security",
    "get_app_settings",
    "create_redis_client",
    "verify_jwt_token",
    "get_token_payload",
    "require_authentication",
    "require_admin",
    "get_optional_student",
    "RateLimiter",
    "rate_limit_key",
    "enforce_rate_limit",
]
