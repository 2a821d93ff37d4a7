# FILE: services/identity.py
"""
Identity Provider.

Sessions are issued by the auth service (out of scope here) and stored in
the shared Redis as session:{token} -> user id. A caller presents the token
either as the `session_token` cookie (web) or as a bearer credential
(mobile).
"""

import logging
from typing import Optional

from fastapi import Request
from redis.asyncio import Redis

from core.errors import Unauthenticated

logger = logging.getLogger("finchat.identity")

SESSION_COOKIE = "session_token"
SESSION_PREFIX = "session"


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


class IdentityProvider:
    def __init__(self, redis: Redis):
        self.redis = redis

    async def lookup(self, token: str) -> Optional[str]:
        user_id = await self.redis.get(f"{SESSION_PREFIX}:{token}")
        if isinstance(user_id, bytes):
            user_id = user_id.decode()
        return user_id or None

    async def resolve(self, request: Request) -> str:
        """Return the caller's user id or raise Unauthenticated."""
        for token in (request.cookies.get(SESSION_COOKIE), _bearer_token(request)):
            if not token:
                continue
            try:
                user_id = await self.lookup(token)
            except Exception as e:
                logger.error("[AUTH] session lookup failed: %s", e)
                raise Unauthenticated("Authentication service unavailable") from e
            if user_id:
                return user_id

        raise Unauthenticated()


def client_address(request: Request) -> Optional[str]:
    """Network address of the caller, honouring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
