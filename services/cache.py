# FILE: services/cache.py
"""
Read-through cache backed by Redis.

- Keys are deterministic: {domain}:{identity}[:field]...
- get/set/invalidate never raise: a Redis failure is logged and treated
  as a miss, so callers keep working with degraded performance only.
- invalidate_identity is called by every write path of the finance store.
"""

import json
import logging
from datetime import date
from typing import Any, Awaitable, Callable, Optional, TypeVar

from redis.asyncio import Redis

from configurations.config import CACHE_TTL_SECONDS
from services.utils import deep_serialize

logger = logging.getLogger("finchat.cache")

T = TypeVar("T")

# Serialized in place of an absent optional key field
ABSENT = "-"


class cache_keys:
    """Key builders. Two logically identical filter sets give the same key."""

    BALANCE = "balance"
    TRANSACTIONS = "transactions"

    # Domains whose keys carry filter suffixes
    PARAMETERIZED = (TRANSACTIONS,)

    @staticmethod
    def build(domain: str, identity: str, *fields: Any) -> str:
        parts = [domain, identity]
        for field in fields:
            if field is None or field == "":
                parts.append(ABSENT)
            elif isinstance(field, date):
                parts.append(field.isoformat())
            else:
                parts.append(str(field))
        return ":".join(parts)

    @classmethod
    def balance(cls, identity: str) -> str:
        return cls.build(cls.BALANCE, identity)

    @classmethod
    def transactions(
        cls,
        identity: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> str:
        return cls.build(cls.TRANSACTIONS, identity, start_date, end_date)

    @classmethod
    def well_known(cls, identity: str) -> list:
        return [
            cls.balance(identity),
            cls.build(cls.TRANSACTIONS, identity),
        ]


class Cache:
    def __init__(self, redis: Redis, default_ttl: int = CACHE_TTL_SECONDS):
        self.redis = redis
        self.default_ttl = default_ttl

    # -----------------------------
    # Basic operations (fail-open)
    # -----------------------------
    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self.redis.get(key)
        except Exception as e:
            logger.warning("[CACHE] get failed for %s, treating as miss: %s", key, e)
            return None

        if raw is None:
            logger.debug("[CACHE] MISS %s", key)
            return None

        try:
            value = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("[CACHE] corrupt entry for %s, treating as miss", key)
            return None

        logger.debug("[CACHE] HIT %s", key)
        return value

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl
        if ttl <= 0:
            logger.debug("[CACHE] SKIP %s ttl=%ss", key, ttl)
            return False

        try:
            await self.redis.set(key, json.dumps(deep_serialize(value)), ex=ttl)
        except Exception as e:
            logger.warning("[CACHE] set failed for %s: %s", key, e)
            return False

        logger.debug("[CACHE] SET %s ttl=%ss", key, ttl)
        return True

    async def invalidate(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            deleted = await self.redis.delete(*keys)
        except Exception as e:
            logger.warning("[CACHE] invalidate failed for %s: %s", keys, e)
            return 0

        logger.debug("[CACHE] INVALIDATE %s", keys)
        return deleted

    async def invalidate_identity(self, identity: str) -> int:
        """
        Drop the well-known keys of an identity plus every parameterized
        key cached for it with a filter suffix.
        """
        keys = cache_keys.well_known(identity)
        try:
            for domain in cache_keys.PARAMETERIZED:
                pattern = f"{cache_keys.build(domain, identity)}:*"
                async for key in self.redis.scan_iter(match=pattern):
                    keys.append(key.decode() if isinstance(key, bytes) else key)
        except Exception as e:
            logger.warning("[CACHE] pattern sweep failed for %s: %s", identity, e)

        return await self.invalidate(*keys)

    # -----------------------------
    # Cache-aside helper
    # -----------------------------
    async def cached(
        self,
        key: str,
        loader: Callable[[], Awaitable[T]],
        ttl_seconds: Optional[int] = None,
        decode: Optional[Callable[[Any], T]] = None,
    ) -> T:
        """
        Return the cached value for `key`, or run `loader`, store its
        result and return it. Loader exceptions propagate.
        """
        hit = await self.get(key)
        if hit is not None:
            return decode(hit) if decode else hit

        value = await loader()
        await self.set(key, value, ttl_seconds)
        return value

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except Exception:
            return False
