# FILE: services/rate_limiter.py
"""
Sliding-window rate limiter on Redis sorted sets.

Each (bucket, identity) owns one sorted set of request timestamps. A check
trims the entries older than the window, adds the current request and
counts, all inside one MULTI/EXEC so concurrent requests for the same
identity are counted atomically.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from redis.asyncio import Redis

from configurations.config import (
    ADDRESS_RATE_LIMIT,
    ADDRESS_RATE_WINDOW_SECONDS,
    USER_RATE_LIMIT,
    USER_RATE_WINDOW_SECONDS,
)

logger = logging.getLogger("finchat.rate_limiter")

KEY_PREFIX = "ratelimit:chat"


class RateBucket(str, Enum):
    USER = "user"
    ADDRESS = "address"


@dataclass(frozen=True)
class BucketPolicy:
    limit: int
    window_seconds: int


DEFAULT_POLICIES: Dict[RateBucket, BucketPolicy] = {
    RateBucket.USER: BucketPolicy(USER_RATE_LIMIT, USER_RATE_WINDOW_SECONDS),
    # Looser: many users may share one address
    RateBucket.ADDRESS: BucketPolicy(ADDRESS_RATE_LIMIT, ADDRESS_RATE_WINDOW_SECONDS),
}


@dataclass(frozen=True)
class RateWindow:
    identity: str
    window_start: float
    count: int
    limit: int
    window_size: int
    allowed: bool
    # Sorted-set member recorded for an admitted request
    member: Optional[str] = None


class RateLimiter:
    def __init__(
        self,
        redis: Redis,
        policies: Optional[Dict[RateBucket, BucketPolicy]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.redis = redis
        self.policies = policies or DEFAULT_POLICIES
        self.clock = clock

    def policy(self, bucket: RateBucket) -> BucketPolicy:
        return self.policies[bucket]

    @staticmethod
    def _key(bucket: RateBucket, identity: str) -> str:
        return f"{KEY_PREFIX}:{bucket.value}:{identity}"

    async def hit(self, bucket: RateBucket, identity: str) -> RateWindow:
        policy = self.policy(bucket)
        key = self._key(bucket, identity)
        now = self.clock()
        member = f"{now:.6f}:{uuid.uuid4().hex}"

        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(key, 0, now - policy.window_seconds)
            pipe.zadd(key, {member: now})
            pipe.zcard(key)
            pipe.zrange(key, 0, 0, withscores=True)
            pipe.expire(key, policy.window_seconds)
            _, _, count, oldest, _ = await pipe.execute()

        allowed = count <= policy.limit
        if not allowed:
            # Rejected requests do not consume quota
            await self.redis.zrem(key, member)
            count -= 1

        window_start = oldest[0][1] if oldest else now
        return RateWindow(
            identity=identity,
            window_start=float(window_start),
            count=count,
            limit=policy.limit,
            window_size=policy.window_seconds,
            allowed=allowed,
            member=member if allowed else None,
        )

    async def allow(self, bucket: RateBucket, identity: str) -> bool:
        """
        True when the request fits in the bucket's window. A Redis failure
        lets the request through (logged at ERROR).
        """
        return await self.allow_all([(bucket, identity)]) is None

    async def release(self, bucket: RateBucket, window: RateWindow) -> None:
        """Give back the quota an admitted request took."""
        if window.member is None:
            return
        await self.redis.zrem(self._key(bucket, window.identity), window.member)

    async def allow_all(
        self, checks: Sequence[Tuple[RateBucket, str]]
    ) -> Optional[RateBucket]:
        """
        Check several buckets for one request. Returns the first bucket that
        rejects it, or None when all admit it. On rejection the hits already
        counted in the other buckets are released. Backend failures fail open.
        """
        admitted: List[Tuple[RateBucket, RateWindow]] = []
        for bucket, identity in checks:
            try:
                window = await self.hit(bucket, identity)
            except Exception:
                logger.exception("[RATE_LIMIT] check failed for %s:%s, allowing", bucket.value, identity)
                continue

            if window.allowed:
                admitted.append((bucket, window))
                continue

            logger.info(
                "[RATE_LIMIT] rejected bucket=%s identity=%s count=%s limit=%s",
                bucket.value, identity, window.count, window.limit,
            )
            for earlier_bucket, earlier in admitted:
                try:
                    await self.release(earlier_bucket, earlier)
                except Exception:
                    logger.exception("[RATE_LIMIT] could not release %s:%s", earlier_bucket.value, earlier.identity)
            return bucket

        return None
