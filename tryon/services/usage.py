"""Redis-backed usage counter and rate limiter.

Both counters are updated with ``INCR`` + ``EXPIRE`` inside one MULTI/EXEC
pipeline, so concurrent requests never lose increments.
"""
from __future__ import annotations

import datetime as _dt
import logging
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

import redis

from tryon.config import RedisConfig
from tryon.errors import RateLimitExceeded, UsageLimitExceeded

logger = logging.getLogger(__name__)


def build_redis(config: RedisConfig) -> Optional[redis.Redis]:
    if not config.is_configured:
        return None
    return redis.Redis.from_url(
        config.url,
        decode_responses=True,
        socket_timeout=2.0,
        socket_connect_timeout=2.0,
    )


def _incr_with_ttl(client: redis.Redis, key: str, ttl_seconds: int) -> int:
    pipe = client.pipeline(transaction=True)
    pipe.incr(key)
    pipe.expire(key, ttl_seconds)
    count, _ = pipe.execute()
    return int(count)


class UsageCounter:
    """Monthly per-shop generation counter."""

    def __init__(
        self,
        client: redis.Redis,
        *,
        ttl_seconds: int = 35 * 24 * 3600,
        now: Callable[[], _dt.datetime] = lambda: _dt.datetime.now(_dt.timezone.utc),
    ) -> None:
        self.client = client
        self.ttl_seconds = ttl_seconds
        self._now = now

    def key(self, shop_domain: str, when: Optional[_dt.datetime] = None) -> str:
        month = (when or self._now()).strftime("%Y-%m")
        return f"usage:{shop_domain.strip().lower()}:{month}"

    def increment(self, shop_domain: str) -> int:
        return _incr_with_ttl(self.client, self.key(shop_domain), self.ttl_seconds)

    def current(self, shop_domain: str) -> int:
        value = self.client.get(self.key(shop_domain))
        try:
            return int(value or 0)
        except (TypeError, ValueError):
            return 0


class QuotaGate:
    """Rejects shops that already used their monthly allowance. Fails open."""

    def __init__(
        self,
        counter: Optional[UsageCounter],
        *,
        default_limit: int,
        limits: Optional[Mapping[str, int]] = None,
    ) -> None:
        self.counter = counter
        self.default_limit = default_limit
        self.limits = {k.lower(): v for k, v in (limits or {}).items()}

    def limit_for(self, shop_domain: str) -> int:
        return self.limits.get(shop_domain.strip().lower(), self.default_limit)

    def check(self, shop_domain: Optional[str]) -> None:
        if not shop_domain or self.counter is None:
            return
        limit = self.limit_for(shop_domain)
        if limit <= 0:
            return
        try:
            used = self.counter.current(shop_domain)
        except redis.RedisError as exc:
            logger.warning("usage lookup failed, allowing request: %s", type(exc).__name__)
            return
        if used >= limit:
            logger.info("usage limit reached shop=%s used=%d limit=%d", shop_domain, used, limit)
            raise UsageLimitExceeded()


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }


class RateLimiter:
    """Fixed-window limiter keyed by client IP and endpoint."""

    def __init__(
        self,
        client: Optional[redis.Redis],
        *,
        max_requests: int = 20,
        window_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock

    def key(self, identifier: str, endpoint: str) -> str:
        return f"ratelimit:{identifier}:{endpoint}"

    def hit(self, identifier: str, endpoint: str) -> RateLimitResult:
        reset_at = int(self._clock()) + self.window_seconds
        if self.client is None:
            return RateLimitResult(True, self.max_requests, self.max_requests, reset_at)
        try:
            count = _incr_with_ttl(
                self.client, self.key(identifier, endpoint), self.window_seconds
            )
        except redis.RedisError as exc:
            logger.warning("rate limiter unavailable, allowing request: %s", type(exc).__name__)
            return RateLimitResult(True, self.max_requests, self.max_requests, reset_at)

        remaining = max(self.max_requests - count, 0)
        return RateLimitResult(count <= self.max_requests, self.max_requests, remaining, reset_at)

    def check(self, identifier: str, endpoint: str) -> RateLimitResult:
        result = self.hit(identifier, endpoint)
        if not result.allowed:
            logger.info("rate limit exceeded id=%s endpoint=%s", identifier, endpoint)
            raise RateLimitExceeded(limit=result.limit, reset_at=result.reset_at)
        return result


def client_ip(headers: Mapping[str, str], peer: Optional[str] = None) -> str:
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = (headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip
    return peer or "unknown"


__all__ = [
    "QuotaGate",
    "RateLimitResult",
    "RateLimiter",
    "UsageCounter",
    "build_redis",
    "client_ip",
]
