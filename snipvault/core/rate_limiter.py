"""Fixed-window, per-scope rate limiting.

Buckets live in process memory only: limits are per instance and reset on
restart. ``hit`` performs its read-then-increment without awaiting anything,
so concurrent requests on the event loop cannot interleave inside it.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from fastapi import Request, Response

from snipvault.core.exceptions import RateLimited
from snipvault.services.audit_service import client_ip
from snipvault.services.settings_service import SettingsStore

logger = logging.getLogger("snipvault.rate_limit")

SCOPES = ("auth", "public", "general")


@dataclass
class RateLimitBucket:
    scope: str
    client_key: str
    window_start: float  # ms
    count: int
    window_ms: int


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    scope: str
    limit: int
    remaining: int
    retry_after: int = 0

    def headers(self) -> Dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers

    def to_exception(self) -> RateLimited:
        return RateLimited(scope=self.scope, retry_after=self.retry_after, limit=self.limit)


def client_key(request: Request) -> str:
    return client_ip(request) or "unknown"


class RateLimiter:
    """Process-scoped bucket map keyed by (scope, client)."""

    def __init__(
        self,
        settings_store: SettingsStore,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._settings = settings_store
        self._clock = clock
        self._buckets: Dict[Tuple[str, str], RateLimitBucket] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def _now_ms(self) -> float:
        return self._clock() * 1000

    def __len__(self) -> int:
        return len(self._buckets)

    def hit(self, scope: str, key: str) -> RateLimitDecision:
        """Count one request for ``(scope, key)`` and decide whether it may pass."""
        policy = self._settings.get_foundation_settings().rate_limit
        window_ms = policy.window_ms
        limit = policy.limit_for(scope)
        now = self._now_ms()

        bucket = self._buckets.get((scope, key))
        if bucket is None or now - bucket.window_start >= window_ms:
            self._buckets[(scope, key)] = RateLimitBucket(
                scope=scope, client_key=key, window_start=now, count=1, window_ms=window_ms,
            )
            return RateLimitDecision(allowed=True, scope=scope, limit=limit, remaining=max(0, limit - 1))

        bucket.count += 1
        remaining = max(0, limit - bucket.count)
        if bucket.count > limit:
            retry_after = math.ceil((bucket.window_start + window_ms - now) / 1000)
            return RateLimitDecision(
                allowed=False, scope=scope, limit=limit, remaining=remaining,
                retry_after=max(1, retry_after),
            )
        return RateLimitDecision(allowed=True, scope=scope, limit=limit, remaining=remaining)

    def check(self, scope: str, request: Request) -> RateLimitDecision:
        return self.hit(scope, client_key(request))

    def create_limiter(self, scope: str = "general") -> "ScopedRateLimiter":
        return ScopedRateLimiter(self, scope)

    # ---- housekeeping ----

    def sweep(self) -> int:
        """Evict buckets idle for more than twice their window."""
        now = self._now_ms()
        stale = [
            key for key, bucket in self._buckets.items()
            if now - bucket.window_start > bucket.window_ms * 2
        ]
        for key in stale:
            del self._buckets[key]
        if stale:
            logger.debug("Evicted %d idle rate-limit buckets", len(stale))
        return len(stale)

    def reset(self) -> None:
        self._buckets.clear()

    async def _sweep_forever(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            self.sweep()

    def start_sweeper(self, interval_seconds: float = 60.0) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever(interval_seconds))

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None


class ScopedRateLimiter:
    """Request filter bound to one scope.

    Usable directly as a FastAPI dependency, or through ``check`` from a
    middleware.
    """

    def __init__(self, limiter: RateLimiter, scope: str):
        self.limiter = limiter
        self.scope = scope

    def check(self, request: Request) -> RateLimitDecision:
        return self.limiter.check(self.scope, request)

    async def __call__(self, request: Request, response: Response) -> None:
        decision = self.check(request)
        if not decision.allowed:
            raise decision.to_exception()
        response.headers.update(decision.headers())
