"""
Fixed-window rate limiting for the public endpoints.

The in-memory limiter is process-local: it blunts casual abuse on a single
instance and makes no global guarantee. Anything implementing ``RateLimiter``
can replace it through the ``get_rate_limiter`` dependency.
"""
import math
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Collection

import structlog
from starlette.requests import Request

logger = structlog.get_logger(component="rate_limit")


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: int    # seconds until the window resets


class RateLimiter(ABC):
    @abstractmethod
    def check_and_increment(self, key: str) -> RateLimitDecision:
        """Count one hit for ``key`` and report whether it is within the limit."""


class InMemoryRateLimiter(RateLimiter):
    def __init__(self, max_requests: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, tuple[int, float]] = {}

    def check_and_increment(self, key: str) -> RateLimitDecision:
        now = self._clock()
        with self._lock:
            count, reset_at = self._windows.get(key, (0, 0.0))
            if reset_at <= now:
                count, reset_at = 0, now + self.window_seconds
            count += 1
            self._windows[key] = (count, reset_at)
            self._evict_expired(now)
        retry_after = max(1, math.ceil(reset_at - now))
        allowed = count <= self.max_requests
        if not allowed:
            logger.warning("rate_limited", key=key, count=count, retry_after=retry_after)
        return RateLimitDecision(allowed=allowed, remaining=max(0, self.max_requests - count), retry_after=retry_after)

    def _evict_expired(self, now: float) -> None:
        if len(self._windows) < 10_000:
            return
        for key in [k for k, (_, reset_at) in self._windows.items() if reset_at <= now]:
            del self._windows[key]


def get_client_ip(request: Request, trusted_proxies: Collection[str] = frozenset()) -> str:
    """
    Client IP for rate limiting. Forwarded headers are honoured only when the
    direct peer is a trusted proxy; anyone else could rotate them freely.
    """
    peer = request.client.host if request.client else None
    if peer is not None and peer in trusted_proxies:
        for header in ("cf-connecting-ip", "x-forwarded-for", "x-real-ip"):
            value = request.headers.get(header)
            if value:
                return value.split(",")[0].strip()
    return peer or "unknown"
