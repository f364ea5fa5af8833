import logging
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request

logger = logging.getLogger(__name__)


@dataclass
class RateDecision:
    allowed: bool
    retry_after_seconds: int


class SlidingWindowLimiter:
    """Per-process sliding window; one deque of hit timestamps per key."""

    def __init__(self, clock=time.monotonic) -> None:
        self._hits: dict[str, deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()
        self._clock = clock

    def check(self, key: str, limit: int, window_seconds: int) -> RateDecision:
        now = self._clock()
        cutoff = now - window_seconds
        with self._lock:
            hits = self._hits[key]
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= limit:
                retry_after = max(1, int(hits[0] + window_seconds - now))
                return RateDecision(allowed=False, retry_after_seconds=retry_after)
            hits.append(now)
            return RateDecision(allowed=True, retry_after_seconds=0)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


limiter = SlidingWindowLimiter()


def _caller_key(request: Request) -> str:
    xff = request.headers.get("x-forwarded-for", "").strip()
    if xff:
        return xff.split(",")[0].strip()
    user = request.headers.get("x-user-id", "").strip()
    if user:
        return f"user:{user}"
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit_dependency(route_key: str, limit: int, window_seconds: int):
    def _dep(request: Request) -> None:
        key = f"{route_key}:{_caller_key(request)}"
        decision = limiter.check(key, limit=limit, window_seconds=window_seconds)
        if not decision.allowed:
            logger.info("[rate_limit] rejected route=%s retry_after=%s", route_key, decision.retry_after_seconds)
            raise HTTPException(
                status_code=429,
                detail=f"Too many requests. Retry in {decision.retry_after_seconds}s",
                headers={"Retry-After": str(decision.retry_after_seconds)},
            )

    return Depends(_dep)
