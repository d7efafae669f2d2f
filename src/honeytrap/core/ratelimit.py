"""
Per-key fixed window rate limiting.

Each guarded surface owns its own RateLimiter instance; nothing here is a
module-level singleton, so the login and admin surfaces never share
counters and tests can swap in a fake clock.
"""

import asyncio
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import structlog

from .exceptions import RateLimitError

logger = structlog.get_logger(__name__)

Clock = Callable[[], float]


@dataclass
class RateLimitDecision:
    """Outcome of a single check."""
    allowed: bool
    remaining: int
    retry_after: int


class FixedWindow:
    """
    Counter for one key.

    The count resets once more than `window_seconds` have elapsed since
    the window started.
    """

    def __init__(self, started_at: float) -> None:
        self.count = 0
        self.started_at = started_at

    def expired(self, now: float, window_seconds: float) -> bool:
        return now - self.started_at > window_seconds

    def retry_after(self, now: float, window_seconds: float) -> int:
        """Seconds until the window resets, at least 1."""
        return max(1, math.ceil(self.started_at + window_seconds - now))


class RateLimiter:
    """
    Per-key rate limiter using fixed windows.

    check-and-increment runs under a lock so two simultaneous requests
    from the same key cannot both take the last slot.
    """

    def __init__(
        self,
        name: str,
        window_seconds: float,
        max_requests: int,
        clock: Optional[Clock] = None,
        message: str = "Too many requests. Please try again later.",
        prune_every: int = 1000,
    ) -> None:
        self.name = name
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.message = message
        self.clock = clock or time.monotonic
        self.windows: Dict[str, FixedWindow] = {}
        self._lock = asyncio.Lock()
        self._prune_every = prune_every
        self._checks = 0

    async def check(self, key: str) -> RateLimitDecision:
        """
        Count one request for `key`.

        Exhaustion is a normal outcome (allowed=False), never an error.
        """
        async with self._lock:
            now = self.clock()

            self._checks += 1
            if self._checks % self._prune_every == 0:
                self._prune(now)

            window = self.windows.get(key)
            if window is None or window.expired(now, self.window_seconds):
                window = FixedWindow(started_at=now)
                self.windows[key] = window

            if window.count >= self.max_requests:
                return RateLimitDecision(
                    allowed=False,
                    remaining=0,
                    retry_after=window.retry_after(now, self.window_seconds),
                )

            window.count += 1
            return RateLimitDecision(
                allowed=True,
                remaining=self.max_requests - window.count,
                retry_after=0,
            )

    async def enforce(self, key: str) -> RateLimitDecision:
        """
        Check rate limit for key.

        Raises RateLimitError if limit exceeded.
        """
        decision = await self.check(key)
        if not decision.allowed:
            logger.warning(
                "Rate limit exceeded",
                limiter=self.name,
                key=key,
                retry_after=decision.retry_after,
                max_requests=self.max_requests,
                window_seconds=self.window_seconds,
            )
            raise RateLimitError(message=self.message, retry_after=decision.retry_after)

        logger.debug(
            "Rate limit check passed",
            limiter=self.name,
            key=key,
            remaining=decision.remaining,
        )
        return decision

    def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self.windows.clear()
        else:
            self.windows.pop(key, None)

    def _prune(self, now: float) -> None:
        """Drop windows that have expired so idle keys do not accumulate."""
        stale = [k for k, w in self.windows.items() if w.expired(now, self.window_seconds)]
        for k in stale:
            del self.windows[k]
        if stale:
            logger.debug("Pruned rate limit windows", limiter=self.name, pruned=len(stale))


LOGIN_RATE_LIMIT_MESSAGE = "Too many login attempts. Please try again later."
ADMIN_RATE_LIMIT_MESSAGE = "Too many admin access attempts. Try again later."


def build_login_limiter(window_seconds: float = 60, max_requests: int = 5, clock: Optional[Clock] = None) -> RateLimiter:
    return RateLimiter(
        name="login",
        window_seconds=window_seconds,
        max_requests=max_requests,
        clock=clock,
        message=LOGIN_RATE_LIMIT_MESSAGE,
    )


def build_admin_limiter(window_seconds: float = 3600, max_requests: int = 3, clock: Optional[Clock] = None) -> RateLimiter:
    return RateLimiter(
        name="admin",
        window_seconds=window_seconds,
        max_requests=max_requests,
        clock=clock,
        message=ADMIN_RATE_LIMIT_MESSAGE,
    )
