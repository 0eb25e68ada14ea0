"""In-memory sliding-window rate limiting for the API routers.

Callers are tracked by token subject, or by client address when the request
carries no valid token, over a one-minute, fifteen-minute and one-hour window.
Each request path is tracked separately across all callers. State lives in
process memory, so limits apply per worker and reset on restart.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from bisect import bisect_right
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Optional

from fastapi import HTTPException, Request, status

from .auth import token_subject
from .config import RateLimitSettings, get_settings


logger = logging.getLogger("taskseries.rate_limit")

# Seconds between sweeps of idle keys.
CLEANUP_INTERVAL = 300


@dataclass(frozen=True)
class Window:
    seconds: int
    limit: int


@dataclass(frozen=True)
class RateLimitConfig:
    caller_windows: tuple[Window, ...]
    route_windows: tuple[Window, ...]

    @classmethod
    def from_settings(cls, s: RateLimitSettings) -> "RateLimitConfig":
        return cls(
            caller_windows=(
                Window(60, s.per_minute),
                Window(15 * 60, s.per_fifteen_minutes),
                Window(60 * 60, s.per_hour),
            ),
            route_windows=(Window(15 * 60, s.per_route_fifteen_minutes),),
        )


def _retry_after(log: list[float], windows: tuple[Window, ...], now: float) -> list[int]:
    waits = []
    for w in windows:
        start = bisect_right(log, now - w.seconds)
        in_window = len(log) - start
        if in_window >= w.limit:
            # The request that has to age out before one more fits.
            oldest = log[start + in_window - w.limit]
            waits.append(max(1, math.ceil(oldest + w.seconds - now)))
    return waits


class RateLimiter:
    def __init__(self, config: RateLimitConfig, *, clock: Callable[[], float] = time.monotonic):
        self.config = config
        self._clock = clock
        self._lock = threading.Lock()
        self._callers: dict[str, list[float]] = {}
        self._routes: dict[str, list[float]] = {}
        self._last_cleanup = clock()

    def hit(self, caller: str, route: str) -> Optional[int]:
        """Count one request.

        Returns None when it is allowed, otherwise the number of seconds until
        a retry can succeed. Rejected requests are not counted.
        """
        with self._lock:
            now = self._clock()
            if now - self._last_cleanup >= CLEANUP_INTERVAL:
                self._cleanup(now)

            caller_log = self._trimmed(self._callers, caller, self.config.caller_windows, now)
            route_log = self._trimmed(self._routes, route, self.config.route_windows, now)

            waits = _retry_after(caller_log, self.config.caller_windows, now)
            waits += _retry_after(route_log, self.config.route_windows, now)
            if waits:
                return max(waits)

            caller_log.append(now)
            route_log.append(now)
            return None

    def reset(self) -> None:
        with self._lock:
            self._callers.clear()
            self._routes.clear()

    @staticmethod
    def _trimmed(entries: dict[str, list[float]], key: str, windows: tuple[Window, ...], now: float) -> list[float]:
        log = entries.setdefault(key, [])
        horizon = now - max(w.seconds for w in windows)
        del log[: bisect_right(log, horizon)]
        return log

    def _cleanup(self, now: float) -> None:
        removed = 0
        for entries, windows in (
            (self._callers, self.config.caller_windows),
            (self._routes, self.config.route_windows),
        ):
            horizon = now - max(w.seconds for w in windows)
            idle = [key for key, log in entries.items() if not log or log[-1] <= horizon]
            for key in idle:
                del entries[key]
            removed += len(idle)
        self._last_cleanup = now
        if removed:
            logger.debug("Dropped %d idle rate limit key(s)", removed)


@lru_cache(maxsize=1)
def get_rate_limiter() -> RateLimiter:
    limiter = RateLimiter(RateLimitConfig.from_settings(get_settings().rate_limit))
    logger.info("Rate limits per caller: %s", ", ".join(f"{w.limit}/{w.seconds}s" for w in limiter.config.caller_windows))
    return limiter


def client_key(request: Request) -> str:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        subject = token_subject(auth_header[7:].strip())
        if subject:
            return f"user:{subject}"
    host = request.client.host if request.client else "unknown"
    return f"ip:{host}"


def enforce_rate_limit(request: Request) -> None:
    """Router dependency rejecting over-limit requests with 429."""
    if not get_settings().rate_limit.enabled:
        return

    caller = client_key(request)
    route = request.url.path
    retry_after = get_rate_limiter().hit(caller, route)
    if retry_after is not None:
        logger.warning("Rate limit exceeded for %s on %s", caller, route)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests, please try again later.",
            headers={"Retry-After": str(retry_after)},
        )
