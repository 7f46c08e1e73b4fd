"""In-memory fixed-window request counters.

Each key gets a window that opens on its first hit and lasts
``window_seconds``. Within a window at most ``limit`` hits are allowed;
once the window has elapsed the counter starts over. State lives in the
process, so limits are per worker.
"""

import math
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable

from fastapi import HTTPException, Request, status

from backend.core import config


@dataclass
class _Window:
    started_at: float
    count: int = 0


class FixedWindowRateLimiter:
    def __init__(self, limit: int, window_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = Lock()

    def hit(self, key: str) -> tuple[bool, int]:
        """Count one request for ``key``; returns (allowed, retry_after_seconds)."""
        now = self._clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None or now - window.started_at >= self.window_seconds:
                window = _Window(started_at=now)
                self._windows[key] = window

            if window.count >= self.limit:
                remaining = self.window_seconds - (now - window.started_at)
                return False, max(1, math.ceil(remaining))

            window.count += 1
            return True, 0

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._windows.clear()
            else:
                self._windows.pop(key, None)


def client_ip(request: Request) -> str:
    """Peer address, or the last untrusted hop of X-Forwarded-For when the peer is a trusted proxy."""
    peer = request.client.host if request.client else 'unknown'
    if peer not in config.TRUSTED_PROXIES:
        return peer

    forwarded = request.headers.get('x-forwarded-for', '')
    for hop in reversed([part.strip() for part in forwarded.split(',') if part.strip()]):
        if hop not in config.TRUSTED_PROXIES:
            return hop
    return peer


def enforce(limiter: FixedWindowRateLimiter, key: str, message: str) -> None:
    allowed, retry_after = limiter.hit(key)
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=message,
            headers={'Retry-After': str(retry_after)},
        )


def rate_limit_by_ip(limiter: FixedWindowRateLimiter, message: str):
    """Dependency factory limiting requests per client IP."""

    def dependency(request: Request) -> None:
        enforce(limiter, client_ip(request), message)

    return dependency
