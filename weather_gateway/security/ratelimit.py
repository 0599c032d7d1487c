"""Rate limiting using in-memory fixed window counters.

Enforces per-client request quotas keyed by client IP. Each client owns
one window: the first request opens it with count=1, later requests
increment the count until the window expires, at which point the next
request opens a fresh window.

State is process-local and guarded by a single asyncio.Lock so the
read-modify-write of a window is atomic across concurrent requests.
Expired windows are swept at most once per window length, so the store
only holds clients seen in roughly the last two windows.

Returns standard rate limit metadata for response headers:
- RateLimit-Limit
- RateLimit-Remaining
- RateLimit-Reset
"""

import asyncio
import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Request
from fastapi.responses import JSONResponse

from weather_gateway.logging.audit import client_ip, get_audit_logger

WINDOW_SECONDS = 15 * 60
MAX_REQUESTS = 300


@dataclass
class RateWindow:
    client_key: str
    window_start: float
    window_seconds: float
    max_requests: int
    count: int = 0

    def expired(self, now: float) -> bool:
        return now >= self.window_start + self.window_seconds

    def seconds_left(self, now: float) -> float:
        return max(0.0, self.window_start + self.window_seconds - now)


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_seconds: float
    count: int

    @property
    def retry_after(self) -> int:
        """Whole seconds until the window resets, rounded up."""
        return math.ceil(self.reset_seconds)

    def headers(self) -> dict[str, str]:
        return {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.retry_after),
        }


class FixedWindowRateLimiter:
    """Per-client fixed window counter.

    Args:
        max_requests: Quota per client per window.
        window_seconds: Window length.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        max_requests: int = MAX_REQUESTS,
        window_seconds: float = WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, RateWindow] = {}
        self._lock = asyncio.Lock()
        self._last_sweep = clock()

    async def admit(self, client_key: str) -> RateLimitResult:
        """Count one request for the client and decide whether it is admitted."""
        async with self._lock:
            now = self._clock()
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(now)
            window = self._windows.get(client_key)

            if window is None or window.expired(now):
                window = RateWindow(
                    client_key=client_key,
                    window_start=now,
                    window_seconds=self.window_seconds,
                    max_requests=self.max_requests,
                )
                self._windows[client_key] = window

            window.count += 1
            return self._result(window, now)

    async def peek(self, client_key: str) -> RateLimitResult:
        """Current counters for the client without counting a request."""
        async with self._lock:
            now = self._clock()
            window = self._windows.get(client_key)
            if window is None or window.expired(now):
                return RateLimitResult(
                    allowed=True,
                    limit=self.max_requests,
                    remaining=self.max_requests,
                    reset_seconds=float(self.window_seconds),
                    count=0,
                )
            return self._result(window, now)

    def reset(self, client_key: str) -> None:
        """Clear rate limit state for a client."""
        self._windows.pop(client_key, None)

    def clear(self) -> None:
        self._windows.clear()

    def _sweep(self, now: float) -> None:
        """Drop every expired window. Caller holds the lock."""
        expired = [key for key, window in self._windows.items() if window.expired(now)]
        for key in expired:
            del self._windows[key]
        self._last_sweep = now

    def _result(self, window: RateWindow, now: float) -> RateLimitResult:
        return RateLimitResult(
            allowed=window.count <= window.max_requests,
            limit=window.max_requests,
            remaining=max(0, window.max_requests - window.count),
            reset_seconds=window.seconds_left(now),
            count=window.count,
        )


def rate_limit_middleware(limiter: FixedWindowRateLimiter, prefix: str):
    """Build an HTTP middleware enforcing the limiter on paths under prefix."""

    async def enforce_rate_limit(request: Request, call_next):
        if not request.url.path.startswith(prefix):
            return await call_next(request)

        ip = client_ip(request)
        result = await limiter.admit(ip)
        request.state.rate_limit = result

        if not result.allowed:
            get_audit_logger().warning(
                f"Too many requests from {ip} - {request.method} {request.url.path}",
                extra={"audit_data": {
                    "client_ip": ip,
                    "method": request.method,
                    "path": request.url.path,
                    "rate_limit": result.limit,
                    "retry_after": result.retry_after,
                }},
            )
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Too many requests, please try again later.",
                    "retryAfter": result.retry_after,
                },
                headers={**result.headers(), "Retry-After": str(result.retry_after)},
            )

        response = await call_next(request)
        response.headers.update(result.headers())
        return response

    return enforce_rate_limit
