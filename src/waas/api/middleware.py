"""HTTP middleware: security headers and a process-wide rate limiter."""

import logging
import time
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "Cross-Origin-Opener-Policy": "same-origin",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds conservative security headers to every response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response


class FixedWindowLimiter:
    """Per-client request counter over fixed one-minute windows."""

    def __init__(self, limit: int, window: float = 60.0, cleanup_interval: float = 300.0):
        self.limit = limit
        self.window = window
        self.cleanup_interval = cleanup_interval
        self._windows: dict[str, tuple[float, int]] = {}
        self._last_cleanup = time.monotonic()

    def _cleanup(self, now: float) -> None:
        if now - self._last_cleanup < self.cleanup_interval:
            return
        cutoff = now - self.window
        for client in [c for c, (start, _) in self._windows.items() if start < cutoff]:
            del self._windows[client]
        self._last_cleanup = now

    def hit(self, client: str, now: Optional[float] = None) -> bool:
        """Count a request; False when the client is over the limit."""
        now = time.monotonic() if now is None else now
        self._cleanup(now)

        start, count = self._windows.get(client, (now, 0))
        if now - start >= self.window:
            start, count = now, 0
        count += 1
        self._windows[client] = (start, count)
        return count <= self.limit


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rejects clients exceeding the per-minute request budget with 429."""

    def __init__(self, app, limit_per_minute: int):
        super().__init__(app)
        self.limiter = FixedWindowLimiter(limit_per_minute)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        client = request.client.host if request.client else "unknown"
        if not self.limiter.hit(client):
            logger.warning(f"Rate limit exceeded for {client}")
            return JSONResponse(status_code=429, content={"error": "Too many requests"})
        return await call_next(request)
