# marketplace/middleware.py
import logging
import threading
from collections import defaultdict, deque
from time import time

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("adspace_backend")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Opener-Policy": "same-origin",
}


class SlidingWindowLimiter:
    def __init__(self, limit: int, window_seconds: int, sweep_every: int = 1000) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self.sweep_every = sweep_every
        self._lock = threading.Lock()
        self._hits: dict[str, deque] = defaultdict(deque)
        self._calls = 0

    def _trim(self, bucket: deque, now: float) -> None:
        while bucket and now - bucket[0] > self.window_seconds:
            bucket.popleft()

    def _sweep(self, now: float) -> None:
        # drop clients with no hits left in the window
        for key in list(self._hits):
            self._trim(self._hits[key], now)
            if not self._hits[key]:
                del self._hits[key]

    def is_limited(self, key: str) -> bool:
        now = time()
        with self._lock:
            self._calls += 1
            if self._calls >= self.sweep_every:
                self._calls = 0
                self._sweep(now)
            bucket = self._hits[key]
            self._trim(bucket, now)
            if len(bucket) >= self.limit:
                return True
            bucket.append(now)
            return False


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, limit: int, window_seconds: int) -> None:
        super().__init__(app)
        self.limiter = SlidingWindowLimiter(limit, window_seconds)

    async def dispatch(self, request: Request, call_next):
        client_ip = request.client.host if request.client else "unknown"
        if self.limiter.is_limited(client_ip):
            logger.info(f"Rate limit exceeded for IP: {client_ip}")
            response = JSONResponse(
                status_code=429,
                content={"message": "Too many requests, please try again later"},
            )
        else:
            response = await call_next(request)

        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response
