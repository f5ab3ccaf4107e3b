import math
import time
from dataclasses import dataclass
from threading import Lock

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from grc_api.core.logging import get_logger
from grc_api.core.settings import Settings, get_settings
from grc_api.core.supabase_jwt import Principal, authenticate, extract_access_token

logger = get_logger("api.rate_limit")


@dataclass
class _Bucket:
    tokens: float
    last_refill: float


class RateLimitMiddleware(BaseHTTPMiddleware):
    """In-memory token bucket per caller for ``/api`` routes.

    Callers with a verified session token (bearer header or cookie) are keyed
    by user id; everyone else, forged or expired tokens included, by client IP.
    """

    def __init__(
        self,
        app,
        *,
        max_requests_per_minute: int = 120,
        enabled: bool = True,
        settings: Settings | None = None,
        path_prefix: str = "/api",
    ) -> None:
        super().__init__(app)
        self.enabled = enabled
        self.capacity = float(max(1, max_requests_per_minute))
        self.refill_rate = self.capacity / 60.0
        self.settings = settings or get_settings()
        self.path_prefix = path_prefix
        # A bucket untouched for this long has refilled completely.
        self.idle_seconds = self.capacity / self.refill_rate
        self._buckets: dict[str, _Bucket] = {}
        self._last_sweep = time.monotonic()
        self._lock = Lock()

    @staticmethod
    def _client_ip(request: Request) -> str:
        forwarded_for = request.headers.get("x-forwarded-for", "")
        first_ip = forwarded_for.split(",")[0].strip()
        if first_ip:
            return first_ip
        real_ip = request.headers.get("x-real-ip", "").strip()
        if real_ip:
            return real_ip
        return request.client.host if request.client else "unknown"

    def client_key(self, request: Request) -> str:
        token = extract_access_token(request, self.settings.AUTH_COOKIE_NAME)
        if token:
            result = authenticate(token, self.settings)
            if isinstance(result, Principal):
                return f"user:{result.user_id}"
        return f"ip:{self._client_ip(request)}"

    def _sweep(self, now: float) -> None:
        if now - self._last_sweep < self.idle_seconds:
            return
        idle = [key for key, bucket in self._buckets.items() if now - bucket.last_refill >= self.idle_seconds]
        for key in idle:
            del self._buckets[key]
        self._last_sweep = now

    def _take_token(self, key: str) -> float | None:
        """Consume one token; returns seconds until the next token when the bucket is empty."""
        now = time.monotonic()
        with self._lock:
            self._sweep(now)
            bucket = self._buckets.setdefault(key, _Bucket(tokens=self.capacity, last_refill=now))
            elapsed = max(0.0, now - bucket.last_refill)
            bucket.tokens = min(self.capacity, bucket.tokens + elapsed * self.refill_rate)
            bucket.last_refill = now
            if bucket.tokens < 1:
                return (1 - bucket.tokens) / self.refill_rate
            bucket.tokens -= 1
            return None

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        if not self.enabled or not request.url.path.startswith(self.path_prefix):
            return await call_next(request)

        key = self.client_key(request)
        retry_after = self._take_token(key)
        if retry_after is None:
            return await call_next(request)

        logger.warning(
            "rate_limit.exceeded",
            extra={"component": "rate_limit", "client": key, "path": request.url.path},
        )
        return JSONResponse(
            status_code=429,
            content={"error": "Too many requests"},
            headers={"Retry-After": str(max(1, math.ceil(retry_after)))},
        )
