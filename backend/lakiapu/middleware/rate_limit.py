"""Per-client request rate limiting"""
import logging
import threading
import time
from collections import defaultdict

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from ..exceptions import RateLimitedError, error_response

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60


def client_ip(request: Request, trusted_proxies: set[str] | frozenset[str] = frozenset()) -> str:
    """Resolve the caller address, honouring forwarding headers only from trusted proxies"""
    remote = request.client.host if request.client else "unknown"

    if remote in trusted_proxies:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()

    return remote


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Fixed per-minute and per-second budget for each client address"""

    def __init__(
        self,
        app: ASGIApp,
        requests_per_minute: int = 120,
        requests_per_second: int = 20,
        excluded_paths: list[str] | None = None,
        trusted_proxies: list[str] | None = None,
        max_tracked_ips: int = 10000
    ):
        super().__init__(app)
        self.requests_per_minute: int = requests_per_minute
        self.requests_per_second: int = requests_per_second
        self.excluded_paths: list[str] = excluded_paths or ["/docs", "/redoc", "/openapi.json", "/health"]
        self.trusted_proxies: set[str] = set(trusted_proxies or [])
        self.max_tracked_ips: int = max(100, int(max_tracked_ips))

        # {ip: [timestamp, ...]} within the last window
        self.request_records: dict[str, list[float]] = defaultdict(list)
        self._ip_last_seen: dict[str, float] = {}

    def _evict_if_needed(self) -> None:
        if len(self.request_records) < self.max_tracked_ips:
            return

        oldest_ip: str | None = None
        oldest_time = float("inf")
        for ip, last_seen in self._ip_last_seen.items():
            if last_seen < oldest_time:
                oldest_time = last_seen
                oldest_ip = ip

        if oldest_ip is not None:
            _ = self.request_records.pop(oldest_ip, None)
            _ = self._ip_last_seen.pop(oldest_ip, None)

    def _clean_old_records(self, ip: str, current_time: float) -> None:
        cutoff = current_time - WINDOW_SECONDS
        self.request_records[ip] = [
            t for t in self.request_records[ip] if t > cutoff
        ]
        if not self.request_records[ip]:
            _ = self.request_records.pop(ip, None)
            _ = self._ip_last_seen.pop(ip, None)

    def check(self, ip: str) -> tuple[bool, str, int]:
        """Record one request for `ip`; returns (allowed, message, remaining)"""
        current_time = time.time()
        self._clean_old_records(ip, current_time)

        if ip not in self.request_records:
            self._evict_if_needed()

        records = self.request_records[ip]

        one_second_ago = current_time - 1
        requests_last_second = sum(1 for t in records if t > one_second_ago)
        if requests_last_second >= self.requests_per_second:
            return False, "Too many requests per second, slow down", 0

        if len(records) >= self.requests_per_minute:
            return False, "Too many requests, try again later", 0

        records.append(current_time)
        self._ip_last_seen[ip] = current_time
        remaining = self.requests_per_minute - len(records)
        return True, "", max(0, int(remaining))

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if path == "/" or any(path.startswith(excluded) for excluded in self.excluded_paths):
            return await call_next(request)

        ip = client_ip(request, self.trusted_proxies)
        allowed, message, remaining = self.check(ip)
        if not allowed:
            logger.warning("rate limited ip=%s path=%s", ip, path)
            exc = RateLimitedError(message, retry_after=WINDOW_SECONDS)
            return error_response(
                request,
                status_code=exc.status_code,
                payload=exc.to_dict(),
                headers={"Retry-After": str(exc.retry_after)},
            )

        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(self.requests_per_minute)
        response.headers["X-RateLimit-Remaining"] = str(max(0, remaining))

        return response


class ClientRateLimiter:
    """Stricter per-client budget for a single expensive endpoint"""

    def __init__(self, requests_per_minute: int = 30, max_tracked_clients: int = 10000):
        self.requests_per_minute: int = requests_per_minute
        self.max_tracked_clients: int = max(1, int(max_tracked_clients))
        # {client: [timestamp, ...]}; insertion order tracks the last request
        self.request_records: dict[str, list[float]] = {}
        self._lock: threading.Lock = threading.Lock()

    def _evict_if_needed(self, cutoff: float) -> None:
        if len(self.request_records) < self.max_tracked_clients:
            return
        expired = [k for k, records in self.request_records.items() if not records or records[-1] <= cutoff]
        for k in expired:
            _ = self.request_records.pop(k, None)
        while len(self.request_records) >= self.max_tracked_clients:
            oldest = next(iter(self.request_records))
            _ = self.request_records.pop(oldest, None)

    def check(self, key: str) -> bool:
        current_time = time.time()
        cutoff = current_time - WINDOW_SECONDS

        with self._lock:
            records = [t for t in self.request_records.pop(key, []) if t > cutoff]
            self._evict_if_needed(cutoff)
            if len(records) >= self.requests_per_minute:
                self.request_records[key] = records
                return False
            records.append(current_time)
            self.request_records[key] = records
            return True

    def reset(self) -> None:
        with self._lock:
            self.request_records.clear()

    async def __call__(self, request: Request) -> None:
        """FastAPI dependency form; raises RateLimitedError when over budget"""
        trusted = set(getattr(request.app.state, "trusted_proxies", None) or [])
        if not self.check(client_ip(request, trusted)):
            raise RateLimitedError("Too many chat requests, try again later", retry_after=WINDOW_SECONDS)


chat_limiter = ClientRateLimiter(requests_per_minute=30)
