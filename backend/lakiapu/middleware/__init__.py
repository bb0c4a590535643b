"""HTTP middleware"""
from .logging_middleware import ErrorLoggingMiddleware, RequestLoggingMiddleware
from .rate_limit import ClientRateLimiter, RateLimitMiddleware, chat_limiter
from .request_id_middleware import RequestIdMiddleware

__all__ = [
    "ErrorLoggingMiddleware",
    "RequestLoggingMiddleware",
    "RequestIdMiddleware",
    "RateLimitMiddleware",
    "ClientRateLimiter",
    "chat_limiter",
]
