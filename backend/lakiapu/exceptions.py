"""Error taxonomy shared by services and the HTTP layer."""
from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError, ResponseValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class LakiapuError(Exception):
    """Base class for every error that reaches a client.

    Attributes:
        error_code: Stable machine-readable code the UI branches on.
        status_code: HTTP status returned for this kind of failure.
        message: Human-readable message.
        details: Optional extra context.
    """

    error_code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: Any = None,
        error_code: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        if error_code:
            self.error_code = error_code
        if status_code:
            self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"error": self.message, "code": self.error_code}
        if self.details:
            out["details"] = self.details
        return out


class InvalidInputError(LakiapuError):
    """Client-correctable input problem."""

    error_code = "INVALID_INPUT"
    status_code = 400


class UploadTooLargeError(InvalidInputError):
    error_code = "UPLOAD_TOO_LARGE"


class UnsupportedFileTypeError(InvalidInputError):
    error_code = "UNSUPPORTED_FILE_TYPE"


class AuthRequiredError(LakiapuError):
    error_code = "AUTH_REQUIRED"
    status_code = 401


class SubscriptionRequiredError(LakiapuError):
    error_code = "SUBSCRIPTION_REQUIRED"
    status_code = 403


class NotFoundError(LakiapuError):
    error_code = "NOT_FOUND"
    status_code = 404


class RateLimitedError(LakiapuError):
    """Per-client request budget exhausted."""

    error_code = "RATE_LIMITED"
    status_code = 429

    def __init__(self, message: str, retry_after: int = 60, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retry_after = int(retry_after)


class UpstreamUnavailableError(LakiapuError):
    """Retrieval or answer generation failed.

    Raised when:
    - the language-model API errors or returns nothing
    - the vector store cannot be queried
    - the model is not configured
    """

    error_code = "UPSTREAM_UNAVAILABLE"
    status_code = 502


class UpstreamTimeoutError(UpstreamUnavailableError):
    error_code = "UPSTREAM_TIMEOUT"


class StoreUnavailableError(LakiapuError):
    error_code = "STORE_UNAVAILABLE"
    status_code = 500


_HTTP_CODES: dict[int, str] = {
    400: InvalidInputError.error_code,
    401: AuthRequiredError.error_code,
    403: SubscriptionRequiredError.error_code,
    404: NotFoundError.error_code,
    405: "METHOD_NOT_ALLOWED",
    429: RateLimitedError.error_code,
}


def error_code_for_status(status_code: int) -> str:
    return _HTTP_CODES.get(int(status_code), "INTERNAL_ERROR")


def error_response(
    request: Request,
    *,
    status_code: int,
    payload: dict[str, Any],
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    out_headers: dict[str, str] = {"X-Error-Code": str(payload.get("code", ""))}
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        out_headers["X-Request-Id"] = str(request_id)
    if headers:
        out_headers.update({str(k): str(v) for k, v in headers.items()})
    return JSONResponse(status_code=int(status_code), content=payload, headers=out_headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Install the uniform `{error, code, details}` envelope."""

    @app.exception_handler(LakiapuError)
    async def handle_lakiapu_error(request: Request, exc: LakiapuError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "request failed path=%s code=%s message=%s",
                request.url.path,
                exc.error_code,
                exc.message,
            )
        else:
            logger.info("request rejected path=%s code=%s", request.url.path, exc.error_code)
        headers: dict[str, str] | None = None
        if isinstance(exc, RateLimitedError):
            headers = {"Retry-After": str(exc.retry_after)}
        return error_response(request, status_code=exc.status_code, payload=exc.to_dict(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {
                "field": ".".join(str(loc) for loc in err.get("loc", ())),
                "message": str(err.get("msg", "")),
            }
            for err in exc.errors()
        ]
        payload = InvalidInputError("Invalid request", details=details).to_dict()
        return error_response(request, status_code=400, payload=payload)

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
        payload = {"error": str(exc.detail), "code": error_code_for_status(exc.status_code)}
        return error_response(
            request,
            status_code=exc.status_code,
            payload=payload,
            headers=dict(exc.headers) if exc.headers else None,
        )

    @app.exception_handler(DBAPIError)
    async def handle_store_error(request: Request, exc: DBAPIError) -> JSONResponse:
        logger.exception("store error path=%s", request.url.path)
        payload = StoreUnavailableError("Storage is unavailable").to_dict()
        return error_response(request, status_code=500, payload=payload)

    @app.exception_handler(ResponseValidationError)
    async def handle_response_validation_error(request: Request, exc: ResponseValidationError) -> JSONResponse:
        logger.exception("Response validation error path=%s", request.url.path)
        payload = LakiapuError("Internal server error").to_dict()
        return error_response(request, status_code=500, payload=payload)
