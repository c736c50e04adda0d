"""Error taxonomy and response handlers.

Every error is rendered as ``{"error": <message>}`` with the request id in
the ``x-request-id`` header. Server-side (5xx) errors never expose their
message to the client; the detail is logged instead.
"""

import logging
from typing import Optional
from uuid import uuid4

from starlette.exceptions import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request

from resume_ninja.core.logging import get_request_id, scrub

GENERIC_SERVER_ERROR = "Internal server error"


class AppError(Exception):
    code = "app_error"
    status_code = 500
    public_message: Optional[str] = None

    def __init__(self, message: Optional[str] = None, *, code: Optional[str] = None, status_code: Optional[int] = None, request_id: Optional[str] = None):
        message = message or self.public_message or self.code
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id

    @property
    def client_message(self) -> str:
        if self.status_code >= 500:
            return GENERIC_SERVER_ERROR
        return self.message


class AuthenticationFailure(AppError):
    """No resolvable identity for the caller."""
    code = "unauthorized"
    status_code = 401
    public_message = "Unauthorized"


class UnknownTierError(AppError, ValueError):
    """A tier value outside the closed tier set, or with no configured limit."""
    code = "unknown_tier"
    status_code = 500


class StoreUnavailable(AppError):
    """Ledger store or identity backend could not be reached."""
    code = "store_unavailable"
    status_code = 500


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class InsufficientCreditsError(AppError):
    code = "insufficient_credits"
    status_code = 402
    public_message = "Insufficient credits. Please upgrade your plan or purchase more credits."


class RateLimitError(AppError):
    code = "rate_limited"
    status_code = 429
    public_message = "Rate limit exceeded"


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def error_response(status_code: int, message: str, request_id: str) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content={"error": message})
    response.headers["x-request-id"] = request_id
    return response


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    logger = logging.getLogger("resume_ninja")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": scrub(exc.message), "status": exc.status_code},
    )
    return error_response(exc.status_code, exc.client_message, rid)


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    if exc.status_code >= 500:
        message = GENERIC_SERVER_ERROR
    else:
        message = exc.detail if isinstance(exc.detail, str) and exc.detail else "HTTP error"
    logger = logging.getLogger("resume_ninja")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    return error_response(exc.status_code, message, rid)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    rid = _extract_request_id(request)
    logger = logging.getLogger("resume_ninja")
    logger.warning("validation.error", extra={"request_id": rid, "error_code": "validation_error", "status": 400})
    return error_response(400, "Invalid request parameters", rid)


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("resume_ninja")
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "internal_error"})
    return error_response(500, GENERIC_SERVER_ERROR, rid)
