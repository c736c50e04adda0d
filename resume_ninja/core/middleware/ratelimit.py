import logging
import os
import time
from typing import Callable, Optional, Tuple

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from resume_ninja.core.auth import SupabaseIdentityProvider
from resume_ninja.core.errors import AppError, RateLimitError, app_error_handler
from resume_ninja.core.logging import get_request_id
from resume_ninja.core.ratelimit import ANONYMOUS, InMemoryRateLimiter, RateLimitConfig, build_rate_limit_config_from_env
from resume_ninja.models.user import Identity

logger = logging.getLogger("resume_ninja")

# Paths that are never rate limited
EXEMPT_PATHS = {"/healthz", "/readyz"}


def resolve_identity(request: Request) -> Optional[Identity]:
    """Default subject resolver: same identity rules as the routes."""
    return SupabaseIdentityProvider(request).get_current_user()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-tier token-bucket rate limiting (opt-in via env)."""

    def __init__(
        self,
        app,
        *,
        config: Optional[RateLimitConfig] = None,
        env: Optional[dict] = None,
        time_fn: Optional[Callable[[], float]] = None,
        identity_resolver: Callable[[Request], Optional[Identity]] = resolve_identity,
    ):
        super().__init__(app)
        self.config = config or build_rate_limit_config_from_env(env or os.environ)
        self.limiter = InMemoryRateLimiter(self.config, time_fn=time_fn or time.monotonic)
        self.identity_resolver = identity_resolver
        if hasattr(app, "state"):
            setattr(app.state, "rate_limiter", self.limiter)

    def _client_ip(self, request: Request) -> str:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.headers.get("x-real-ip") or (request.client.host if request.client else "unknown")

    async def _subject(self, request: Request) -> Tuple[str, str]:
        try:
            identity = await run_in_threadpool(self.identity_resolver, request)
        except AppError as e:
            # Identity errors are reported by the route itself; limit as anonymous here
            logger.warning("ratelimit.identity_unresolved", extra={"error_code": e.code})
            identity = None

        if identity is None:
            return f"ip:{self._client_ip(request)}", ANONYMOUS
        return f"user:{identity.user_id}", identity.tier.value

    async def dispatch(self, request: Request, call_next):
        if not self.config.enabled or request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        key, tier = await self._subject(request)
        per_minute = self.config.limit_for(tier)

        if self.limiter.allow(key, per_minute=per_minute):
            return await call_next(request)

        rid = getattr(request.state, "request_id", None) or get_request_id()
        response = await app_error_handler(request, RateLimitError(request_id=rid))
        response.headers["Retry-After"] = str(self.limiter.retry_after(key, per_minute=per_minute))
        response.headers["X-RateLimit-Limit"] = str(per_minute)
        response.headers["X-RateLimit-Remaining"] = "0"
        response.headers["X-RateLimit-Reset"] = str(self.limiter.reset_after(key, per_minute=per_minute))
        return response
