import logging
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from resume_ninja.core.logging import LOGGER_NAME, caller_ctx_var, latency_bucket_ms, request_id_ctx_var


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Attach a request_id to each request and log completion."""

    def __init__(self, app, header_name: str = "x-request-id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or str(uuid4())
        request.state.request_id = rid
        rid_token = request_id_ctx_var.set(rid)
        # Caller is bound later by the route once identity resolves
        caller_token = caller_ctx_var.set(None)

        try:
            start = time.perf_counter()
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start) * 1000

            response.headers[self.header_name] = rid

            logging.getLogger(LOGGER_NAME).info(
                "request.complete",
                extra={
                    "request_id": rid,
                    "path": request.url.path,
                    "method": request.method,
                    "status": getattr(response, "status_code", None),
                    "latency_bucket": latency_bucket_ms(duration_ms),
                },
            )
            return response
        finally:
            caller_ctx_var.reset(caller_token)
            request_id_ctx_var.reset(rid_token)
