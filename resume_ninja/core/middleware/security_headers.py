from typing import Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware

DEFAULT_SECURITY_HEADERS: Dict[str, str] = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=(), interest-cohort=()",
}


def build_csp(supabase_url: Optional[str] = None) -> str:
    """Content-Security-Policy for API responses and the app shell."""
    connect_src = ["'self'"]
    if supabase_url:
        connect_src.append(supabase_url.rstrip("/"))
    else:
        connect_src.append("https://*.supabase.co")
    return "; ".join([
        "default-src 'self'",
        "script-src 'self'",
        "style-src 'self' 'unsafe-inline'",
        "img-src 'self' data: blob: https:",
        "font-src 'self' data:",
        f"connect-src {' '.join(connect_src)}",
        "frame-ancestors 'none'",
        "base-uri 'self'",
        "form-action 'self'",
    ])


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Set hardening headers on every response, including error responses."""

    def __init__(self, app, *, csp: Optional[str] = None, headers: Optional[Dict[str, str]] = None):
        super().__init__(app)
        self.headers = dict(headers if headers is not None else DEFAULT_SECURITY_HEADERS)
        if csp:
            self.headers["Content-Security-Policy"] = csp

    async def dispatch(self, request, call_next):
        response = await call_next(request)
        for name, value in self.headers.items():
            response.headers[name] = value
        return response
