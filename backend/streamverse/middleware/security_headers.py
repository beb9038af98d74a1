from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        headers = response.headers
        headers.setdefault("X-Content-Type-Options", "nosniff")
        headers.setdefault("X-Frame-Options", "DENY")
        headers.setdefault("Referrer-Policy", "no-referrer")
        headers.setdefault(
            "Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'; base-uri 'none'"
        )
        content_type = headers.get("Content-Type", "")
        # paid chunks and payment challenges are per-request; intermediaries must not cache them
        if "application/json" in content_type or "application/octet-stream" in content_type:
            headers.setdefault("Cache-Control", "no-store")
        if request.headers.get("X-Forwarded-Proto", "").lower() == "https":
            headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains")
        return response
