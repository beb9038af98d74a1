from __future__ import annotations

import logging
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from streamverse import deps
from streamverse.errors import MalformedProof
from streamverse.payments.proof import PAYMENT_HEADER, decode_payment_header

logger = logging.getLogger(__name__)

PAID_PATH = "/chunk"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP fixed window limiter.

    Paid ``/chunk`` requests (an ``X-PAYMENT`` header that decodes) are counted
    in their own, larger bucket. Anything else, including a junk payment
    header on any path, counts against the public limit.
    """

    def __init__(self, app: ASGIApp, limit_per_minute: int = 600, paid_limit_per_minute: int = 1200) -> None:
        super().__init__(app)
        self.limit = int(limit_per_minute)
        self.paid_limit = int(paid_limit_per_minute)
        self._exempt_exact = {"/metrics", "/live"}

    @staticmethod
    def _carries_proof(request: Request) -> bool:
        if request.url.path != PAID_PATH:
            return False
        try:
            return decode_payment_header(request.headers.get(PAYMENT_HEADER)) is not None
        except MalformedProof:
            return False

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in self._exempt_exact:
            return await call_next(request)

        bucket, limit = ("paid", self.paid_limit) if self._carries_proof(request) else ("ip", self.limit)
        # IP is used for limiting only, never logged
        ip = (request.client.host if request.client else "unknown") or "unknown"
        window = int(time.time()) // 60
        key = f"rl:{bucket}:{ip}:{window}"
        try:
            rds = deps.get_redis()
            cur = int(rds.incr(key))  # type: ignore[arg-type]
            if cur == 1:
                rds.expire(key, 65)
            if cur > limit:
                ttl = int(rds.ttl(key) or 60)  # type: ignore[arg-type]
                headers = {"Retry-After": str(ttl if ttl > 0 else 60)}
                # returning instead of raising keeps TestClient from bubbling the exception
                return JSONResponse(status_code=429, content={"detail": "rate_limited"}, headers=headers)
        except Exception as e:
            # Fail-open if Redis is down
            logger.warning("RateLimitMiddleware failed to access Redis: %s", e)
        return await call_next(request)
