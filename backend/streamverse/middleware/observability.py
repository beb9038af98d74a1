from __future__ import annotations

import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from streamverse.telemetry.logging import get_logger
from streamverse.telemetry.metrics import api_request_duration_seconds, api_requests_total


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        trace_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
        logger = get_logger(trace_id=trace_id)

        method = request.method.upper()
        t0 = time.perf_counter()
        status_code = 500
        result_str = "error"
        response: Response | None = None
        try:
            response = await call_next(request)
            status_code = response.status_code
            # 402 is the normal first leg of a paid request, not a failure
            if status_code < 400:
                result_str = "ok"
            elif status_code == 402:
                result_str = "payment_required"
            else:
                result_str = "error"
            response.headers.setdefault("X-Request-Id", trace_id)
            return response
        finally:
            dt = time.perf_counter() - t0
            # path template is only known after routing
            route = request.scope.get("route")
            endpoint = getattr(route, "path", None) or request.url.path
            try:
                api_requests_total.labels(method=method, endpoint=endpoint, status=str(status_code)).inc()
                api_request_duration_seconds.labels(endpoint=endpoint).observe(dt)
            except Exception:
                pass
            try:
                logger.info(
                    "request",
                    action=f"{method} {endpoint}",
                    duration_ms=round(dt * 1000.0, 3),
                    result=result_str,
                    status=status_code,
                )
            except Exception:
                pass
