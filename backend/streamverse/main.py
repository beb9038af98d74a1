import logging
import math

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from streamverse.config import settings
from streamverse.errors import PaymentRequired, StreamError
from streamverse.middleware import ObservabilityMiddleware, RateLimitMiddleware, SecurityHeadersMiddleware
from streamverse.payments.proof import PAYMENT_RESPONSE_HEADER
from streamverse.routers.health import router as health_router
from streamverse.routers.stream import router as stream_router
from streamverse.routers.videos import router as videos_router
from streamverse.telemetry.logging import init_logging
from streamverse.telemetry.metrics import router as metrics_router

# Initialize structured logging
init_logging()
logger = logging.getLogger("streamverse")

app = FastAPI(title="StreamVerse API")

# Trust X-Forwarded-For/Proto from reverse proxy
app.add_middleware(ProxyHeadersMiddleware)

# Observability middleware (request metrics + structured logs)
app.add_middleware(ObservabilityMiddleware)

# Global rate limit for unpaid requests
app.add_middleware(
    RateLimitMiddleware,
    limit_per_minute=int(settings.public_rate_limit_per_minute),
    paid_limit_per_minute=int(settings.paid_rate_limit_per_minute),
)

# CORS: the player reads the payment and chunk headers from JS
_allowed_origins = settings.cors_origins
_allow_credentials = _allowed_origins != ["*"]
app.add_middleware(
    CORSMiddleware,  # type: ignore[arg-type]
    allow_origins=(["*"] if _allowed_origins == ["*"] else _allowed_origins),
    allow_credentials=_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[
        PAYMENT_RESPONSE_HEADER,
        "X-Chunk-Index",
        "X-Total-Chunks",
        "X-Chunk-Range",
        "X-Transaction-Hash",
        "Retry-After",
    ],
)

# Security headers for all responses
app.add_middleware(SecurityHeadersMiddleware)


# Convert 422 validation errors to 400
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Sanitize pydantic error objects so they are always JSON serializable
    sanitized: list[dict] = []
    for err in exc.errors():
        e = dict(err)
        ctx = e.get("ctx")
        if isinstance(ctx, dict):
            e["ctx"] = {str(k): str(v) for k, v in ctx.items()}
        elif ctx is not None:
            e["ctx"] = str(ctx)
        if "input" in e:
            val = e["input"]
            if isinstance(val, float) and not math.isfinite(val):
                e["input"] = str(val)
            elif not isinstance(val, (str, int, float, bool, type(None), list, dict)):
                e["input"] = str(val)
        sanitized.append(e)
    return JSONResponse(status_code=400, content={"detail": sanitized})


@app.exception_handler(StreamError)
async def stream_error_handler(request: Request, exc: StreamError) -> JSONResponse:
    if isinstance(exc, PaymentRequired):
        logger.debug("payment required for %s", request.url.path)
    elif exc.status_code >= 500:
        logger.warning("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.detail)
    else:
        logger.info("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=exc.headers or None)


app.include_router(health_router)
app.include_router(metrics_router)  # /metrics
app.include_router(stream_router)
app.include_router(videos_router)
