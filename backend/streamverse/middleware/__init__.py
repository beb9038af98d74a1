from .observability import ObservabilityMiddleware
from .rate_limit import RateLimitMiddleware
from .security_headers import SecurityHeadersMiddleware

__all__ = [
    "ObservabilityMiddleware",
    "RateLimitMiddleware",
    "SecurityHeadersMiddleware",
]
