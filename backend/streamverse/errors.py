from __future__ import annotations

from typing import Any

X402_VERSION = 1


class StreamError(Exception):
    """Base for errors that map onto a single HTTP response."""

    status_code: int = 500
    detail: str = "internal_error"
    retryable: bool = False
    retry_after: int | None = None

    def __init__(self, detail: str | None = None, *, headers: dict[str, str] | None = None) -> None:
        super().__init__(detail or self.detail)
        if detail:
            self.detail = detail
        self.headers = dict(headers or {})
        if self.retry_after is not None:
            self.headers.setdefault("Retry-After", str(self.retry_after))

    def to_body(self) -> dict[str, Any]:
        return {"detail": self.detail, "retryable": self.retryable}


class _PaymentError(StreamError):
    status_code = 402

    def __init__(
        self,
        detail: str | None = None,
        *,
        accepts: list[dict[str, Any]] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(detail, headers=headers)
        self.accepts = list(accepts or [])

    def to_body(self) -> dict[str, Any]:
        # x402 wire shape: the client picks one of ``accepts`` and pays
        return {"x402Version": X402_VERSION, "error": self.detail, "accepts": self.accepts}


class PaymentRequired(_PaymentError):
    detail = "payment_required"


class PaymentRejected(_PaymentError):
    detail = "payment_rejected"


class MalformedProof(StreamError):
    status_code = 400
    detail = "malformed_proof"


class ReplayDetected(StreamError):
    status_code = 409
    detail = "replay_detected"


class ResourceNotFound(StreamError):
    status_code = 404
    detail = "not_found"


class VerifierUnavailable(StreamError):
    status_code = 503
    detail = "verifier_unavailable"
    retryable = True
    retry_after = 5


class StorageUnavailable(StreamError):
    status_code = 502
    detail = "storage_unavailable"
    retryable = True
