"""Client-side error taxonomy, mapped back from the server's status codes."""

from __future__ import annotations

from typing import Any


class PlayerError(Exception):
    retryable = False

    def __init__(self, detail: str = "", *, retry_after: float | None = None) -> None:
        super().__init__(detail or type(self).__name__)
        self.detail = detail
        self.retry_after = retry_after


class PaymentRequired(PlayerError):
    """402 without a proof: ``accepts`` lists what the server will take."""

    def __init__(self, detail: str = "payment_required", *, accepts: list[dict[str, Any]] | None = None) -> None:
        super().__init__(detail)
        self.accepts = list(accepts or [])


class PaymentRejected(PlayerError):
    def __init__(self, detail: str = "payment_rejected", *, accepts: list[dict[str, Any]] | None = None) -> None:
        super().__init__(detail)
        self.accepts = list(accepts or [])


class MalformedProof(PlayerError):
    pass


class ReplayDetected(PlayerError):
    pass


class ResourceNotFound(PlayerError):
    pass


class WalletError(PlayerError):
    pass


class TransientNetworkError(PlayerError):
    retryable = True


class VerifierUnavailable(TransientNetworkError):
    pass


class StorageUnavailable(TransientNetworkError):
    pass
