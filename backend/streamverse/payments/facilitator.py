from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, TypeVar

import httpx
from x402.http.facilitator_client import FacilitatorConfig, FacilitatorResponseError, HTTPFacilitatorClientSync
from x402.schemas import SettleResponse

from streamverse.errors import VerifierUnavailable
from streamverse.payments.proof import PaymentProof, PaymentRequirements
from streamverse.telemetry.metrics import verifier_latency_seconds

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class VerificationResult:
    accepted: bool
    receipt: SettleResponse | None = None
    reason: str | None = None

    @classmethod
    def ok(cls, receipt: SettleResponse) -> VerificationResult:
        return cls(accepted=True, receipt=receipt)

    @classmethod
    def rejected(cls, reason: str) -> VerificationResult:
        return cls(accepted=False, reason=reason)


class SettlementVerifier(Protocol):
    def verify(self, proof: PaymentProof, requirements: PaymentRequirements) -> VerificationResult: ...


class FacilitatorVerifier:
    """Verifies and settles proofs through an x402 facilitator (``/verify`` then ``/settle``).

    Transport failures, timeouts, non-200 answers and unparseable bodies all
    raise ``VerifierUnavailable``; callers must fail closed.
    """

    def __init__(self, base_url: str, timeout: float = 10.0, client: httpx.Client | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = float(timeout)
        self._facilitator = HTTPFacilitatorClientSync(
            FacilitatorConfig(url=self.base_url, timeout=self.timeout, http_client=client)
        )

    def close(self) -> None:
        self._facilitator.close()

    def _call(self, step: str, fn: Callable[[], T]) -> T:
        t0 = time.perf_counter()
        try:
            return fn()
        except httpx.TimeoutException as e:
            raise VerifierUnavailable("verifier_timeout") from e
        except httpx.HTTPError as e:
            raise VerifierUnavailable("verifier_unreachable") from e
        except FacilitatorResponseError as e:
            logger.warning("facilitator %s sent an unreadable answer: %s", step, e)
            raise VerifierUnavailable("verifier_bad_response") from e
        except ValueError as e:
            logger.warning("facilitator %s failed: %s", step, e)
            raise VerifierUnavailable("verifier_error") from e
        finally:
            verifier_latency_seconds.labels(step=step).observe(time.perf_counter() - t0)

    def verify(self, proof: PaymentProof, requirements: PaymentRequirements) -> VerificationResult:
        verdict = self._call("verify", lambda: self._facilitator.verify(proof.envelope, requirements))
        if not verdict.is_valid:
            reason = verdict.invalid_reason or "invalid_payment"
            logger.info("facilitator rejected proof %s: %s", proof.proof_id, reason)
            return VerificationResult.rejected(reason)

        settled = self._call("settle", lambda: self._facilitator.settle(proof.envelope, requirements))
        if not settled.success:
            reason = settled.error_reason or "settlement_failed"
            logger.info("facilitator failed to settle proof %s: %s", proof.proof_id, reason)
            return VerificationResult.rejected(reason)
        if not settled.transaction:
            # no transaction reference means nothing to audit
            return VerificationResult.rejected("settlement_missing_transaction")

        return VerificationResult.ok(
            settled.model_copy(
                update={
                    "payer": settled.payer or verdict.payer or proof.payer,
                    "network": settled.network or requirements.network,
                }
            )
        )
