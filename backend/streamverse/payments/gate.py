from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Union

import redis
from x402.schemas import SettleResponse

from streamverse.errors import VerifierUnavailable
from streamverse.payments.facilitator import SettlementVerifier
from streamverse.payments.proof import PaymentProof, PaymentRequirements
from streamverse.payments.replay import Reservation, ReplayGuard
from streamverse.telemetry.metrics import payment_decisions_total

logger = logging.getLogger(__name__)

RejectionKind = Literal["rejected", "replay"]


@dataclass(frozen=True)
class PaymentRequired:
    requirements: PaymentRequirements


@dataclass(frozen=True)
class Accepted:
    receipt: SettleResponse
    proof_id: str


@dataclass(frozen=True)
class Rejected:
    reason: str
    kind: RejectionKind = "rejected"


GateDecision = Union[PaymentRequired, Accepted, Rejected]


class PaymentGate:
    """No valid, unused payment means no bytes.

    ``evaluate`` never raises for a bad proof; it returns a ``Rejected``
    decision. Infrastructure failures (facilitator or replay store) raise
    ``VerifierUnavailable`` and nothing is served.
    """

    def __init__(self, verifier: SettlementVerifier, guard: ReplayGuard) -> None:
        self.verifier = verifier
        self.guard = guard

    def evaluate(
        self, resource: str, requirements: PaymentRequirements, proof: PaymentProof | None
    ) -> GateDecision:
        if proof is None:
            payment_decisions_total.labels(decision="payment_required").inc()
            logger.debug("payment required for %s", resource)
            return PaymentRequired(requirements)

        if proof.scheme != requirements.scheme:
            return self._reject("unsupported_scheme")
        if proof.network != requirements.network:
            return self._reject("network_mismatch")

        proof_id = proof.proof_id
        try:
            reservation = self.guard.reserve(proof_id, resource)
        except redis.RedisError as e:
            logger.error("replay store unavailable while reserving %s: %s", proof_id, e)
            raise VerifierUnavailable("replay_store_unavailable") from e

        if reservation is Reservation.REPLAY:
            payment_decisions_total.labels(decision="replay").inc()
            logger.warning("replayed payment proof %s for %s", proof_id, resource)
            return Rejected("replay_detected", kind="replay")
        if reservation is Reservation.FOREIGN:
            return self._reject("proof_bound_to_other_resource")

        try:
            result = self.verifier.verify(proof, requirements)
        except VerifierUnavailable:
            self.guard.release(proof_id, resource)
            payment_decisions_total.labels(decision="verifier_unavailable").inc()
            logger.warning("verifier unavailable for %s, failing closed", resource)
            raise
        except Exception:
            self.guard.release(proof_id, resource)
            raise

        if not result.accepted or result.receipt is None:
            self.guard.release(proof_id, resource)
            return self._reject(result.reason or "payment_rejected")

        try:
            self.guard.commit(proof_id, resource)
        except redis.RedisError as e:
            # settled but not recorded: the pending key still blocks replays until it expires
            logger.error("failed to commit consumed proof %s: %s", proof_id, e)
        payment_decisions_total.labels(decision="accepted").inc()
        logger.info("payment accepted for %s tx=%s", resource, result.receipt.transaction)
        return Accepted(result.receipt, proof_id)

    @staticmethod
    def _reject(reason: str) -> Rejected:
        payment_decisions_total.labels(decision="rejected").inc()
        logger.info("payment rejected: %s", reason)
        return Rejected(reason)
