from __future__ import annotations

import enum
import logging

import redis

logger = logging.getLogger(__name__)

KEY_PREFIX = "x402:proof:"
PENDING = "pending"
CONSUMED = "consumed"


class Reservation(enum.Enum):
    RESERVED = "reserved"
    REPLAY = "replay"
    FOREIGN = "foreign"


def _as_str(val: object) -> str:
    if isinstance(val, (bytes, bytearray)):
        return val.decode("utf-8", errors="ignore")
    return str(val)


class ReplayGuard:
    """Single-use tracking of payment proofs in Redis.

    One key per proof id holds ``"<state>|<resource>"``. Reservation is a
    ``SET NX`` so two concurrent requests carrying the same proof cannot both
    get past it, even across server instances.
    """

    def __init__(self, redis_client: redis.Redis, window_seconds: int = 86_400, pending_ttl_seconds: int = 35) -> None:
        self.rds = redis_client
        self.window_seconds = int(window_seconds)
        self.pending_ttl_seconds = int(pending_ttl_seconds)

    @staticmethod
    def key(proof_id: str) -> str:
        return f"{KEY_PREFIX}{proof_id}"

    def reserve(self, proof_id: str, resource: str) -> Reservation:
        key = self.key(proof_id)
        ok = self.rds.set(key, f"{PENDING}|{resource}", nx=True, ex=self.pending_ttl_seconds)
        if ok:
            return Reservation.RESERVED
        current = self.rds.get(key)
        if current is None:
            # expired between SET and GET; one more attempt
            ok = self.rds.set(key, f"{PENDING}|{resource}", nx=True, ex=self.pending_ttl_seconds)
            return Reservation.RESERVED if ok else Reservation.REPLAY
        _state, _, bound_to = _as_str(current).partition("|")
        if bound_to != resource:
            return Reservation.FOREIGN
        return Reservation.REPLAY

    def commit(self, proof_id: str, resource: str) -> None:
        self.rds.set(self.key(proof_id), f"{CONSUMED}|{resource}", ex=self.window_seconds)

    def release(self, proof_id: str, resource: str) -> None:
        key = self.key(proof_id)
        try:
            current = self.rds.get(key)
            if current is not None and _as_str(current) == f"{PENDING}|{resource}":
                self.rds.delete(key)
        except redis.RedisError as e:
            # the pending TTL clears it anyway
            logger.warning("ReplayGuard.release failed for %s: %s", proof_id, e, exc_info=True)

    def is_consumed(self, proof_id: str) -> bool:
        current = self.rds.get(self.key(proof_id))
        return current is not None and _as_str(current).startswith(CONSUMED + "|")
