from __future__ import annotations

from collections.abc import Generator

import redis
from fastapi import Depends
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from streamverse.config import Settings, settings
from streamverse.payments.facilitator import FacilitatorVerifier, SettlementVerifier
from streamverse.payments.gate import PaymentGate
from streamverse.payments.replay import ReplayGuard
from streamverse.storage.client import ChunkStorage, IpfsStorage, LocalFileStorage


def get_settings() -> Settings:
    return settings


if settings.is_sqlite:
    # dev/test: a single shared connection so in-memory databases survive across threads
    engine = create_engine(
        settings.database_url,
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(
        settings.database_url,
        future=True,
        pool_size=20,
        max_overflow=10,
        pool_pre_ping=True,
    )
SessionLocal = sessionmaker(engine, autoflush=False, autocommit=False, future=True)

# Redis connection with pool
rds = redis.Redis.from_url(
    settings.redis_dsn,
    decode_responses=True,
    max_connections=int(settings.redis_max_connections),
)


def get_redis() -> redis.Redis:
    """Dependency to get the Redis client instance."""
    return rds


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


_storage_instance: ChunkStorage | None = None
_verifier_instance: SettlementVerifier | None = None


def get_storage() -> ChunkStorage:
    global _storage_instance
    if _storage_instance is None:
        if settings.storage_backend == "local":
            _storage_instance = LocalFileStorage(settings.local_storage_dir)
        else:
            _storage_instance = IpfsStorage(
                api_url=settings.ipfs_api_url,
                timeout=float(settings.ipfs_timeout_seconds),
            )
    return _storage_instance


def get_verifier() -> SettlementVerifier:
    global _verifier_instance
    if _verifier_instance is None:
        _verifier_instance = FacilitatorVerifier(
            base_url=settings.facilitator_url,
            timeout=float(settings.verifier_timeout_seconds),
        )
    return _verifier_instance


def get_gate(
    redis_client: redis.Redis = Depends(get_redis),
    verifier: SettlementVerifier = Depends(get_verifier),
    cfg: Settings = Depends(get_settings),
) -> PaymentGate:
    guard = ReplayGuard(
        redis_client,
        window_seconds=int(cfg.replay_window_seconds),
        # a reservation must outlive a verify + settle round trip
        pending_ttl_seconds=int(cfg.verifier_timeout_seconds) * 3 + 5,
    )
    return PaymentGate(verifier, guard)
