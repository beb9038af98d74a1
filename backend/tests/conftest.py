# backend/tests/conftest.py
from __future__ import annotations

import fnmatch
import itertools
import os
import secrets
import time
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
import redis
from fastapi.testclient import TestClient
from x402.schemas import SettleResponse
from x402.schemas.v1 import PaymentPayloadV1

# Минимальные env, чтобы Settings() собрался при импорте streamverse.main
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("CORS_ORIGINS", "http://localhost")
os.environ.setdefault("X402_PAY_TO", "0x209693Bc6afc0C5328bA36FaF03C514EF312287C")
os.environ.setdefault("X402_NETWORK", "polygon-amoy")
os.environ.setdefault("PUBLIC_BASE_URL", "http://testserver")
os.environ.setdefault("PRICE_PER_CHUNK", "1000")

from streamverse import deps  # noqa: E402
from streamverse.db.base import Base  # noqa: E402
from streamverse.errors import VerifierUnavailable  # noqa: E402
from streamverse.main import app  # noqa: E402
from streamverse.models import Video  # noqa: E402
from streamverse.payments.facilitator import VerificationResult  # noqa: E402
from streamverse.payments.proof import encode_payment_header  # noqa: E402
from streamverse.storage.client import LocalFileStorage  # noqa: E402

PAYER = "0x857b06519E91e3A54538791bDbb0E22373e36b66"


class FakeRedis:
    """In-memory subset of redis.Redis (decode_responses=True) used by the app."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.expiry: dict[str, float] = {}
        self.broken = False

    def _check(self) -> None:
        if self.broken:
            raise redis.ConnectionError("redis is down")

    def _alive(self, key: str) -> bool:
        exp = self.expiry.get(key)
        if exp is not None and exp <= time.monotonic():
            self.data.pop(key, None)
            self.expiry.pop(key, None)
        return key in self.data

    def ping(self) -> bool:
        self._check()
        return True

    def get(self, key: str) -> str | None:
        self._check()
        return self.data[key] if self._alive(key) else None

    def set(self, key: str, value: object, ex: int | None = None, nx: bool = False, xx: bool = False) -> bool | None:
        self._check()
        exists = self._alive(key)
        if (nx and exists) or (xx and not exists):
            return None
        self.data[key] = str(value)
        self.expiry.pop(key, None)
        if ex is not None:
            self.expiry[key] = time.monotonic() + int(ex)
        return True

    def setex(self, key: str, ttl: int, value: object) -> bool:
        return bool(self.set(key, value, ex=ttl))

    def delete(self, *keys: str) -> int:
        self._check()
        n = 0
        for k in keys:
            if self._alive(k):
                n += 1
            self.data.pop(k, None)
            self.expiry.pop(k, None)
        return n

    def exists(self, key: str) -> int:
        self._check()
        return int(self._alive(key))

    def incr(self, key: str) -> int:
        self._check()
        cur = int(self.data[key]) if self._alive(key) else 0
        self.data[key] = str(cur + 1)
        return cur + 1

    def expire(self, key: str, ttl: int) -> bool:
        self._check()
        if not self._alive(key):
            return False
        self.expiry[key] = time.monotonic() + int(ttl)
        return True

    def ttl(self, key: str) -> int:
        self._check()
        if not self._alive(key):
            return -2
        exp = self.expiry.get(key)
        return -1 if exp is None else max(0, int(exp - time.monotonic()))

    def scan_iter(self, match: str = "*") -> Iterator[str]:
        self._check()
        return iter([k for k in list(self.data) if self._alive(k) and fnmatch.fnmatch(k, match)])


class FakeVerifier:
    """Stands in for the facilitator: ``mode`` is "accept", "reject" or "down"."""

    def __init__(self) -> None:
        self.mode = "accept"
        self.reason = "invalid_exact_evm_payload_signature"
        self.calls: list[tuple[str, str]] = []
        self._tx = itertools.count(1)

    def verify(self, proof, requirements) -> VerificationResult:
        self.calls.append((proof.proof_id, requirements.resource))
        if self.mode == "down":
            raise VerifierUnavailable("verifier_timeout")
        if self.mode == "reject":
            return VerificationResult.rejected(self.reason)
        return VerificationResult.ok(
            SettleResponse(
                success=True,
                transaction="0x" + format(next(self._tx), "064x"),
                network=requirements.network,
                payer=proof.payer,
            )
        )


@pytest.fixture
def fake_redis(monkeypatch: pytest.MonkeyPatch) -> FakeRedis:
    fr = FakeRedis()
    monkeypatch.setattr(deps, "rds", fr)
    return fr


@pytest.fixture
def db_schema() -> Iterator[None]:
    Base.metadata.drop_all(deps.engine)
    Base.metadata.create_all(deps.engine)
    yield
    Base.metadata.drop_all(deps.engine)


@pytest.fixture
def db(db_schema):
    session = deps.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def media_dir(tmp_path: Path) -> Path:
    d = tmp_path / "media"
    d.mkdir()
    return d


@pytest.fixture
def verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture
def client(fake_redis, db_schema, media_dir, verifier) -> Iterator[TestClient]:
    app.dependency_overrides[deps.get_storage] = lambda: LocalFileStorage(media_dir)
    app.dependency_overrides[deps.get_verifier] = lambda: verifier
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_video(db, media_dir: Path) -> Callable[..., tuple[Video, bytes]]:
    """Factory: registers a video and writes its bytes to the local store."""

    def _create(
        *,
        duration: float = 125.0,
        size: int = 12_500_000,
        title: str = "Big Buck Bunny",
        tags: list[str] | None = None,
        address: str = PAYER,
        write: bool = True,
    ) -> tuple[Video, bytes]:
        cid = "bafy" + secrets.token_hex(16)
        data = os.urandom(size) if write else b""
        if write:
            (media_dir / cid).write_bytes(data)
        video = Video(
            public_address=address,
            title=title,
            cid=cid,
            tags=tags or [],
            size_bytes=size,
            duration_seconds=duration,
            chunk_duration_seconds=10.0,
            mime="video/mp4",
        )
        db.add(video)
        db.commit()
        db.refresh(video)
        return video, data

    return _create


@pytest.fixture
def pay_header() -> Callable[..., str]:
    """Factory for X-PAYMENT values; each call uses a fresh authorization nonce unless given one."""

    def _make(*, nonce: str | None = None, network: str = "polygon-amoy", scheme: str = "exact") -> str:
        now = int(time.time())
        return encode_payment_header(
            PaymentPayloadV1(
                scheme=scheme,
                network=network,
                payload={
                    "signature": "0x" + secrets.token_hex(65),
                    "authorization": {
                        "from": PAYER,
                        "to": os.environ["X402_PAY_TO"],
                        "value": "1000",
                        "validAfter": str(now - 600),
                        "validBefore": str(now + 60),
                        "nonce": nonce or "0x" + secrets.token_hex(32),
                    },
                },
            )
        )

    return _make
