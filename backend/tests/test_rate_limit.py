from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient

from streamverse.middleware import RateLimitMiddleware


def _app(limit: int, paid_limit: int = 1200) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, limit_per_minute=limit, paid_limit_per_minute=paid_limit)

    @app.get("/info")
    def info() -> dict[str, str]:
        return {"ok": "1"}

    @app.get("/chunk")
    def chunk() -> dict[str, str]:
        return {"ok": "1"}

    @app.post("/api/videos")
    def create() -> dict[str, str]:
        return {"ok": "1"}

    @app.get("/live")
    def live() -> dict[str, str]:
        return {"status": "alive"}

    return app


def test_public_rate_limit(fake_redis):
    client = TestClient(_app(3))
    statuses = [client.get("/info").status_code for _ in range(5)]
    assert statuses[:3] == [200, 200, 200]
    assert statuses[3] == 429
    r = client.get("/info")
    assert r.json() == {"detail": "rate_limited"}
    assert int(r.headers["Retry-After"]) > 0


def test_junk_payment_header_does_not_bypass_limit(fake_redis):
    client = TestClient(_app(1))
    assert client.post("/api/videos", headers={"X-PAYMENT": "abc"}).status_code == 200
    assert client.post("/api/videos", headers={"X-PAYMENT": "abc"}).status_code == 429
    assert client.get("/info", headers={"X-PAYMENT": "abc"}).status_code == 429
    assert client.get("/chunk", headers={"X-PAYMENT": "abc"}).status_code == 429


def test_valid_payment_header_off_chunk_path_is_public(fake_redis, pay_header):
    client = TestClient(_app(1))
    assert client.get("/info", headers={"X-PAYMENT": pay_header()}).status_code == 200
    assert client.get("/info", headers={"X-PAYMENT": pay_header()}).status_code == 429


def test_paid_chunks_use_their_own_bucket(fake_redis, pay_header):
    client = TestClient(_app(1, paid_limit=2))
    assert client.get("/info").status_code == 200
    assert client.get("/info").status_code == 429
    statuses = [client.get("/chunk", headers={"X-PAYMENT": pay_header()}).status_code for _ in range(3)]
    assert statuses == [200, 200, 429]
    assert any(k.startswith("rl:paid:") for k in fake_redis.data)


def test_health_paths_not_counted(fake_redis):
    client = TestClient(_app(1))
    for _ in range(3):
        assert client.get("/live").status_code == 200


def test_fails_open_when_redis_down(fake_redis):
    fake_redis.broken = True
    client = TestClient(_app(1))
    assert all(client.get("/info").status_code == 200 for _ in range(3))
