from streamverse.config import Settings


def test_cors_parsing(monkeypatch):
    monkeypatch.setenv("CORS_ORIGINS", "http://a.com, http://b.com, http://a.com")
    s = Settings()
    assert s.cors_origins == ["http://a.com", "http://b.com"]


def test_cors_json_and_wildcard(monkeypatch):
    monkeypatch.setenv("CORS_ORIGINS", '["http://x.io"]')
    assert Settings().cors_origins == ["http://x.io"]
    monkeypatch.setenv("CORS_ORIGINS", "*")
    assert Settings().cors_origins == ["*"]


def test_redis_url_wins_over_dsn(monkeypatch):
    monkeypatch.setenv("REDIS_URL", "redis://a:6379/0")
    monkeypatch.setenv("REDIS_DSN", "redis://b:6379/0")
    assert Settings().redis_dsn == "redis://a:6379/0"
    monkeypatch.delenv("REDIS_URL")
    assert Settings().redis_dsn == "redis://b:6379/0"


def test_payment_settings(monkeypatch):
    monkeypatch.setenv("PRICE_PER_CHUNK", "2500")
    monkeypatch.setenv("X402_NETWORK", "base-sepolia")
    s = Settings()
    assert s.price_per_chunk == 2500
    assert s.network == "base-sepolia"
    assert s.chunk_duration_seconds == 10.0


def test_debug_dump_masks_secrets(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg://user:hunter2@db:5432/streamverse")
    dump = Settings().debug_dump()
    assert "hunter2" not in dump["database_url"]
