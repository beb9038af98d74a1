from pydantic import AnyHttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class PlayerSettings(BaseSettings):
    STREAMVERSE_API_URL: AnyHttpUrl = AnyHttpUrl("http://localhost:4021")
    STREAMVERSE_TIMEOUT: float = 30.0

    # hex private key of the paying wallet (0x + 64 hex)
    PLAYER_PRIVATE_KEY: str | None = None

    PLAYER_MAX_RETRIES: int = 3
    PLAYER_INITIAL_BACKOFF: float = 1.0
    PLAYER_MAX_BACKOFF: float = 30.0
    PLAYER_BACKOFF_MULTIPLIER: float = 2.0

    PROM_PORT: int | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = PlayerSettings()
