from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

USER_ID_HEADER = "X-User-Id"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    debug: bool = False
    log_level: str | None = None
    app_name: str = "Messaging Core"
    api_v1_prefix: str = "/v1"
    database_url: str = "sqlite:///./messaging.db"

    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173", "http://127.0.0.1:5173"])

    message_max_length: int = 2000
    user_search_limit: int = 20

    ws_idle_timeout_sec: int = 300
    ws_max_frame_bytes: int = 16_384
    ws_rate_limit_window_sec: int = 10
    ws_rate_limit_max_frames: int = 50
    ws_outgoing_queue_size: int = 200

    api_base_url: str = "http://localhost:8000/v1"
    ws_url: str = "ws://localhost:8000/v1/ws"
    http_timeout_sec: float = 10.0
    ws_reconnect_delay_sec: float = 0.8
    ws_reconnect_max_delay_sec: float = 10.0
    ws_reconnect_attempts: int = 10

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, list):
            return value
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return []


@lru_cache
def get_settings() -> Settings:
    return Settings()
