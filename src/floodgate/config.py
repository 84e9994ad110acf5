from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from floodgate.core.policy import PresetName


class Settings(BaseSettings):
    app_name: str = "Floodgate API"
    # Unset means local-only mode.
    redis_url: str | None = None
    redis_socket_timeout: float = Field(default=0.5, gt=0)
    key_prefix: str = "ratelimit:"
    rate_limit_preset: PresetName = PresetName.STANDARD
    sweep_interval_seconds: float = Field(default=5 * 60, gt=0)
    stale_after_seconds: float = Field(default=60 * 60, gt=0)
    # 0 disables the background health probe.
    health_check_interval_seconds: float = Field(default=30, ge=0)
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
