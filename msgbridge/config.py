from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MSGBRIDGE_", env_file=".env", extra="ignore")

    ENV: str = "dev"
    LOG_JSON: bool = True
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    # Reserved channel every outbound request is sent on
    REQUEST_CHANNEL: str = "message-request"
    # Bound applied when send_request() is called without a timeout
    DEFAULT_TIMEOUT_MS: int = 2000
    # Identifier format: {prefix}-{namespace}-{seq}-{epoch_ms}
    ID_PREFIX: str = "msg"
    NAMESPACE_IDS: bool = True

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
