import os
from functools import lru_cache

from pydantic import BaseModel, Field, field_validator


class Settings(BaseModel):
    RATEFEED_REST_URL: str = "https://api.coincap.io/v2/assets"
    RATEFEED_WS_URL: str = "wss://ws.coincap.io/prices"
    RATEFEED_POLL_INTERVAL_SEC: float = Field(default=20.0, gt=0)
    RATEFEED_STALE_AFTER_SEC: float = Field(default=30.0, gt=0)
    RATEFEED_RECONNECT_DELAY_SEC: float = Field(default=5.0, ge=0)
    RATEFEED_HTTP_TIMEOUT_SEC: float = Field(default=5.0, gt=0)
    RATEFEED_REFERENCE_CURRENCY: str = "USD"

    @field_validator("RATEFEED_REFERENCE_CURRENCY")
    @classmethod
    def normalize_reference_currency(cls, value: str) -> str:
        return value.strip().upper()

    @classmethod
    def from_env(cls) -> "Settings":
        # unset or empty variables fall back to the field defaults
        raw = {name: os.getenv(name) for name in cls.model_fields}
        return cls.model_validate({name: value for name, value in raw.items() if value})


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
