from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    FINNHUB_API_KEY: Optional[str] = None
    FINNHUB_BASE_URL: str = "https://finnhub.io/api/v1"

    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"

    HTTP_TIMEOUT_SEC: float = 10.0

    STARTING_BALANCE_USD: float = 100_000.0
    PRICE_TICK_SEC: float = 5.0
    BOT_TICK_SEC: float = 5.0

    TRAIL_FACTOR: float = 0.02
    DEFAULT_TRAILING_SL_PCT: float = 0.05
    AUTO_ENTRY_SIZE_PCT: float = 0.05

    EVENT_LOG_SIZE: int = 50
    HISTORY_POINTS: int = 15
    RANDOM_SEED: Optional[int] = None

    LOG_FILE: str = "logs/runtime.log"
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @field_validator("TRAIL_FACTOR", "DEFAULT_TRAILING_SL_PCT", "AUTO_ENTRY_SIZE_PCT")
    @classmethod
    def _fraction(cls, v: float) -> float:
        if not 0 < v < 1:
            raise ValueError("fraction must be in (0, 1)")
        return v

    @field_validator("STARTING_BALANCE_USD", "PRICE_TICK_SEC", "BOT_TICK_SEC", "HTTP_TIMEOUT_SEC")
    @classmethod
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("EVENT_LOG_SIZE", "HISTORY_POINTS")
    @classmethod
    def _positive_int(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def _level(cls, v: str) -> str:
        allowed = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(allowed)}")
        return v.upper()


settings = Settings()
