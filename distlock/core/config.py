"""Runtime settings for the lock manager.

Values come from ``DISTLOCK_*`` environment variables or a ``.env`` file.
"""

from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_SOCKET_TIMEOUT: float = 5.0

    # Prepended to every namespace to form the store key
    KEY_PREFIX: str = ""

    # Lease timings (seconds)
    ACQUIRE_LEASE_SECONDS: float = 3.0
    RUN_LEASE_SECONDS: float = 30.0
    RENEW_INTERVAL_SECONDS: float = 20.0

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    model_config = {
        "env_prefix": "DISTLOCK_",
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def _check_lease_timings(self) -> "Settings":
        if self.ACQUIRE_LEASE_SECONDS <= 0 or self.RUN_LEASE_SECONDS <= 0:
            raise ValueError("lease durations must be positive")
        if not 0 < self.RENEW_INTERVAL_SECONDS < self.RUN_LEASE_SECONDS:
            raise ValueError(
                "RENEW_INTERVAL_SECONDS must be positive and shorter than RUN_LEASE_SECONDS"
            )
        return self


_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings()
    return _settings_cache


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings_cache
    _settings_cache = None
