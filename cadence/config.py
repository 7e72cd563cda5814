"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Cadence configuration. All values come from environment variables."""

    # Storage
    storage_backend: str = Field(default="json")
    data_path: Path = Field(default=Path("data/schedules-data.json"))
    database_path: Path = Field(default=Path("data/cadence.db"))

    # Scheduler
    scheduler_timezone: str = Field(default="UTC")
    cycle_interval_minutes: int = Field(default=15)
    inter_entry_delay_seconds: float = Field(default=2.0)
    failure_threshold: int = Field(default=5)

    # Execution history
    max_records_per_entry: int = Field(default=100)
    execution_retention_days: int = Field(default=30)

    # External action endpoint
    action_endpoint_url: str = Field(default="http://localhost:8000/api/analyze")
    action_timeout_seconds: float = Field(default=60.0)

    # Notifications
    notification_timeout_seconds: float = Field(default=30.0)

    # Owner keys
    owner_key_salt: str = Field(default="")
    owner_keys: str = Field(default="")

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def get_owner_keys(self) -> dict[str, str]:
        """Parse OWNER_KEYS (``hash:tier,hash:tier``) into a hash → tier mapping."""
        if not self.owner_keys.strip():
            return {}
        result: dict[str, str] = {}
        for pair in self.owner_keys.split(","):
            if ":" not in pair:
                continue
            hashed, tier = pair.split(":", 1)
            if hashed.strip():
                result[hashed.strip()] = tier.strip() or "pro"
        return result


settings = Settings()
