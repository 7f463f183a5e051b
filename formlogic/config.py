"""
Engine settings, read from FORMLOGIC_* environment variables or .env.local.
"""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FORMLOGIC_",
        env_file=".env.local",
        case_sensitive=False,
        extra="ignore",
    )

    regex_timeout_ms: int = Field(default=100, ge=1)
    max_condition_depth: int = Field(default=32, ge=1)
    log_level: str = "WARNING"

    @property
    def regex_timeout(self) -> float:
        return self.regex_timeout_ms / 1000.0


def get_settings() -> EngineSettings:
    return EngineSettings()
