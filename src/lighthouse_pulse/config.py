"""Configuration management for lighthouse-pulse.

Loads settings from environment variables and .env files using pydantic-settings.
Provides a cached singleton via get_config().
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MEMORY_DATA_DIR = ":memory:"


class PulseConfig(BaseSettings):
    """Application configuration sourced from environment variables."""

    data_dir: str = Field("~/.lighthouse-pulse", alias="PULSE_DATA_DIR")
    repo_path: str = Field(".", alias="PULSE_REPO_PATH")
    audit_backend: Literal["lighthouse", "pagespeed"] = Field("lighthouse", alias="PULSE_AUDIT_BACKEND")
    lighthouse_path: str = Field("lighthouse", alias="LIGHTHOUSE_PATH")
    chrome_path: str | None = Field(None, alias="CHROME_PATH")
    chrome_flags: str = Field("--headless=new --no-sandbox --disable-gpu", alias="PULSE_CHROME_FLAGS")
    chrome_startup_timeout: float = Field(30.0, alias="PULSE_CHROME_STARTUP_TIMEOUT")
    pagespeed_api_key: str | None = Field(None, alias="PAGESPEED_API_KEY")
    pagespeed_timeout: int = Field(120, alias="PAGESPEED_TIMEOUT")
    pagespeed_max_retries: int = Field(2, alias="PAGESPEED_MAX_RETRIES")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def in_memory(self) -> bool:
        return self.data_dir == MEMORY_DATA_DIR

    @property
    def database_path(self) -> str:
        """SQLite database location, or ':memory:' for an ephemeral store."""
        if self.in_memory:
            return MEMORY_DATA_DIR
        return str(Path(self.data_dir).expanduser() / "audits.db")

    @property
    def results_path(self) -> str | None:
        """Directory holding raw Lighthouse reports, one JSON file per audit."""
        if self.in_memory:
            return None
        return str(Path(self.data_dir).expanduser() / "results")

    @property
    def chrome_flag_list(self) -> list[str]:
        return self.chrome_flags.split()


@lru_cache(maxsize=1)
def get_config() -> PulseConfig:
    """Return a cached singleton of PulseConfig."""
    return PulseConfig()
