"""Application settings via pydantic-settings. Loads from environment and .env file."""

from __future__ import annotations

from pydantic import model_validator
from pydantic_settings import BaseSettings

# Interval between expiry sweeps of the job-offer ledger.
DEFAULT_OFFER_SWEEP_MINUTES = 30

# How long an admin has to answer the Week 15 continue/skip prompt.
DEFAULT_WEEK15_PROMPT_SECONDS = 60


class Settings(BaseSettings):
    """Dynasty bot process configuration.

    Per-guild league settings live in the database (see
    ``dynasty.models.guild_config``); this only covers the process.
    """

    # Discord
    discord_bot_token: str = ""
    discord_enabled: bool = False
    discord_guild_id: str = ""  # Sync commands to one guild (faster in dev)

    # Database
    database_url: str = "sqlite+aiosqlite:///dynasty.db"

    # Environment
    dynasty_env: str = "development"
    dynasty_host: str = "0.0.0.0"
    dynasty_port: int = 8000

    # Scheduling
    dynasty_offer_sweep_minutes: int = DEFAULT_OFFER_SWEEP_MINUTES
    dynasty_week15_prompt_seconds: int = DEFAULT_WEEK15_PROMPT_SECONDS

    # Keep-alive ping for hosts that sleep idle web services
    dynasty_self_ping_url: str = ""
    dynasty_self_ping_minutes: int = 14

    # Logging
    dynasty_log_level: str = "INFO"

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}

    @model_validator(mode="after")
    def _require_token_in_production(self) -> Settings:
        """Refuse to boot production with Discord enabled but no token."""
        if (
            self.dynasty_env == "production"
            and self.discord_enabled
            and not self.discord_bot_token
        ):
            msg = "DISCORD_BOT_TOKEN must be set when DISCORD_ENABLED is true in production."
            raise ValueError(msg)
        return self

    @model_validator(mode="after")
    def _clamp_intervals(self) -> Settings:
        """Scheduler intervals below one minute would hammer the database."""
        self.dynasty_offer_sweep_minutes = max(1, self.dynasty_offer_sweep_minutes)
        self.dynasty_self_ping_minutes = max(1, self.dynasty_self_ping_minutes)
        self.dynasty_week15_prompt_seconds = max(1, self.dynasty_week15_prompt_seconds)
        return self
