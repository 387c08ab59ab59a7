"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for SecDesk happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. sla_high_hours -> SLA_HIGH_HOURS). Type coercion is built in.

  @model_validator(mode="after"): Cross-field validation once every field is
      resolved. Used to refuse a default SLA policy the engine would reject at
      the first ticket, so a typo in .env fails at startup instead.

The SLA hours here are the deployment-wide default policy. Organizations can
still override them per tenant (helpdesk/store.HelpdeskStore.update_sla_policy).

Layer rule: core/ is the kernel. This module may not import from api/,
helpdesk/, or cmdb/.
"""

import logging
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("secdesk.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    app_version: str = "0.3.0"

    # ------------------------------------------------------------------
    # Databases (any SQLAlchemy URL; SQLite files by default)
    # ------------------------------------------------------------------

    helpdesk_db_url: str = "sqlite:///secdesk_helpdesk.db"
    cmdb_db_url: str = "sqlite:///secdesk_cmdb.db"

    # ------------------------------------------------------------------
    # SLA defaults (hours per priority, used when a tenant has no override)
    # ------------------------------------------------------------------

    sla_critical_hours: int = 1
    sla_high_hours: int = 4
    sla_medium_hours: int = 24
    sla_low_hours: int = 72
    # Tickets this close to their deadline are shown as "warning".
    sla_warning_hours: int = 24

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    read_rate_limit: str = "120/minute"
    write_rate_limit: str = "30/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_sla_hours(self) -> "Settings":
        """Reject non-positive SLA budgets and warning windows."""
        for name in ("sla_critical_hours", "sla_high_hours", "sla_medium_hours", "sla_low_hours", "sla_warning_hours"):
            value = getattr(self, name)
            if value <= 0:
                raise ValueError(f"{name.upper()} must be a positive number of hours, got {value}.")
        if not self.sla_critical_hours <= self.sla_high_hours <= self.sla_medium_hours <= self.sla_low_hours:
            logger.warning(
                "Default SLA hours are not ordered critical <= high <= medium <= low (%d/%d/%d/%d)",
                self.sla_critical_hours,
                self.sla_high_hours,
                self.sla_medium_hours,
                self.sla_low_hours,
            )
        return self

    def default_sla_policy(self) -> dict[str, int]:
        """The deployment default policy in the shape core.sla expects."""
        return {
            "critical": self.sla_critical_hours,
            "high": self.sla_high_hours,
            "medium": self.sla_medium_hours,
            "low": self.sla_low_hours,
        }


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
