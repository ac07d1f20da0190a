"""
core/config.py -- Centralized configuration via pydantic-settings.

All environment variable reads for authcore happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. session_ttl_seconds -> SESSION_TTL_SECONDS).

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment.

Security notes:
  Session IDs are bearer secrets. session_id_length below 32 characters of the
  36-symbol alphabet drops under ~165 bits of entropy and is rejected outright.

Layer rule: core/ is the kernel. This module may not import from auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("authcore.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'authcore.db'}"


class Settings(BaseSettings):
    """Library settings loaded from environment variables and .env file.

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

    # ------------------------------------------------------------------
    # Storage (reference SQLAlchemy adapter)
    # ------------------------------------------------------------------

    database_url: str = _DEFAULT_DB_URL
    database_timeout_seconds: float = 5.0

    # ------------------------------------------------------------------
    # Identifiers
    # ------------------------------------------------------------------

    user_id_length: int = 15
    session_id_length: int = 40

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    # One day. Hosts pass a per-call ttl to create_session() to override.
    session_ttl_seconds: int = 86400
    session_cookie_name: str = "auth_session"
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # Secret hashing
    # ------------------------------------------------------------------

    bcrypt_rounds: int = 12

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_limits(self) -> "Settings":
        """Reject settings that would weaken identifiers or hashing.

        Both modes: session IDs shorter than 32 characters and user IDs shorter
        than 8 are rejected. bcrypt only accepts cost factors 4..31.

        Dev mode (DEBUG=true) logs the resolved session policy so a local
        misconfiguration is visible at startup.
        """
        if self.session_id_length < 32:
            raise ValueError("SESSION_ID_LENGTH must be at least 32 characters.")
        if self.user_id_length < 8:
            raise ValueError("USER_ID_LENGTH must be at least 8 characters.")
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        if self.session_ttl_seconds <= 0:
            raise ValueError("SESSION_TTL_SECONDS must be positive.")
        if self.debug:
            logger.warning(
                "DEBUG mode: sessions last %ds, secure cookies %s",
                self.session_ttl_seconds,
                "on" if self.secure_cookies else "off",
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
