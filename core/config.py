"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Campus Feedback happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. The signing
      secret is therefore read once per process and never mutated afterwards.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET, strict_role_check -> STRICT_ROLE_CHECK).

Security notes:
  [S1] A missing JWT_SECRET is a hard startup failure outside DEBUG mode. Older
       deployments of this service fell back to a hardcoded literal, which let
       anyone who read the source mint valid tokens. That fallback is gone.

  [S2] JWT_SECRET shorter than 32 chars is rejected outright -- HS256 signing
       strength is bounded by the key's entropy.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or surveys/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("feedback.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'campus_feedback.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
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
    # Empty string is the "not configured" sentinel; the validator below
    # either generates a dev key or raises, so callers never see "".
    jwt_secret: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    token_expire_seconds: int = 24 * 60 * 60
    # True: the guard re-checks the stored role after the user lookup, so a
    # demotion takes effect on the next request. False: trust the role
    # embedded in the token until it expires.
    strict_role_check: bool = True
    login_rate_limit: str = "10/minute"
    rate_limit_enabled: bool = True

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    cors_origins: list[str] = ["http://localhost:5173"]

    @model_validator(mode="after")
    def validate_jwt_secret(self) -> "Settings":
        """Enforce the signing-secret policy [S1][S2].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Tokens will not survive a restart -- acceptable for local dev.

        Production mode: refuse to start without JWT_SECRET.
        """
        if not self.jwt_secret:
            if self.debug:
                self.jwt_secret = secrets.token_hex(32)
                logger.warning("Using auto-generated JWT_SECRET. Tokens will not persist across restarts.")
            else:
                raise ValueError(
                    "JWT_SECRET is required in production mode. "
                    "Set JWT_SECRET in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.jwt_secret) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters.")
        if self.token_expire_seconds <= 0:
            raise ValueError("TOKEN_EXPIRE_SECONDS must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
