"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for magic-login happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. Both the
      CLI and the FastAPI app read configuration through it.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. home_url -> HOME_URL). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Dev mode generates a SECRET_KEY with a
      warning, production mode refuses to start without one.

Security notes:
  SECRET_KEY signs the session JWT issued after a magic link is redeemed.
  It is unrelated to the rotating endpoint secret, which lives in the option
  store so that every process sharing the database sees the same value.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or cache/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path
from urllib.parse import urlparse

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("magiclogin.config")

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


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
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""

    # Public base URL of the site. Magic links are composed against it and
    # its host name is bound into every token hash.
    home_url: str = "http://localhost:8000"

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    # Accounts and options (endpoint secret, companion state).
    database_url: str = f"sqlite:///{_PROJECT_ROOT / 'magiclogin.db'}"
    # Ephemeral token records.
    token_db_path: str = str(_PROJECT_ROOT / "cache" / "magiclogin_tokens.db")

    # ------------------------------------------------------------------
    # Magic links
    # ------------------------------------------------------------------

    magic_link_ttl_seconds: int = 300
    bcrypt_rounds: int = 12
    login_redirect_path: str = "/"
    redeem_rate_limit: str = "30/minute"

    # ------------------------------------------------------------------
    # Session issued after redemption
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    token_expire_seconds: int = 3600

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("home_url")
    @classmethod
    def validate_home_url(cls, value: str) -> str:
        """Require an absolute http(s) URL and drop any trailing slash."""
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ValueError("HOME_URL must be an absolute http(s) URL, e.g. https://example.com")
        return value.rstrip("/")

    @field_validator("bcrypt_rounds")
    @classmethod
    def validate_bcrypt_rounds(cls, value: int) -> int:
        # bcrypt.gensalt() accepts 4..31
        if not 4 <= value <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        return value

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Sessions will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @property
    def domain(self) -> str:
        """Host name of home_url, the site component of the token binding."""
        return urlparse(self.home_url).hostname or ""


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
