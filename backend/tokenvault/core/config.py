"""Application settings with environment-based simple classes."""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Final

from dotenv import load_dotenv

# Public selector env var (keep neutral name to avoid collisions)
ENV_VAR: Final[str] = "APP_ENV"  # 'development' | 'testing' | 'production'


# Load .env in development (no-op when missing)
load_dotenv()


def env_bool(name: str, default: bool = False) -> bool:
    """Parse a boolean flag from an environment variable.

    Parameters
    ----------
    name: str
        Environment variable to inspect.
    default: bool, optional
        Value returned when the variable is unset. Defaults to ``False``.

    Returns
    -------
    bool
        ``True`` if the value resembles ``{"1", "true", "yes", "y", "on"}``
        ignoring case; otherwise ``False`` or ``default`` when missing.
    """
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


def env_int(name: str, default: int) -> int:
    """Parse an integer from an environment variable, falling back to ``default``.

    Blank values are treated as unset; malformed values raise ``ValueError`` so
    a typo in deployment settings fails loudly at import time.
    """
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    return int(val.strip())


class BaseConfig:
    """Base configuration shared across environments.

    Attributes
    ----------
    SQLALCHEMY_DATABASE_URI: str
        Database connection string consumed by SQLAlchemy.
    SQLALCHEMY_TRACK_MODIFICATIONS: bool
        Disabled to avoid extra overhead from the event system.
    SQLALCHEMY_ECHO: bool
        When ``True`` SQLAlchemy logs SQL statements for debugging.
    REDIS_URL: str | None
        Redis connection URL. Required when ``TOKEN_STORE_BACKEND`` is ``redis``.
    TOKEN_STORE_BACKEND: str
        ``"sqlalchemy"`` (default) or ``"redis"``.
    TOKEN_HASH_KEY: str
        HMAC key used to derive the stored digest of refresh tokens.
        Must be overridden in production.
    TOKEN_BYTES: int
        Random bytes per refresh token (minimum 32).
    REFRESH_TOKEN_TTL_DAYS: int
        Absolute lifetime of a refresh token.
    REVOKED_RETENTION_DAYS: int
        Audit window during which revoked tokens are kept for reuse detection.
    TOKEN_REUSE_POLICY: str
        Reaction to a replayed token: ``revoke_subject`` | ``revoke_family`` |
        ``report_only``.
    TOKEN_SWEEP_ENABLED: bool
        Register the periodic retention sweep at startup.
    TOKEN_SWEEP_CRON: str
        Five-field crontab expression for the sweep (daily at 03:00 by default).
    TOKEN_SWEEP_BATCH_SIZE: int
        Maximum rows removed per delete statement.
    LOG_LEVEL: str
        Root logging verbosity (``INFO`` by default).
    DEBUG: bool
        Toggles Flask debug mode.
    TESTING: bool
        Enables Flask testing mode when ``True``.

    Notes
    -----
    Values are primarily sourced from environment variables, enabling
    configuration without code changes.
    """

    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME")
    TOKEN_HASH_KEY = os.getenv("TOKEN_HASH_KEY", "CHANGE_ME_TOKEN_HASH")

    # DB
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///./dev.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)

    # Token store
    REDIS_URL = os.getenv("REDIS_URL") or None
    TOKEN_STORE_BACKEND = os.getenv("TOKEN_STORE_BACKEND", "sqlalchemy").strip().lower()

    # Refresh token lifecycle
    TOKEN_BYTES = env_int("TOKEN_BYTES", 48)
    REFRESH_TOKEN_TTL_DAYS = env_int("REFRESH_TOKEN_TTL_DAYS", 30)
    REVOKED_RETENTION_DAYS = env_int("REVOKED_RETENTION_DAYS", 7)
    TOKEN_REUSE_POLICY = os.getenv("TOKEN_REUSE_POLICY", "revoke_subject").strip().lower()

    # Retention sweep
    TOKEN_SWEEP_ENABLED = env_bool("TOKEN_SWEEP_ENABLED", True)
    TOKEN_SWEEP_CRON = os.getenv("TOKEN_SWEEP_CRON", "0 3 * * *")
    TOKEN_SWEEP_BATCH_SIZE = env_int("TOKEN_SWEEP_BATCH_SIZE", 1000)

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Flask built-ins
    DEBUG = False
    TESTING = False


class DevelopmentConfig(BaseConfig):
    """Configuration tailored for local development.

    Notes
    -----
    Enables debug mode by default and honors ``SQLALCHEMY_ECHO`` for verbose
    SQL logging when requested.
    """

    DEBUG = env_bool("FLASK_DEBUG", True)
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)


class TestingConfig(BaseConfig):
    """Configuration for automated test runs.

    Notes
    -----
    - Forces ``TESTING`` mode and disables debug logs.
    - Uses an in-memory SQLite database unless ``TEST_DATABASE_URL`` is set.
    - Never starts the background sweep scheduler.
    """

    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)
    TOKEN_HASH_KEY = "testing-token-hash-key"
    TOKEN_STORE_BACKEND = "sqlalchemy"
    REDIS_URL = None
    TOKEN_SWEEP_ENABLED = False


class ProductionConfig(BaseConfig):
    """Configuration defaults for production deployments.

    Notes
    -----
    Keeps debug and SQL echoing disabled. ``TOKEN_HASH_KEY`` must come from
    the environment; the factory refuses to start with the placeholder.
    """

    DEBUG = False
    SQLALCHEMY_ECHO = False


# Map names -> classes (simple, explicit)
CONFIG_MAP: Mapping[str, type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config() -> type[BaseConfig]:
    """Return the configuration class inferred from ``APP_ENV``.

    Returns
    -------
    type[BaseConfig]
        Class to pass to :meth:`flask.Config.from_object`.

    Notes
    -----
    Falls back to :class:`DevelopmentConfig` when ``APP_ENV`` is unset or
    unknown.
    """
    name = os.getenv(ENV_VAR, "development").strip().lower()
    return CONFIG_MAP.get(name, DevelopmentConfig)
