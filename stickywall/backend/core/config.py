"""
Configuration Management.

Loads secrets from config/.env and settings from config/settings/*.yaml.
No hardcoded values in code. All configuration comes from these sources.

Secrets (.env):
    DB_PASSWORD, REDIS_PASSWORD, DATABASE_URL, RATE_LIMIT_SALT,
    ADMIN_API_KEY, IMAGE_STORAGE_ACCESS_KEY, IMAGE_STORAGE_SECRET_KEY

Settings (YAML):
    application.yaml   - App identity, server, cors, timeouts
    database.yaml      - Database and Redis connection settings
    logging.yaml       - Logging configuration
    features.yaml      - Feature flags
    security.yaml      - Admin auth, rate limiting, cookies
    wall.yaml          - Wall geometry and placement tuning
    moderation.yaml    - Classifier and moderation thresholds
    storage.yaml       - Image storage backend
    concurrency.yaml   - Pool sizes, semaphores, shutdown timing
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from stickywall.backend.core.config_schema import (
    ApplicationSchema,
    ConcurrencySchema,
    DatabaseSchema,
    FeaturesSchema,
    LoggingSchema,
    ModerationSchema,
    SecuritySchema,
    StorageSchema,
    WallSchema,
)


def find_project_root() -> Path:
    """Find project root by looking for .project_root marker file."""
    current = Path.cwd()
    while current != current.parent:
        if (current / ".project_root").exists():
            return current
        current = current.parent
    raise RuntimeError("Project root not found. Ensure .project_root file exists.")


def validate_project_root() -> Path:
    """
    Validate that the project root can be found.

    Raises SystemExit with a clear message if .project_root is not found.
    Use this in entry scripts before any configuration loading.
    """
    try:
        return find_project_root()
    except RuntimeError as e:
        raise SystemExit(f"Error: {e}") from e


def load_yaml_config(filename: str) -> dict[str, Any]:
    """Load a YAML configuration file from config/settings/."""
    project_root = find_project_root()
    config_path = project_root / "config" / "settings" / filename

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


class Settings(BaseSettings):
    """Secrets loaded from config/.env. Only passwords, salts, and keys."""

    db_password: str = ""
    redis_password: str = ""
    database_url: str | None = None
    rate_limit_salt: str = ""
    admin_api_key: str = ""
    image_storage_access_key: str = ""
    image_storage_secret_key: str = ""

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


def _load_validated(schema_cls: type, filename: str) -> Any:
    """Load YAML and validate against schema. Returns typed model instance."""
    raw = load_yaml_config(filename)
    try:
        return schema_cls(**raw)
    except ValidationError as e:
        raise ValueError(
            f"Invalid configuration in {filename}:\n{e}"
        ) from e


class AppConfig:
    """
    Application configuration loaded from YAML files.

    Each YAML file is validated against its Pydantic schema at load time.
    Missing keys, wrong types, or unknown fields raise a clear error
    immediately instead of causing cryptic KeyErrors later.
    """

    def __init__(self) -> None:
        self._application = _load_validated(ApplicationSchema, "application.yaml")
        self._database = _load_validated(DatabaseSchema, "database.yaml")
        self._logging = _load_validated(LoggingSchema, "logging.yaml")
        self._features = _load_validated(FeaturesSchema, "features.yaml")
        self._security = _load_validated(SecuritySchema, "security.yaml")
        self._wall = _load_validated(WallSchema, "wall.yaml")
        self._moderation = _load_validated(ModerationSchema, "moderation.yaml")
        self._storage = _load_validated(StorageSchema, "storage.yaml")
        self._concurrency = _load_validated(ConcurrencySchema, "concurrency.yaml")

    @property
    def application(self) -> ApplicationSchema:
        """Application settings."""
        return self._application

    @property
    def database(self) -> DatabaseSchema:
        """Database settings."""
        return self._database

    @property
    def logging(self) -> LoggingSchema:
        return self._logging

    @property
    def features(self) -> FeaturesSchema:
        """Feature flags."""
        return self._features

    @property
    def security(self) -> SecuritySchema:
        """Admin auth, rate limiting and request limits."""
        return self._security

    @property
    def wall(self) -> WallSchema:
        """Wall dimensions, note size and placement tuning."""
        return self._wall

    @property
    def moderation(self) -> ModerationSchema:
        return self._moderation

    @property
    def storage(self) -> StorageSchema:
        return self._storage

    @property
    def concurrency(self) -> ConcurrencySchema:
        """Concurrency settings (pools, semaphores, shutdown)."""
        return self._concurrency


@lru_cache
def get_settings() -> Settings:
    """Get cached secrets instance. Resolves .env path from project root."""
    env_path = find_project_root() / "config" / ".env"
    return Settings(_env_file=str(env_path))


@lru_cache
def get_app_config() -> AppConfig:
    """Get cached application configuration."""
    return AppConfig()


def get_database_url(async_driver: bool = True) -> str:
    """
    Construct database URL from YAML config and secrets.

    A DATABASE_URL secret, when set, overrides the YAML connection details
    (useful for SQLite in local development).

    Args:
        async_driver: Use asyncpg driver if True, psycopg2 if False.

    Returns:
        Database connection URL string.
    """
    settings = get_settings()
    if settings.database_url:
        return settings.database_url

    db = get_app_config().database
    driver = "postgresql+asyncpg" if async_driver else "postgresql"
    return f"{driver}://{db.user}:{settings.db_password}@{db.host}:{db.port}/{db.name}"


def get_redis_url() -> str:
    """
    Construct Redis URL from YAML config and secrets.

    Returns:
        Redis connection URL string.
    """
    redis = get_app_config().database.redis
    password = get_settings().redis_password
    auth = f":{password}@" if password else ""
    return f"redis://{auth}{redis.host}:{redis.port}/{redis.db}"
