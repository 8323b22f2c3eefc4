"""
Startup Security Validation.

Checks security invariants before the application accepts traffic.
If any check fails, the application refuses to start with a clear
error message. Called during FastAPI lifespan initialization.
"""

from stickywall.backend.core.config import AppConfig, Settings, get_app_config, get_settings
from stickywall.backend.core.logging import get_logger

logger = get_logger(__name__)


class StartupSecurityError(RuntimeError):
    """Raised when a startup security check fails."""

    pass


def run_startup_checks() -> None:
    """
    Validate all security invariants at startup.

    Raises:
        StartupSecurityError: If any check fails
    """
    app_config = get_app_config()
    settings = get_settings()
    environment = app_config.application.environment
    is_development = app_config.application.is_development

    errors: list[str] = []

    _check_secret_strength(settings, app_config, is_development, errors)
    _check_storage_credentials(settings, app_config, errors)
    _check_production_safety(app_config, environment == "production", errors)

    if errors:
        for error in errors:
            logger.error("Startup security check failed", extra={"check": error})
        raise StartupSecurityError(
            f"Startup blocked: {len(errors)} security check(s) failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    logger.info(
        "Startup security checks passed",
        extra={"environment": environment, "checks_run": 3},
    )


def _check_secret_strength(
    settings: Settings, app_config: AppConfig, is_development: bool, errors: list[str],
) -> None:
    """Validate that secrets meet minimum length requirements outside development."""
    if is_development:
        return

    validation = app_config.security.secrets_validation

    salt_min = validation.rate_limit_salt_min_length
    if len(settings.rate_limit_salt) < salt_min:
        errors.append(
            f"RATE_LIMIT_SALT is {len(settings.rate_limit_salt)} chars, "
            f"minimum is {salt_min}"
        )

    key_min = validation.admin_api_key_min_length
    if len(settings.admin_api_key) < key_min:
        errors.append(
            f"ADMIN_API_KEY is {len(settings.admin_api_key)} chars, "
            f"minimum is {key_min}"
        )


def _check_storage_credentials(settings: Settings, app_config: AppConfig, errors: list[str]) -> None:
    """An object storage backend needs its endpoint and credentials."""
    images = app_config.storage.images
    if images.backend != "s3":
        return
    if not images.endpoint_url:
        errors.append("storage backend is 's3' but endpoint_url is empty")
    if not settings.image_storage_access_key or not settings.image_storage_secret_key:
        errors.append("storage backend is 's3' but IMAGE_STORAGE credentials are empty")


def _check_production_safety(app_config: AppConfig, is_production: bool, errors: list[str]) -> None:
    """Validate production environment safety constraints."""
    if not is_production:
        return

    app = app_config.application
    if app.debug:
        errors.append("debug is true in production environment")

    if app_config.features.api_detailed_errors:
        errors.append("api_detailed_errors is true in production environment")

    if app.docs_enabled:
        errors.append("docs_enabled is true in production environment")

    cors_config = app_config.security.cors
    if cors_config.enforce_in_production:
        localhost_origins = [o for o in app.cors.origins if "localhost" in o]
        if localhost_origins:
            errors.append(
                f"CORS origins contain localhost in production: {localhost_origins}"
            )
