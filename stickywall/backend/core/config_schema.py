"""
Configuration Schemas.

Pydantic models defining the expected structure of each YAML config file.
Used by AppConfig to validate configuration at load time. If a YAML file
has missing keys, wrong types, or unknown fields, a clear ValidationError
is raised at startup instead of a cryptic KeyError deep in application code.

Each top-level class corresponds to one file in config/settings/:
    ApplicationSchema  → application.yaml
    DatabaseSchema     → database.yaml
    LoggingSchema      → logging.yaml
    FeaturesSchema     → features.yaml
    SecuritySchema     → security.yaml
    WallSchema         → wall.yaml
    ModerationSchema   → moderation.yaml
    StorageSchema      → storage.yaml
    ConcurrencySchema  → concurrency.yaml
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class _StrictBase(BaseModel):
    """Base with extra='forbid' so unknown YAML keys are caught immediately."""

    model_config = ConfigDict(extra="forbid")


# =============================================================================
# application.yaml
# =============================================================================


class ServerSchema(_StrictBase):
    host: str
    port: int


class CorsSchema(_StrictBase):
    origins: list[str]


class TimeoutsSchema(_StrictBase):
    database: int
    external_api: int
    background: int


class ApplicationSchema(_StrictBase):
    name: str
    version: str
    description: str
    environment: Literal["development", "test", "staging", "production"]
    debug: bool
    api_prefix: str
    docs_enabled: bool
    server: ServerSchema
    cors: CorsSchema
    timeouts: TimeoutsSchema

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


# =============================================================================
# database.yaml
# =============================================================================


class BrokerSchema(_StrictBase):
    queue_name: str
    result_expiry_seconds: int


class RedisSchema(_StrictBase):
    host: str
    port: int
    db: int
    broker: BrokerSchema


class DatabaseSchema(_StrictBase):
    host: str
    port: int
    name: str
    user: str
    pool_size: int
    max_overflow: int
    pool_timeout: int
    pool_recycle: int
    echo: bool
    echo_pool: bool
    create_tables_on_startup: bool
    redis: RedisSchema


# =============================================================================
# logging.yaml
# =============================================================================


class ConsoleHandlerSchema(_StrictBase):
    enabled: bool


class FileHandlerSchema(_StrictBase):
    enabled: bool
    path: str
    max_bytes: int
    backup_count: int


class HandlersSchema(_StrictBase):
    console: ConsoleHandlerSchema
    file: FileHandlerSchema


class LoggingSchema(_StrictBase):
    level: str
    format: Literal["json", "console"]
    handlers: HandlersSchema


# =============================================================================
# features.yaml
# =============================================================================


class FeaturesSchema(_StrictBase):
    auto_moderation_enabled: bool
    rate_limit_enabled: bool
    security_startup_checks_enabled: bool
    api_detailed_errors: bool
    api_request_logging: bool
    background_tasks_enabled: bool


# =============================================================================
# security.yaml
# =============================================================================


class AdminSchema(_StrictBase):
    scheme: str
    enforce_in_development: bool


class SecretsValidationSchema(_StrictBase):
    rate_limit_salt_min_length: int
    admin_api_key_min_length: int


class CookieSchema(_StrictBase):
    name: str
    max_age_days: int | None = None


class RateLimitingSchema(_StrictBase):
    strategy: Literal["hashed_identity", "session_cookie"]
    window_hours: float = Field(gt=0)
    retention_multiplier: float = Field(ge=1)
    proxy_headers: list[str]
    session_cookie: CookieSchema
    last_submission_cookie: CookieSchema


class RequestLimitsSchema(_StrictBase):
    max_body_size_bytes: int


class CorsEnforcementSchema(_StrictBase):
    enforce_in_production: bool
    allow_methods: list[str]
    allow_headers: list[str]


class SecuritySchema(_StrictBase):
    admin: AdminSchema
    secrets_validation: SecretsValidationSchema
    rate_limiting: RateLimitingSchema
    request_limits: RequestLimitsSchema
    cors: CorsEnforcementSchema


# =============================================================================
# wall.yaml
# =============================================================================


class PlacementSchema(_StrictBase):
    center_x: float
    variance: float = Field(ge=0)
    max_attempts: int = Field(ge=1)
    edge_gap: float = Field(ge=0)


class WallSchema(_StrictBase):
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    note_width: float = Field(gt=0)
    note_height: float = Field(gt=0)
    colors: list[str] = Field(min_length=1)
    max_overlap: float = Field(ge=0, le=1)
    region_padding: float = Field(ge=0)
    rotation_jitter_degrees: float = Field(ge=0)
    max_image_bytes: int = Field(gt=0)
    placement: PlacementSchema


# =============================================================================
# moderation.yaml
# =============================================================================


class ClassifierCircuitBreakerSchema(_StrictBase):
    fail_max: int
    timeout_duration: int


class ClassifierSchema(_StrictBase):
    model: str
    timeout_seconds: float = Field(gt=0)
    max_attempts: int = Field(ge=1)
    circuit_breaker: ClassifierCircuitBreakerSchema


class ModerationSchema(_StrictBase):
    confidence_threshold: float = Field(ge=0, le=1)
    flag_escalation_threshold: int = Field(ge=1)
    classifier: ClassifierSchema


# =============================================================================
# storage.yaml
# =============================================================================


class ImageStorageSchema(_StrictBase):
    backend: Literal["inline", "s3"]
    bucket: str
    endpoint_url: str
    region: str
    public_base_url: str
    key_prefix: str


class StorageSchema(_StrictBase):
    images: ImageStorageSchema


# =============================================================================
# concurrency.yaml
# =============================================================================


class ThreadPoolSchema(_StrictBase):
    max_workers: int


class SemaphoresSchema(_StrictBase):
    database: int
    redis: int
    external_api: int
    llm: int
    storage: int


class ShutdownSchema(_StrictBase):
    drain_seconds: int


class ConcurrencySchema(_StrictBase):
    thread_pool: ThreadPoolSchema
    semaphores: SemaphoresSchema
    shutdown: ShutdownSchema
