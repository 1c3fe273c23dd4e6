"""
Application configuration using pydantic-settings.
"""
import logging
import secrets
from pathlib import Path
from typing import List, Optional

from pydantic import field_validator, model_validator, ValidationInfo
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Insecure default that should never be used in production
_INSECURE_DEFAULT_SECRET = "your-super-secret-key-change-in-production"
DEFAULT_SQLITE_URL = "sqlite:////data/trackline.db"

# Queue names shared by the Celery app, task routing and the worker CLI
SCREENSHOT_QUEUE = "screenshot-processing"
INTEGRATION_SYNC_QUEUE = "integration-sync"

# Define the project root directory
PROJECT_ROOT = Path(__file__).parent.parent.parent.resolve()


class Settings(BaseSettings):
    """Application settings."""

    # Application
    app_name: str = "Trackline Service"
    app_version: str = "0.3.0"
    debug: bool = False
    environment: str = "development"
    app_url: str = "http://localhost:8000"  # Public base URL, used for OAuth redirect URIs

    # API
    api_v1_prefix: str = "/api/v1"
    enable_cors: bool = False
    cors_origins: Optional[List[str]] = None

    # Database Configuration
    database_url: str = DEFAULT_SQLITE_URL
    postgres_url: Optional[str] = None
    postgres_user: Optional[str] = None
    postgres_password: Optional[str] = None
    postgres_db: Optional[str] = None
    postgres_host: Optional[str] = None
    postgres_port: Optional[int] = None

    # Security
    secret_key: str = ""  # Must be set via environment variable
    access_token_expire_minutes: int = 15
    algorithm: str = "HS256"

    # Redis Configuration (shared cache and Celery)
    redis_url: Optional[str] = None  # e.g., "redis://localhost:6379/0"

    # Celery Configuration
    celery_broker_url: Optional[str] = None
    celery_result_backend: Optional[str] = None
    celery_task_serializer: str = "json"
    celery_result_serializer: str = "json"
    celery_accept_content: List[str] = ["json"]
    celery_timezone: str = "UTC"
    celery_enable_utc: bool = True
    celery_result_expires_seconds: int = 86400
    screenshot_worker_concurrency: int = 5
    integration_sync_worker_concurrency: int = 3

    # Failed jobs kept per queue after retries are exhausted
    failed_job_retention_screenshot: int = 500
    failed_job_retention_integration: int = 200

    # Provider credentials
    clickup_client_id: Optional[str] = None
    clickup_client_secret: Optional[str] = None
    clickup_api_base_url: str = "https://api.clickup.com/api/v2"
    clickup_auth_url: str = "https://app.clickup.com/api"
    provider_request_timeout_seconds: float = 30.0

    # Resource sync
    sync_level_cache_ttl_seconds: int = 300
    sync_max_resources_per_level: int = 100
    resource_search_limit: int = 50
    recent_resources_limit: int = 10

    # Object storage (Cloudflare R2, S3 compatible)
    r2_account_id: Optional[str] = None
    r2_access_key_id: Optional[str] = None
    r2_secret_access_key: Optional[str] = None
    r2_endpoint_url: Optional[str] = None
    r2_bucket_original: str = "screenshots-original"
    r2_bucket_blurred: str = "screenshots-blurred"
    r2_public_url: str = ""
    signed_url_expires_seconds: int = 3600

    # Screenshot processing
    screenshot_max_width: int = 1920
    screenshot_max_height: int = 1080
    screenshot_jpeg_quality: int = 85
    screenshot_blur_radius: int = 20

    # Application configuration
    app_port: int = 8000

    # Logging
    log_level: str = "INFO"
    log_dir: str = "/data/logs"
    log_sql_requests: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def database_type(self) -> str:
        """Detect database type from configuration."""
        if self.postgres_url or (self.postgres_host and self.postgres_user):
            return "postgresql"

        if self.database_url.startswith(("postgresql", "postgres")):
            return "postgresql"

        return "sqlite"

    @property
    def effective_database_url(self) -> str:
        """Get the effective database URL based on configuration hierarchy."""
        if self.postgres_url:
            return self.postgres_url

        if self.postgres_host and self.postgres_user and self.postgres_db:
            password = self.postgres_password or ""
            port = self.postgres_port or 5432
            return f"postgresql://{self.postgres_user}:{password}@{self.postgres_host}:{port}/{self.postgres_db}"

        return self.database_url

    @property
    def clickup_enabled(self) -> bool:
        """ClickUp is usable only when both OAuth credentials are present."""
        return bool(self.clickup_client_id and self.clickup_client_secret)

    @property
    def storage_configured(self) -> bool:
        return bool(self.r2_access_key_id and self.r2_secret_access_key and self.effective_r2_endpoint_url)

    @property
    def effective_r2_endpoint_url(self) -> Optional[str]:
        """Explicit endpoint wins, otherwise derive it from the account id."""
        if self.r2_endpoint_url:
            return self.r2_endpoint_url
        if self.r2_account_id:
            return f"https://{self.r2_account_id}.r2.cloudflarestorage.com"
        return None

    @field_validator('secret_key')
    @classmethod
    def validate_secret_key(cls, v: str, info: ValidationInfo) -> str:
        """Validate SECRET_KEY is set and secure."""
        if not v:
            env = info.data.get('environment', 'development')
            if env == 'production':
                raise ValueError(
                    "SECRET_KEY must be set in production! "
                    "Generate one with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
                )
            logger.warning(
                "SECRET_KEY not set! Using auto-generated key for development. "
                "Encrypted integration tokens will not survive a restart."
            )
            return secrets.token_urlsafe(32)

        if v == _INSECURE_DEFAULT_SECRET:
            logger.warning("Using insecure default SECRET_KEY!")
        elif len(v) < 32:
            logger.warning(
                f"SECRET_KEY is only {len(v)} characters long. "
                "Recommend at least 32 characters for security."
            )

        return v

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from string or list."""
        if v is None:
            return []

        if isinstance(v, str):
            if not v.strip():
                return []
            return [origin.strip() for origin in v.split(',') if origin.strip()]

        if isinstance(v, list):
            return v

        return []

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate primary database URL."""
        if not v or not v.strip():
            logger.info(
                "DATABASE_URL not provided; defaulting to SQLite at %s", DEFAULT_SQLITE_URL
            )
            return DEFAULT_SQLITE_URL

        url = v.strip()
        if not url.startswith(("sqlite", "postgresql", "postgres")):
            logger.warning(
                "DATABASE_URL uses unsupported or untested dialect '%s'. Proceed with caution.",
                url.split("://", 1)[0]
            )
        return url

    @field_validator('app_url', 'r2_public_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/") if v else v

    @field_validator('celery_broker_url', 'celery_result_backend')
    @classmethod
    def validate_celery_urls(cls, v: Optional[str], info: ValidationInfo) -> Optional[str]:
        """Auto-configure Celery from redis_url if not explicitly set."""
        if v:
            return v

        redis_url = info.data.get('redis_url')
        if redis_url:
            logger.info(
                f"{info.field_name.upper()} not set. Defaulting to REDIS_URL"
            )
            return redis_url

        return v

    @field_validator(
        'screenshot_worker_concurrency',
        'integration_sync_worker_concurrency',
        'sync_max_resources_per_level',
        'sync_level_cache_ttl_seconds',
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Value must be positive")
        return v

    @field_validator('screenshot_jpeg_quality')
    @classmethod
    def validate_jpeg_quality(cls, v: int) -> int:
        if not 1 <= v <= 95:
            raise ValueError("SCREENSHOT_JPEG_QUALITY must be between 1 and 95")
        return v

    @model_validator(mode='after')
    def validate_production_settings(self) -> 'Settings':
        """Comprehensive production validation."""
        if self.environment != "production":
            return self

        errors = []
        warnings = []

        if self.debug:
            errors.append("DEBUG must be False in production.")

        if self.app_url.startswith("http://localhost"):
            errors.append("APP_URL must point to the public domain in production.")

        if not self.celery_broker_url:
            warnings.append(
                "CELERY_BROKER_URL not configured. Screenshot processing and syncs will not run."
            )

        if not self.storage_configured:
            warnings.append(
                "R2 storage credentials are incomplete. Screenshot uploads will fail."
            )

        if not self.clickup_enabled:
            warnings.append("ClickUp credentials not configured; the ClickUp integration is disabled.")

        for warning in warnings:
            logger.warning(f"Production configuration warning: {warning}")

        if errors:
            error_message = "Production configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            raise ValueError(error_message)

        return self


# Create settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get settings instance."""
    return settings
