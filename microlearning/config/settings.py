"""Application settings using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Food Safety Basics module (14 videos) + Safety and Hygiene How-To's (8 videos)
DEFAULT_REQUIRED_VIDEO_IDS = [
    "basics-personal-hygiene",
    "basics-temperature-danger",
    "basics-cross-contamination",
    "basics-allergen-awareness",
    "basics-food-storage",
    "basics-cooking-temps",
    "basics-cooling-reheating",
    "basics-thawing",
    "basics-receiving",
    "basics-fifo",
    "basics-illness-reporting",
    "basics-pest-control",
    "basics-chemical-safety",
    "basics-food-safety-plan",
    "howto-handwashing",
    "howto-sanitizing",
    "howto-thermometer",
    "howto-cleaning-schedule",
    "howto-equipment-cleaning",
    "howto-uniform-care",
    "howto-wound-care",
    "howto-inspection-prep",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="microlearning", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment name"
    )
    debug: bool = Field(default=True, description="Debug mode")

    # Authentication (tokens are issued by the platform auth service)
    auth_secret_key: str = Field(
        default="dev-jwt-secret-key-change-in-production-32chars!",
        description="JWT verification key (min 32 chars)",
    )
    auth_algorithm: str = Field(default="HS256", description="JWT algorithm")
    auth_access_token_expire_minutes: int = Field(
        default=15, description="Access token expiration (minutes)"
    )

    # Cassandra
    cassandra_hosts: list[str] = Field(
        default=["localhost"], description="Cassandra hosts"
    )
    cassandra_port: int = Field(default=9042, description="Cassandra port")
    cassandra_keyspace: str = Field(
        default="microlearning", description="Cassandra keyspace"
    )
    cassandra_username: str | None = Field(default=None, description="Cassandra user")
    cassandra_password: str | None = Field(
        default=None, description="Cassandra password"
    )
    cassandra_protocol_version: int = Field(default=4, description="Protocol version")
    cassandra_connect_timeout: float = Field(
        default=10.0, description="Connect timeout"
    )
    cassandra_request_timeout: float = Field(
        default=10.0, description="Request timeout"
    )

    # Progress store
    progress_store_backend: Literal["cassandra", "memory"] = Field(
        default="cassandra", description="Progress store backend"
    )
    progress_merge_max_attempts: int = Field(
        default=8, ge=1, description="Compare-and-set attempts per progress merge"
    )
    progress_write_timeout_seconds: float = Field(
        default=5.0, gt=0, description="Upper bound for a single progress merge"
    )

    # Microlearning catalog references (the catalog itself lives elsewhere)
    microlearning_first_free_video_id: str = Field(
        default="basics-cross-contamination",
        description="Video every authenticated user may watch",
    )
    microlearning_required_video_ids: list[str] = Field(
        default_factory=lambda: list(DEFAULT_REQUIRED_VIDEO_IDS),
        description="Videos that must be completed before certification",
    )
    microlearning_course_modules: list[str] = Field(
        default=[
            "food-handling",
            "contamination-prevention",
            "allergen-awareness",
        ],
        description="Course modules reported to the certification authority",
    )

    # Always Food Safe certification authority
    always_food_safe_api_key: str | None = Field(
        default=None, description="Always Food Safe API key (KEEP SECRET!)"
    )
    always_food_safe_api_url: str | None = Field(
        default=None, description="Always Food Safe API base URL"
    )
    certification_timeout_seconds: float = Field(
        default=10.0, gt=0, description="Certification request timeout"
    )
    certification_provider_name: str = Field(
        default="LocalCooks", description="Provider name sent with completions"
    )
    certification_user_agent: str = Field(
        default="LocalCooks-Platform/1.0", description="User-Agent for API calls"
    )
    certification_email_domain: str = Field(
        default="localcooks.ca",
        description="Domain for placeholder emails when a user has none",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="DEBUG", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", description="Log format"
    )
    log_include_caller_info: bool = Field(
        default=True, description="Include caller info"
    )
    log_dir: str = Field(default="logs", description="Directory for log files")
    log_file_max_bytes: int = Field(
        default=10 * 1024 * 1024, description="Max size per log file (10MB default)"
    )
    log_file_backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )
    log_requests: bool = Field(
        default=True, description="Log HTTP request start/finish"
    )
    log_exclude_paths: list[str] = Field(
        default=["/health", "/health/live", "/health/ready"],
        description="Paths to exclude from request logging",
    )

    # CORS
    cors_origins: list[str] = Field(default=["*"], description="CORS origins")
    cors_allow_credentials: bool = Field(default=True, description="Allow credentials")
    cors_allow_methods: list[str] = Field(default=["*"], description="Allowed methods")
    cors_allow_headers: list[str] = Field(default=["*"], description="Allowed headers")
    cors_max_age: int = Field(default=600, description="CORS max age")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.environment == "testing"

    @property
    def certification_configured(self) -> bool:
        """Check if the Always Food Safe integration is configured."""
        return bool(self.always_food_safe_api_key and self.always_food_safe_api_url)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
