"""
Settings Module
===============

Pydantic-based configuration with environment variable loading.

Version: 0.1.0
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StorageBackend(str, Enum):
    """Where score history and compliance records are read from and written to."""

    MEMORY = "memory"
    POSTGRES = "postgres"


class EventBackend(str, Enum):
    """Where score-change events and notifications are delivered."""

    MEMORY = "memory"
    KAFKA = "kafka"


class PostgresSettings(BaseSettings):
    """PostgreSQL database configuration."""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = "localhost"
    port: int = 5432
    user: str = "compliance"
    password: SecretStr = SecretStr("compliance_dev_password")
    db: str = "compliance"

    @property
    def async_url(self) -> str:
        """Generate async SQLAlchemy connection URL."""
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.db}"


class RedisSettings(BaseSettings):
    """Redis cache configuration."""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    host: str = "localhost"
    port: int = 6379
    password: SecretStr = SecretStr("compliance_redis_password")
    db: int = 0

    @property
    def url(self) -> str:
        """Generate Redis connection URL."""
        pwd = self.password.get_secret_value()
        return f"redis://:{pwd}@{self.host}:{self.port}/{self.db}"


class KafkaSettings(BaseSettings):
    """Kafka event streaming configuration."""

    model_config = SettingsConfigDict(env_prefix="KAFKA_")

    bootstrap_servers: str = "localhost:9092"
    security_protocol: str = "PLAINTEXT"


class JWTSettings(BaseSettings):
    """JWT authentication configuration."""

    model_config = SettingsConfigDict(env_prefix="JWT_")

    secret_key: SecretStr = SecretStr("your-jwt-secret-key-min-32-chars-long")
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30


class CORSSettings(BaseSettings):
    """CORS configuration."""

    model_config = SettingsConfigDict(env_prefix="CORS_")

    origins: str = "http://localhost:3000,http://localhost:5173"
    allow_credentials: bool = True

    @property
    def origins_list(self) -> list[str]:
        """Parse origins string into list."""
        return [o.strip() for o in self.origins.split(",") if o.strip()]


class ServicePorts(BaseSettings):
    """Service port configuration."""

    risk_scoring: int = Field(default=8006, alias="RISK_SCORING_PORT")


class RiskScoringSettings(BaseSettings):
    """
    Risk scoring engine configuration.

    Factor weights must sum to 1. The exposure weight blends the
    severity-weighted share of open risks into the overall risk score.
    """

    model_config = SettingsConfigDict(env_prefix="RISK_SCORING_")

    storage_backend: StorageBackend = StorageBackend.POSTGRES
    event_backend: EventBackend = EventBackend.KAFKA

    # Factor weights for overall health
    weight_task_completion: float = Field(default=0.4, ge=0.0, le=1.0)
    weight_risk_mitigation: float = Field(default=0.4, ge=0.0, le=1.0)
    weight_timely_completion: float = Field(default=0.2, ge=0.0, le=1.0)

    # Severity exposure
    exposure_weight: float = Field(default=0.3, ge=0.0, le=1.0)

    # Trend classification
    trend_noise_threshold: float = Field(default=0.1, ge=0.0)
    trend_alert_delta: float = Field(default=5.0, ge=0.0)

    # Notification thresholds (0-100 risk score)
    alert_high_threshold: float = Field(default=75.0, ge=0.0, le=100.0)
    alert_critical_threshold: float = Field(default=85.0, ge=0.0, le=100.0)

    # History pagination
    history_default_limit: int = Field(default=30, ge=1)
    history_max_limit: int = Field(default=100, ge=1)

    # Latest-score cache (0 disables)
    cache_ttl_seconds: int = Field(default=300, ge=0)

    # Recompute queue
    recompute_max_attempts: int = Field(default=3, ge=1)
    recompute_backoff_max_seconds: float = Field(default=30.0, ge=0.0)

    # Aging scheduler
    scheduler_enabled: bool = True
    aging_check_interval_seconds: int = Field(default=86400, ge=1)

    # Kafka topics
    consume_task_events: bool = False
    task_completed_topic: str = "compliance.tasks.completed"
    score_changed_topic: str = "compliance.risk.score_changed"
    notifications_topic: str = "compliance.risk.notifications"
    consumer_group: str = "risk-scoring"

    @model_validator(mode="after")
    def check_weights(self) -> "RiskScoringSettings":
        """Factor weights form a convex combination."""
        total = (
            self.weight_task_completion
            + self.weight_risk_mitigation
            + self.weight_timely_completion
        )
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Factor weights must sum to 1.0, got {total}")
        if self.alert_critical_threshold < self.alert_high_threshold:
            raise ValueError("alert_critical_threshold must be >= alert_high_threshold")
        if self.history_default_limit > self.history_max_limit:
            raise ValueError("history_default_limit must be <= history_max_limit")
        return self


class Settings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables with sensible defaults.
    Use the global `settings` singleton or call `get_settings()`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # General
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = True
    log_level: LogLevel = LogLevel.INFO

    # Service ports
    ports: ServicePorts = Field(default_factory=ServicePorts)

    # Data stores
    postgres: PostgresSettings = Field(default_factory=PostgresSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    kafka: KafkaSettings = Field(default_factory=KafkaSettings)

    # Authentication
    jwt: JWTSettings = Field(default_factory=JWTSettings)

    # Security
    cors: CORSSettings = Field(default_factory=CORSSettings)

    # Scoring engine
    risk_scoring: RiskScoringSettings = Field(default_factory=RiskScoringSettings)

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Ensure log level is uppercase."""
        if isinstance(v, str):
            return LogLevel(v.upper())
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        """Check if running in test mode."""
        return self.environment == Environment.TESTING


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings singleton.
    """
    return Settings()
