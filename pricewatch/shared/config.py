"""Shared configuration management for the price tracking service."""
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TrackerSettings(BaseSettings):
    """Scheduler configuration."""
    model_config = SettingsConfigDict(env_prefix="TRACKER_")

    check_interval: str = "0 */6 * * *"  # every 6 hours
    max_concurrency: int = 10
    run_on_startup: bool = True
    default_expiry_days: int = 30
    store_backend: str = "sql"  # sql, memory


class ProviderSettings(BaseSettings):
    """Price source configuration."""
    model_config = SettingsConfigDict(env_prefix="PROVIDERS_")

    enabled: str = "expedia,skyscanner,booking,hotels,kayak"
    default_timeout: float = 30.0
    timeouts: Dict[str, float] = {"skyscanner": 45.0}
    rate_limit_requests: int = 100
    rate_limit_window: float = 60.0
    rate_limits: Dict[str, int] = {}

    expedia_api_key: str = ""
    skyscanner_api_key: str = ""
    booking_api_key: str = ""
    hotels_api_key: str = ""
    kayak_api_key: str = ""
    agoda_api_key: str = ""
    trip_api_key: str = ""
    affiliate_id: str = ""

    def enabled_ids(self) -> List[str]:
        """Parse the comma-separated provider list."""
        return [p.strip().lower() for p in self.enabled.split(",") if p.strip()]

    def api_key_for(self, provider_id: str) -> str:
        return getattr(self, f"{provider_id}_api_key", "")

    def timeout_for(self, provider_id: str, fallback: Optional[float] = None) -> float:
        if provider_id in self.timeouts:
            return self.timeouts[provider_id]
        return fallback if fallback is not None else self.default_timeout


class HistorySettings(BaseSettings):
    """Rolling price history configuration."""
    model_config = SettingsConfigDict(env_prefix="HISTORY_")

    max_length: int = 90
    backend: str = "memory"  # memory, redis


class DatabaseSettings(BaseSettings):
    """Database configuration."""
    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    url: str = "sqlite:///./pricewatch.db"
    pool_pre_ping: bool = True


class RedisSettings(BaseSettings):
    """Redis configuration."""
    model_config = SettingsConfigDict(env_prefix="REDIS_")

    url: str = "redis://localhost:6379"
    history_key_prefix: str = "price-history"


class KafkaSettings(BaseSettings):
    """Kafka configuration."""
    model_config = SettingsConfigDict(env_prefix="KAFKA_")

    bootstrap_servers: str = "localhost:9092"
    notifications_topic: str = "price-alert-notifications"


class SMTPSettings(BaseSettings):
    """Outgoing mail configuration."""
    model_config = SettingsConfigDict(env_prefix="SMTP_")

    host: str = "smtp.gmail.com"
    port: int = 587
    user: str = ""
    password: str = ""
    from_email: str = ""
    frontend_url: str = "http://localhost:3000"


class TwilioSettings(BaseSettings):
    """SMS configuration."""
    model_config = SettingsConfigDict(env_prefix="TWILIO_")

    account_sid: str = ""
    auth_token: str = ""
    phone_number: str = ""


class NotifierSettings(BaseSettings):
    """Notification dispatch configuration."""
    model_config = SettingsConfigDict(env_prefix="NOTIFIER_")

    backend: str = "direct"  # direct, kafka


class Settings(BaseSettings):
    """Main application settings."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    log_level: str = "INFO"
    environment: str = "development"

    # Nested settings
    tracker: TrackerSettings = Field(default_factory=TrackerSettings)
    providers: ProviderSettings = Field(default_factory=ProviderSettings)
    history: HistorySettings = Field(default_factory=HistorySettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    kafka: KafkaSettings = Field(default_factory=KafkaSettings)
    smtp: SMTPSettings = Field(default_factory=SMTPSettings)
    twilio: TwilioSettings = Field(default_factory=TwilioSettings)
    notifier: NotifierSettings = Field(default_factory=NotifierSettings)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
