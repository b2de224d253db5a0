"""Application configuration using Pydantic settings."""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    APP_NAME: str = "Meter Console"
    APP_VERSION: str = "0.1.0"
    DEVICE_PROTOCOL: str = "Modbus RTU"

    # Remote binding (host process exposing the device functions)
    REMOTE_BINDING_URL: str = "http://127.0.0.1:34115/bindings"
    REMOTE_BINDING_TIMEOUT_SECONDS: float = 5.0

    # Telemetry polling
    TELEMETRY_POLL_INTERVAL_SECONDS: float = 1.0
    # Drop fetches that complete after a newer sample was already committed
    TELEMETRY_DISCARD_STALE: bool = False

    # Local persistent store (client-side settings cache)
    LOCAL_STORE_URL: str = "sqlite:///data/console_store.db"
    LOCAL_STORE_ECHO: bool = False

    # Logging configuration
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False  # Set to True for JSON output (production)
    LOG_INCLUDE_CALLER: bool = True

    # MQTT telemetry mirror (Optional)
    MQTT_BROKER_HOST: str | None = None
    MQTT_BROKER_PORT: int = 1883
    MQTT_USERNAME: str | None = None
    MQTT_PASSWORD: str | None = None
    MQTT_TOPIC_PREFIX: str = "meter/console"


settings = Settings()
