"""Service configuration."""

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class ParcelPayConfig(BaseSettings):
    """Runtime config, read from ``PARCELPAY_*`` environment variables.

    ``database_url`` and ``stripe_secret_key`` have no defaults, so a
    missing value fails when the config is built at startup.
    """

    model_config = SettingsConfigDict(
        env_prefix="PARCELPAY_",
        env_file=".env",
        extra="ignore",
    )

    database_url: str
    stripe_secret_key: SecretStr

    host: str = "0.0.0.0"
    port: int = 4000
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    currency: str = "usd"
    payment_method_types: list[str] = Field(
        default_factory=lambda: ["card"]
    )
    gateway_timeout_seconds: float = 10.0
    track_payments: bool = True

    retry_enabled: bool = True
    retry_max_attempts: int = 5
    retry_backoff_seconds: int = 60
    retry_poll_seconds: float = 30.0
