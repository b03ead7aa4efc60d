from decimal import Decimal
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

from common.core.constants import Environment, NotificationProviderType


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment Profile
    environment: Environment = Environment.LOCAL

    # API Settings
    app_name: str = "billing-ledger"
    api_version: str = "0.1.0"
    debug: bool = False

    # Database Components
    db_user: str = "postgres"
    db_password: str = "postgres"
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "billing"
    db_use_nullpool: bool = (
        False  # True for scheduled jobs (sequential), False for API (concurrent)
    )
    db_pool_size: int = 10
    db_pool_overflow: int = 5

    @property
    def database_url(self) -> str:
        """Construct database URL from components."""
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    # RabbitMQ (billing notifications)
    rabbitmq_host: str = "localhost"
    rabbitmq_port: int = 5672
    rabbitmq_username: str = "guest"
    rabbitmq_password: str = "guest"
    rabbitmq_vhost: str = "/"

    # Rate limiting (memory:// per process, redis://host:port for a shared limit)
    rate_limit_storage_uri: str = "memory://"
    rate_limit_default: str = "300/minute"

    # OpenTelemetry
    otel_service_name: str = "billing-ledger"
    otel_service_version: str = "0.1.0"

    # Axiom (exporters are only attached when a token is set)
    axiom_token: Optional[str] = None
    axiom_dataset: str = "billing"

    # Billing policy
    billing_default_currency: str = "ARS"
    billing_default_tax_rate: Decimal = Decimal("21")
    billing_invoice_due_days: int = 15
    billing_trial_days: int = 14
    billing_invoice_number_max_retries: int = 5
    auto_payment_max_failed_attempts: int = 2
    low_token_threshold_percent: int = 10
    notification_provider: NotificationProviderType = NotificationProviderType.LOG

    # Payment providers
    stripe_secret_key: str = ""
    mercadopago_access_token: str = ""
    mercadopago_api_base_url: str = "https://api.mercadopago.com"
    payment_provider_timeout_seconds: float = 30.0

    @property
    def cors_allowed_origins(self) -> List[str]:
        """Auto-select CORS origins based on environment."""
        if self.environment == Environment.LOCAL:
            return [
                "http://localhost:3000",
                "http://localhost:3001",
            ]
        return []


settings = Settings()
