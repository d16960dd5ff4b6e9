from functools import lru_cache
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from payhub.core.logging import get_logger

logger = get_logger(__name__)

WOMPI_PRODUCTION_URL = "https://production.wompi.co/v1"
WOMPI_SANDBOX_URL = "https://sandbox.wompi.co/v1"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = Field(default="payhub")
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # Gateway credentials
    mercadopago_access_token: Optional[str] = Field(default=None, description="MercadoPago secret access token")
    wompi_public_key: Optional[str] = Field(default=None, description="Wompi public key (merchant lookup, banks)")
    wompi_private_key: Optional[str] = Field(default=None, description="Wompi private key (transactions)")

    # Explicit mode override. None means: simulate when no credentials are configured.
    payments_simulated: Optional[bool] = Field(default=None)

    client_url: str = Field(default="http://localhost:5173", description="Public storefront base URL")
    api_url: str = Field(default="http://localhost:8000", description="Public API base URL")

    currency: str = Field(default="COP", min_length=3, max_length=3)
    merchant_name: str = Field(default="Mar de Sabores")
    statement_descriptor: str = Field(default="Mar de Sabores")
    http_timeout_seconds: float = Field(default=5.0, gt=0)

    simulated_store: str = Field(default="memory", description="Simulated payment store: 'memory' or 'redis'")
    redis_url: str = Field(default="redis://localhost:6379/0")
    simulated_record_ttl_seconds: int = Field(default=86400, gt=0)

    @model_validator(mode="before")
    @classmethod
    def validate_payment_configuration(cls, data: dict) -> dict:
        """
        Validate environment, store backend and mode override.

        An explicit ``payments_simulated=false`` with neither gateway configured
        would leave every operation without a backend, so it is rejected here.
        """
        data = data.copy()

        environment = data.get("environment", "development")
        allowed_environments = {"development", "staging", "production"}
        if environment not in allowed_environments:
            raise ValueError(
                f"environment must be one of {allowed_environments}, got '{environment}'"
            )

        store = data.get("simulated_store", "memory")
        allowed_stores = {"memory", "redis"}
        if store not in allowed_stores:
            raise ValueError(
                f"simulated_store must be one of {allowed_stores}, got '{store}'"
            )

        explicit = data.get("payments_simulated")
        if isinstance(explicit, str):
            explicit = explicit.strip().lower() in ("true", "1", "yes")
        has_credentials = any(
            data.get(name) and str(data.get(name)).strip()
            for name in ("mercadopago_access_token", "wompi_private_key")
        )
        if explicit is False and not has_credentials:
            raise ValueError(
                "payments_simulated=false requires mercadopago_access_token or wompi_private_key"
            )

        return data

    @model_validator(mode="after")
    def check_wompi_keys(self) -> "Settings":
        if self.wompi_private_key and not self.wompi_public_key:
            logger.warning("config.wompi.public_key_missing", hint="acceptance tokens and bank lists will fail")
        return self

    @property
    def simulated_mode(self) -> bool:
        if self.payments_simulated is not None:
            return self.payments_simulated
        return not self.mercadopago_access_token and not self.wompi_private_key

    @property
    def wompi_api_url(self) -> str:
        return WOMPI_PRODUCTION_URL if self.environment == "production" else WOMPI_SANDBOX_URL

    @property
    def webhook_base_url(self) -> str:
        return f"{self.api_url.rstrip('/')}/api/payments/webhook"


@lru_cache(maxsize=None)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    The same instance is returned for the whole process lifetime, so the
    simulated/real mode resolved from it never changes after startup.

    Returns:
        Settings: The cached settings instance
    """
    return Settings()


def clear_settings_cache() -> None:
    """
    Clear the cached settings instance.

    Useful for testing or when configuration needs to be reloaded.
    """
    get_settings.cache_clear()
