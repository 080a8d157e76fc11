"""Environment-driven settings for the subscription service.

All values come from environment variables with development defaults.
Secrets (client credentials, webhook ID, blind index key) are NOT read here;
they live in SSM Parameter Store and are loaded by CredentialStore.
"""

import os
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field

from .models.enums import ProviderMode, SignatureVerificationMethod

PROVIDER_BASE_URLS: dict[ProviderMode, str] = {
    ProviderMode.SANDBOX: "https://api-m.sandbox.paypal.com",
    ProviderMode.LIVE: "https://api-m.paypal.com",
}


class Settings(BaseModel):
    """Runtime configuration resolved once per process."""

    model_config = ConfigDict(frozen=True)

    environment: str = Field(default="dev")
    mode: ProviderMode = Field(default=ProviderMode.SANDBOX)
    base_url_override: str | None = Field(default=None)
    product_id: str | None = Field(default=None, description="Default catalog product")
    brand_name: str = Field(default="Subscriptions")
    frontend_url: str = Field(default="http://localhost:3000")
    api_base_url: str = Field(default="http://localhost:8080")
    kms_key_arn: str | None = Field(default=None)
    webhook_verification: SignatureVerificationMethod = Field(
        default=SignatureVerificationMethod.API
    )
    request_timeout_seconds: float = Field(default=15.0, gt=0)
    max_attempts: int = Field(default=3, ge=1)
    backoff_base_seconds: float = Field(default=0.2, ge=0)
    token_safety_margin_seconds: int = Field(default=60, ge=0)
    start_delay_minutes: int = Field(default=5, ge=0)
    pending_ttl_hours: int = Field(default=3, ge=1)

    @property
    def base_url(self) -> str:
        return self.base_url_override or PROVIDER_BASE_URLS[self.mode]

    @property
    def ssm_prefix(self) -> str:
        """Parameter Store path prefix for this environment."""
        return f"/subscriptions/{self.environment}"

    @property
    def return_url(self) -> str:
        return f"{self.api_base_url.rstrip('/')}/api/subscriptions/return"

    @property
    def cancel_url(self) -> str:
        return f"{self.api_base_url.rstrip('/')}/api/subscriptions/cancel"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables.

        Returns:
            Settings with unset variables left at their defaults.
        """
        env = os.environ
        values: dict[str, str] = {}
        mapping = {
            "environment": "ENVIRONMENT",
            "mode": "PAYPAL_MODE",
            "base_url_override": "PAYPAL_BASE_URL",
            "product_id": "PAYPAL_PRODUCT_ID",
            "brand_name": "BRAND_NAME",
            "frontend_url": "FRONTEND_URL",
            "api_base_url": "API_BASE_URL",
            "kms_key_arn": "KMS_KEY_ARN",
            "webhook_verification": "WEBHOOK_VERIFICATION",
            "request_timeout_seconds": "PROVIDER_TIMEOUT_SECONDS",
            "max_attempts": "PROVIDER_MAX_ATTEMPTS",
            "backoff_base_seconds": "PROVIDER_BACKOFF_BASE_SECONDS",
            "token_safety_margin_seconds": "TOKEN_SAFETY_MARGIN_SECONDS",
            "start_delay_minutes": "SUBSCRIPTION_START_DELAY_MINUTES",
            "pending_ttl_hours": "PENDING_TTL_HOURS",
        }
        for field_name, variable in mapping.items():
            value = env.get(variable)
            if value:
                values[field_name] = value
        return cls.model_validate(values)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the process-wide Settings (read from the environment once).

    Returns:
        Settings: Shared settings instance.
    """
    return Settings.from_env()
