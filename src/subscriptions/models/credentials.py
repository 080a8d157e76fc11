"""Provider credential and access token models."""

from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from .enums import ProviderMode


class Credential(BaseModel):
    """PayPal REST app credentials for one mode.

    Loaded once per process from the secret store and never mutated.
    The secret is wrapped in SecretStr so it renders as '**********'
    in reprs, logs and serialized output.
    """

    model_config = ConfigDict(frozen=True)

    client_id: str = Field(..., min_length=1, description="REST app client ID")
    client_secret: SecretStr = Field(..., description="REST app client secret")
    webhook_id: str = Field(..., min_length=1, description="Registered webhook ID")
    mode: ProviderMode = Field(default=ProviderMode.SANDBOX)


class AccessToken(BaseModel):
    """Bearer token minted through the client-credentials grant.

    This is an in-memory model, owned by the TokenCache and never persisted.
    """

    model_config = ConfigDict(frozen=True)

    value: SecretStr = Field(..., description="Bearer access token")
    expires_at: datetime = Field(..., description="Token expiration time (UTC)")
    token_type: str = Field(default="Bearer")
    app_id: str | None = Field(default=None, description="Provider app ID, if returned")

    def is_expired(self, now: datetime, margin: timedelta) -> bool:
        """Check expiry with a safety margin subtracted from expires_at."""
        return now >= self.expires_at - margin

    @property
    def authorization_header(self) -> str:
        return f"{self.token_type} {self.value.get_secret_value()}"
