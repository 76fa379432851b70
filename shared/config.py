"""
Gateway configuration management.

Settings are read once at startup and treated as immutable afterwards.
Components receive the settings object (or values derived from it) by
reference; nothing re-reads the environment per request.
"""

from typing import List, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.errors import ConfigurationError


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="ATLAS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Environment
    env: str = "local"
    log_level: str = "info"
    host: str = "0.0.0.0"
    port: int = 3001

    # Data stores
    database_url: str = "postgresql://localhost:5432/atlas"
    database_pool_min: int = 2
    database_pool_max: int = 10
    redis_url: str = "redis://localhost:6379/0"

    # Observability
    enable_tracing: bool = False
    otel_exporter: str = "http://localhost:4317"
    enable_console_tracing: bool = False


class GatewaySettings(BaseConfig):
    """Gateway-specific configuration."""

    service_name: str = "gateway"

    # RPC provider
    alchemy_api_key: Optional[SecretStr] = None

    # Swap aggregator and platform monetization
    zero_ex_api_key: Optional[SecretStr] = None
    zero_ex_base_url: str = "https://api.0x.org"
    zero_ex_fee_recipient: Optional[str] = None
    zero_ex_fee_bps: int = Field(default=25)
    zero_ex_surplus_recipient: Optional[str] = None

    upstream_timeout_seconds: float = 15.0

    # Dashboard session verification for credential management
    dashboard_jwks_url: Optional[str] = None
    dashboard_issuer: Optional[str] = None
    dashboard_audience: Optional[str] = None

    # Cache TTLs (seconds)
    credential_list_ttl_seconds: int = 60
    credential_lookup_ttl_seconds: int = 30
    usage_summary_ttl_seconds: int = 60
    swap_chains_ttl_seconds: int = 300

    # Requests per minute per credential; 0 disables the limiter
    rate_limit_per_minute: int = 600

    @field_validator("zero_ex_fee_bps")
    @classmethod
    def _check_fee_bps(cls, value: int) -> int:
        if value < 0 or value > 10_000:
            raise ValueError("zero_ex_fee_bps must be between 0 and 10000")
        return value

    @field_validator("zero_ex_fee_recipient", "zero_ex_surplus_recipient")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value.strip() if value else value

    def missing_required(self) -> List[str]:
        """Names of required settings that are absent."""
        missing = []
        if not self.alchemy_api_key or not self.alchemy_api_key.get_secret_value():
            missing.append("ATLAS_ALCHEMY_API_KEY")
        if not self.zero_ex_api_key or not self.zero_ex_api_key.get_secret_value():
            missing.append("ATLAS_ZERO_EX_API_KEY")
        if not self.zero_ex_fee_recipient:
            missing.append("ATLAS_ZERO_EX_FEE_RECIPIENT")
        if not self.dashboard_jwks_url:
            missing.append("ATLAS_DASHBOARD_JWKS_URL")
        return missing

    def require_provider_credentials(self) -> None:
        """Refuse to continue when a required provider setting is missing."""
        missing = self.missing_required()
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}",
                details={"missing": missing},
            )


def get_settings(**overrides) -> GatewaySettings:
    """Load gateway settings from the environment, applying explicit overrides."""
    return GatewaySettings(**overrides)
