"""Configuration for lnprocessor.

Pydantic-based settings, read once per process. Every field can be
overridden through the environment.

Environment Variables:
- LNPROCESSOR_PROVIDER: Backend selector (managed-wallet, protocol-native, stub)
- LNPROCESSOR_MANAGED_WALLET_URL / _API_KEY / _WALLET_ID: Wallet service access
- LNPROCESSOR_PROTOCOL_NATIVE_DATA_DIR / _NETWORK / _NODE_PRIVATE_KEY: Embedded node
- LNPROCESSOR_LEDGER_DATABASE_URL: Persist the payment ledger (optional)
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from lnprocessor.domain.enums import Network, ProviderType
from lnprocessor.exceptions import ConfigError


class ManagedWalletConfig(BaseModel):
    """Validated configuration block for the REST wallet backend."""

    url: str = Field(min_length=1)
    api_key: str = Field(min_length=1)
    wallet_id: str | None = None
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=2, ge=0, le=10)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("api_key must not be blank")
        return v.strip()

    @field_validator("wallet_id")
    @classmethod
    def blank_wallet_id_is_none(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v


class ProtocolNativeConfig(BaseModel):
    """Validated configuration block for the embedded node backend."""

    data_dir: Path = Path("data/ldk")
    network: Network = Network.TESTNET
    node_private_key: str | None = None

    @field_validator("network", mode="before")
    @classmethod
    def normalize_network(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("node_private_key")
    @classmethod
    def validate_node_private_key(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        v = v.strip().lower()
        if len(v) != 64:
            raise ValueError("node_private_key must be 64 hex characters")
        try:
            bytes.fromhex(v)
        except ValueError as e:
            raise ValueError("node_private_key must be hex encoded") from e
        return v


def validate_block(model: type[BaseModel], block: dict[str, Any]) -> Any:
    """Validate a provider configuration block, translating failures to ConfigError."""
    try:
        return model.model_validate(block)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise ConfigError(
            f"Invalid {model.__name__}: {', '.join(fields) or 'configuration'}",
            setting=", ".join(fields) or None,
            original_error=e,
        ) from e


class Settings(BaseSettings):
    """Application settings.

    Example:
        >>> settings = Settings(provider="stub")
        >>> settings.provider_type()
        <ProviderType.STUB: 'stub'>
    """

    model_config = SettingsConfigDict(
        env_prefix="LNPROCESSOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Provider selection
    provider: str = Field(
        default="managed-wallet",
        description="Backend selector: managed-wallet, protocol-native or stub",
    )

    # Managed wallet (LNbits-style REST service)
    managed_wallet_url: str = Field(default="", description="Wallet service base URL")
    managed_wallet_api_key: str = Field(default="", description="Wallet invoice/read key")
    managed_wallet_wallet_id: str | None = Field(default=None)
    managed_wallet_timeout_seconds: float = Field(default=30.0, gt=0)
    managed_wallet_max_retries: int = Field(default=2, ge=0, le=10)

    # Protocol-native embedded node
    protocol_native_data_dir: Path = Field(default=Path("data/ldk"))
    protocol_native_network: str = Field(default="testnet")
    protocol_native_node_private_key: str | None = Field(default=None)

    # Ledger persistence
    ledger_database_url: str | None = Field(
        default=None,
        description="SQLAlchemy URL for ledger persistence (in-memory only if unset)",
    )

    # Logging
    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=False)

    # Invoices
    default_invoice_expiry_seconds: int = Field(default=3600, ge=1)

    def provider_type(self) -> ProviderType:
        """Resolve the configured selector."""
        return ProviderType.from_str(self.provider)

    def provider_block(self) -> dict[str, Any]:
        """Backend-specific configuration block for the selected provider."""
        provider_type = self.provider_type()

        if provider_type == ProviderType.MANAGED_WALLET:
            return {
                "url": self.managed_wallet_url,
                "api_key": self.managed_wallet_api_key,
                "wallet_id": self.managed_wallet_wallet_id,
                "timeout_seconds": self.managed_wallet_timeout_seconds,
                "max_retries": self.managed_wallet_max_retries,
            }
        if provider_type == ProviderType.PROTOCOL_NATIVE:
            return {
                "data_dir": self.protocol_native_data_dir,
                "network": self.protocol_native_network,
                "node_private_key": self.protocol_native_node_private_key,
            }
        return {}


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, read from the environment on first use."""
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}", original_error=e) from e
