"""Factory for creating Lightning providers."""

from collections.abc import Mapping
from typing import Any

import httpx

from lnprocessor.domain.enums import ProviderType
from lnprocessor.exceptions import ConfigError
from lnprocessor.providers.base import LightningProvider
from lnprocessor.providers.managed_wallet import ManagedWalletProvider
from lnprocessor.providers.protocol_native import ProtocolNativeProvider
from lnprocessor.providers.stub import StubProvider
from lnprocessor.utils.config import (
    ManagedWalletConfig,
    ProtocolNativeConfig,
    Settings,
    get_settings,
    validate_block,
)
from lnprocessor.utils.logging import get_logger

logger = get_logger(__name__)


def create_provider(
    provider_type: ProviderType | str,
    configuration: Mapping[str, Any] | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> LightningProvider:
    """
    Create a Lightning provider instance.

    Args:
        provider_type: Provider type or selector string (``lnbits``, ``ldk``, ...)
        configuration: Backend-specific configuration block
        http_client: Optional shared HTTP client for the managed wallet

    Returns:
        LightningProvider instance

    Raises:
        ConfigError: If the provider cannot be constructed

    Examples:
        provider = create_provider("stub")

        provider = create_provider(
            "managed-wallet",
            {"url": "https://wallet.example.com", "api_key": "..."},
        )
    """
    try:
        resolved = ProviderType.from_str(provider_type)
        block = dict(configuration or {})

        logger.info("creating_lightning_provider", provider=str(resolved))

        if resolved == ProviderType.MANAGED_WALLET:
            return ManagedWalletProvider(
                validate_block(ManagedWalletConfig, block), http_client=http_client
            )

        elif resolved == ProviderType.PROTOCOL_NATIVE:
            return ProtocolNativeProvider(validate_block(ProtocolNativeConfig, block))

        return StubProvider(**block)

    except ConfigError as e:
        logger.error(
            "provider_creation_failed",
            provider=str(provider_type),
            error=str(e),
            error_type=type(e).__name__,
        )
        raise

    except Exception as e:
        logger.error(
            "provider_creation_failed",
            provider=str(provider_type),
            error=str(e),
            error_type=type(e).__name__,
        )
        raise ConfigError(
            f"Failed to create provider {provider_type}: {e}",
            setting="provider",
            original_error=e,
        ) from e


def create_provider_from_settings(
    settings: Settings | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> LightningProvider:
    """Create the provider selected by the application settings."""
    if settings is None:
        settings = get_settings()

    return create_provider(
        settings.provider_type(),
        settings.provider_block(),
        http_client=http_client,
    )
