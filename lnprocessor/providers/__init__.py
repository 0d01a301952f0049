"""Lightning backend providers.

Supports multiple backends:
- Managed wallet (LNbits-style REST API)
- Protocol-native (embedded node)
- Stub (for testing)
"""

from lnprocessor.providers.base import LightningProvider
from lnprocessor.providers.factory import create_provider, create_provider_from_settings
from lnprocessor.providers.managed_wallet import ManagedWalletProvider
from lnprocessor.providers.protocol_native import ProtocolNativeProvider
from lnprocessor.providers.stub import StubProvider

__all__ = [
    "LightningProvider",
    "ManagedWalletProvider",
    "ProtocolNativeProvider",
    "StubProvider",
    "create_provider",
    "create_provider_from_settings",
]
