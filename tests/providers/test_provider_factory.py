"""Tests for provider construction."""

import pytest

from lnprocessor.domain.enums import ProviderType
from lnprocessor.exceptions import ConfigError
from lnprocessor.providers import (
    ManagedWalletProvider,
    ProtocolNativeProvider,
    StubProvider,
    create_provider,
    create_provider_from_settings,
)
from lnprocessor.utils.config import Settings

WALLET_BLOCK = {"url": "https://wallet.test", "api_key": "key-123"}


class TestCreateProvider:
    def test_stub(self):
        provider = create_provider("stub")

        assert isinstance(provider, StubProvider)
        assert provider.provider_type() == ProviderType.STUB

    @pytest.mark.parametrize("selector", ["managed-wallet", "lnbits", ProviderType.MANAGED_WALLET])
    def test_managed_wallet(self, selector):
        provider = create_provider(selector, WALLET_BLOCK)

        assert isinstance(provider, ManagedWalletProvider)
        assert provider.config.url == "https://wallet.test"

    def test_protocol_native(self, tmp_path):
        provider = create_provider("ldk", {"data_dir": tmp_path, "network": "signet"})

        assert isinstance(provider, ProtocolNativeProvider)
        assert provider.network.currency == "tbs"

    @pytest.mark.parametrize("api_key", ["", "   "])
    def test_managed_wallet_empty_credential(self, api_key):
        with pytest.raises(ConfigError) as exc_info:
            create_provider("managed-wallet", {"url": "https://wallet.test", "api_key": api_key})

        assert "api_key" in exc_info.value.context["setting"]

    def test_managed_wallet_without_configuration(self):
        with pytest.raises(ConfigError):
            create_provider("managed-wallet", None)

    def test_managed_wallet_bad_url(self):
        with pytest.raises(ConfigError):
            create_provider("managed-wallet", {"url": "wallet.test", "api_key": "key"})

    def test_protocol_native_unknown_network(self, tmp_path):
        with pytest.raises(ConfigError) as exc_info:
            create_provider("protocol-native", {"data_dir": tmp_path, "network": "moonnet"})

        assert "network" in exc_info.value.context["setting"]

    def test_unknown_provider(self):
        with pytest.raises(ConfigError):
            create_provider("lnd", {})

    def test_stub_rejects_unknown_options(self):
        with pytest.raises(ConfigError):
            create_provider("stub", {"url": "https://wallet.test"})


class TestCreateProviderFromSettings:
    def test_stub_from_settings(self):
        provider = create_provider_from_settings(Settings(provider="stub"))

        assert isinstance(provider, StubProvider)

    def test_managed_wallet_from_environment(self, monkeypatch):
        monkeypatch.setenv("LNPROCESSOR_PROVIDER", "lnbits")
        monkeypatch.setenv("LNPROCESSOR_MANAGED_WALLET_URL", "https://wallet.test/")
        monkeypatch.setenv("LNPROCESSOR_MANAGED_WALLET_API_KEY", "key-123")

        provider = create_provider_from_settings()

        assert isinstance(provider, ManagedWalletProvider)
        assert provider.config.url == "https://wallet.test"

    def test_default_settings_lack_credentials(self):
        with pytest.raises(ConfigError):
            create_provider_from_settings(Settings())
