"""Tests for lifecycle and selector enums."""

import pytest

from lnprocessor.domain.enums import FailureReason, Network, PaymentState, ProviderType
from lnprocessor.exceptions import ConfigError


class TestPaymentState:
    @pytest.mark.parametrize(
        "source,target",
        [
            (PaymentState.CREATED, PaymentState.VERIFYING),
            (PaymentState.CREATED, PaymentState.FAILED),
            (PaymentState.VERIFYING, PaymentState.VERIFIED),
            (PaymentState.VERIFYING, PaymentState.FAILED),
            (PaymentState.VERIFIED, PaymentState.SETTLED),
            (PaymentState.VERIFIED, PaymentState.FAILED),
        ],
    )
    def test_legal_edges(self, source, target):
        assert source.can_transition_to(target)

    @pytest.mark.parametrize(
        "source,target",
        [
            (PaymentState.CREATED, PaymentState.VERIFIED),
            (PaymentState.CREATED, PaymentState.SETTLED),
            (PaymentState.VERIFYING, PaymentState.SETTLED),
            (PaymentState.VERIFIED, PaymentState.VERIFYING),
            (PaymentState.SETTLED, PaymentState.FAILED),
            (PaymentState.FAILED, PaymentState.VERIFYING),
        ],
    )
    def test_illegal_edges(self, source, target):
        assert not source.can_transition_to(target)

    def test_no_state_transitions_to_itself(self):
        for state in PaymentState:
            assert not state.can_transition_to(state)

    def test_terminal_states(self):
        assert {state for state in PaymentState if state.is_terminal} == {
            PaymentState.SETTLED,
            PaymentState.FAILED,
        }

    def test_str_is_value(self):
        assert str(PaymentState.VERIFIED) == "verified"


class TestProviderType:
    @pytest.mark.parametrize(
        "selector,expected",
        [
            ("managed-wallet", ProviderType.MANAGED_WALLET),
            ("managed_wallet", ProviderType.MANAGED_WALLET),
            ("LNbits", ProviderType.MANAGED_WALLET),
            ("protocol-native", ProviderType.PROTOCOL_NATIVE),
            ("ldk", ProviderType.PROTOCOL_NATIVE),
            (" Stub ", ProviderType.STUB),
            (ProviderType.STUB, ProviderType.STUB),
        ],
    )
    def test_from_str(self, selector, expected):
        assert ProviderType.from_str(selector) == expected

    @pytest.mark.parametrize("selector", ["lnd", "", "wallet"])
    def test_unknown_selector_is_config_error(self, selector):
        with pytest.raises(ConfigError) as exc_info:
            ProviderType.from_str(selector)

        assert exc_info.value.context["setting"] == "provider"


def test_network_currency_mapping():
    assert Network.MAINNET.currency == "bc"
    assert Network.TESTNET.currency == "tb"
    assert Network.REGTEST.currency == "bcrt"
    assert Network.SIGNET.currency == "tbs"


def test_failure_reasons_match_error_kinds():
    assert FailureReason("InvoiceError") is FailureReason.INVOICE_ERROR
    assert FailureReason("ProcessorError") is FailureReason.PROCESSOR_ERROR
