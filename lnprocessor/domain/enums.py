"""Domain enums for Lightning payment verification."""

from enum import Enum

from lnprocessor.exceptions import ConfigError


class PaymentState(str, Enum):
    """Lifecycle of a tracked payment.

    Lifecycle:
        CREATED → VERIFYING → VERIFIED → SETTLED
        CREATED / VERIFYING / VERIFIED → FAILED
    """

    CREATED = "created"  # First seen, nothing asked of the backend yet
    VERIFYING = "verifying"  # Backend verification claimed or in progress
    VERIFIED = "verified"  # Backend confirmed the payment and amount
    SETTLED = "settled"  # Settlement signal received
    FAILED = "failed"  # Unrecoverable failure

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition can leave this state."""
        return self in (PaymentState.SETTLED, PaymentState.FAILED)

    def can_transition_to(self, new_state: "PaymentState") -> bool:
        """Whether ``self → new_state`` is an edge of the lifecycle graph."""
        return new_state in _ALLOWED_TRANSITIONS[self]


_ALLOWED_TRANSITIONS: dict[PaymentState, frozenset[PaymentState]] = {
    PaymentState.CREATED: frozenset({PaymentState.VERIFYING, PaymentState.FAILED}),
    PaymentState.VERIFYING: frozenset({PaymentState.VERIFIED, PaymentState.FAILED}),
    PaymentState.VERIFIED: frozenset({PaymentState.SETTLED, PaymentState.FAILED}),
    PaymentState.SETTLED: frozenset(),
    PaymentState.FAILED: frozenset(),
}


class ProviderType(str, Enum):
    """Backend kind behind the provider capability."""

    MANAGED_WALLET = "managed-wallet"  # REST wallet service (LNbits-style)
    PROTOCOL_NATIVE = "protocol-native"  # Embedded node speaking the protocol
    STUB = "stub"  # Deterministic test double

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_str(cls, value: "str | ProviderType") -> "ProviderType":
        """Resolve a configuration selector into a provider type.

        Raises:
            ConfigError: If the selector names no known provider
        """
        if isinstance(value, ProviderType):
            return value

        normalized = (value or "").strip().lower()
        resolved = _PROVIDER_ALIASES.get(normalized)
        if resolved is None:
            raise ConfigError(
                f"Unknown provider type: {value!r}",
                setting="provider",
                expected="managed-wallet, protocol-native, stub",
            )
        return resolved


_PROVIDER_ALIASES: dict[str, ProviderType] = {
    "managed-wallet": ProviderType.MANAGED_WALLET,
    "managed_wallet": ProviderType.MANAGED_WALLET,
    "lnbits": ProviderType.MANAGED_WALLET,
    "protocol-native": ProviderType.PROTOCOL_NATIVE,
    "protocol_native": ProviderType.PROTOCOL_NATIVE,
    "ldk": ProviderType.PROTOCOL_NATIVE,
    "stub": ProviderType.STUB,
}


class Network(str, Enum):
    """Bitcoin network an embedded node runs on."""

    MAINNET = "mainnet"
    TESTNET = "testnet"
    REGTEST = "regtest"
    SIGNET = "signet"

    def __str__(self) -> str:
        return self.value

    @property
    def currency(self) -> str:
        """BOLT-11 currency prefix for invoices issued on this network."""
        return _NETWORK_CURRENCIES[self]


_NETWORK_CURRENCIES: dict[Network, str] = {
    Network.MAINNET: "bc",
    Network.TESTNET: "tb",
    Network.REGTEST: "bcrt",
    Network.SIGNET: "tbs",
}


class FailureReason(str, Enum):
    """Diagnostic reasons carried by ``PaymentRouteFailed``."""

    NOT_VERIFIED = "not_verified"  # Backend answered, payment not (fully) received
    INVOICE_ERROR = "InvoiceError"
    PROCESSOR_ERROR = "ProcessorError"
    PAYMENT_FAILED = "payment_failed"  # Host reported the payment as failed

    def __str__(self) -> str:
        return self.value
