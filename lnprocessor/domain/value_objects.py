"""Domain value objects for Lightning payment verification.

Value Objects:
- Immutable (frozen dataclasses)
- No identity (equality based on attributes)
- Describe characteristics, not entities
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from lnprocessor.exceptions import InvoiceError

PAYMENT_HASH_LENGTH = 32


@dataclass(frozen=True)
class Invoice:
    """Parsed BOLT-11 invoice.

    Produced only by the invoice codec; construction fails as a whole
    rather than yielding a partially-populated invoice.
    """

    raw: str  # Full BOLT-11 encoded string
    payment_hash: bytes
    amount_msats: int | None  # None: amount left to the payer
    description: str
    expiry_seconds: int
    timestamp: int  # Unix timestamp the invoice was created at
    currency: str = "bc"
    payee_pubkey: str | None = None

    def __post_init__(self) -> None:
        if len(self.payment_hash) != PAYMENT_HASH_LENGTH:
            raise InvoiceError(
                f"Payment hash must be {PAYMENT_HASH_LENGTH} bytes, got {len(self.payment_hash)}",
                field="payment_hash",
            )
        if self.amount_msats is not None and self.amount_msats <= 0:
            raise InvoiceError(
                f"Amount must be positive, got {self.amount_msats}",
                field="amount_msats",
                value=self.amount_msats,
            )
        if self.expiry_seconds <= 0:
            raise InvoiceError(
                f"Expiry must be positive, got {self.expiry_seconds}",
                field="expiry_seconds",
                value=self.expiry_seconds,
            )

    @property
    def payment_hash_hex(self) -> str:
        """Payment hash as lowercase hex."""
        return self.payment_hash.hex()

    @property
    def expires_at(self) -> datetime:
        """Expiry time as an aware datetime."""
        return datetime.fromtimestamp(self.timestamp + self.expiry_seconds, UTC)

    @property
    def is_expired(self) -> bool:
        """Check if invoice has expired."""
        return datetime.now(UTC) >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "payment_hash": self.payment_hash_hex,
            "amount_msats": self.amount_msats,
            "description": self.description,
            "expiry_seconds": self.expiry_seconds,
            "timestamp": self.timestamp,
            "expires_at": self.expires_at.isoformat(),
            "currency": self.currency,
            "payee_pubkey": self.payee_pubkey,
            "is_expired": self.is_expired,
        }


@dataclass(frozen=True)
class IssuedInvoice:
    """A freshly issued invoice together with the secrets behind it.

    The preimage is the 32-byte secret whose SHA256 is the payment hash;
    whoever holds it can claim the payment.
    """

    payment_request: str
    payment_hash: bytes
    preimage: bytes
    payment_secret: bytes
    amount_msats: int | None
    expiry_seconds: int
    timestamp: int

    @property
    def payment_hash_hex(self) -> str:
        return self.payment_hash.hex()

    @property
    def is_expired(self) -> bool:
        now = int(datetime.now(UTC).timestamp())
        return now >= self.timestamp + self.expiry_seconds


@dataclass(frozen=True)
class PaymentVerificationResult:
    """Backend answer to "has this payment been made?".

    Produced fresh on every verification call; only folded into the ledger.
    ``amount_msats`` is present only when ``verified`` is true.
    """

    verified: bool
    amount_msats: int | None = None
    raw_backend_status: str = ""

    def __post_init__(self) -> None:
        if not self.verified and self.amount_msats is not None:
            raise ValueError("amount_msats is only reported for verified payments")
