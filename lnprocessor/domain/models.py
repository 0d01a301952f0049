"""Domain entities for Lightning payment verification.

Entities:
- Have identity (``payment_id``)
- Mutable lifecycle, owned by the payment ledger
- Handed out to callers only as snapshots
"""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from .enums import PaymentState
from .value_objects import Invoice


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class PaymentRecord:
    """Tracked payment request.

    Only the ledger writes ``state``; everything else sees copies made
    with :meth:`snapshot`.
    """

    payment_id: str
    invoice: Invoice
    state: PaymentState = PaymentState.CREATED
    amount_msats: int | None = None
    created_at: datetime = field(default_factory=_utcnow)
    last_updated_at: datetime = field(default_factory=_utcnow)
    attempt_count: int = 0

    def __repr__(self) -> str:
        return (
            f"<PaymentRecord(payment_id={self.payment_id!r}, state='{self.state.value}', "
            f"amount_msats={self.amount_msats}, attempts={self.attempt_count})>"
        )

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def snapshot(self) -> "PaymentRecord":
        """Detached copy safe to hand to callers."""
        return replace(self)

    def touch(self) -> None:
        self.last_updated_at = _utcnow()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "payment_id": self.payment_id,
            "payment_hash": self.invoice.payment_hash_hex,
            "state": self.state.value,
            "amount_msats": self.amount_msats,
            "created_at": self.created_at.isoformat(),
            "last_updated_at": self.last_updated_at.isoformat(),
            "attempt_count": self.attempt_count,
        }
