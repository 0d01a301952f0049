"""Domain events for Lightning payment verification.

Inbound events drive the payment processor; outbound events report each
applied transition. All events are immutable (frozen dataclasses) and
carry the standard event metadata.
"""

from dataclasses import dataclass

from lnprocessor.core.events.base import BaseEvent

# ============================================================================
# INBOUND (host → processor)
# ============================================================================


@dataclass(frozen=True)
class PaymentRequestCreated(BaseEvent):
    """A payment request was created on the host; verify it."""

    payment_id: str
    invoice: str | None

    @property
    def context_data(self) -> dict:
        return {"payment_id": self.payment_id, "has_invoice": self.invoice is not None}


@dataclass(frozen=True)
class PaymentSettled(BaseEvent):
    """The host observed settlement of a payment."""

    payment_id: str

    @property
    def context_data(self) -> dict:
        return {"payment_id": self.payment_id}


@dataclass(frozen=True)
class PaymentFailed(BaseEvent):
    """The host gave up on a payment."""

    payment_id: str
    reason: str

    @property
    def context_data(self) -> dict:
        return {"payment_id": self.payment_id, "reason": self.reason}


INBOUND_EVENTS: tuple[type[BaseEvent], ...] = (
    PaymentRequestCreated,
    PaymentSettled,
    PaymentFailed,
)


# ============================================================================
# OUTBOUND (processor → host)
# ============================================================================


@dataclass(frozen=True)
class PaymentVerified(BaseEvent):
    """Fired when a payment moves to VERIFIED.

    ``amount_msats`` is None only for an open-amount invoice whose backend
    did not report what was paid.
    """

    payment_id: str
    amount_msats: int | None

    @property
    def context_data(self) -> dict:
        return {"payment_id": self.payment_id, "amount_msats": self.amount_msats}


@dataclass(frozen=True)
class PaymentRouteFound(BaseEvent):
    """Fired when a verified payment moves to SETTLED."""

    payment_id: str

    @property
    def context_data(self) -> dict:
        return {"payment_id": self.payment_id}


@dataclass(frozen=True)
class PaymentRouteFailed(BaseEvent):
    """Fired when a payment moves to FAILED.

    ``reason`` is a ``FailureReason`` value (taxonomy case or policy
    outcome); ``detail`` is free-form diagnostics only.
    """

    payment_id: str
    reason: str
    detail: str | None = None

    @property
    def context_data(self) -> dict:
        return {"payment_id": self.payment_id, "reason": self.reason, "detail": self.detail}


@dataclass(frozen=True)
class ChannelOpened(BaseEvent):
    """A channel was opened on the active backend (pass-through)."""

    channel_id: str
    peer_pubkey: str
    capacity_sat: int

    @property
    def context_data(self) -> dict:
        return {
            "channel_id": self.channel_id,
            "peer_pubkey": self.peer_pubkey,
            "capacity_sat": self.capacity_sat,
        }


@dataclass(frozen=True)
class ChannelClosed(BaseEvent):
    """A channel was closed on the active backend (pass-through)."""

    channel_id: str
    peer_pubkey: str
    capacity_sat: int
    close_type: str  # "cooperative", "force", "breach"

    @property
    def context_data(self) -> dict:
        return {
            "channel_id": self.channel_id,
            "peer_pubkey": self.peer_pubkey,
            "capacity_sat": self.capacity_sat,
            "close_type": self.close_type,
        }
