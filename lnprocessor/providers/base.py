"""Base provider abstraction for Lightning backends."""

from abc import ABC, abstractmethod
from collections.abc import Callable

from lnprocessor.domain.enums import ProviderType
from lnprocessor.domain.events import ChannelClosed, ChannelOpened
from lnprocessor.domain.value_objects import Invoice, PaymentVerificationResult
from lnprocessor.utils.logging import get_logger

logger = get_logger(__name__)

ChannelListener = Callable[[ChannelOpened | ChannelClosed], None]


class LightningProvider(ABC):
    """
    Abstract capability every Lightning backend offers.

    Implementations answer "has this payment been made, and for how much?"
    and issue new invoices. Whatever goes wrong inside a backend leaves
    this boundary only as one of the lnprocessor error types.

    Providers are shared across concurrent verifications and must tolerate
    concurrent calls.
    """

    def __init__(self) -> None:
        self._channel_listeners: list[ChannelListener] = []

    @abstractmethod
    async def verify_payment(
        self, invoice: Invoice, payment_hash: bytes, payment_id: str
    ) -> PaymentVerificationResult:
        """
        Ask the backend whether the payment behind ``payment_hash`` was made.

        Args:
            invoice: Parsed invoice being paid
            payment_hash: Hash the host claims for this payment
            payment_id: Host identifier, for diagnostics only

        Returns:
            PaymentVerificationResult

        Raises:
            InvoiceError, ProcessorError, NodeConnectionError
        """
        pass

    @abstractmethod
    async def create_invoice(
        self, amount_msats: int | None, description: str, expiry_seconds: int
    ) -> str:
        """Issue a new BOLT-11 invoice and return its encoded form."""
        pass

    @abstractmethod
    async def is_payment_confirmed(self, payment_hash: bytes) -> bool:
        """Whether the payment behind ``payment_hash`` is settled on the backend."""
        pass

    @abstractmethod
    def provider_type(self) -> ProviderType:
        """Backend kind. Pure, never fails."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None

    def add_channel_listener(self, listener: ChannelListener) -> None:
        """Register a callback for channel open/close notifications."""
        self._channel_listeners.append(listener)

    def _notify_channel_event(self, event: ChannelOpened | ChannelClosed) -> None:
        for listener in list(self._channel_listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(
                    "channel_listener_failed",
                    provider=str(self.provider_type()),
                    event_type=event.event_name,
                    error=str(e),
                )

    def _build_result(
        self,
        invoice: Invoice,
        paid: bool,
        amount_msats: int | None,
        raw_backend_status: str,
    ) -> PaymentVerificationResult:
        """Fold a backend answer into a result, cross-checking the declared amount."""
        if not paid:
            return PaymentVerificationResult(verified=False, raw_backend_status=raw_backend_status)

        if invoice.amount_msats is not None and amount_msats != invoice.amount_msats:
            logger.warning(
                "payment_amount_mismatch",
                provider=str(self.provider_type()),
                payment_hash=invoice.payment_hash_hex,
                expected_msats=invoice.amount_msats,
                received_msats=amount_msats,
            )
            return PaymentVerificationResult(verified=False, raw_backend_status="amount_mismatch")

        return PaymentVerificationResult(
            verified=True,
            amount_msats=amount_msats if amount_msats is not None else invoice.amount_msats,
            raw_backend_status=raw_backend_status,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(type={self.provider_type()})"
