"""Deterministic provider for tests and local development."""

from lnprocessor.domain.enums import ProviderType
from lnprocessor.domain.value_objects import Invoice, PaymentVerificationResult
from lnprocessor.infrastructure.bolt11_codec import encode_invoice
from lnprocessor.providers.base import LightningProvider
from lnprocessor.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_STUB_AMOUNT_MSATS = 1000


class StubProvider(LightningProvider):
    """Every payment is verified; invoices are signed with a throwaway key."""

    def __init__(self, default_amount_msats: int = DEFAULT_STUB_AMOUNT_MSATS) -> None:
        super().__init__()
        self.default_amount_msats = default_amount_msats

    async def verify_payment(
        self, invoice: Invoice, payment_hash: bytes, payment_id: str
    ) -> PaymentVerificationResult:
        amount = invoice.amount_msats or self.default_amount_msats
        logger.debug("stub_payment_verified", payment_id=payment_id, amount_msats=amount)
        return PaymentVerificationResult(
            verified=True, amount_msats=amount, raw_backend_status="stub"
        )

    async def create_invoice(
        self, amount_msats: int | None, description: str, expiry_seconds: int
    ) -> str:
        return encode_invoice(amount_msats, description, expiry_seconds)

    async def is_payment_confirmed(self, payment_hash: bytes) -> bool:
        return True

    def provider_type(self) -> ProviderType:
        return ProviderType.STUB
