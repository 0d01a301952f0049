"""Payment processor: the verification state machine.

Each call is an independent unit of work. The ledger serializes mutation
per ``payment_id``; backend calls happen with no lock held and their
outcome is applied through ``PaymentLedger.transition``, which re-checks
the current state.
"""

import asyncio
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any, NoReturn

from sqlalchemy.exc import SQLAlchemyError

from lnprocessor.application.ledger import PaymentLedger
from lnprocessor.core.events.base import BaseEvent, EventBus, get_event_bus
from lnprocessor.domain.enums import FailureReason, PaymentState
from lnprocessor.domain.events import (
    ChannelClosed,
    ChannelOpened,
    PaymentFailed,
    PaymentRequestCreated,
    PaymentRouteFailed,
    PaymentRouteFound,
    PaymentSettled,
    PaymentVerified,
)
from lnprocessor.domain.models import PaymentRecord
from lnprocessor.domain.value_objects import Invoice
from lnprocessor.exceptions import (
    ConfigError,
    InvoiceError,
    NodeConnectionError,
    ProcessorError,
)
from lnprocessor.infrastructure.bolt11_codec import DEFAULT_EXPIRY_SECONDS, parse_invoice
from lnprocessor.infrastructure.ledger_store import SqlAlchemyLedgerStore
from lnprocessor.providers.base import LightningProvider
from lnprocessor.providers.factory import create_provider_from_settings
from lnprocessor.utils.config import Settings, get_settings
from lnprocessor.utils.logging import (
    clear_correlation_id,
    get_correlation_id,
    get_logger,
    set_correlation_id,
)

logger = get_logger(__name__)

_ALREADY_DECIDED = frozenset({PaymentState.VERIFIED, PaymentState.SETTLED, PaymentState.FAILED})


@contextmanager
def _correlated(payment_id: str) -> Iterator[None]:
    previous = get_correlation_id()
    set_correlation_id(payment_id)
    try:
        yield
    finally:
        if previous is None:
            clear_correlation_id()
        else:
            set_correlation_id(previous)


class PaymentProcessor:
    """Drives payments through CREATED → VERIFYING → VERIFIED → SETTLED (or FAILED).

    Example:
        >>> processor = PaymentProcessor(StubProvider())
        >>> record = await processor.process_payment(invoice_str, "p1")
        >>> record.state
        <PaymentState.VERIFIED: 'verified'>
    """

    def __init__(
        self,
        provider: LightningProvider,
        ledger: PaymentLedger | None = None,
        event_bus: EventBus | None = None,
        *,
        default_invoice_expiry_seconds: int = DEFAULT_EXPIRY_SECONDS,
    ) -> None:
        self.provider = provider
        self.ledger = ledger if ledger is not None else PaymentLedger()
        self.event_bus = event_bus if event_bus is not None else get_event_bus()
        self.default_invoice_expiry_seconds = default_invoice_expiry_seconds

        self._channel_count = 0
        self._total_capacity_sat = 0
        self.provider.add_channel_listener(self._on_channel_event)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    async def process_payment(self, invoice_str: str, payment_id: str) -> PaymentRecord:
        """
        Verify a payment against the active provider.

        Re-processing a payment that already has a verdict is a no-op that
        returns the stored record without calling the backend.

        Args:
            invoice_str: BOLT-11 invoice being paid
            payment_id: Host identifier of the payment

        Returns:
            Snapshot of the payment record after this call

        Raises:
            InvoiceError: Invoice is malformed (no record is created), expired
                (a known record is FAILED) or was rejected by the backend
                (record is FAILED)
            ProcessorError: Backend failed internally (record is FAILED), or the
                ledger store failed (record keeps its previous state)
            NodeConnectionError: Backend unreachable (record stays VERIFYING)
        """
        if not payment_id or not payment_id.strip():
            raise ProcessorError("payment_id must not be empty")

        with _correlated(payment_id):
            invoice = parse_invoice(invoice_str)

            existing = self.ledger.lookup(payment_id)
            if existing is not None and existing.state in _ALREADY_DECIDED:
                logger.debug("payment_already_decided", state=str(existing.state))
                return existing

            if invoice.is_expired:
                await self._reject_expired(payment_id, invoice, existing)

            record = await self.ledger.get_or_create(payment_id, invoice)
            if record.state in _ALREADY_DECIDED:
                logger.debug("payment_already_decided", state=str(record.state))
                return record

            if not await self.ledger.claim_verification(payment_id):
                logger.info("verification_already_in_flight")
                return self.ledger.lookup(payment_id)

            try:
                await self._verify(payment_id, invoice)
            finally:
                await self.ledger.release_verification(payment_id)

            return self.ledger.lookup(payment_id)

    async def _reject_expired(
        self, payment_id: str, invoice: Invoice, existing: PaymentRecord | None
    ) -> NoReturn:
        logger.warning(
            "invoice_expired",
            payment_hash=invoice.payment_hash_hex,
            expired_at=invoice.expires_at.isoformat(),
        )
        error = InvoiceError(
            "Invoice expired", field="expires_at", value=invoice.expires_at.isoformat()
        )
        if existing is not None and existing.invoice.payment_hash == invoice.payment_hash:
            await self._fail(payment_id, FailureReason.INVOICE_ERROR, detail=error.message)
        raise error

    async def _verify(self, payment_id: str, invoice: Invoice) -> None:
        provider_name = str(self.provider.provider_type())

        try:
            result = await self.provider.verify_payment(invoice, invoice.payment_hash, payment_id)

        except NodeConnectionError as e:
            logger.warning("verification_deferred", provider=provider_name, error=str(e))
            raise

        except (InvoiceError, ProcessorError) as e:
            logger.error(
                "verification_failed",
                provider=provider_name,
                error=str(e),
                error_type=e.kind,
            )
            await self._fail(payment_id, FailureReason(e.kind), detail=e.message)
            raise

        except Exception as e:
            logger.error(
                "verification_unexpected_error",
                provider=provider_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            error = ProcessorError(
                f"Unexpected error from provider: {e}",
                provider=provider_name,
                original_error=e,
            )
            await self._fail(payment_id, FailureReason.PROCESSOR_ERROR, detail=error.message)
            raise error from e

        if result.verified:
            applied = await self.ledger.transition(
                payment_id, PaymentState.VERIFIED, amount_msats=result.amount_msats
            )
            if applied:
                logger.info("payment_verified", amount_msats=result.amount_msats)
                await self._publish(
                    PaymentVerified(payment_id=payment_id, amount_msats=result.amount_msats)
                )
        else:
            logger.info("payment_not_verified", backend_status=result.raw_backend_status)
            await self._fail(
                payment_id, FailureReason.NOT_VERIFIED, detail=result.raw_backend_status
            )

    async def verify_payments_batch(self, items: Sequence[tuple[str, str]]) -> list[bool]:
        """
        Check many payments concurrently without touching the ledger.

        Args:
            items: ``(invoice_str, payment_id)`` pairs

        Returns:
            One flag per item, False for unverified payments and per-item errors

        Raises:
            InvoiceError: If any invoice is malformed (nothing is verified)
        """
        parsed = [(parse_invoice(invoice_str), payment_id) for invoice_str, payment_id in items]

        results = await asyncio.gather(
            *(
                self.provider.verify_payment(invoice, invoice.payment_hash, payment_id)
                for invoice, payment_id in parsed
            ),
            return_exceptions=True,
        )

        flags: list[bool] = []
        for (_, payment_id), result in zip(parsed, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning(
                    "batch_item_failed",
                    payment_id=payment_id,
                    error=str(result),
                    error_type=type(result).__name__,
                )
                flags.append(False)
            else:
                flags.append(result.verified)

        logger.info("batch_verified", total=len(flags), verified=sum(flags))
        return flags

    # ------------------------------------------------------------------
    # Settlement and failure
    # ------------------------------------------------------------------

    async def confirm_settlement(self, payment_id: str) -> PaymentRecord | None:
        """
        Ask the backend whether a VERIFIED payment has settled.

        Meant to be called periodically by an external scheduler.

        Raises:
            NodeConnectionError: Backend unreachable; try again later
        """
        record = self.ledger.lookup(payment_id)
        if record is None or record.state != PaymentState.VERIFIED:
            return record

        with _correlated(payment_id):
            confirmed = await self.provider.is_payment_confirmed(record.invoice.payment_hash)
            if confirmed:
                await self._settle(payment_id)

        return self.ledger.lookup(payment_id)

    async def _settle(self, payment_id: str) -> None:
        if await self.ledger.transition(payment_id, PaymentState.SETTLED):
            logger.info("payment_settled", payment_id=payment_id)
            await self._publish(PaymentRouteFound(payment_id=payment_id))

    async def _fail(
        self, payment_id: str, reason: FailureReason, detail: str | None = None
    ) -> None:
        if await self.ledger.transition(payment_id, PaymentState.FAILED):
            await self._publish(
                PaymentRouteFailed(payment_id=payment_id, reason=reason.value, detail=detail)
            )

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def handle_event(self, event: BaseEvent) -> None:
        """Dispatch an inbound lifecycle event."""
        if isinstance(event, PaymentRequestCreated):
            if event.invoice is None:
                logger.debug("payment_request_without_invoice", payment_id=event.payment_id)
                return
            await self.process_payment(event.invoice, event.payment_id)

        elif isinstance(event, PaymentSettled):
            record = self.ledger.lookup(event.payment_id)
            if record is None or record.state != PaymentState.VERIFIED:
                logger.debug(
                    "settlement_ignored",
                    payment_id=event.payment_id,
                    state=str(record.state) if record else None,
                )
                return
            await self._settle(event.payment_id)

        elif isinstance(event, PaymentFailed):
            await self._fail(event.payment_id, FailureReason.PAYMENT_FAILED, detail=event.reason)

        else:
            logger.debug("event_ignored", event_type=event.event_name)

    def subscribe(self, bus: EventBus | None = None) -> None:
        """Register ``handle_event`` for the inbound event kinds."""
        bus = bus if bus is not None else self.event_bus
        for event_type in (PaymentRequestCreated, PaymentSettled, PaymentFailed):
            bus.subscribe(event_type, self.handle_event)

    def _on_channel_event(self, event: ChannelOpened | ChannelClosed) -> None:
        if isinstance(event, ChannelOpened):
            self._channel_count += 1
            self._total_capacity_sat += event.capacity_sat
        else:
            self._channel_count = max(0, self._channel_count - 1)
            self._total_capacity_sat = max(0, self._total_capacity_sat - event.capacity_sat)

        self.event_bus.publish(event)

    def channel_stats(self) -> dict[str, Any]:
        return {
            "provider_type": str(self.provider.provider_type()),
            "channel_count": self._channel_count,
            "total_capacity_sat": self._total_capacity_sat,
        }

    async def _publish(self, event: BaseEvent) -> None:
        await self.event_bus.publish_async(event)

    # ------------------------------------------------------------------
    # Invoices and lifecycle
    # ------------------------------------------------------------------

    async def create_invoice(
        self,
        amount_msats: int | None,
        description: str,
        expiry_seconds: int | None = None,
    ) -> str:
        """Issue an invoice through the active provider."""
        expiry = (
            expiry_seconds if expiry_seconds is not None else self.default_invoice_expiry_seconds
        )
        payment_request = await self.provider.create_invoice(amount_msats, description, expiry)
        logger.info("invoice_created", amount_msats=amount_msats, expiry_seconds=expiry)
        return payment_request

    async def close(self) -> None:
        await self.provider.close()


def create_payment_processor(settings: Settings | None = None) -> PaymentProcessor:
    """
    Build a processor from settings and subscribe it to the global bus.

    Raises:
        ConfigError: If the provider or the ledger database cannot be set up
    """
    if settings is None:
        settings = get_settings()

    provider = create_provider_from_settings(settings)

    store = None
    if settings.ledger_database_url:
        try:
            store = SqlAlchemyLedgerStore.from_url(settings.ledger_database_url)
        except SQLAlchemyError as e:
            raise ConfigError(
                f"Cannot open ledger database: {e}",
                setting="ledger_database_url",
                original_error=e,
            ) from e

    ledger = PaymentLedger(store)
    try:
        ledger.restore()
    except SQLAlchemyError as e:
        raise ConfigError(
            f"Cannot load ledger records: {e}", setting="ledger_database_url", original_error=e
        ) from e

    processor = PaymentProcessor(
        provider,
        ledger,
        get_event_bus(),
        default_invoice_expiry_seconds=settings.default_invoice_expiry_seconds,
    )
    processor.subscribe()

    logger.info(
        "payment_processor_ready",
        provider=str(provider.provider_type()),
        persistent=store is not None,
        restored=len(ledger),
    )
    return processor
