"""Authoritative record of payment lifecycle state.

All mutation goes through ``get_or_create``, ``transition`` and the
verification claim, each atomic per ``payment_id``. Locks are per key and
created lazily, so unrelated payments never contend. Nothing here awaits
backend I/O while holding a lock.

With a store attached, a mutation is written to the store first and only
applied in memory once the save succeeded, so a failing store leaves the
record (and the verification slot) exactly as it was.
"""

import asyncio

from lnprocessor.domain.enums import PaymentState
from lnprocessor.domain.models import PaymentRecord
from lnprocessor.domain.value_objects import Invoice
from lnprocessor.infrastructure.ledger_store import LedgerStore
from lnprocessor.utils.logging import get_logger

logger = get_logger(__name__)


class PaymentLedger:
    """Keyed store of payment records with per-key serialization."""

    def __init__(self, store: LedgerStore | None = None) -> None:
        """
        Args:
            store: Optional persistence mirror; every applied mutation is saved to it
        """
        self._records: dict[str, PaymentRecord] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._in_flight: set[str] = set()
        self._store = store

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, payment_id: object) -> bool:
        return payment_id in self._records

    def _lock_for(self, payment_id: str) -> asyncio.Lock:
        # No await between lookup and insert, so two tasks can't create two locks
        lock = self._locks.get(payment_id)
        if lock is None:
            lock = self._locks[payment_id] = asyncio.Lock()
        return lock

    async def _persist(self, record: PaymentRecord) -> None:
        if self._store is not None:
            # Blocking database commit, keep it off the event loop
            await asyncio.to_thread(self._store.save, record)

    async def get_or_create(self, payment_id: str, invoice: Invoice) -> PaymentRecord:
        """Return the record for ``payment_id``, creating it in CREATED if absent."""
        async with self._lock_for(payment_id):
            record = self._records.get(payment_id)
            if record is not None:
                if record.invoice.payment_hash != invoice.payment_hash:
                    logger.warning(
                        "ledger_invoice_conflict",
                        payment_id=payment_id,
                        stored_hash=record.invoice.payment_hash_hex,
                        offered_hash=invoice.payment_hash_hex,
                    )
                return record.snapshot()

            record = PaymentRecord(payment_id=payment_id, invoice=invoice)
            await self._persist(record)
            self._records[payment_id] = record

            logger.info(
                "ledger_record_created",
                payment_id=payment_id,
                payment_hash=invoice.payment_hash_hex,
                amount_msats=invoice.amount_msats,
            )
            return record.snapshot()

    async def transition(
        self,
        payment_id: str,
        new_state: PaymentState,
        amount_msats: int | None = None,
    ) -> bool:
        """
        Move a record to ``new_state`` if that edge is legal.

        Illegal or unknown transitions are ignored (duplicate and
        out-of-order delivery are expected).

        Returns:
            True if the transition was applied

        Raises:
            ProcessorError: The store rejected the change (nothing was applied)
        """
        async with self._lock_for(payment_id):
            record = self._records.get(payment_id)
            if record is None:
                logger.warning(
                    "ledger_transition_ignored",
                    payment_id=payment_id,
                    to_state=str(new_state),
                    reason="unknown_payment",
                )
                return False

            if not record.state.can_transition_to(new_state):
                logger.warning(
                    "ledger_transition_ignored",
                    payment_id=payment_id,
                    from_state=str(record.state),
                    to_state=str(new_state),
                    reason="illegal_transition",
                )
                return False

            updated = record.snapshot()
            updated.state = new_state
            if amount_msats is not None:
                updated.amount_msats = amount_msats
            updated.touch()
            await self._persist(updated)
            self._records[payment_id] = updated

            logger.info(
                "ledger_transition_applied",
                payment_id=payment_id,
                from_state=str(record.state),
                to_state=str(new_state),
                amount_msats=updated.amount_msats,
            )
            return True

    async def claim_verification(self, payment_id: str) -> bool:
        """
        Take the single verification slot for ``payment_id``.

        CREATED records move to VERIFYING. A VERIFYING record with no
        verification in flight (its last attempt ended without a verdict)
        can be claimed again.

        Returns:
            True if the caller now owns the verification
        """
        async with self._lock_for(payment_id):
            record = self._records.get(payment_id)
            if record is None or payment_id in self._in_flight:
                return False

            if record.state not in (PaymentState.CREATED, PaymentState.VERIFYING):
                return False

            claimed = record.snapshot()
            claimed.state = PaymentState.VERIFYING
            claimed.attempt_count += 1
            claimed.touch()
            await self._persist(claimed)
            self._records[payment_id] = claimed
            self._in_flight.add(payment_id)

            logger.debug(
                "verification_claimed",
                payment_id=payment_id,
                attempt=claimed.attempt_count,
            )
            return True

    async def release_verification(self, payment_id: str) -> None:
        """Give the verification slot back."""
        async with self._lock_for(payment_id):
            self._in_flight.discard(payment_id)

    def is_verification_in_flight(self, payment_id: str) -> bool:
        return payment_id in self._in_flight

    def lookup(self, payment_id: str) -> PaymentRecord | None:
        """Snapshot of the record, or None."""
        record = self._records.get(payment_id)
        return record.snapshot() if record is not None else None

    def records(self) -> list[PaymentRecord]:
        """Snapshots of every record."""
        return [record.snapshot() for record in self._records.values()]

    def restore(self) -> int:
        """Load persisted records that are not already in memory.

        Returns:
            Number of records restored
        """
        if self._store is None:
            return 0

        restored = 0
        for record in self._store.load_all():
            if record.payment_id not in self._records:
                self._records[record.payment_id] = record
                restored += 1

        logger.info("ledger_restored", restored=restored, total=len(self._records))
        return restored
