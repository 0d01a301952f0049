"""Persistence for the payment ledger.

The ledger is authoritative in memory; a store only mirrors every applied
mutation so that records survive a restart.
"""

from datetime import UTC, datetime
from typing import Protocol

from sqlalchemy import BigInteger, DateTime, Integer, String, Text, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Mapped, Session, mapped_column, sessionmaker

from lnprocessor.domain.enums import PaymentState
from lnprocessor.domain.models import PaymentRecord
from lnprocessor.exceptions import InvoiceError, ProcessorError
from lnprocessor.infrastructure.bolt11_codec import parse_invoice
from lnprocessor.infrastructure.database import Base, init_db
from lnprocessor.utils.logging import get_logger

logger = get_logger(__name__)


class LedgerStore(Protocol):
    """Where ledger records are mirrored."""

    def load_all(self) -> list[PaymentRecord]: ...

    def save(self, record: PaymentRecord) -> None: ...


class PaymentRecordRow(Base):
    """Persisted payment record."""

    __tablename__ = "lightning_payments"

    payment_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    payment_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    payment_request: Mapped[str] = mapped_column(Text, nullable=False)  # Full BOLT-11
    state: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentState.CREATED.value
    )
    amount_msats: Mapped[int | None] = mapped_column(BigInteger)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<PaymentRecordRow(payment_id={self.payment_id!r}, state='{self.state}')>"


def _aware(value: datetime) -> datetime:
    # SQLite drops the offset
    return value if value.tzinfo else value.replace(tzinfo=UTC)


class SqlAlchemyLedgerStore:
    """Ledger store backed by a SQLAlchemy database."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    @classmethod
    def from_url(cls, database_url: str) -> "SqlAlchemyLedgerStore":
        return cls(init_db(database_url))

    def save(self, record: PaymentRecord) -> None:
        """Insert or update the row for ``record.payment_id``."""
        try:
            self._save(record)
        except SQLAlchemyError as e:
            logger.error("ledger_persist_failed", payment_id=record.payment_id, error=str(e))
            raise ProcessorError(
                f"Failed to persist payment {record.payment_id}", original_error=e
            ) from e

    def _save(self, record: PaymentRecord) -> None:
        with self._session_factory() as session:
            row = session.get(PaymentRecordRow, record.payment_id)
            if row is None:
                row = PaymentRecordRow(
                    payment_id=record.payment_id,
                    payment_hash=record.invoice.payment_hash_hex,
                    payment_request=record.invoice.raw,
                    created_at=record.created_at,
                )
                session.add(row)

            row.state = record.state.value
            row.amount_msats = record.amount_msats
            row.attempt_count = record.attempt_count
            row.last_updated_at = record.last_updated_at
            session.commit()

    def load_all(self) -> list[PaymentRecord]:
        """Rebuild every stored record, re-parsing its invoice."""
        with self._session_factory() as session:
            rows = list(session.execute(select(PaymentRecordRow)).scalars())

        records: list[PaymentRecord] = []
        for row in rows:
            try:
                invoice = parse_invoice(row.payment_request)
            except InvoiceError as e:
                logger.warning(
                    "ledger_row_skipped",
                    payment_id=row.payment_id,
                    error=str(e),
                )
                continue

            records.append(
                PaymentRecord(
                    payment_id=row.payment_id,
                    invoice=invoice,
                    state=PaymentState(row.state),
                    amount_msats=row.amount_msats,
                    created_at=_aware(row.created_at),
                    last_updated_at=_aware(row.last_updated_at),
                    attempt_count=row.attempt_count,
                )
            )

        logger.info("ledger_records_loaded", count=len(records))
        return records
