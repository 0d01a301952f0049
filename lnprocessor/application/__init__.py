"""Application layer: payment ledger and payment processor."""

from lnprocessor.application.ledger import PaymentLedger
from lnprocessor.application.processor import PaymentProcessor, create_payment_processor

__all__ = ["PaymentLedger", "PaymentProcessor", "create_payment_processor"]
