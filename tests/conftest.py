"""
Pytest configuration and global fixtures.

This module provides shared fixtures used across all tests.
"""

import asyncio
import os

import pytest

from lnprocessor.application.ledger import PaymentLedger
from lnprocessor.application.processor import PaymentProcessor
from lnprocessor.core.events.base import BaseEvent, EventBus
from lnprocessor.domain.value_objects import Invoice, PaymentVerificationResult
from lnprocessor.infrastructure.bolt11_codec import issue_invoice
from lnprocessor.providers.stub import StubProvider
from lnprocessor.utils.config import get_settings


class RecordingEventBus(EventBus):
    """Event bus that remembers everything published on it."""

    def __init__(self) -> None:
        super().__init__()
        self.published: list[BaseEvent] = []

    def publish(self, event: BaseEvent) -> None:
        self.published.append(event)
        super().publish(event)

    async def publish_async(self, event: BaseEvent) -> None:
        self.published.append(event)
        await super().publish_async(event)

    def of_type(self, event_type: type[BaseEvent]) -> list[BaseEvent]:
        return [event for event in self.published if isinstance(event, event_type)]


class ScriptedProvider(StubProvider):
    """Stub provider whose answers can be scripted per test."""

    def __init__(
        self,
        result: PaymentVerificationResult | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        super().__init__()
        self.result = result
        self.error = error
        self.delay = delay
        self.confirmed = False
        self.confirm_error: Exception | None = None
        self.verify_calls = 0

    async def verify_payment(
        self, invoice: Invoice, payment_hash: bytes, payment_id: str
    ) -> PaymentVerificationResult:
        self.verify_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.result is not None:
            return self.result
        return await super().verify_payment(invoice, payment_hash, payment_id)

    async def is_payment_confirmed(self, payment_hash: bytes) -> bool:
        if self.confirm_error is not None:
            raise self.confirm_error
        return self.confirmed


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Keep the host environment out of Settings and reset the cache."""
    for key in list(os.environ):
        if key.startswith("LNPROCESSOR_"):
            monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_invoice():
    """Factory for freshly issued invoices."""

    def _make(amount_msats=1000, description="test payment", expiry_seconds=3600, **kwargs):
        return issue_invoice(amount_msats, description, expiry_seconds, **kwargs)

    return _make


@pytest.fixture
def stub_provider() -> StubProvider:
    return StubProvider()


@pytest.fixture
def scripted_provider():
    """Factory for scripted providers."""

    def _make(**kwargs) -> ScriptedProvider:
        return ScriptedProvider(**kwargs)

    return _make


@pytest.fixture
def ledger() -> PaymentLedger:
    return PaymentLedger()


@pytest.fixture
def event_bus() -> RecordingEventBus:
    """Fresh recording bus for each test."""
    return RecordingEventBus()


@pytest.fixture
def processor(stub_provider, ledger, event_bus) -> PaymentProcessor:
    return PaymentProcessor(stub_provider, ledger, event_bus)
