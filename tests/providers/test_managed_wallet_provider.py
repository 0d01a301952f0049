"""Tests for the managed wallet provider against a mocked wallet API."""

import json

import httpx
import pytest

from lnprocessor.domain.enums import ProviderType
from lnprocessor.exceptions import InvoiceError, NodeConnectionError, ProcessorError
from lnprocessor.infrastructure.bolt11_codec import parse_invoice
from lnprocessor.providers.managed_wallet import ManagedWalletProvider
from lnprocessor.utils.config import ManagedWalletConfig

WALLET_URL = "https://wallet.test"
API_KEY = "invoice-key-123"


class WalletApi:
    """Records requests and answers with a scripted handler."""

    def __init__(self, handler):
        self.handler = handler
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)


def _provider(api: WalletApi, **overrides) -> ManagedWalletProvider:
    config = ManagedWalletConfig(
        url=WALLET_URL, api_key=API_KEY, **{"max_retries": 0, **overrides}
    )
    client = httpx.AsyncClient(transport=httpx.MockTransport(api))
    return ManagedWalletProvider(config, http_client=client)


@pytest.fixture
def issued(make_invoice):
    return make_invoice(1000, "coffee")


@pytest.fixture
def invoice(issued):
    return parse_invoice(issued.payment_request)


class TestVerifyPayment:
    @pytest.mark.asyncio
    async def test_paid_payment_is_verified(self, invoice):
        api = WalletApi(lambda request: httpx.Response(200, json={"paid": True, "amount": 1000}))
        provider = _provider(api)

        result = await provider.verify_payment(invoice, invoice.payment_hash, "p1")

        assert result.verified is True
        assert result.amount_msats == 1000
        request = api.requests[0]
        assert request.method == "GET"
        assert request.url.path == f"/api/v1/payments/{invoice.payment_hash_hex}"
        assert request.headers["X-Api-Key"] == API_KEY

    @pytest.mark.asyncio
    async def test_amount_read_from_details(self, invoice):
        api = WalletApi(
            lambda request: httpx.Response(200, json={"paid": True, "details": {"amount": 1000}})
        )

        result = await _provider(api).verify_payment(invoice, invoice.payment_hash, "p1")

        assert result.verified is True
        assert result.amount_msats == 1000

    @pytest.mark.asyncio
    async def test_pending_payment_is_not_verified(self, invoice):
        api = WalletApi(lambda request: httpx.Response(200, json={"paid": False}))

        result = await _provider(api).verify_payment(invoice, invoice.payment_hash, "p1")

        assert result.verified is False
        assert result.amount_msats is None
        assert result.raw_backend_status == "pending"

    @pytest.mark.asyncio
    async def test_unknown_payment_is_not_verified(self, invoice):
        api = WalletApi(
            lambda request: httpx.Response(404, json={"detail": "Payment does not exist."})
        )

        result = await _provider(api).verify_payment(invoice, invoice.payment_hash, "p1")

        assert result.verified is False
        assert result.raw_backend_status == "not_found"

    @pytest.mark.asyncio
    async def test_underpayment_is_not_verified(self, invoice):
        api = WalletApi(lambda request: httpx.Response(200, json={"paid": True, "amount": 999}))

        result = await _provider(api).verify_payment(invoice, invoice.payment_hash, "p1")

        assert result.verified is False
        assert result.raw_backend_status == "amount_mismatch"

    @pytest.mark.asyncio
    async def test_server_error_is_processor_error(self, invoice):
        api = WalletApi(lambda request: httpx.Response(500, text="internal error"))

        with pytest.raises(ProcessorError):
            await _provider(api).verify_payment(invoice, invoice.payment_hash, "p1")

    @pytest.mark.asyncio
    async def test_malformed_body_is_processor_error(self, invoice):
        api = WalletApi(lambda request: httpx.Response(200, text="<html>oops</html>"))

        with pytest.raises(ProcessorError):
            await _provider(api).verify_payment(invoice, invoice.payment_hash, "p1")

    @pytest.mark.asyncio
    async def test_missing_paid_flag_is_processor_error(self, invoice):
        api = WalletApi(lambda request: httpx.Response(200, json={"amount": 1000}))

        with pytest.raises(ProcessorError):
            await _provider(api).verify_payment(invoice, invoice.payment_hash, "p1")

    @pytest.mark.asyncio
    async def test_connection_failure_is_node_connection_error(self, invoice):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(NodeConnectionError) as exc_info:
            await _provider(WalletApi(refuse)).verify_payment(invoice, invoice.payment_hash, "p1")

        assert exc_info.value.retryable is True
        assert isinstance(exc_info.value.original_error, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_timeout_is_node_connection_error(self, invoice):
        def time_out(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(NodeConnectionError):
            await _provider(WalletApi(time_out)).verify_payment(invoice, invoice.payment_hash, "p1")

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self, invoice):
        attempts = []

        def flaky(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("connection reset", request=request)
            return httpx.Response(200, json={"paid": True, "amount": 1000})

        result = await _provider(WalletApi(flaky), max_retries=1).verify_payment(
            invoice, invoice.payment_hash, "p1"
        )

        assert result.verified is True
        assert len(attempts) == 2


class TestCreateInvoice:
    @pytest.mark.asyncio
    async def test_creates_invoice_in_whole_sats(self, make_invoice):
        wallet_invoice = make_invoice(2000, "order 7").payment_request
        api = WalletApi(
            lambda request: httpx.Response(
                201, json={"payment_hash": "ab" * 32, "payment_request": wallet_invoice}
            )
        )

        request_str = await _provider(api, wallet_id="w1").create_invoice(2000, "order 7", 600)

        assert request_str == wallet_invoice
        request = api.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/v1/payments"
        assert request.url.params["wallet"] == "w1"
        assert json.loads(request.content) == {
            "out": False,
            "amount": 2,
            "unit": "sat",
            "memo": "order 7",
            "expiry": 600,
        }

    @pytest.mark.asyncio
    async def test_bolt11_field_is_accepted(self, make_invoice):
        wallet_invoice = make_invoice(1000, "tip").payment_request
        api = WalletApi(lambda request: httpx.Response(201, json={"bolt11": wallet_invoice}))

        assert await _provider(api).create_invoice(1000, "tip", 600) == wallet_invoice

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [None, 0, 1500])
    async def test_unsupported_amounts_rejected_without_request(self, amount):
        api = WalletApi(lambda request: httpx.Response(500))

        with pytest.raises(InvoiceError):
            await _provider(api).create_invoice(amount, "order", 600)

        assert api.requests == []

    @pytest.mark.asyncio
    async def test_rejected_parameters_are_invoice_error(self):
        api = WalletApi(lambda request: httpx.Response(400, json={"detail": "amount too large"}))

        with pytest.raises(InvoiceError):
            await _provider(api).create_invoice(1000, "order", 600)

    @pytest.mark.asyncio
    async def test_unparseable_invoice_is_processor_error(self):
        api = WalletApi(
            lambda request: httpx.Response(201, json={"payment_request": "lnbc-garbage"})
        )

        with pytest.raises(ProcessorError):
            await _provider(api).create_invoice(1000, "order", 600)


class TestPaymentConfirmation:
    @pytest.mark.asyncio
    async def test_paid_is_confirmed(self, invoice):
        api = WalletApi(lambda request: httpx.Response(200, json={"paid": True}))

        assert await _provider(api).is_payment_confirmed(invoice.payment_hash) is True

    @pytest.mark.asyncio
    async def test_not_found_is_unconfirmed(self, invoice):
        api = WalletApi(lambda request: httpx.Response(404))

        assert await _provider(api).is_payment_confirmed(invoice.payment_hash) is False


class TestLifecycle:
    def test_provider_type(self):
        assert _provider(WalletApi(lambda r: httpx.Response(200))).provider_type() == (
            ProviderType.MANAGED_WALLET
        )

    @pytest.mark.asyncio
    async def test_close_leaves_injected_client_open(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        provider = ManagedWalletProvider(
            ManagedWalletConfig(url=WALLET_URL, api_key=API_KEY), http_client=client
        )

        await provider.close()

        assert not client.is_closed
        await client.aclose()

    @pytest.mark.asyncio
    async def test_close_owned_client(self):
        provider = ManagedWalletProvider(ManagedWalletConfig(url=WALLET_URL, api_key=API_KEY))

        async with provider:
            pass

        assert provider._client.is_closed
