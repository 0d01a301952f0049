"""Managed wallet provider (LNbits-style REST service)."""

from typing import Any

import httpx

from lnprocessor.domain.enums import ProviderType
from lnprocessor.domain.value_objects import Invoice, PaymentVerificationResult
from lnprocessor.exceptions import InvoiceError, NodeConnectionError, ProcessorError
from lnprocessor.infrastructure.bolt11_codec import parse_invoice
from lnprocessor.providers.base import LightningProvider
from lnprocessor.utils.config import ManagedWalletConfig
from lnprocessor.utils.logging import get_logger
from lnprocessor.utils.retry import RetryConfig, retry_async

logger = get_logger(__name__)

PROVIDER_NAME = str(ProviderType.MANAGED_WALLET)


class ManagedWalletProvider(LightningProvider):
    """
    Provider backed by a hosted wallet's REST API.

    Endpoints used:
    - GET  {url}/api/v1/payments/{payment_hash}  payment status
    - POST {url}/api/v1/payments                 create incoming invoice

    Authentication is the wallet's invoice/read key in ``X-Api-Key``.
    Transport failures are retried with backoff before surfacing as
    NodeConnectionError.
    """

    def __init__(
        self,
        config: ManagedWalletConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the managed wallet provider. Performs no request.

        Args:
            config: Validated wallet configuration
            http_client: Optional shared HTTP client (tests inject a mock transport)
        """
        super().__init__()
        self.config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=config.timeout_seconds)
        self._retry_config = RetryConfig(
            max_retries=config.max_retries,
            base_delay=0.2,
            max_delay=2.0,
            retryable_exceptions=(httpx.TransportError,),
        )

    @property
    def _headers(self) -> dict[str, str]:
        return {"X-Api-Key": self.config.api_key, "Content-Type": "application/json"}

    def _payment_url(self, payment_hash: bytes) -> str:
        return f"{self.config.url}/api/v1/payments/{payment_hash.hex()}"

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await retry_async(
                lambda: self._client.request(method, url, headers=self._headers, **kwargs),
                config=self._retry_config,
            )
        except httpx.TimeoutException as e:
            logger.error("managed_wallet_timeout", url=url, error=str(e))
            raise NodeConnectionError(
                f"Wallet request timed out after {self.config.timeout_seconds}s",
                provider=PROVIDER_NAME,
                original_error=e,
            ) from e
        except httpx.TransportError as e:
            logger.error("managed_wallet_connection_error", url=url, error=str(e))
            raise NodeConnectionError(
                f"Cannot reach wallet service at {self.config.url}",
                provider=PROVIDER_NAME,
                original_error=e,
            ) from e

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise ProcessorError(
                "Wallet returned a malformed response body",
                provider=PROVIDER_NAME,
                original_error=e,
            ) from e
        if not isinstance(data, dict):
            raise ProcessorError(
                "Wallet returned an unexpected response shape", provider=PROVIDER_NAME
            )
        return data

    @staticmethod
    def _http_error(response: httpx.Response) -> ProcessorError:
        logger.error(
            "managed_wallet_http_error",
            status=response.status_code,
            body=response.text[:200],
        )
        return ProcessorError(
            f"Wallet API error: {response.status_code}",
            provider=PROVIDER_NAME,
            context={"status": response.status_code},
        )

    @staticmethod
    def _paid_flag(data: dict[str, Any]) -> bool:
        paid = data.get("paid")
        if not isinstance(paid, bool):
            raise ProcessorError("Wallet response carries no paid flag", provider=PROVIDER_NAME)
        return paid

    @staticmethod
    def _extract_amount(data: dict[str, Any]) -> int | None:
        amount = data.get("amount")
        if amount is None and isinstance(data.get("details"), dict):
            amount = data["details"].get("amount")
        if amount is None:
            return None
        if isinstance(amount, bool) or not isinstance(amount, int | float):
            raise ProcessorError(
                f"Wallet reported a non-numeric amount: {amount!r}", provider=PROVIDER_NAME
            )
        # Outgoing payments are reported negative
        return abs(int(amount))

    async def verify_payment(
        self, invoice: Invoice, payment_hash: bytes, payment_id: str
    ) -> PaymentVerificationResult:
        """Look the payment up by hash and cross-check the amount."""
        logger.debug(
            "managed_wallet_verify_started",
            payment_id=payment_id,
            payment_hash=payment_hash.hex(),
        )

        response = await self._send("GET", self._payment_url(payment_hash))

        if response.status_code == httpx.codes.NOT_FOUND:
            logger.info("managed_wallet_payment_not_found", payment_id=payment_id)
            return PaymentVerificationResult(verified=False, raw_backend_status="not_found")
        if response.is_error:
            raise self._http_error(response)

        data = self._json(response)
        paid = self._paid_flag(data)
        amount = self._extract_amount(data)

        logger.info(
            "managed_wallet_payment_checked",
            payment_id=payment_id,
            paid=paid,
            amount_msats=amount,
        )
        return self._build_result(invoice, paid, amount, "paid" if paid else "pending")

    async def create_invoice(
        self, amount_msats: int | None, description: str, expiry_seconds: int
    ) -> str:
        """Ask the wallet to issue an incoming invoice (whole satoshis only)."""
        if amount_msats is None or amount_msats <= 0:
            raise InvoiceError(
                "Wallet invoices need a positive amount", field="amount_msats", value=amount_msats
            )
        if amount_msats % 1000:
            raise InvoiceError(
                "Wallet invoices are issued in whole satoshis",
                field="amount_msats",
                value=amount_msats,
            )
        if expiry_seconds <= 0:
            raise InvoiceError(
                "Expiry must be positive", field="expiry_seconds", value=expiry_seconds
            )

        params = {"wallet": self.config.wallet_id} if self.config.wallet_id else None
        body = {
            "out": False,
            "amount": amount_msats // 1000,
            "unit": "sat",
            "memo": description,
            "expiry": expiry_seconds,
        }

        response = await self._send(
            "POST", f"{self.config.url}/api/v1/payments", params=params, json=body
        )

        if response.status_code in (httpx.codes.BAD_REQUEST, httpx.codes.UNPROCESSABLE_ENTITY):
            raise InvoiceError(
                f"Wallet rejected invoice parameters: {response.text[:200]}",
                context={"status": response.status_code},
            )
        if response.is_error:
            raise self._http_error(response)

        data = self._json(response)
        payment_request = data.get("payment_request") or data.get("bolt11")
        if not isinstance(payment_request, str):
            raise ProcessorError(
                "Wallet response carries no payment request", provider=PROVIDER_NAME
            )

        try:
            issued = parse_invoice(payment_request)
        except InvoiceError as e:
            raise ProcessorError(
                "Wallet returned an unparseable invoice",
                provider=PROVIDER_NAME,
                original_error=e,
            ) from e

        logger.info(
            "managed_wallet_invoice_created",
            payment_hash=issued.payment_hash_hex,
            amount_msats=issued.amount_msats,
        )
        return payment_request

    async def is_payment_confirmed(self, payment_hash: bytes) -> bool:
        response = await self._send("GET", self._payment_url(payment_hash))
        if response.status_code == httpx.codes.NOT_FOUND:
            return False
        if response.is_error:
            raise self._http_error(response)
        return self._paid_flag(self._json(response))

    def provider_type(self) -> ProviderType:
        return ProviderType.MANAGED_WALLET

    async def close(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
