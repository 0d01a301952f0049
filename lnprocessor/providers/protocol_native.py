"""Protocol-native provider: an embedded node that owns its key and invoices.

The node signs invoices with its own secp256k1 key and learns about
payments and channels through its watch surface (``record_*`` methods),
which the node runtime calls when an HTLC is claimed or a channel changes.
"""

import time
from dataclasses import dataclass
from pathlib import Path

from coincurve import PrivateKey

from lnprocessor.domain.enums import Network, ProviderType
from lnprocessor.domain.events import ChannelClosed, ChannelOpened
from lnprocessor.domain.value_objects import Invoice, IssuedInvoice, PaymentVerificationResult
from lnprocessor.exceptions import ConfigError, InvoiceError, NodeConnectionError
from lnprocessor.infrastructure.bolt11_codec import issue_invoice
from lnprocessor.providers.base import LightningProvider
from lnprocessor.utils.config import ProtocolNativeConfig
from lnprocessor.utils.logging import get_logger

logger = get_logger(__name__)

NODE_KEY_FILENAME = "node_key.hex"


@dataclass
class _TrackedPayment:
    amount_msats: int
    received_at: int
    claimed: bool = True


def _load_node_key(config: ProtocolNativeConfig) -> PrivateKey:
    """Configured key, else the one stored in ``data_dir``, else a new one saved there."""
    key_path = config.data_dir / NODE_KEY_FILENAME

    if config.node_private_key:
        source, key_hex = "config", config.node_private_key
    elif key_path.exists():
        try:
            source, key_hex = "file", key_path.read_text(encoding="utf-8").strip()
        except OSError as e:
            raise ConfigError(
                f"Failed to read node key: {e}", setting="data_dir", original_error=e
            ) from e
    else:
        return _generate_node_key(key_path)

    try:
        key_bytes = bytes.fromhex(key_hex)
        if len(key_bytes) != 32:
            raise ValueError("node key must be 32 bytes")
        key = PrivateKey(key_bytes)
    except ValueError as e:
        raise ConfigError(
            f"Invalid node private key ({source}): {e}",
            setting="node_private_key",
            expected="64 hex characters, valid secp256k1 scalar",
            original_error=e,
        ) from e

    logger.info("node_key_loaded", source=source)
    return key


def _generate_node_key(key_path: Path) -> PrivateKey:
    key = PrivateKey()
    try:
        key_path.parent.mkdir(parents=True, exist_ok=True)
        key_path.write_text(key.secret.hex(), encoding="utf-8")
    except OSError as e:
        raise ConfigError(
            f"Failed to save node key to {key_path}: {e}", setting="data_dir", original_error=e
        ) from e

    logger.info("node_key_generated", key_path=str(key_path))
    return key


class ProtocolNativeProvider(LightningProvider):
    """Embedded Lightning node backend."""

    def __init__(self, config: ProtocolNativeConfig) -> None:
        super().__init__()
        self.config = config
        self.network = Network(config.network)
        self._node_key = _load_node_key(config)
        self._invoices: dict[bytes, IssuedInvoice] = {}
        self._payments: dict[bytes, _TrackedPayment] = {}
        self._channels: dict[str, ChannelOpened] = {}
        self._closed = False

        logger.info(
            "protocol_native_initialized",
            network=str(self.network),
            node_id=self.node_id,
            data_dir=str(config.data_dir),
        )

    @property
    def node_id(self) -> str:
        """Compressed public key, hex."""
        return self._node_key.public_key.format(compressed=True).hex()

    def _ensure_running(self) -> None:
        if self._closed:
            raise NodeConnectionError(
                "Node is shut down", provider=str(ProviderType.PROTOCOL_NATIVE)
            )

    async def verify_payment(
        self, invoice: Invoice, payment_hash: bytes, payment_id: str
    ) -> PaymentVerificationResult:
        self._ensure_running()

        if invoice.payment_hash != payment_hash:
            logger.warning(
                "payment_hash_mismatch",
                payment_id=payment_id,
                invoice_hash=invoice.payment_hash_hex,
                claimed_hash=payment_hash.hex(),
            )
            return PaymentVerificationResult(
                verified=False, raw_backend_status="payment_hash_mismatch"
            )

        tracked = self._payments.get(payment_hash)
        if tracked is None:
            logger.info("no_htlc_received", payment_id=payment_id, payment_hash=payment_hash.hex())
            return PaymentVerificationResult(verified=False, raw_backend_status="no_htlc_received")

        return self._build_result(invoice, tracked.claimed, tracked.amount_msats, "claimed")

    async def create_invoice(
        self, amount_msats: int | None, description: str, expiry_seconds: int
    ) -> str:
        self._ensure_running()

        issued = issue_invoice(
            amount_msats,
            description,
            expiry_seconds,
            currency=self.network.currency,
            private_key=self._node_key.secret.hex(),
        )
        self._invoices[issued.payment_hash] = issued

        logger.info(
            "protocol_native_invoice_created",
            payment_hash=issued.payment_hash_hex,
            amount_msats=amount_msats,
        )
        return issued.payment_request

    async def is_payment_confirmed(self, payment_hash: bytes) -> bool:
        self._ensure_running()
        tracked = self._payments.get(payment_hash)
        return tracked is not None and tracked.claimed

    def provider_type(self) -> ProviderType:
        return ProviderType.PROTOCOL_NATIVE

    async def close(self) -> None:
        self._closed = True
        logger.info("protocol_native_stopped", node_id=self.node_id)

    # ------------------------------------------------------------------
    # Watch surface
    # ------------------------------------------------------------------

    def record_incoming_payment(self, payment_hash: bytes, amount_msats: int) -> None:
        """An HTLC paying one of our invoices was claimed."""
        self._ensure_running()

        issued = self._invoices.get(payment_hash)
        if issued is None:
            raise InvoiceError("No invoice issued for this payment hash", field="payment_hash",
                               value=payment_hash.hex())
        if issued.is_expired:
            raise InvoiceError(
                "Invoice has expired", field="payment_hash", value=payment_hash.hex()
            )
        if amount_msats <= 0:
            raise InvoiceError("Received amount must be positive", field="amount_msats",
                               value=amount_msats)

        self._payments[payment_hash] = _TrackedPayment(
            amount_msats=amount_msats, received_at=int(time.time())
        )
        logger.info(
            "htlc_claimed",
            payment_hash=payment_hash.hex(),
            amount_msats=amount_msats,
        )

    def record_channel_opened(self, channel_id: str, peer_pubkey: str, capacity_sat: int) -> None:
        self._ensure_running()
        event = ChannelOpened(
            channel_id=channel_id, peer_pubkey=peer_pubkey, capacity_sat=capacity_sat
        )
        self._channels[channel_id] = event
        logger.info("channel_opened", channel_id=channel_id, capacity_sat=capacity_sat)
        self._notify_channel_event(event)

    def record_channel_closed(
        self, channel_id: str, peer_pubkey: str, capacity_sat: int, close_type: str = "cooperative"
    ) -> None:
        self._ensure_running()
        self._channels.pop(channel_id, None)
        event = ChannelClosed(
            channel_id=channel_id,
            peer_pubkey=peer_pubkey,
            capacity_sat=capacity_sat,
            close_type=close_type,
        )
        logger.info("channel_closed", channel_id=channel_id, close_type=close_type)
        self._notify_channel_event(event)

    def list_channels(self) -> list[ChannelOpened]:
        """Channels currently open on this node."""
        return list(self._channels.values())
