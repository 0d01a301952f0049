"""BOLT-11 invoice codec.

Thin translation layer over the ``bolt11`` library: decoding (bech32,
checksum, signature recovery) and encoding/signing of fresh invoices.
Pure apart from the randomness used for new preimages and secrets.
"""

import hashlib
import secrets
import time

from bolt11 import Bolt11, Bolt11Exception, MilliSatoshi, TagChar, Tags
from bolt11 import decode as bolt11_decode
from bolt11 import encode as bolt11_encode

from lnprocessor.domain.value_objects import PAYMENT_HASH_LENGTH, Invoice, IssuedInvoice
from lnprocessor.exceptions import InvoiceError
from lnprocessor.utils.logging import get_logger

logger = get_logger(__name__)

# BOLT-11: invoices without an expiry tag expire after one hour
DEFAULT_EXPIRY_SECONDS = 3600

# 10-bit tag length field → at most 1023 5-bit groups → 639 bytes
MAX_DESCRIPTION_BYTES = 639

SUPPORTED_CURRENCIES = frozenset({"bc", "tb", "bcrt", "tbs"})

_URI_PREFIX = "lightning:"


def parse_invoice(raw: str) -> Invoice:
    """Parse and validate a BOLT-11 invoice string.

    Args:
        raw: Encoded invoice, optionally prefixed with ``lightning:``

    Returns:
        Fully populated Invoice

    Raises:
        InvoiceError: If the string is not a well-formed invoice, its checksum
            or signature is invalid, or its payment hash is not 32 bytes
    """
    if not isinstance(raw, str) or not raw.strip():
        raise InvoiceError("Empty invoice", field="invoice")

    candidate = raw.strip()
    if candidate.lower().startswith(_URI_PREFIX):
        candidate = candidate[len(_URI_PREFIX) :]

    try:
        decoded = bolt11_decode(candidate)
    except Bolt11Exception as e:
        raise InvoiceError(
            f"Failed to parse invoice: {e}", value=candidate, original_error=e
        ) from e
    except Exception as e:
        # bech32 and bit-level decoding errors surface as plain exceptions
        raise InvoiceError(
            f"Malformed invoice: {e}", value=candidate, original_error=e
        ) from e

    payment_hash_hex = decoded.payment_hash
    if not payment_hash_hex:
        raise InvoiceError("Invoice carries no payment hash", value=candidate)

    try:
        payment_hash = bytes.fromhex(payment_hash_hex)
    except ValueError as e:
        raise InvoiceError("Invoice payment hash is not hex", original_error=e) from e

    if len(payment_hash) != PAYMENT_HASH_LENGTH:
        raise InvoiceError(
            f"Invoice payment hash must be {PAYMENT_HASH_LENGTH} bytes, got {len(payment_hash)}",
            field="payment_hash",
        )

    invoice = Invoice(
        raw=candidate,
        payment_hash=payment_hash,
        amount_msats=int(decoded.amount_msat) if decoded.amount_msat else None,
        description=decoded.description or "",
        expiry_seconds=int(decoded.expiry or DEFAULT_EXPIRY_SECONDS),
        timestamp=int(decoded.date),
        currency=decoded.currency,
        payee_pubkey=getattr(decoded, "payee", None),
    )

    logger.debug(
        "invoice_parsed",
        payment_hash=invoice.payment_hash_hex,
        amount_msats=invoice.amount_msats,
        expiry_seconds=invoice.expiry_seconds,
    )
    return invoice


def _validate_issue_params(
    amount_msats: int | None, description: str, expiry_seconds: int, currency: str
) -> None:
    if amount_msats is not None and amount_msats <= 0:
        raise InvoiceError(
            "Amount must be positive (use None for an open amount)",
            field="amount_msats",
            value=amount_msats,
        )
    if expiry_seconds <= 0:
        raise InvoiceError(
            "Expiry must be positive", field="expiry_seconds", value=expiry_seconds
        )
    if len(description.encode("utf-8")) > MAX_DESCRIPTION_BYTES:
        raise InvoiceError(
            f"Description exceeds {MAX_DESCRIPTION_BYTES} bytes", field="description"
        )
    if currency not in SUPPORTED_CURRENCIES:
        raise InvoiceError(f"Unsupported currency: {currency}", field="currency", value=currency)


def issue_invoice(
    amount_msats: int | None,
    description: str,
    expiry_seconds: int = DEFAULT_EXPIRY_SECONDS,
    *,
    currency: str = "bc",
    private_key: str | None = None,
) -> IssuedInvoice:
    """Issue a new signed invoice with a fresh preimage and payment secret.

    Args:
        amount_msats: Amount in millisatoshis, None for an open amount
        description: Invoice memo
        expiry_seconds: Seconds until the invoice expires
        currency: BOLT-11 currency prefix (bc, tb, bcrt, tbs)
        private_key: Hex secp256k1 key to sign with; a throwaway key if None

    Raises:
        InvoiceError: On invalid parameters
    """
    _validate_issue_params(amount_msats, description, expiry_seconds, currency)

    preimage = secrets.token_bytes(32)
    payment_secret = secrets.token_bytes(32)
    payment_hash = hashlib.sha256(preimage).digest()
    created = int(time.time())

    tags = Tags()
    tags.add(TagChar.payment_hash, payment_hash.hex())
    tags.add(TagChar.payment_secret, payment_secret.hex())
    tags.add(TagChar.description, description)
    tags.add(TagChar.expire_time, expiry_seconds)

    invoice = Bolt11(
        currency=currency,
        amount_msat=MilliSatoshi(amount_msats) if amount_msats is not None else None,
        date=created,
        tags=tags,
    )

    try:
        payment_request = bolt11_encode(invoice, private_key or secrets.token_hex(32))
    except (Bolt11Exception, ValueError, TypeError) as e:
        raise InvoiceError(f"Failed to encode invoice: {e}", original_error=e) from e

    return IssuedInvoice(
        payment_request=payment_request,
        payment_hash=payment_hash,
        preimage=preimage,
        payment_secret=payment_secret,
        amount_msats=amount_msats,
        expiry_seconds=expiry_seconds,
        timestamp=created,
    )


def encode_invoice(
    amount_msats: int | None,
    description: str,
    expiry_seconds: int = DEFAULT_EXPIRY_SECONDS,
    *,
    currency: str = "bc",
    private_key: str | None = None,
) -> str:
    """Issue a new invoice and return only its encoded payment request."""
    return issue_invoice(
        amount_msats,
        description,
        expiry_seconds,
        currency=currency,
        private_key=private_key,
    ).payment_request
