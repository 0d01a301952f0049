"""Tests for the BOLT-11 invoice codec."""

import hashlib

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from lnprocessor.exceptions import InvoiceError
from lnprocessor.infrastructure.bolt11_codec import (
    DEFAULT_EXPIRY_SECONDS,
    MAX_DESCRIPTION_BYTES,
    encode_invoice,
    issue_invoice,
    parse_invoice,
)


class TestParseInvoice:
    """Decoding of encoded invoices."""

    def test_parse_issued_invoice(self):
        issued = issue_invoice(1000, "coffee", 600)

        invoice = parse_invoice(issued.payment_request)

        assert invoice.amount_msats == 1000
        assert invoice.description == "coffee"
        assert invoice.expiry_seconds == 600
        assert invoice.payment_hash == issued.payment_hash
        assert invoice.currency == "bc"
        assert invoice.timestamp == issued.timestamp
        assert invoice.raw == issued.payment_request

    def test_open_amount_invoice(self):
        issued = issue_invoice(None, "donation", 3600)

        invoice = parse_invoice(issued.payment_request)

        assert invoice.amount_msats is None

    def test_testnet_currency(self):
        issued = issue_invoice(5000, "test", 60, currency="tb")

        assert issued.payment_request.startswith("lntb")
        assert parse_invoice(issued.payment_request).currency == "tb"

    def test_lightning_uri_prefix_is_stripped(self):
        issued = issue_invoice(1000, "coffee", 600)

        invoice = parse_invoice(f"lightning:{issued.payment_request}")

        assert invoice.raw == issued.payment_request

    def test_surrounding_whitespace_is_ignored(self):
        issued = issue_invoice(1000, "coffee", 600)

        invoice = parse_invoice(f"  {issued.payment_request}\n")

        assert invoice.payment_hash == issued.payment_hash

    @pytest.mark.parametrize("raw", ["", "   ", "not-an-invoice", "lnbc1invalid"])
    def test_malformed_input_raises(self, raw):
        with pytest.raises(InvoiceError):
            parse_invoice(raw)

    def test_corrupted_checksum_raises(self):
        request = issue_invoice(1000, "coffee", 600).payment_request
        last = "q" if request[-1] != "q" else "p"

        with pytest.raises(InvoiceError):
            parse_invoice(request[:-1] + last)

    def test_parsed_invoice_is_not_expired(self):
        invoice = parse_invoice(issue_invoice(1000, "fresh", 3600).payment_request)

        assert invoice.is_expired is False
        assert invoice.expires_at.timestamp() == invoice.timestamp + 3600


class TestIssueInvoice:
    """Issuing and encoding new invoices."""

    def test_payment_hash_commits_to_preimage(self):
        issued = issue_invoice(1000, "coffee", 600)

        assert len(issued.preimage) == 32
        assert len(issued.payment_secret) == 32
        assert issued.payment_hash == hashlib.sha256(issued.preimage).digest()

    def test_each_invoice_gets_fresh_secrets(self):
        first = issue_invoice(1000, "coffee", 600)
        second = issue_invoice(1000, "coffee", 600)

        assert first.preimage != second.preimage
        assert first.payment_hash != second.payment_hash

    def test_encode_invoice_returns_string(self):
        request = encode_invoice(2000, "tea", 120)

        assert request.startswith("lnbc")
        assert parse_invoice(request).amount_msats == 2000

    def test_default_expiry(self):
        invoice = parse_invoice(encode_invoice(1000, "default expiry"))

        assert invoice.expiry_seconds == DEFAULT_EXPIRY_SECONDS

    @pytest.mark.parametrize("expiry", [0, -1])
    def test_non_positive_expiry_rejected(self, expiry):
        with pytest.raises(InvoiceError):
            issue_invoice(1000, "coffee", expiry)

    @pytest.mark.parametrize("amount", [0, -1000])
    def test_non_positive_amount_rejected(self, amount):
        with pytest.raises(InvoiceError):
            issue_invoice(amount, "coffee", 600)

    def test_oversized_description_rejected(self):
        with pytest.raises(InvoiceError):
            issue_invoice(1000, "x" * (MAX_DESCRIPTION_BYTES + 1), 600)

    def test_unknown_currency_rejected(self):
        with pytest.raises(InvoiceError):
            issue_invoice(1000, "coffee", 600, currency="ltc")


@settings(max_examples=25, deadline=None)
@given(
    amount_msats=st.integers(min_value=1, max_value=10**11),
    description=st.text(
        alphabet=st.characters(min_codepoint=32, max_codepoint=126), min_size=1, max_size=80
    ),
    expiry_seconds=st.integers(min_value=1, max_value=10**6),
)
def test_parse_recovers_encoded_fields(amount_msats, description, expiry_seconds):
    """Encoding then parsing yields the original amount, description and expiry."""
    invoice = parse_invoice(encode_invoice(amount_msats, description, expiry_seconds))

    assert invoice.amount_msats == amount_msats
    assert invoice.description == description
    assert invoice.expiry_seconds == expiry_seconds
