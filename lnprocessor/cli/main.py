"""Operator commands for lnprocessor."""

import asyncio
from typing import NoReturn

import typer
from rich.console import Console
from rich.table import Table

from lnprocessor.application.processor import PaymentProcessor
from lnprocessor.core.events.base import EventBus
from lnprocessor.domain.events import PaymentRouteFailed, PaymentVerified
from lnprocessor.exceptions import ConfigError, LightningError
from lnprocessor.infrastructure.bolt11_codec import parse_invoice
from lnprocessor.providers.factory import create_provider_from_settings
from lnprocessor.utils.config import get_settings
from lnprocessor.utils.logging import configure_logging

app = typer.Typer(
    name="lnprocessor", help="⚡ Lightning payment verification", no_args_is_help=True
)
console = Console()

_REDACTED_KEYS = {"api_key", "node_private_key"}


def _abort(error: LightningError) -> NoReturn:
    console.print(f"[red]❌ {error.kind}:[/red] {error.message}")
    raise typer.Exit(code=2 if isinstance(error, ConfigError) else 1)


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit JSON logs"),
):
    """Decode invoices, issue invoices and verify payments."""
    configure_logging(log_level=log_level, json_logs=json_logs)


@app.command("decode")
def decode(invoice: str = typer.Argument(..., help="BOLT-11 invoice")):
    """Decode a BOLT-11 invoice."""
    try:
        parsed = parse_invoice(invoice)
    except LightningError as e:
        _abort(e)

    table = Table(title="⚡ Invoice", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Payment hash", parsed.payment_hash_hex)
    table.add_row(
        "Amount",
        f"{parsed.amount_msats} msat" if parsed.amount_msats is not None else "any",
    )
    table.add_row("Description", parsed.description or "-")
    table.add_row("Currency", parsed.currency)
    table.add_row("Created", str(parsed.timestamp))
    table.add_row("Expiry", f"{parsed.expiry_seconds}s")
    table.add_row("Expired", "yes" if parsed.is_expired else "no")
    table.add_row("Payee", parsed.payee_pubkey or "-")
    console.print(table)


@app.command("create-invoice")
def create_invoice(
    amount_msats: int = typer.Option(..., "--amount-msats", "-a", help="Amount in millisatoshis"),
    description: str = typer.Option("", "--description", "-d", help="Invoice memo"),
    expiry: int | None = typer.Option(None, "--expiry", "-e", help="Expiry in seconds"),
):
    """Issue an invoice through the configured provider."""

    async def _run() -> str:
        settings = get_settings()
        provider = create_provider_from_settings(settings)
        try:
            return await provider.create_invoice(
                amount_msats,
                description,
                expiry if expiry is not None else settings.default_invoice_expiry_seconds,
            )
        finally:
            await provider.close()

    try:
        payment_request = asyncio.run(_run())
    except LightningError as e:
        _abort(e)

    console.print("[green]✅ Invoice created[/green]")
    console.print(payment_request, soft_wrap=True)


@app.command("verify")
def verify(
    invoice: str = typer.Argument(..., help="BOLT-11 invoice"),
    payment_id: str = typer.Option(..., "--payment-id", "-p", help="Payment identifier"),
):
    """Verify a payment against the configured provider."""
    bus = EventBus()
    published: list[str] = []
    bus.subscribe(PaymentVerified, lambda event: published.append(event.event_name))
    bus.subscribe(PaymentRouteFailed, lambda event: published.append(event.event_name))

    async def _run():
        provider = create_provider_from_settings(get_settings())
        processor = PaymentProcessor(provider, event_bus=bus)
        try:
            return await processor.process_payment(invoice, payment_id)
        finally:
            await processor.close()

    try:
        record = asyncio.run(_run())
    except LightningError as e:
        _abort(e)

    state = record.state.value
    color = {"verified": "green", "failed": "red"}.get(state, "yellow")
    console.print(f"Payment [bold]{record.payment_id}[/bold]: [{color}]{state}[/{color}]")
    if record.amount_msats is not None:
        console.print(f"Amount: {record.amount_msats} msat")
    for name in published:
        console.print(f"Event: {name}")


@app.command("provider")
def provider_info():
    """Show the configured provider."""
    try:
        settings = get_settings()
        provider_type = settings.provider_type()
    except LightningError as e:
        _abort(e)

    table = Table(title=f"⚡ Provider: {provider_type}", show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in settings.provider_block().items():
        if key in _REDACTED_KEYS and value:
            value = "********"
        table.add_row(key, "-" if value is None else str(value))
    console.print(table)


if __name__ == "__main__":
    app()
