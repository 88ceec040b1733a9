"""
Command-line interface for Quantica billing.

Administers checkouts, settlements and API keys against a local state file.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from quantica_billing import __version__
from quantica_billing.billing.errors import BillingError
from quantica_billing.billing.models import ApiTier, PaymentProviderKind, PaymentRequest
from quantica_billing.billing.service import BillingService
from quantica_billing.core.config import get_settings
from quantica_billing.utils.logging import setup_logging

app = typer.Typer(
    name="quantica-billing",
    help="Quantica billing - payments, settlement and API keys",
    no_args_is_help=True,
)
console = Console()

StateOption = typer.Option(None, "--state", help="Billing state file (overrides settings)")


def get_service(state: Optional[Path] = None) -> BillingService:
    """Build a billing service from settings."""
    settings = get_settings()
    if state is not None:
        settings = settings.model_copy(
            update={"billing": settings.billing.model_copy(update={"state_path": state})}
        )
    return BillingService.from_settings(settings)


def _fail(error: BillingError) -> NoReturn:
    console.print(f"[red]{error}[/red]")
    raise typer.Exit(code=1)


@app.callback()
def main_callback(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Log level"),
):
    """Configure logging for every command."""
    setup_logging(level=log_level or "WARNING", json_format=False, cache_loggers=False)


@app.command()
def version():
    """Show version information."""
    console.print(f"[bold cyan]Quantica Billing[/bold cyan] v{__version__}")


@app.command()
def providers(state: Optional[Path] = StateOption):
    """Show registered payment providers."""
    settings = get_settings()
    service = get_service(state)

    table = Table(title="Payment Providers", show_header=True, header_style="bold magenta")
    table.add_column("Provider", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Webhook secret")

    disabled = set(settings.billing.disabled_providers)
    webhook_secrets = settings.billing.webhook_secrets
    for kind in service.processors():
        status = "[red]Disabled[/red]" if kind in disabled else "[green]Enabled[/green]"
        table.add_row(kind.value, status, "yes" if kind in webhook_secrets else "[dim]no[/dim]")

    console.print(table)


@app.command()
def checkout(
    user_id: str = typer.Argument(..., help="Paying user"),
    amount_cents: int = typer.Argument(..., help="Amount in cents"),
    provider: PaymentProviderKind = typer.Option(
        PaymentProviderKind.STRIPE, "--provider", "-p", help="Payment provider"
    ),
    tier: ApiTier = typer.Option(ApiTier.STANDARD, "--tier", "-t", help="Tier being purchased"),
    currency: str = typer.Option("usd", "--currency", help="ISO currency code"),
    return_url: Optional[str] = typer.Option(None, "--return-url", help="Checkout return URL"),
    state: Optional[Path] = StateOption,
):
    """Create a checkout and record the pending payment."""
    service = get_service(state)
    try:
        intent = service.create_checkout(
            PaymentRequest(
                provider=provider,
                amount_cents=amount_cents,
                currency=currency,
                user_id=user_id,
                tier=tier,
                return_url=return_url,
            )
        )
    except BillingError as e:
        _fail(e)

    console.print(Panel(
        f"[bold]Payment:[/bold] {intent.id}\n"
        f"[bold]Status:[/bold] {intent.status.value}\n"
        f"[bold]Checkout URL:[/bold] {intent.checkout_url}",
        title=f"{intent.provider.value} checkout",
        border_style="cyan",
    ))


@app.command()
def settle(
    payment_id: str = typer.Argument(..., help="Payment to settle"),
    reference: Optional[str] = typer.Option(None, "--reference", "-r", help="Confirmation token"),
    usage_limit: Optional[int] = typer.Option(None, "--usage-limit", "-l", help="Maximum key uses"),
    state: Optional[Path] = StateOption,
):
    """Settle a payment and issue its API key."""
    service = get_service(state)
    try:
        issued = service.settle_payment(payment_id, reference=reference, usage_limit=usage_limit)
    except BillingError as e:
        _fail(e)

    console.print(Panel(
        f"[bold]Key ID:[/bold] {issued.record.id}\n"
        f"[bold]Tier:[/bold] {issued.record.tier.value}\n\n"
        "[yellow]Store this key now. It cannot be shown again.[/yellow]",
        title="Payment settled",
        border_style="green",
    ))
    console.print(issued.api_key, soft_wrap=True, highlight=False)


@app.command()
def fail(
    payment_id: str = typer.Argument(..., help="Payment to mark failed"),
    reason: str = typer.Argument(..., help="Failure reason"),
    state: Optional[Path] = StateOption,
):
    """Mark a payment as failed."""
    service = get_service(state)
    try:
        record = service.mark_payment_failed(payment_id, reason)
    except BillingError as e:
        _fail(e)
    console.print(f"[yellow]Payment {record.id} marked failed:[/yellow] {reason}")


@app.command()
def validate(
    api_key: str = typer.Argument(..., help="Plaintext API key"),
    state: Optional[Path] = StateOption,
):
    """Validate an API key and count one use."""
    service = get_service(state)
    try:
        record = service.validate_api_key(api_key)
    except BillingError as e:
        _fail(e)

    limit = record.usage_limit if record.usage_limit is not None else "unlimited"
    console.print(
        f"[green]Valid[/green] {record.id} ({record.tier.value}) "
        f"uses: {record.usage_count}/{limit}"
    )


@app.command()
def revoke(
    key_id: str = typer.Argument(..., help="API key record id"),
    state: Optional[Path] = StateOption,
):
    """Revoke an API key."""
    service = get_service(state)
    try:
        record = service.revoke_api_key(key_id)
    except BillingError as e:
        _fail(e)
    console.print(f"[red]Revoked[/red] {record.id}")


@app.command(name="state")
def show_state(
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON"),
    state: Optional[Path] = StateOption,
):
    """Show payments and API keys."""
    service = get_service(state)
    snapshot = service.list_state()

    if as_json:
        console.print_json(json.dumps(snapshot.to_dict()))
        return

    payments = Table(title="Payments", show_header=True, header_style="bold magenta")
    payments.add_column("ID", style="cyan")
    payments.add_column("Provider", style="yellow")
    payments.add_column("Status", style="green")
    payments.add_column("Amount", justify="right")
    payments.add_column("User")
    payments.add_column("Tier", style="blue")
    for payment in snapshot.payments:
        payments.add_row(
            payment.id,
            payment.provider.value,
            payment.status.value,
            f"{payment.amount_cents / 100:.2f} {payment.currency.upper()}",
            payment.user_id,
            payment.tier.value,
        )

    keys = Table(title="API Keys", show_header=True, header_style="bold magenta")
    keys.add_column("ID", style="cyan")
    keys.add_column("Payment")
    keys.add_column("Tier", style="blue")
    keys.add_column("Uses", justify="right")
    keys.add_column("Revoked")
    for record in snapshot.api_keys:
        limit = record.usage_limit if record.usage_limit is not None else "-"
        keys.add_row(
            record.id,
            record.payment_id,
            record.tier.value,
            f"{record.usage_count}/{limit}",
            "[red]yes[/red]" if record.revoked else "no",
        )

    console.print(payments)
    console.print(keys)


@app.command()
def config():
    """Show current configuration."""
    settings = get_settings()

    table = Table(title="Configuration", show_header=True, header_style="bold magenta")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Environment", settings.environment)
    table.add_row("State file", str(settings.billing.state_path))
    table.add_row("Key prefix", settings.billing.key_prefix)
    table.add_row(
        "Default usage limit",
        str(settings.billing.default_usage_limit or "unlimited"),
    )
    table.add_row("Log level", settings.logging.log_level)
    table.add_row("Log format", settings.logging.log_format)

    console.print(table)


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
