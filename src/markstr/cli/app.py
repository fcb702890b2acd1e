"""Root CLI app - entry point and command registration."""

from __future__ import annotations

import hashlib
from decimal import Decimal, InvalidOperation
from pathlib import Path

import typer

from markstr.addresses import is_valid_address
from markstr.config import configure_logging, get_settings
from markstr.errors import NetworkError
from markstr.models.network import Network

SATS_PER_BTC = 100_000_000

app = typer.Typer(
    name="markstr",
    help="markstr - CTV/CSFS covenant pools for binary prediction markets.",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    config_dir: Path | None = typer.Option(
        None, "--config-dir", "-C", help="Config directory (default: ./config or package config)"
    ),
    profile: str | None = typer.Option(
        None, "--profile", "-p", help="Config profile (e.g. signet) to overlay on default.toml"
    ),
) -> None:
    """Configure logging and store options in context."""
    settings = get_settings(profile, config_dir)
    configure_logging(settings)
    ctx.obj = {"settings": settings, "config_dir": config_dir, "profile": profile}


@app.command("validate-address")
def validate_address(
    ctx: typer.Context,
    address: str = typer.Argument(..., help="Bitcoin address"),
    network: str | None = typer.Option(None, "--network", "-n", help="Network (default from config)"),
) -> None:
    """Check that an address parses for the given network."""
    try:
        net = Network.parse(network) if network else ctx.obj["settings"].network
    except NetworkError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if is_valid_address(address, net):
        typer.echo(f"{address} is valid for {net.value}")
    else:
        typer.echo(f"{address} is invalid for {net.value}")
        raise typer.Exit(1)


@app.command("hash")
def hash_message(message: str = typer.Argument(..., help="Message to hash")) -> None:
    """SHA256 of a UTF-8 message (hex)."""
    typer.echo(hashlib.sha256(message.encode("utf-8")).hexdigest())


@app.command("convert")
def convert(
    amount: str = typer.Argument(..., help="Amount to convert"),
    unit: str = typer.Argument(..., help="Unit of AMOUNT: btc or sat"),
) -> None:
    """Convert between BTC and satoshis."""
    try:
        value = Decimal(amount)
    except InvalidOperation:
        typer.echo(f"Error: not a number: {amount}", err=True)
        raise typer.Exit(1)
    unit = unit.lower()
    if unit == "btc":
        typer.echo(f"{amount} BTC = {int(value * SATS_PER_BTC)} sats")
    elif unit in ("sat", "sats"):
        typer.echo(f"{int(value)} sats = {Decimal(int(value)) / SATS_PER_BTC} BTC")
    else:
        typer.echo("Error: unit must be 'btc' or 'sat'", err=True)
        raise typer.Exit(1)


# Subcommands registered from other modules
from markstr.cli import market  # noqa: E402

app.add_typer(market.app, name="market")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
