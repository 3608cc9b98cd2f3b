"""
Signet faucet CLI using Typer.

Every command reads its configuration from ``FAUCET_*`` environment
variables (or a ``.env`` file); options given here override them.
"""

from __future__ import annotations

import asyncio
from typing import Annotated

import typer
from loguru import logger
from pydantic import ValidationError

from signet_faucet.config import Settings, get_settings
from signet_faucet.daemon import create_service, run_faucet, setup_logging
from signet_faucet.errors import FaucetError
from signet_faucet.models import ConsolidationOutcome
from signet_faucet.service import FaucetService

app = typer.Typer(name="signet-faucet", add_completion=False)


def run_async(coro):  # type: ignore[no-untyped-def]
    return asyncio.run(coro)


def load_settings(log_level: str | None) -> Settings:
    try:
        settings = get_settings()
    except ValidationError as e:
        setup_logging(log_level or "INFO")
        logger.error(f"Invalid configuration: {e}")
        raise typer.Exit(1)

    if log_level:
        settings.log_level = log_level
    setup_logging(settings.log_level)
    return settings


def open_service(settings: Settings, require_credentials: bool = True) -> FaucetService:
    try:
        return create_service(settings, require_credentials=require_credentials)
    except FaucetError as e:
        logger.error(str(e))
        raise typer.Exit(1)


LogLevelOption = Annotated[
    str | None, typer.Option("--log-level", "-l", help="Override FAUCET_LOG_LEVEL")
]


@app.command()
def run(log_level: LogLevelOption = None) -> None:
    """Run the faucet daemon until SIGINT/SIGTERM."""
    settings = load_settings(log_level)
    service = open_service(settings)

    try:
        clean = run_async(run_faucet(settings, service=service))
    except FaucetError as e:
        logger.error(f"Faucet stopped: {e}")
        raise typer.Exit(1)
    if not clean:
        raise typer.Exit(2)


@app.command()
def submit(
    address: Annotated[str, typer.Argument(help="Signet bech32 address (tb1...)")],
    tier: Annotated[int | None, typer.Option("--tier", "-t", help="Amount tier (1-4)")] = None,
    source: Annotated[
        str, typer.Option("--source", "-s", help="Requester identity used for rate limiting")
    ] = "127.0.0.1",
    log_level: LogLevelOption = None,
) -> None:
    """Queue a payout request."""
    settings = load_settings(log_level)
    service = open_service(settings, require_credentials=False)

    try:
        result = service.submit(address, tier, source)
    finally:
        run_async(service.close())

    if not result.queued:
        reason = result.error.value if result.error else "error"
        typer.echo(f"Rejected ({reason}): {result.message}")
        raise typer.Exit(1)
    typer.echo(f"{result.message} Amount: {result.amount:.8f} BTC")


@app.command()
def consolidate(log_level: LogLevelOption = None) -> None:
    """Merge small wallet UTXOs into one output."""
    settings = load_settings(log_level)
    service = open_service(settings)

    async def _consolidate():  # type: ignore[no-untyped-def]
        try:
            return await service.consolidate()
        finally:
            await service.close()

    try:
        result = run_async(_consolidate())
    except FaucetError as e:
        logger.error(f"Consolidation failed: {e}")
        raise typer.Exit(1)

    typer.echo(result.message)
    if result.outcome == ConsolidationOutcome.CONSOLIDATED:
        typer.echo(f"txid: {result.txid}")
        typer.echo(f"address: {result.address}")
        typer.echo(f"estimated fee: {result.estimated_fee:.8f} BTC")
    elif result.outcome == ConsolidationOutcome.FAILED:
        raise typer.Exit(1)


@app.command()
def balance(log_level: LogLevelOption = None) -> None:
    """Show the wallet's spendable balance."""
    settings = load_settings(log_level)
    service = open_service(settings)

    async def _balance():  # type: ignore[no-untyped-def]
        try:
            return await service.available_balance()
        finally:
            await service.close()

    try:
        available = run_async(_balance())
    except FaucetError as e:
        logger.error(f"Failed to get wallet balance: {e}")
        raise typer.Exit(1)

    typer.echo(f"{available:.8f} BTC")


@app.command()
def stats(log_level: LogLevelOption = None) -> None:
    """Show payout request counts and total sent."""
    settings = load_settings(log_level)
    service = open_service(settings, require_credentials=False)

    try:
        summary = service.stats()
    finally:
        run_async(service.close())

    typer.echo(f"pending:    {summary.pending}")
    typer.echo(f"processing: {summary.processing}")
    typer.echo(f"broadcast:  {summary.broadcast}")
    typer.echo(f"failed:     {summary.failed}")
    typer.echo(f"total sent: {summary.total_sent:.8f} BTC")


@app.command()
def reconcile(log_level: LogLevelOption = None) -> None:
    """Mark payouts stuck in processing as failed."""
    settings = load_settings(log_level)
    service = open_service(settings, require_credentials=False)

    try:
        count = service.reconcile_stale_processing()
    finally:
        run_async(service.close())

    typer.echo(f"Marked {count} stuck payouts as failed")


def main() -> None:  # pragma: no cover
    app()
