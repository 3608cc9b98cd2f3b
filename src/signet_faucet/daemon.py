"""
Long-running faucet daemon: payout batches, balance refresh and optional
auto-consolidation on timers, with graceful shutdown on SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import signal
import sys

from loguru import logger

from signet_faucet.backends.base import NodeBackend
from signet_faucet.backends.bitcoin_core import BitcoinCoreWalletBackend
from signet_faucet.config import Settings
from signet_faucet.models import ConsolidationOutcome
from signet_faucet.observer import PayoutObserver
from signet_faucet.scheduler import TaskSupervisor
from signet_faucet.service import FaucetService
from signet_faucet.store import PayoutStore


def setup_logging(level: str) -> None:
    logger.remove()

    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=level.upper(),
        colorize=True,
    )


def create_node(settings: Settings) -> BitcoinCoreWalletBackend:
    return BitcoinCoreWalletBackend(
        rpc_url=settings.rpc_url,
        rpc_user=settings.rpc_user,
        rpc_password=settings.rpc_password,
        wallet_name=settings.wallet_name,
        timeout=settings.rpc_timeout,
    )


def create_store(settings: Settings) -> PayoutStore:
    if not settings.database_url:
        settings.data_dir.mkdir(parents=True, exist_ok=True)
    store = PayoutStore(settings.get_database_url())
    store.create_tables()
    return store


def create_service(
    settings: Settings,
    node: NodeBackend | None = None,
    store: PayoutStore | None = None,
    observer: PayoutObserver | None = None,
    require_credentials: bool = True,
) -> FaucetService:
    """
    Build a service from settings.

    Commands that never talk to the node pass ``require_credentials=False``.

    Raises:
        ConfigurationError: RPC credentials are missing
        StoreError: The database cannot be initialized
    """
    if node is None:
        if require_credentials:
            settings.require_rpc_credentials()
        node = create_node(settings)
    if store is None:
        store = create_store(settings)
    return FaucetService(settings, store, node, observer=observer)


async def auto_consolidate(service: FaucetService) -> None:
    result = await service.consolidate()
    if result.outcome == ConsolidationOutcome.CONSOLIDATED:
        logger.info(f"Auto-consolidation: {result.message} (txid: {result.txid})")
    else:
        logger.info(f"Auto-consolidation {result.outcome.value}: {result.message}")


async def run_faucet(
    settings: Settings,
    service: FaucetService | None = None,
    supervisor: TaskSupervisor | None = None,
    install_signal_handlers: bool = True,
) -> bool:
    """
    Run the faucet until a shutdown signal arrives.

    Returns:
        True if every background task stopped within ``shutdown_timeout``
    """
    setup_logging(settings.log_level)

    logger.info("Starting signet faucet")
    logger.info(f"Bitcoin RPC: {settings.rpc_url} (wallet: {settings.wallet_name})")
    logger.info(f"Batch interval: {settings.batch_interval}s, batch size: {settings.batch_size}")
    logger.info(f"Balance refresh interval: {settings.balance_refresh_interval}s")

    if service is None:
        service = create_service(settings)
    supervisor = supervisor or TaskSupervisor()

    try:
        await service.ensure_wallet_loaded()
        await asyncio.to_thread(service.reconcile_stale_processing)

        await service.balance_cache.initialize()
        logger.info(f"Initial wallet balance: {service.current_cached_balance():.8f} BTC")

        supervisor.add("batch processor", settings.batch_interval, service.process_batch)
        supervisor.add(
            "balance refresher", settings.balance_refresh_interval, service.refresh_balance
        )
        if settings.auto_consolidation_interval > 0:
            supervisor.add(
                "auto-consolidation",
                settings.auto_consolidation_interval,
                lambda: auto_consolidate(service),
            )
        else:
            logger.info("Auto-consolidation disabled")

        if install_signal_handlers:
            loop = asyncio.get_running_loop()

            def shutdown_handler() -> None:
                logger.info("Received shutdown signal, finishing current work...")
                supervisor.request_stop()

            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, shutdown_handler)

        supervisor.start()
        await supervisor.wait_stopped()
        clean = await supervisor.shutdown(settings.shutdown_timeout)
        if clean:
            logger.info("Faucet stopped gracefully")
        else:
            logger.warning("Faucet forced to exit before background tasks finished")
        return clean
    finally:
        await service.close()
