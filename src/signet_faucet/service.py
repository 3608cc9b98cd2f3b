"""
Faucet service: wires the components together and exposes the operations
used by the daemon and the CLI.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from decimal import Decimal

from loguru import logger

from signet_faucet.address import validate_signet_address
from signet_faucet.amounts import AmountPolicy
from signet_faucet.backends.base import NodeBackend
from signet_faucet.balance import BalanceCache
from signet_faucet.config import Settings
from signet_faucet.consolidation import ConsolidationEngine
from signet_faucet.errors import (
    ConfigurationError,
    DuplicateAddressError,
    FaucetError,
    InvalidAddressError,
    InvalidTierError,
    StoreError,
)
from signet_faucet.models import (
    BatchReport,
    ConsolidationResult,
    FaucetStats,
    HealthStatus,
    PayoutStatus,
    SubmitError,
    SubmitResult,
)
from signet_faucet.observer import LoggingObserver, PayoutObserver
from signet_faucet.processor import BatchProcessor
from signet_faucet.rate_limit import SourceRateLimiter
from signet_faucet.store import PayoutStore


class FaucetService:
    def __init__(
        self,
        settings: Settings,
        store: PayoutStore,
        node: NodeBackend,
        observer: PayoutObserver | None = None,
    ):
        self.settings = settings
        self.store = store
        self.node = node
        self.observer = observer or LoggingObserver()

        self.amounts = AmountPolicy(
            settings.get_enabled_amount_tiers(), settings.default_amount_tier
        )
        self.rate_limiter = SourceRateLimiter(
            store,
            settings.max_withdrawals_per_source_24h,
            settings.get_source_allowlist(),
        )
        self.processor = BatchProcessor(
            store,
            node,
            batch_size=settings.batch_size,
            payout_memo=settings.payout_memo,
            observer=self.observer,
        )
        self.consolidator = ConsolidationEngine(
            node,
            threshold=settings.consolidation_amount_threshold,
            min_utxos=settings.consolidation_min_utxos,
            max_utxos=settings.consolidation_max_utxos,
            fee_rate=settings.consolidation_fee_rate,
            memo=settings.consolidation_memo,
            observer=self.observer,
        )
        self.balance_cache = BalanceCache(node, observer=self.observer)

    def submit(self, address: str, tier: int | None = None, source: str = "") -> SubmitResult:
        """
        Validate and queue a payout request.

        Checks run in order: address format, per-source limit, amount tier,
        then the unique address constraint on insert.
        """
        try:
            address = validate_signet_address(address)
        except InvalidAddressError as e:
            return SubmitResult.rejected(SubmitError.INVALID_ADDRESS, str(e))

        try:
            allowed = self.rate_limiter.is_allowed(source)
        except StoreError as e:
            logger.error(f"Rate limit lookup failed for {source}: {e}")
            return SubmitResult.rejected(SubmitError.INTERNAL, "Internal error")
        if not allowed:
            return SubmitResult.rejected(
                SubmitError.RATE_LIMITED,
                f"Rate limit exceeded (max {self.rate_limiter.max_per_window} per 24h)",
            )

        try:
            amount = self.amounts.pick_amount(tier)
        except InvalidTierError as e:
            return SubmitResult.rejected(SubmitError.INVALID_TIER, str(e))

        try:
            self.store.create(address, amount, source)
        except DuplicateAddressError:
            return SubmitResult.rejected(SubmitError.DUPLICATE_ADDRESS, "Address already used")
        except StoreError as e:
            logger.error(f"Failed to create transaction: {e}")
            return SubmitResult.rejected(SubmitError.INTERNAL, "Failed to queue address")

        logger.info(f"Address queued: {address} (source: {source}, amount: {amount:.8f} BTC)")
        return SubmitResult.ok(amount)

    async def process_batch(self) -> BatchReport:
        return await self.processor.process_batch()

    async def consolidate(self) -> ConsolidationResult:
        return await self.consolidator.consolidate()

    def current_cached_balance(self) -> Decimal:
        return self.balance_cache.value

    async def refresh_balance(self) -> bool:
        return await self.balance_cache.refresh()

    async def available_balance(self) -> Decimal:
        """Live spendable balance straight from the node."""
        balances = await self.node.get_balances()
        return balances.available

    async def ensure_wallet_loaded(self) -> None:
        """
        Make sure the faucet wallet is loaded on the node.

        Raises:
            ConfigurationError: The node is unreachable or the wallet cannot be loaded
        """
        wallet_name = self.settings.wallet_name
        try:
            wallets = await self.node.list_wallets()
        except FaucetError as e:
            raise ConfigurationError(f"failed to list wallets: {e}") from e

        if wallet_name not in wallets:
            logger.info(f"'{wallet_name}' wallet not loaded, attempting to load it...")
            try:
                await self.node.load_wallet(wallet_name)
            except FaucetError as e:
                raise ConfigurationError(
                    f"'{wallet_name}' wallet not found or failed to load - please create it "
                    f"with: bitcoin-cli -signet createwallet {wallet_name} (error: {e})"
                ) from e
            logger.info(f"'{wallet_name}' wallet loaded successfully")

        logger.info(f"Bitcoin RPC connection verified, '{wallet_name}' wallet loaded")

    def reconcile_stale_processing(self) -> int:
        grace = timedelta(seconds=self.settings.stale_processing_grace)
        count = self.store.fail_stale_processing(grace)
        if count:
            logger.warning(f"Marked {count} interrupted payouts as failed")
        return count

    def stats(self) -> FaucetStats:
        return FaucetStats(
            pending=self.store.count_by_status(PayoutStatus.PENDING),
            processing=self.store.count_by_status(PayoutStatus.PROCESSING),
            broadcast=self.store.count_by_status(PayoutStatus.BROADCAST),
            failed=self.store.count_by_status(PayoutStatus.FAILED),
            total_sent=self.store.total_amount_broadcast(),
            cached_balance=self.current_cached_balance(),
        )

    async def health(self) -> HealthStatus:
        node_error = None
        try:
            await self.node.get_blockchain_info()
        except FaucetError as e:
            node_error = str(e)
        return HealthStatus(
            node_ok=node_error is None,
            store_ok=await asyncio.to_thread(self.store.ping),
            node_error=node_error,
        )

    async def close(self) -> None:
        await self.node.close()
        self.store.close()
