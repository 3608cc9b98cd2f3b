"""
Payout batch processor.

Drains up to ``batch_size`` pending requests per cycle. The whole batch is
skipped, with no status changes, unless the wallet can cover every amount in
it; otherwise each request is paid on its own so one failure never blocks
the rest.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal

from loguru import logger

from signet_faucet.backends.base import NodeBackend
from signet_faucet.constants import DEFAULT_BATCH_SIZE, DEFAULT_MEMO
from signet_faucet.errors import FaucetError, StoreError
from signet_faucet.fees import payout_fee_rate
from signet_faucet.models import BatchReport, PayoutStatus
from signet_faucet.observer import PayoutObserver
from signet_faucet.store import PayoutRequest, PayoutStore


class BatchProcessor:
    def __init__(
        self,
        store: PayoutStore,
        node: NodeBackend,
        batch_size: int = DEFAULT_BATCH_SIZE,
        payout_memo: str = DEFAULT_MEMO,
        observer: PayoutObserver | None = None,
    ):
        self.store = store
        self.node = node
        self.batch_size = batch_size
        self.payout_memo = payout_memo
        self.observer = observer or PayoutObserver()

    def _skip(self, reason: str) -> BatchReport:
        self.observer.batch_skipped(reason)
        return BatchReport(skipped_reason=reason)

    async def process_batch(self) -> BatchReport:
        """Run one batch cycle."""
        try:
            pending = await asyncio.to_thread(
                self.store.list_by_status,
                PayoutStatus.PENDING,
                order_by="id",
                limit=self.batch_size,
            )
        except StoreError as e:
            logger.error(f"Failed to query pending transactions: {e}")
            return self._skip(f"store unavailable: {e}")

        if not pending:
            return BatchReport()

        logger.info(f"Processing batch of {len(pending)} transactions")

        total_needed = sum((record.amount for record in pending), Decimal(0))
        self.observer.batch_started(len(pending), total_needed)

        try:
            balances = await self.node.get_balances()
        except FaucetError as e:
            logger.error(f"Failed to get wallet balance, skipping batch: {e}")
            return self._skip(f"balance unavailable: {e}")

        available = balances.available
        if available < total_needed:
            reason = (
                f"Insufficient balance: {available:.8f} BTC available - need "
                f"{total_needed:.8f} BTC for {len(pending)} transactions"
            )
            logger.warning(reason)
            return self._skip(reason)

        report = BatchReport(size=len(pending))
        fee_rate = payout_fee_rate()
        for record in pending:
            outcome = await self._pay(record, fee_rate)
            if outcome is PayoutStatus.BROADCAST:
                report.sent += 1
            elif outcome is PayoutStatus.FAILED:
                report.failed += 1

        logger.info(f"Batch complete: {report.sent} sent, {report.failed} failed")
        self.observer.batch_completed(report)
        return report

    async def _pay(self, record: PayoutRequest, fee_rate: Decimal) -> PayoutStatus | None:
        """
        Claim one record and pay it.

        Returns the terminal status reached, or None when the record could
        not be claimed and was left untouched.
        """
        try:
            claimed = await asyncio.to_thread(
                self.store.transition, record.id, PayoutStatus.PENDING, PayoutStatus.PROCESSING
            )
        except StoreError as e:
            logger.error(f"Failed to update transaction {record.id} to processing: {e}")
            return None
        if not claimed:
            logger.warning(f"Transaction {record.id} is no longer pending, skipping")
            return None

        try:
            txid = await self.node.send_payment(
                record.address, record.amount, fee_rate, self.payout_memo
            )
        except FaucetError as e:
            logger.error(f"Failed to send to {record.address}: {e}")
            await self._mark_failed(record, str(e))
            return PayoutStatus.FAILED
        except Exception as e:
            logger.exception(f"Unexpected error sending to {record.address}: {e}")
            await self._mark_failed(record, f"unexpected error: {e!r}")
            return PayoutStatus.FAILED

        try:
            await asyncio.to_thread(
                self.store.transition,
                record.id,
                PayoutStatus.PROCESSING,
                PayoutStatus.BROADCAST,
                txid=txid,
            )
        except StoreError as e:
            # Coins already left the wallet; the stale sweep fails the record later
            logger.error(
                f"Failed to update transaction {record.id} to broadcast (txid: {txid}): {e}"
            )

        logger.info(f"Sent {record.amount:.8f} BTC to {record.address} (txid: {txid})")
        return PayoutStatus.BROADCAST

    async def _mark_failed(self, record: PayoutRequest, error: str) -> None:
        try:
            await asyncio.to_thread(
                self.store.transition,
                record.id,
                PayoutStatus.PROCESSING,
                PayoutStatus.FAILED,
                error=error,
            )
        except StoreError as e:
            logger.error(f"Failed to update transaction {record.id} to failed: {e}")
