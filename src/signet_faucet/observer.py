"""
Observability hooks for the background jobs.

Components take an observer at construction time and call it at fixed
points; nothing here is needed for correctness.
"""

from __future__ import annotations

from decimal import Decimal

from loguru import logger

from signet_faucet.models import BatchReport, ConsolidationResult


class PayoutObserver:
    """No-op observer. Subclass and override the hooks you care about."""

    def batch_started(self, size: int, required: Decimal) -> None:
        pass

    def batch_skipped(self, reason: str) -> None:
        pass

    def batch_completed(self, report: BatchReport) -> None:
        pass

    def consolidation_finished(self, result: ConsolidationResult) -> None:
        pass

    def balance_refreshed(self, balance: Decimal) -> None:
        pass


class LoggingObserver(PayoutObserver):
    def batch_started(self, size: int, required: Decimal) -> None:
        logger.debug(f"Batch started: {size} requests, {required:.8f} BTC required")

    def batch_skipped(self, reason: str) -> None:
        logger.debug(f"Batch skipped: {reason}")

    def batch_completed(self, report: BatchReport) -> None:
        logger.debug(f"Batch completed: {report.sent} sent, {report.failed} failed")

    def consolidation_finished(self, result: ConsolidationResult) -> None:
        logger.debug(f"Consolidation {result.outcome.value}: {result.message}")

    def balance_refreshed(self, balance: Decimal) -> None:
        logger.trace(f"Cached balance: {balance:.8f} BTC")
