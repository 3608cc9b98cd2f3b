"""
Cached wallet balance for display.

Never used for payout admission; the batch processor always reads the live
balance from the node.
"""

from __future__ import annotations

import asyncio
import threading
from decimal import Decimal

from loguru import logger

from signet_faucet.backends.base import NodeBackend
from signet_faucet.errors import FaucetError
from signet_faucet.observer import PayoutObserver


class BalanceCache:
    def __init__(self, node: NodeBackend, observer: PayoutObserver | None = None):
        self.node = node
        self.observer = observer or PayoutObserver()
        self._lock = threading.Lock()
        self._value = Decimal(0)

    @property
    def value(self) -> Decimal:
        with self._lock:
            return self._value

    async def initialize(self, attempts: int = 3, retry_delay: float = 2.0) -> Decimal:
        """
        First read, done before any refresh timer starts.

        A failed or zero read is retried up to ``attempts`` times. If none
        succeeds the cache stays at zero until the refresh timer fills it.
        """
        for attempt in range(1, attempts + 1):
            if await self.refresh():
                return self.value
            if attempt < attempts:
                logger.info(
                    f"Initial balance read {attempt}/{attempts} got nothing, "
                    f"retrying in {retry_delay}s"
                )
                await asyncio.sleep(retry_delay)

        logger.warning(
            f"No usable wallet balance after {attempts} attempts; cached balance "
            "shows 0 until the next refresh"
        )
        return self.value

    async def refresh(self) -> bool:
        """
        Re-read the available balance from the node.

        A failed or zero read leaves the previous value in place.

        Returns:
            True if the cached value was replaced
        """
        try:
            balances = await self.node.get_balances()
        except FaucetError as e:
            logger.warning(f"Failed to refresh wallet balance: {e}")
            return False

        balance = balances.available
        if balance <= 0:
            logger.debug("Wallet reported zero balance, keeping cached value")
            return False

        with self._lock:
            self._value = balance
        self.observer.balance_refreshed(balance)
        return True
