"""
Per-source withdrawal limit over a trailing window.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta

from loguru import logger

from signet_faucet.store import PayoutStore, utcnow

DEFAULT_WINDOW = timedelta(hours=24)


class SourceRateLimiter:
    """
    Counts the requests a source made in the trailing window.

    The count comes from the payout store itself, so the limit survives
    restarts. Allow-listed sources are never limited.
    """

    def __init__(
        self,
        store: PayoutStore,
        max_per_window: int,
        allowlist: Iterable[str] = (),
        window: timedelta = DEFAULT_WINDOW,
    ):
        self.store = store
        self.max_per_window = max_per_window
        self.allowlist = frozenset(allowlist)
        self.window = window

    def is_allowed(self, source: str, now: datetime | None = None) -> bool:
        if source in self.allowlist:
            return True

        since = (now or utcnow()) - self.window
        count = self.store.count_from_source_since(source, since)
        if count >= self.max_per_window:
            logger.info(f"Rate limit hit for {source}: {count} requests in the last {self.window}")
            return False
        return True
