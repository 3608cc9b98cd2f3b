"""
Core data models using Pydantic for validation and serialization.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, model_validator


class PayoutStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    BROADCAST = "broadcast"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PayoutStatus.BROADCAST, PayoutStatus.FAILED)


# The only status changes the lifecycle allows
ALLOWED_TRANSITIONS: dict[PayoutStatus, frozenset[PayoutStatus]] = {
    PayoutStatus.PENDING: frozenset({PayoutStatus.PROCESSING}),
    PayoutStatus.PROCESSING: frozenset({PayoutStatus.BROADCAST, PayoutStatus.FAILED}),
    PayoutStatus.BROADCAST: frozenset(),
    PayoutStatus.FAILED: frozenset(),
}


class SubmitError(str, Enum):
    INVALID_ADDRESS = "invalid_address"
    RATE_LIMITED = "rate_limited"
    DUPLICATE_ADDRESS = "duplicate_address"
    INVALID_TIER = "invalid_tier"
    INTERNAL = "internal"


class SubmitResult(BaseModel):
    """Outcome of a payout request at the intake boundary."""

    queued: bool
    error: SubmitError | None = None
    message: str = ""
    amount: Decimal | None = None

    @classmethod
    def ok(cls, amount: Decimal) -> SubmitResult:
        return cls(queued=True, amount=amount, message="Address queued, coins are on the way!")

    @classmethod
    def rejected(cls, error: SubmitError, message: str) -> SubmitResult:
        return cls(queued=False, error=error, message=message)


class ConsolidationOutcome(str, Enum):
    CONSOLIDATED = "consolidated"
    SKIPPED = "skipped"
    FAILED = "failed"


class ConsolidationResult(BaseModel):
    """
    Result of one consolidation run.

    A run either broadcast a transaction (``txid`` set, no ``reason``) or
    stopped early with a ``reason``: ``skipped`` when there was nothing worth
    merging, ``failed`` when the inputs could not cover the fee.
    """

    outcome: ConsolidationOutcome
    count: int = 0
    total_amount: Decimal = Decimal(0)
    txid: str | None = None
    address: str | None = None
    estimated_fee: Decimal | None = None
    output_amount: Decimal | None = None
    reason: str | None = None

    @model_validator(mode="after")
    def check_exclusive(self) -> ConsolidationResult:
        if self.outcome == ConsolidationOutcome.CONSOLIDATED:
            if not self.txid or self.reason:
                raise ValueError("consolidated result needs a txid and no reason")
        elif self.txid or not self.reason:
            raise ValueError(f"{self.outcome.value} result needs a reason and no txid")
        return self

    @property
    def message(self) -> str:
        if self.outcome == ConsolidationOutcome.CONSOLIDATED:
            return f"Consolidated {self.count} UTXOs ({self.total_amount:.8f} BTC)"
        return self.reason or ""


class BatchReport(BaseModel):
    """Counts for one batch cycle. ``skipped_reason`` is set when nothing was touched."""

    size: int = 0
    sent: int = 0
    failed: int = 0
    skipped_reason: str | None = None


class FaucetStats(BaseModel):
    pending: int = 0
    processing: int = 0
    broadcast: int = 0
    failed: int = 0
    total_sent: Decimal = Decimal(0)
    cached_balance: Decimal = Decimal(0)


class HealthStatus(BaseModel):
    node_ok: bool
    store_ok: bool
    node_error: str | None = None

    @property
    def healthy(self) -> bool:
        return self.node_ok and self.store_ok
