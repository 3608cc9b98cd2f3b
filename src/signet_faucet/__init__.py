"""
signet-faucet - Payout batching and UTXO consolidation for a signet faucet

Queues payout requests, pays them in batches from a Bitcoin Core wallet and
periodically merges small wallet outputs.
"""

__version__ = "0.1.0"

from signet_faucet.amounts import AMOUNT_TIERS, AmountPolicy, AmountTier
from signet_faucet.config import Settings, get_settings
from signet_faucet.consolidation import ConsolidationEngine
from signet_faucet.errors import (
    ConfigurationError,
    DuplicateAddressError,
    FaucetError,
    InvalidAddressError,
    InvalidTierError,
    InvalidTransitionError,
    NodeAuthError,
    NodeError,
    NodeRPCError,
    StoreError,
)
from signet_faucet.models import (
    BatchReport,
    ConsolidationOutcome,
    ConsolidationResult,
    PayoutStatus,
    SubmitError,
    SubmitResult,
)
from signet_faucet.processor import BatchProcessor
from signet_faucet.service import FaucetService
from signet_faucet.store import PayoutRequest, PayoutStore

__all__ = [
    "AMOUNT_TIERS",
    "AmountPolicy",
    "AmountTier",
    "BatchProcessor",
    "BatchReport",
    "ConfigurationError",
    "ConsolidationEngine",
    "ConsolidationOutcome",
    "ConsolidationResult",
    "DuplicateAddressError",
    "FaucetError",
    "FaucetService",
    "InvalidAddressError",
    "InvalidTierError",
    "InvalidTransitionError",
    "NodeAuthError",
    "NodeError",
    "NodeRPCError",
    "PayoutRequest",
    "PayoutStatus",
    "PayoutStore",
    "Settings",
    "StoreError",
    "SubmitError",
    "SubmitResult",
    "get_settings",
]
