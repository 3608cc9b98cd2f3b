"""
Wallet node backend implementations.

Available backends:
- BitcoinCoreWalletBackend: Bitcoin Core JSON-RPC with the node's own wallet
"""

from signet_faucet.backends.base import (
    NodeBackend,
    UnspentOutput,
    WalletBalances,
    build_outputs,
)
from signet_faucet.backends.bitcoin_core import BitcoinCoreWalletBackend

__all__ = [
    "BitcoinCoreWalletBackend",
    "NodeBackend",
    "UnspentOutput",
    "WalletBalances",
    "build_outputs",
]
