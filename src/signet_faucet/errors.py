"""
Exception types raised by the faucet components.
"""

from __future__ import annotations


class FaucetError(Exception):
    """Base class for all faucet errors."""


class ConfigurationError(FaucetError):
    """Fatal startup problem: missing secrets, unloadable wallet, unreachable store."""


class NodeError(FaucetError):
    """
    A call to the wallet node failed.

    ``step`` names the RPC that failed so operators can tell a funding problem
    from a broadcast rejection when reading the stored error text.
    """

    def __init__(self, step: str, message: str):
        self.step = step
        self.message = message
        super().__init__(f"{step} failed: {message}")


class NodeAuthError(NodeError):
    """The node rejected our credentials or our address (HTTP 401/403)."""


class NodeRPCError(NodeError):
    """The node answered with a JSON-RPC error object."""

    def __init__(self, step: str, code: int | str, message: str):
        self.code = code
        super().__init__(step, f"RPC error {code}: {message}")


class StoreError(FaucetError):
    """The record store could not complete an operation."""


class DuplicateAddressError(StoreError):
    """A payout request for this destination address already exists."""

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Address already used: {address}")


class InvalidTransitionError(StoreError):
    """A status change that the payout lifecycle does not allow."""


class InvalidTierError(FaucetError):
    """Neither the requested nor the default amount tier is usable."""


class InvalidAddressError(FaucetError, ValueError):
    """The destination is not a signet bech32 address."""
