"""
Base wallet node interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from signet_faucet.constants import DUST_LIMIT_BTC
from signet_faucet.errors import NodeError


@dataclass
class UnspentOutput:
    txid: str
    vout: int
    address: str
    amount: Decimal
    confirmations: int
    spendable: bool
    solvable: bool = False
    safe: bool = False


@dataclass
class WalletBalances:
    trusted: Decimal = Decimal(0)
    untrusted: Decimal = Decimal(0)
    immature: Decimal = Decimal(0)

    @property
    def available(self) -> Decimal:
        """Balance the faucet may spend: confirmed plus our own unconfirmed."""
        return self.trusted + self.untrusted


def format_btc(amount: Decimal) -> str:
    return f"{amount:.8f}"


class NodeBackend(ABC):
    """
    Abstract wallet node interface.

    The node owns the keys: it funds, signs and broadcasts for us. Every
    failure surfaces as :class:`~signet_faucet.errors.NodeError`.
    """

    @abstractmethod
    async def get_balances(self) -> WalletBalances:
        """Get wallet balances in BTC"""

    @abstractmethod
    async def list_unspent(self, min_conf: int, max_conf: int) -> list[UnspentOutput]:
        """List wallet outputs with confirmations in [min_conf, max_conf]"""

    @abstractmethod
    async def get_new_address(self, label: str = "", address_type: str = "") -> str:
        """Derive a fresh wallet address"""

    @abstractmethod
    async def build_sign_broadcast(
        self,
        outputs: dict[str, str],
        fee_rate: Decimal | None = None,
        inputs: list[dict[str, Any]] | None = None,
    ) -> str:
        """
        Create, fund (when ``inputs`` is None), sign and broadcast a transaction.

        Args:
            outputs: ``{address: "0.00100000", "data": hex_memo}``
            fee_rate: sat/vB handed to the node's coin selection
            inputs: Pinned ``{"txid", "vout"}`` inputs; None lets the node choose

        Returns:
            txid of the broadcast transaction
        """

    @abstractmethod
    async def list_wallets(self) -> list[str]:
        """Names of the wallets currently loaded by the node"""

    @abstractmethod
    async def load_wallet(self, name: str) -> None:
        """Load a wallet by name"""

    @abstractmethod
    async def get_blockchain_info(self) -> dict[str, Any]:
        """Chain state, used as a liveness probe"""

    async def send_payment(
        self,
        address: str,
        amount: Decimal,
        fee_rate: Decimal,
        memo: str = "",
    ) -> str:
        """Pay ``amount`` BTC to ``address``, letting the node pick inputs."""
        if amount < DUST_LIMIT_BTC:
            raise NodeError("send", f"Amount too low: {format_btc(amount)} BTC")

        return await self.build_sign_broadcast(
            build_outputs(address, amount, memo), fee_rate=fee_rate
        )

    async def close(self) -> None:
        """Close backend connection"""
        pass


def build_outputs(address: str, amount: Decimal, memo: str = "") -> dict[str, str]:
    """Output map for createrawtransaction, with an optional OP_RETURN memo."""
    outputs = {address: format_btc(amount)}
    if memo:
        outputs["data"] = memo.encode().hex()
    return outputs
