"""
Pytest configuration and fixtures for faucet tests.
"""

from __future__ import annotations

from collections.abc import Iterator
from decimal import Decimal
from typing import Any

import pytest

from signet_faucet.backends.base import NodeBackend, UnspentOutput, WalletBalances
from signet_faucet.config import Settings
from signet_faucet.errors import NodeError
from signet_faucet.store import PayoutStore


def make_address(i: int) -> str:
    """Deterministic address that passes the signet format check."""
    return f"tb1q{i:038d}"


def make_utxo(amount: str, i: int = 0, spendable: bool = True) -> UnspentOutput:
    return UnspentOutput(
        txid=f"{i:064x}",
        vout=i % 4,
        address=make_address(1000 + i),
        amount=Decimal(amount),
        confirmations=6,
        spendable=spendable,
    )


class FakeNode(NodeBackend):
    """In-memory wallet node recording every broadcast."""

    def __init__(self, balance: Decimal = Decimal("10"), utxos: list[UnspentOutput] | None = None):
        self.balances = WalletBalances(trusted=balance)
        self.utxos = utxos or []
        self.wallets = ["faucet"]
        self.loadable = {"faucet"}
        self.broadcasts: list[dict[str, Any]] = []
        self.new_address_calls: list[tuple[str, str]] = []
        self.fail_addresses: set[str] = set()
        self.balance_error: Exception | None = None
        self.chain_error: Exception | None = None
        self.closed = False
        self._counter = 0

    async def get_balances(self) -> WalletBalances:
        if self.balance_error is not None:
            raise self.balance_error
        return self.balances

    async def list_unspent(self, min_conf: int, max_conf: int) -> list[UnspentOutput]:
        return list(self.utxos)

    async def get_new_address(self, label: str = "", address_type: str = "") -> str:
        self.new_address_calls.append((label, address_type))
        return make_address(9999)

    async def build_sign_broadcast(
        self,
        outputs: dict[str, str],
        fee_rate: Decimal | None = None,
        inputs: list[dict[str, Any]] | None = None,
    ) -> str:
        for address in outputs:
            if address in self.fail_addresses:
                raise NodeError("sendrawtransaction", f"rejected output to {address}")
        self.broadcasts.append({"outputs": outputs, "fee_rate": fee_rate, "inputs": inputs})
        self._counter += 1
        return f"{self._counter:064x}"

    async def list_wallets(self) -> list[str]:
        return list(self.wallets)

    async def load_wallet(self, name: str) -> None:
        if name not in self.loadable:
            raise NodeError("loadwallet", f"Wallet file not found: {name}")
        self.wallets.append(name)

    async def get_blockchain_info(self) -> dict[str, Any]:
        if self.chain_error is not None:
            raise self.chain_error
        return {"chain": "signet", "blocks": 200_000}

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def store() -> Iterator[PayoutStore]:
    """Fresh in-memory payout store."""
    s = PayoutStore("sqlite://")
    s.create_tables()
    yield s
    s.close()


@pytest.fixture
def node() -> FakeNode:
    return FakeNode()


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        rpc_user="faucet",
        rpc_password="secret",
        database_url="sqlite://",
        source_allowlist="",
    )
