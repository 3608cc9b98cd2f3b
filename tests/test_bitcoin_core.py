"""
Tests for the Bitcoin Core JSON-RPC wallet backend.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from decimal import Decimal
from typing import Any

import httpx
import pytest

from signet_faucet.backends.bitcoin_core import BitcoinCoreWalletBackend
from signet_faucet.errors import NodeAuthError, NodeError, NodeRPCError

ADDRESS = "tb1q" + "a" * 38


class RecordingNode:
    """Answers JSON-RPC requests from a method -> result table."""

    def __init__(self, results: dict[str, Any]):
        self.results = results
        self.calls: list[tuple[str, str, list[Any]]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.calls.append((request.url.path, body["method"], body["params"]))
        result = self.results[body["method"]]
        if callable(result):
            return result(request)
        return httpx.Response(200, json={"result": result, "error": None, "id": body["id"]})

    def methods(self) -> list[str]:
        return [method for _, method, _ in self.calls]

    def params(self, method: str) -> list[Any]:
        return next(params for _, m, params in self.calls if m == method)


def make_backend(handler: Callable[[httpx.Request], httpx.Response]) -> BitcoinCoreWalletBackend:
    return BitcoinCoreWalletBackend(
        rpc_url="http://node:38332",
        rpc_user="faucet",
        rpc_password="secret",
        wallet_name="faucet",
        transport=httpx.MockTransport(handler),
    )


class TestRPCCall:
    @pytest.mark.asyncio
    async def test_wallet_calls_use_wallet_endpoint(self) -> None:
        node = RecordingNode({"getbalances": {"mine": {"trusted": 1}}, "listwallets": ["faucet"]})
        backend = make_backend(node)

        await backend.get_balances()
        await backend.list_wallets()

        assert node.calls[0][0] == "/wallet/faucet"
        assert node.calls[1][0] == "/"
        await backend.close()

    @pytest.mark.asyncio
    async def test_amounts_parsed_exactly(self) -> None:
        """Floats in responses become Decimal without binary rounding."""

        def handler(request: httpx.Request) -> httpx.Response:
            content = (
                b'{"result": {"mine": {"trusted": 0.1, "untrusted_pending": 0.2,'
                b' "immature": 0.00000001}}, "error": null, "id": 1}'
            )
            return httpx.Response(200, content=content)

        backend = make_backend(RecordingNode({"getbalances": handler}))

        balances = await backend.get_balances()

        assert balances.trusted == Decimal("0.1")
        assert balances.untrusted == Decimal("0.2")
        assert balances.available == Decimal("0.3")
        assert balances.immature == Decimal("0.00000001")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_errors(self, status: int) -> None:
        backend = make_backend(
            RecordingNode({"getbalances": lambda request: httpx.Response(status)})
        )

        with pytest.raises(NodeAuthError) as exc_info:
            await backend.get_balances()
        assert exc_info.value.step == "getbalances"

    @pytest.mark.asyncio
    async def test_rpc_error_object(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                500,
                json={"result": None, "error": {"code": -6, "message": "Insufficient funds"}},
            )

        backend = make_backend(RecordingNode({"fundrawtransaction": handler}))

        with pytest.raises(NodeRPCError) as exc_info:
            await backend._rpc_call("fundrawtransaction", ["00"])

        assert exc_info.value.code == -6
        assert str(exc_info.value) == (
            "fundrawtransaction failed: RPC error -6: Insufficient funds"
        )

    @pytest.mark.asyncio
    async def test_non_json_response(self) -> None:
        backend = make_backend(
            RecordingNode({"getbalances": lambda request: httpx.Response(502, text="Bad Gateway")})
        )

        with pytest.raises(NodeError, match="HTTP 502: Bad Gateway"):
            await backend.get_balances()

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        backend = make_backend(handler)

        with pytest.raises(NodeError, match="getblockchaininfo failed"):
            await backend.get_blockchain_info()

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        backend = make_backend(handler)

        with pytest.raises(NodeError, match="timed out"):
            await backend.get_balances()


    @pytest.mark.asyncio
    async def test_non_object_body(self) -> None:
        backend = make_backend(
            RecordingNode({"getbalances": lambda request: httpx.Response(200, json=[1, 2])})
        )

        with pytest.raises(NodeError, match="getbalances failed: unexpected response"):
            await backend.get_balances()

    @pytest.mark.asyncio
    async def test_wrong_result_type(self) -> None:
        backend = make_backend(RecordingNode({"listwallets": {"faucet": True}}))

        with pytest.raises(NodeError, match="expected list, got dict"):
            await backend.list_wallets()


class TestWalletCalls:
    @pytest.mark.asyncio
    async def test_list_unspent(self) -> None:
        node = RecordingNode(
            {
                "listunspent": [
                    {
                        "txid": "ab" * 32,
                        "vout": 1,
                        "address": ADDRESS,
                        "amount": 0.0005,
                        "confirmations": 3,
                        "spendable": True,
                        "solvable": True,
                        "safe": True,
                    }
                ]
            }
        )
        backend = make_backend(node)

        utxos = await backend.list_unspent(0, 9_999_999)

        assert node.params("listunspent") == [0, 9_999_999]
        assert len(utxos) == 1
        assert utxos[0].amount == Decimal("0.0005")
        assert utxos[0].spendable

    @pytest.mark.asyncio
    async def test_get_new_address_params(self) -> None:
        node = RecordingNode({"getnewaddress": ADDRESS})
        backend = make_backend(node)

        assert await backend.get_new_address("consolidated", "bech32") == ADDRESS
        await backend.get_new_address()

        assert node.calls[0][2] == ["consolidated", "bech32"]
        assert node.calls[1][2] == []

    @pytest.mark.asyncio
    async def test_load_wallet(self) -> None:
        node = RecordingNode({"loadwallet": {"name": "faucet", "warning": ""}})

        await make_backend(node).load_wallet("faucet")

        assert node.calls == [("/", "loadwallet", ["faucet"])]


class TestBuildSignBroadcast:
    @pytest.fixture
    def node(self) -> RecordingNode:
        return RecordingNode(
            {
                "createrawtransaction": "rawtx",
                "fundrawtransaction": {"hex": "fundedtx", "fee": 0.0000002, "changepos": 1},
                "signrawtransactionwithwallet": {"hex": "signedtx", "complete": True},
                "sendrawtransaction": "cd" * 32,
            }
        )

    @pytest.mark.asyncio
    async def test_send_payment_funds_with_fee_rate(self, node: RecordingNode) -> None:
        """Node picks inputs when none are pinned."""
        backend = make_backend(node)

        txid = await backend.send_payment(ADDRESS, Decimal("0.01"), Decimal("0.115"), "hi")

        assert txid == "cd" * 32
        assert node.methods() == [
            "createrawtransaction",
            "fundrawtransaction",
            "signrawtransactionwithwallet",
            "sendrawtransaction",
        ]
        assert node.params("createrawtransaction") == [
            [],
            {ADDRESS: "0.01000000", "data": b"hi".hex()},
        ]
        assert node.params("fundrawtransaction") == ["rawtx", {"fee_rate": "0.11500000"}]
        assert node.params("signrawtransactionwithwallet") == ["fundedtx"]
        assert node.params("sendrawtransaction") == ["signedtx"]

    @pytest.mark.asyncio
    async def test_pinned_inputs_skip_funding(self, node: RecordingNode) -> None:
        backend = make_backend(node)
        inputs = [{"txid": "ab" * 32, "vout": 0}]

        await backend.build_sign_broadcast({ADDRESS: "0.00150000"}, inputs=inputs)

        assert "fundrawtransaction" not in node.methods()
        assert node.params("createrawtransaction") == [inputs, {ADDRESS: "0.00150000"}]
        assert node.params("signrawtransactionwithwallet") == ["rawtx"]

    @pytest.mark.asyncio
    async def test_incomplete_signature(self, node: RecordingNode) -> None:
        node.results["signrawtransactionwithwallet"] = {"hex": "partial", "complete": False}
        backend = make_backend(node)

        with pytest.raises(NodeError, match="signing incomplete"):
            await backend.send_payment(ADDRESS, Decimal("0.01"), Decimal("0.115"))

        assert "sendrawtransaction" not in node.methods()

    @pytest.mark.asyncio
    async def test_dust_rejected_before_rpc(self, node: RecordingNode) -> None:
        backend = make_backend(node)

        with pytest.raises(NodeError, match="Amount too low"):
            await backend.send_payment(ADDRESS, Decimal("0.000009"), Decimal("0.115"))

        assert node.calls == []

    @pytest.mark.asyncio
    async def test_null_fund_result(self, node: RecordingNode) -> None:
        """A result with nothing to index is a node error, not a crash."""
        node.results["fundrawtransaction"] = None
        backend = make_backend(node)

        with pytest.raises(NodeError, match="fundrawtransaction failed: unexpected response"):
            await backend.send_payment(ADDRESS, Decimal("0.01"), Decimal("0.115"))

        assert "signrawtransactionwithwallet" not in node.methods()

    @pytest.mark.asyncio
    async def test_fund_result_without_hex(self, node: RecordingNode) -> None:
        node.results["fundrawtransaction"] = {"fee": 0.0000002}
        backend = make_backend(node)

        with pytest.raises(NodeError, match="unexpected response"):
            await backend.send_payment(ADDRESS, Decimal("0.01"), Decimal("0.115"))
