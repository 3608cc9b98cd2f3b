"""
Bitcoin Core RPC wallet backend.
Uses the node's own wallet to fund, sign and broadcast payouts.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

import httpx
from loguru import logger

from signet_faucet.backends.base import NodeBackend, UnspentOutput, WalletBalances
from signet_faucet.errors import NodeAuthError, NodeError, NodeRPCError

# Timeout for RPC calls (seconds)
DEFAULT_RPC_TIMEOUT = 5.0

# Characters of an unexpected response body kept in error messages
ERROR_PREVIEW_CHARS = 200


def _preview(body: str) -> str:
    if len(body) > ERROR_PREVIEW_CHARS:
        return body[:ERROR_PREVIEW_CHARS] + "..."
    return body


def _expect(method: str, result: Any, kind: type) -> Any:
    """Check the shape of an RPC result before it is indexed."""
    if not isinstance(result, kind):
        raise NodeError(
            method, f"unexpected response: expected {kind.__name__}, got {type(result).__name__}"
        )
    return result


class BitcoinCoreWalletBackend(NodeBackend):
    """
    Wallet node backend using Bitcoin Core JSON-RPC.

    Wallet calls are routed to ``<rpc_url>/wallet/<wallet_name>`` so the node
    never has to guess which loaded wallet we mean.
    """

    def __init__(
        self,
        rpc_url: str = "http://127.0.0.1:38332",
        rpc_user: str = "",
        rpc_password: str = "",
        wallet_name: str = "faucet",
        timeout: float = DEFAULT_RPC_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.rpc_url = rpc_url.rstrip("/")
        self.wallet_name = wallet_name
        self.client = httpx.AsyncClient(
            timeout=timeout, auth=(rpc_user, rpc_password), transport=transport
        )
        self._request_id = 0

    @property
    def wallet_url(self) -> str:
        return f"{self.rpc_url}/wallet/{self.wallet_name}"

    async def _rpc_call(
        self,
        method: str,
        params: list[Any] | None = None,
        wallet: bool = True,
    ) -> Any:
        """
        Make an RPC call to Bitcoin Core.

        Args:
            method: RPC method name
            params: Method parameters
            wallet: Route the call to the faucet wallet endpoint

        Returns:
            RPC result, with JSON numbers parsed as Decimal

        Raises:
            NodeAuthError: On HTTP 401/403
            NodeRPCError: On JSON-RPC errors
            NodeError: On connection, timeout or malformed responses
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }
        url = self.wallet_url if wallet else self.rpc_url

        try:
            response = await self.client.post(url, json=payload)
        except httpx.TimeoutException as e:
            logger.error(f"RPC call timed out: {method} - {e}")
            raise NodeError(method, f"timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"RPC call failed: {method} - {e}")
            raise NodeError(method, f"failed to send request to {url}: {e}") from e

        if response.status_code == 401:
            raise NodeAuthError(method, "authentication failed (401) - check RPC user/password")
        if response.status_code == 403:
            raise NodeAuthError(method, "forbidden (403) - check rpcallowip settings")

        # Bitcoin Core reports RPC errors with HTTP 500/404 and a JSON body
        try:
            data = response.json(parse_float=Decimal)
        except json.JSONDecodeError as e:
            raise NodeError(
                method, f"HTTP {response.status_code}: {_preview(response.text)}"
            ) from e

        if not isinstance(data, dict):
            raise NodeError(method, f"unexpected response: {_preview(response.text)}")

        error_info = data.get("error")
        if error_info:
            if not isinstance(error_info, dict):
                raise NodeRPCError(method, "unknown", str(error_info))
            error_code = error_info.get("code", "unknown")
            error_msg = error_info.get("message", str(error_info))
            raise NodeRPCError(method, error_code, error_msg)

        if response.status_code != 200:
            raise NodeError(method, f"HTTP {response.status_code}: {_preview(response.text)}")

        return data.get("result")

    async def get_balances(self) -> WalletBalances:
        result = _expect("getbalances", await self._rpc_call("getbalances"), dict)
        mine = _expect("getbalances", result.get("mine", {}), dict)
        return WalletBalances(
            trusted=Decimal(mine.get("trusted", 0)),
            untrusted=Decimal(mine.get("untrusted_pending", 0)),
            immature=Decimal(mine.get("immature", 0)),
        )

    async def list_unspent(self, min_conf: int, max_conf: int) -> list[UnspentOutput]:
        result = _expect(
            "listunspent", await self._rpc_call("listunspent", [min_conf, max_conf]), list
        )
        return [
            UnspentOutput(
                txid=utxo["txid"],
                vout=utxo["vout"],
                address=utxo.get("address", ""),
                amount=Decimal(utxo["amount"]),
                confirmations=utxo.get("confirmations", 0),
                spendable=utxo.get("spendable", False),
                solvable=utxo.get("solvable", False),
                safe=utxo.get("safe", False),
            )
            for utxo in result
        ]

    async def get_new_address(self, label: str = "", address_type: str = "") -> str:
        params: list[Any] = []
        if label or address_type:
            params.append(label)
            if address_type:
                params.append(address_type)
        return _expect("getnewaddress", await self._rpc_call("getnewaddress", params), str)

    async def build_sign_broadcast(
        self,
        outputs: dict[str, str],
        fee_rate: Decimal | None = None,
        inputs: list[dict[str, Any]] | None = None,
    ) -> str:
        raw_tx = _expect(
            "createrawtransaction",
            await self._rpc_call("createrawtransaction", [inputs or [], outputs]),
            str,
        )

        if inputs is None:
            fund_params: list[Any] = [raw_tx]
            if fee_rate is not None and fee_rate > 0:
                fund_params.append({"fee_rate": f"{fee_rate:.8f}"})
            funded = _expect(
                "fundrawtransaction",
                await self._rpc_call("fundrawtransaction", fund_params),
                dict,
            )
            logger.debug(f"Funded transaction, fee: {funded.get('fee')} BTC")
            raw_tx = _expect("fundrawtransaction", funded.get("hex"), str)

        signed = _expect(
            "signrawtransactionwithwallet",
            await self._rpc_call("signrawtransactionwithwallet", [raw_tx]),
            dict,
        )
        if not signed.get("complete"):
            raise NodeError("signrawtransactionwithwallet", "transaction signing incomplete")

        signed_hex = _expect("signrawtransactionwithwallet", signed.get("hex"), str)
        txid = _expect(
            "sendrawtransaction", await self._rpc_call("sendrawtransaction", [signed_hex]), str
        )
        logger.info(f"Broadcast transaction: {txid}")
        return txid

    async def list_wallets(self) -> list[str]:
        return _expect("listwallets", await self._rpc_call("listwallets", wallet=False), list)

    async def load_wallet(self, name: str) -> None:
        await self._rpc_call("loadwallet", [name], wallet=False)

    async def get_blockchain_info(self) -> dict[str, Any]:
        info = await self._rpc_call("getblockchaininfo", wallet=False)
        return _expect("getblockchaininfo", info, dict)

    async def close(self) -> None:
        await self.client.aclose()
