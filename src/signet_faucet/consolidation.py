"""
UTXO consolidation.

Payouts leave the wallet with many small change outputs. This merges the
smallest ones into a single fresh output at a low fixed fee rate.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_DOWN, Decimal

from loguru import logger

from signet_faucet.backends.base import NodeBackend, UnspentOutput, build_outputs
from signet_faucet.constants import (
    CONSOLIDATION_ADDRESS_LABEL,
    CONSOLIDATION_ADDRESS_TYPE,
    DEFAULT_CONSOLIDATION_FEE_RATE,
    DEFAULT_MEMO,
    DUST_LIMIT_BTC,
    LIST_UNSPENT_MAX_CONF,
    LIST_UNSPENT_MIN_CONF,
    SATOSHI,
)
from signet_faucet.fees import estimate_fee_btc, estimate_vbytes
from signet_faucet.models import ConsolidationOutcome, ConsolidationResult
from signet_faucet.observer import PayoutObserver


class ConsolidationEngine:
    def __init__(
        self,
        node: NodeBackend,
        threshold: Decimal = Decimal("0.001"),
        min_utxos: int = 2,
        max_utxos: int = 5,
        fee_rate: Decimal = DEFAULT_CONSOLIDATION_FEE_RATE,
        memo: str = DEFAULT_MEMO,
        observer: PayoutObserver | None = None,
    ):
        if min_utxos > max_utxos:
            raise ValueError(f"invalid consolidation config, min: {min_utxos} > max: {max_utxos}")
        self.node = node
        self.threshold = threshold
        self.min_utxos = min_utxos
        self.max_utxos = max_utxos
        self.fee_rate = fee_rate
        self.memo = memo
        self.observer = observer or PayoutObserver()

    def select_candidates(self, utxos: Iterable[UnspentOutput]) -> list[UnspentOutput]:
        """
        Smallest spendable outputs between the dust limit and the threshold.

        Outputs are considered in ascending amount order and selection stops
        once ``max_utxos`` have been taken.
        """
        selected: list[UnspentOutput] = []
        for utxo in sorted(utxos, key=lambda u: u.amount):
            if utxo.amount > self.threshold or not utxo.spendable:
                continue
            if utxo.amount < DUST_LIMIT_BTC:
                continue
            if len(selected) >= self.max_utxos:
                break
            selected.append(utxo)
        return selected

    def _finish(self, result: ConsolidationResult) -> ConsolidationResult:
        self.observer.consolidation_finished(result)
        return result

    async def consolidate(self) -> ConsolidationResult:
        """
        Run one consolidation.

        Returns a ``skipped`` result when too few candidates exist and a
        ``failed`` result when their total cannot cover the fee.

        Raises:
            NodeError: Listing, address derivation or broadcast failed
        """
        utxos = await self.node.list_unspent(LIST_UNSPENT_MIN_CONF, LIST_UNSPENT_MAX_CONF)
        candidates = self.select_candidates(utxos)

        if not candidates:
            return self._finish(
                ConsolidationResult(
                    outcome=ConsolidationOutcome.SKIPPED,
                    reason=f"No UTXOs smaller than {self.threshold:.8f} BTC to consolidate",
                )
            )

        total = sum((u.amount for u in candidates), Decimal(0))
        if len(candidates) < self.min_utxos:
            return self._finish(
                ConsolidationResult(
                    outcome=ConsolidationOutcome.SKIPPED,
                    count=len(candidates),
                    total_amount=total,
                    reason=(
                        f"Found {len(candidates)} small UTXOs, need at least "
                        f"{self.min_utxos} to consolidate"
                    ),
                )
            )

        num_outputs = 2 if self.memo else 1
        vbytes = estimate_vbytes(len(candidates), num_outputs)
        estimated_fee = estimate_fee_btc(vbytes, self.fee_rate)
        output_amount = (total - estimated_fee).quantize(SATOSHI, rounding=ROUND_DOWN)
        if output_amount <= 0:
            logger.warning(
                f"Consolidation of {len(candidates)} UTXOs ({total:.8f} BTC) "
                f"cannot cover fee of {estimated_fee:.8f} BTC"
            )
            return self._finish(
                ConsolidationResult(
                    outcome=ConsolidationOutcome.FAILED,
                    count=len(candidates),
                    total_amount=total,
                    estimated_fee=estimated_fee,
                    reason="total amount too small to cover fees",
                )
            )

        address = await self.node.get_new_address(
            CONSOLIDATION_ADDRESS_LABEL, CONSOLIDATION_ADDRESS_TYPE
        )

        inputs = [
            {"txid": u.txid, "vout": u.vout}
            for u in sorted(candidates, key=lambda u: u.amount, reverse=True)
        ]
        txid = await self.node.build_sign_broadcast(
            build_outputs(address, output_amount, self.memo), inputs=inputs
        )

        logger.info(
            f"Consolidated {len(candidates)} UTXOs ({total:.8f} BTC) into {address}: "
            f"~{vbytes} vB at {self.fee_rate} sat/vB, fee {estimated_fee:.8f} BTC, "
            f"output {output_amount:.8f} BTC (txid: {txid})"
        )
        return self._finish(
            ConsolidationResult(
                outcome=ConsolidationOutcome.CONSOLIDATED,
                count=len(candidates),
                total_amount=total,
                txid=txid,
                address=address,
                estimated_fee=estimated_fee,
                output_amount=output_amount,
            )
        )
