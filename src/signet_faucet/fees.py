"""
Fee rate policy and transaction size estimates.
"""

from __future__ import annotations

from decimal import Decimal

from signet_faucet.constants import (
    FEE_RATE_LOWER_LIMIT,
    INPUT_VBYTES,
    OUTPUT_VBYTES,
    PAYOUT_FEE_MULTIPLIER,
    SATS_PER_BTC,
    TX_OVERHEAD_VBYTES,
)


def payout_fee_rate() -> Decimal:
    """Fee rate (sat/vB) for queued payouts: the relay floor plus a safety margin."""
    return FEE_RATE_LOWER_LIMIT * PAYOUT_FEE_MULTIPLIER


def estimate_vbytes(num_inputs: int, num_outputs: int) -> Decimal:
    """
    Estimate the virtual size of a P2WPKH transaction.

    - base: 10.5 vB
    - per input: 148 vB
    - per output: 31 vB
    """
    return TX_OVERHEAD_VBYTES + num_inputs * INPUT_VBYTES + num_outputs * OUTPUT_VBYTES


def estimate_fee_btc(vbytes: Decimal, fee_rate: Decimal) -> Decimal:
    """Fee in BTC at ``fee_rate`` sat/vB. Not rounded to whole satoshis."""
    return vbytes * fee_rate / SATS_PER_BTC
