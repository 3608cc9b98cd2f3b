"""
Bitcoin and faucet policy constants.

Amounts are BTC as :class:`~decimal.Decimal`; fee rates are sat/vB.
"""

from __future__ import annotations

from decimal import Decimal

SATS_PER_BTC = 100_000_000

# Smallest unit we ever quote or send
SATOSHI = Decimal("0.00000001")

# Outputs below 1000 sats are never paid out nor consolidated
DUST_LIMIT_SATS = 1000
DUST_LIMIT_BTC = Decimal(DUST_LIMIT_SATS) / SATS_PER_BTC

# Lower bound relay fee we build payouts against, inflated by a safety factor
FEE_RATE_LOWER_LIMIT = Decimal("0.1")
PAYOUT_FEE_MULTIPLIER = Decimal("1.15")

# Fixed fee rate for consolidation transactions
DEFAULT_CONSOLIDATION_FEE_RATE = Decimal("0.15")

# Size estimate for P2WPKH spends
TX_OVERHEAD_VBYTES = Decimal("10.5")
INPUT_VBYTES = 148
OUTPUT_VBYTES = 31

# Pending records read per batch cycle
DEFAULT_BATCH_SIZE = 50

# listunspent bounds used to fetch every output the wallet knows about
LIST_UNSPENT_MIN_CONF = 0
LIST_UNSPENT_MAX_CONF = 9_999_999

# Label and type of the address consolidated outputs are sent to
CONSOLIDATION_ADDRESS_LABEL = "consolidated"
CONSOLIDATION_ADDRESS_TYPE = "bech32"

DEFAULT_MEMO = "<3 signet faucet <3"
