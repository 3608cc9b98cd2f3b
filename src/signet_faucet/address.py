"""
Destination address validation.
"""

from __future__ import annotations

import re

from signet_faucet.errors import InvalidAddressError

# Faucet only pays native segwit signet/testnet addresses
BECH32_SIGNET_RE = re.compile(r"^tb1[a-z0-9]{39,87}$")

MAINNET_PREFIXES = ("bc1", "1", "3")


def validate_signet_address(address: str) -> str:
    """
    Check that ``address`` looks like a bech32 signet address.

    Returns:
        The address with surrounding whitespace removed

    Raises:
        InvalidAddressError: With a message suitable for the requester
    """
    address = address.strip()

    if not address:
        raise InvalidAddressError("address cannot be empty")

    if address.startswith(MAINNET_PREFIXES):
        raise InvalidAddressError("mainnet address?")

    if not BECH32_SIGNET_RE.match(address):
        raise InvalidAddressError("invalid signet address format, must be bech32 (tb1...)")

    return address
