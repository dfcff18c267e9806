"""
Address Classifier - Maps a raw address string to its chain.

Pure and offline: no network access, case-sensitive regex checks.
"""

import re
from typing import Optional

from .models import AddressValidation, Chain


ETHEREUM_ADDRESS_RE = re.compile(r"0x[a-fA-F0-9]{40}")

# Base58 alphabet: no 0, O, I, l
SOLANA_ADDRESS_RE = re.compile(r"[1-9A-HJ-NP-Za-km-z]{32,44}")


def classify(address: str) -> Optional[Chain]:
    """Return the chain an address belongs to, or None if unrecognized."""
    if not isinstance(address, str):
        return None
    if ETHEREUM_ADDRESS_RE.fullmatch(address):
        return Chain.ETHEREUM
    if SOLANA_ADDRESS_RE.fullmatch(address):
        return Chain.SOLANA
    return None


def validate_address(address: str) -> AddressValidation:
    """Format-only validity check."""
    chain = classify(address)
    return AddressValidation(is_valid=chain is not None, chain=chain)
