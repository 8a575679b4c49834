"""Structural address checks. Deliberately shallow: the ledger has the final word."""

from __future__ import annotations

import re
from typing import Callable

from spraay_batch.config import BatchConfig

AddressValidator = Callable[[str], bool]

_EVM_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def minimum_length(length: int = 6) -> AddressValidator:
    """Accept any address of at least ``length`` characters."""

    def check(address: str) -> bool:
        return len(address.strip()) >= length

    check.__name__ = f"minimum_length_{length}"
    return check


def is_evm_address(address: str) -> bool:
    """0x-prefixed 20-byte hex. Checksum casing is not verified."""
    return bool(_EVM_ADDRESS_RE.match(address.strip()))


def address_validator_for(config: BatchConfig) -> AddressValidator:
    """Pick the structural check that matches the configured network."""
    fmt = config.network.address_format
    if fmt == "evm":
        return is_evm_address
    if fmt == "ss58":
        # bittensor is only needed on ss58 networks.
        from spraay_batch.subtensor import is_valid_ss58_address

        return is_valid_ss58_address
    return minimum_length(config.min_address_length)
