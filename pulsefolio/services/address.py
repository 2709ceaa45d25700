"""Helpers for validating and normalizing PulseChain wallet and token addresses."""

from __future__ import annotations

import re
from functools import lru_cache

from ..errors import ValidationError

_WALLET_ADDRESS_RE = re.compile(r"^(0x)?[a-fA-F0-9]{40}$")
_STRICT_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


@lru_cache(maxsize=512)
def is_valid_wallet_address(address: str) -> bool:
    """Accept 40 hex characters in any letter case, with or without ``0x``."""

    if not address:
        return False
    return bool(_WALLET_ADDRESS_RE.fullmatch(address.strip()))


def is_strict_address(address: str) -> bool:
    """Require the ``0x`` prefix, as used by bookmark files and token contracts."""

    if not address:
        return False
    return bool(_STRICT_ADDRESS_RE.fullmatch(address))


def normalize_address(address: str) -> str:
    """Return the canonical lowercase ``0x``-prefixed form or raise ``ValidationError``."""

    if address is None or not is_valid_wallet_address(address):
        raise ValidationError(value=address)
    value = address.strip().lower()
    if not value.startswith("0x"):
        value = f"0x{value}"
    return value


def topic_for_address(address: str) -> str:
    """Left-pad an address into a 32-byte log topic."""

    return "0x" + normalize_address(address)[2:].rjust(64, "0")


__all__ = [
    "is_valid_wallet_address",
    "is_strict_address",
    "normalize_address",
    "topic_for_address",
]
