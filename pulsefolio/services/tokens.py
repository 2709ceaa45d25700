"""
PulseChain token constants and small helpers shared by providers and services.

Addresses are stored lowercase; every lookup lowercases its input first.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Dict, Optional

NATIVE_TOKEN_ADDRESS = "0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee"
NATIVE_SYMBOL = "PLS"
NATIVE_NAME = "PulseChain"
NATIVE_DECIMALS = 18

# Native PLS is priced through its wrapped token
WPLS_ADDRESS = "0xa1077a294dde1b09bb078844df40758a5d0f9a27"
HEX_ADDRESS = "0x2b591e99afe9f32eaa6214f7b7629768c40eeb39"

STABLECOINS: Dict[str, Dict[str, str]] = {
    "0xefd766ccb38eaf1dfd701853bfce31359239f305": {
        "name": "DAI from Ethereum",
        "logo": "https://tokens.1inch.io/0x6b175474e89094c44da98b954eedeac495271d0f.png",
    },
    "0x0cb6f5a34ad42ec934882a05265a7d5f59b51a2f": {
        "name": "USDT from Ethereum",
        "logo": "https://tokens.1inch.io/0xdac17f958d2ee523a2206206994597c13d831ec7.png",
    },
    "0x15d38573d2feeb82e7ad5187ab8c1d52810b1f07": {
        "name": "USDC from Ethereum",
        "logo": "https://tokens.1inch.io/0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48.png",
    },
}

_LP_SYMBOL_PATTERNS = ("-LP", "PLP", "UNI-V2", " LP")
_LP_NAME_PATTERNS = ("lp token", "liquidity", "pulsex lp", " lp")


def is_native(address: Optional[str]) -> bool:
    if not address:
        return False
    return address.lower() in {NATIVE_TOKEN_ADDRESS, "native"}


def price_lookup_address(address: str) -> str:
    """Address to query for a price: WPLS for the native coin, the token otherwise."""

    return WPLS_ADDRESS if is_native(address) else address.lower()


def is_lp_token(symbol: Optional[str], name: Optional[str]) -> bool:
    """Heuristic liquidity-pool share detection by symbol and name patterns."""

    symbol = symbol or ""
    lowered_name = (name or "").lower()
    if any(pattern in symbol for pattern in _LP_SYMBOL_PATTERNS):
        return True
    return any(pattern in lowered_name for pattern in _LP_NAME_PATTERNS)


def format_units(raw: str | int, decimals: int) -> float:
    """Convert a raw integer balance into a display float."""

    try:
        amount = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        return 0.0
    if decimals <= 0:
        return float(amount)
    return float(amount / (Decimal(10) ** decimals))


__all__ = [
    "NATIVE_TOKEN_ADDRESS",
    "NATIVE_SYMBOL",
    "NATIVE_NAME",
    "NATIVE_DECIMALS",
    "WPLS_ADDRESS",
    "HEX_ADDRESS",
    "STABLECOINS",
    "is_native",
    "price_lookup_address",
    "is_lp_token",
    "format_units",
]
