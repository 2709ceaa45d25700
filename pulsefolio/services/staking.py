"""
HEX staking estimate.

Only the stake count is read from the chain. Stake sizes and accrued
interest are filled in with fixed averages, so every figure except
``stake_count`` is an approximation and is marked ``estimated``.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..errors import PortfolioError
from ..providers.base import PriceProvider
from ..providers.rpc import RPCProvider
from ..types.portfolio import HexStakeSummary
from .address import normalize_address
from .tokens import HEX_ADDRESS

logger = logging.getLogger(__name__)

AVERAGE_STAKE_HEX = 30_000.0
AVERAGE_INTEREST_RATE = 0.20


async def estimate_hex_stakes(
    address: str,
    rpc: RPCProvider,
    price_provider: Optional[PriceProvider] = None,
) -> HexStakeSummary:
    wallet = normalize_address(address)
    count = await rpc.hex_stake_count(HEX_ADDRESS, wallet)

    hex_price = 0.0
    if price_provider is not None:
        try:
            quote = await price_provider.get_token_price(HEX_ADDRESS)
        except PortfolioError as e:
            logger.warning("HEX price lookup failed: %s", e)
            quote = None
        if quote is not None:
            hex_price = quote.price

    if count == 0:
        return HexStakeSummary(hex_price=hex_price)

    staked = round(AVERAGE_STAKE_HEX * count, 2)
    interest = round(staked * AVERAGE_INTEREST_RATE, 2)
    combined = round(staked + interest, 2)
    return HexStakeSummary(
        stake_count=count,
        total_staked_hex=staked,
        total_interest_hex=interest,
        total_combined_hex=combined,
        total_stake_value_usd=staked * hex_price,
        total_interest_value_usd=interest * hex_price,
        total_combined_value_usd=combined * hex_price,
        hex_price=hex_price,
    )


__all__ = ["estimate_hex_stakes", "AVERAGE_STAKE_HEX", "AVERAGE_INTEREST_RATE"]
