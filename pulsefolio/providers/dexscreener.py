import asyncio
import logging
import math
from typing import Any, Dict, List, Optional

import httpx

from ..cache import RequestCache, request_cache
from ..config import settings
from ..core.retry import RetryStrategy
from ..errors import FetchError
from ..services.tokens import STABLECOINS, WPLS_ADDRESS, is_native, price_lookup_address
from ..types.portfolio import PriceQuote
from .base import LogoProvider, PriceProvider

logger = logging.getLogger(__name__)

CHAIN_ID = "pulsechain"


class DexScreenerProvider(PriceProvider, LogoProvider):
    """DexScreener pair data used for both prices and logos"""

    name = "dexscreener"
    timeout_s = 15

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        retry: Optional[RetryStrategy] = None,
        cache: Optional[RequestCache] = None,
    ):
        super().__init__(client)
        self.base_url = (base_url or settings.dexscreener_base_url).rstrip("/")
        self.min_liquidity_usd = settings.min_pair_liquidity_usd
        self.retry = retry or RetryStrategy(logger=logger)
        self.cache = cache or request_cache

    async def health_check(self) -> Dict[str, Any]:
        try:
            await self.get_pairs(WPLS_ADDRESS)
            return {"status": "healthy"}
        except FetchError as e:
            return {"status": "error", "reason": str(e)}

    async def get_pairs(self, token_address: str) -> List[Dict[str, Any]]:
        """All pairs DexScreener lists for the token, fetched once per dedup window."""

        lookup = token_address.lower()

        async def load() -> List[Dict[str, Any]]:
            data = await self.retry.execute(
                lambda: self._request_json("GET", f"{self.base_url}/tokens/{lookup}")
            )
            return (data or {}).get("pairs") or []

        return await self.cache.fetch_or_join(f"dexscreener:pairs:{lookup}", load)

    async def get_token_price(self, token_address: str) -> Optional[PriceQuote]:
        address = token_address.lower()

        stable = STABLECOINS.get(address)
        if stable:
            return PriceQuote(
                address=address,
                price=1.0,
                price_change_24h=0.0,
                logo=stable["logo"],
                source="stablecoin",
            )

        lookup = price_lookup_address(address)
        pair = self.select_pair(await self.get_pairs(lookup), lookup)
        if pair is None:
            logger.debug("No usable DexScreener pair for %s", address)
            return None

        return PriceQuote(
            address=address,
            price=parse_float(pair["priceUsd"]),
            price_change_24h=parse_float((pair.get("priceChange") or {}).get("h24")),
            liquidity_usd=parse_float((pair.get("liquidity") or {}).get("usd")) or 0.0,
            logo=None if is_native(address) else extract_logo(pair),
            source=self.name,
        )

    async def get_token_logos(self, token_addresses: List[str]) -> Dict[str, str]:
        results = await asyncio.gather(
            *(self.get_token_logo(address) for address in token_addresses),
            return_exceptions=True,
        )
        logos: Dict[str, str] = {}
        for address, result in zip(token_addresses, results):
            if isinstance(result, Exception):
                logger.warning("DexScreener logo lookup failed for %s: %s", address, result)
                continue
            if result:
                logos[address.lower()] = result
        return logos

    async def get_token_logo(self, token_address: str) -> Optional[str]:
        address = token_address.lower()
        if address in STABLECOINS:
            return STABLECOINS[address]["logo"]
        for pair in await self.get_pairs(address):
            if (pair.get("baseToken") or {}).get("address", "").lower() != address:
                continue
            logo = extract_logo(pair)
            if logo:
                return logo
        return None

    def select_pair(self, pairs: List[Dict[str, Any]], base_address: str) -> Optional[Dict[str, Any]]:
        """Deepest PulseChain pair quoting the token as base with enough liquidity."""

        candidates = []
        for pair in pairs:
            if pair.get("chainId") != CHAIN_ID:
                continue
            if (pair.get("baseToken") or {}).get("address", "").lower() != base_address:
                continue
            price = parse_float(pair.get("priceUsd"))
            if price is None or price <= 0:
                continue
            liquidity = parse_float((pair.get("liquidity") or {}).get("usd")) or 0.0
            if liquidity < self.min_liquidity_usd:
                continue
            candidates.append((liquidity, pair))

        if not candidates:
            return None
        candidates.sort(key=lambda item: item[0], reverse=True)
        return candidates[0][1]


def parse_float(value: Any) -> Optional[float]:
    """DexScreener sends numbers as strings; anything unparseable is None."""
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def extract_logo(pair: Dict[str, Any]) -> Optional[str]:
    info = pair.get("info") or {}
    return info.get("imageUrl") or None
