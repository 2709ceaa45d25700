import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..config import settings
from ..errors import FetchError
from ..types.portfolio import PriceQuote
from .base import CompletionSource, LogoProvider, PriceProvider

logger = logging.getLogger(__name__)

# The logo batch endpoint processes at most this many addresses per call
LOGO_BATCH_LIMIT = 100


class PortfolioServerProvider(LogoProvider, PriceProvider, CompletionSource):
    """Client for a pulsefolio server that already holds cached wallet data"""

    name = "portfolio_server"

    def __init__(self, client: Optional[httpx.AsyncClient] = None, base_url: Optional[str] = None):
        super().__init__(client)
        self.base_url = (base_url or settings.portfolio_server_url).rstrip("/")
        self.timeout_s = settings.request_timeout_seconds

    async def health_check(self) -> Dict[str, Any]:
        try:
            return await self._request_json("GET", f"{self.base_url}/healthz")
        except FetchError as e:
            return {"status": "error", "reason": str(e)}

    async def get_completion_count(self, address: str, token_addresses: Optional[Sequence[str]] = None) -> int:
        data = await self._request_json("GET", f"{self.base_url}/api/wallet/{address}/all")
        if not isinstance(data, dict):
            raise FetchError(f"{self.name} returned a malformed wallet payload", provider=self.name)
        tokens = [token for token in data.get("tokens") or [] if isinstance(token, dict)]
        if token_addresses is not None:
            wanted = {a.lower() for a in token_addresses}
            tokens = [token for token in tokens if str(token.get("address") or "").lower() in wanted]
        return sum(1 for token in tokens if _has_price(token))

    async def get_token_logos(self, token_addresses: List[str]) -> Dict[str, str]:
        logos: Dict[str, str] = {}
        for start in range(0, len(token_addresses), LOGO_BATCH_LIMIT):
            chunk = token_addresses[start:start + LOGO_BATCH_LIMIT]
            data = await self._request_json(
                "POST",
                f"{self.base_url}/api/token-logos/batch",
                json={"addresses": chunk},
            )
            if not isinstance(data, dict):
                raise FetchError(f"{self.name} returned a malformed logo batch", provider=self.name)
            for address, entry in data.items():
                logo = entry.get("logoUrl") if isinstance(entry, dict) else entry
                if isinstance(logo, str) and logo:
                    logos[address.lower()] = logo
        return logos

    async def get_token_price(self, token_address: str) -> Optional[PriceQuote]:
        try:
            data = await self._request_json("GET", f"{self.base_url}/api/token-price/{token_address}")
        except FetchError as e:
            if e.status_code == 404:
                return None
            raise
        if not isinstance(data, dict) or not _has_price(data):
            return None
        return PriceQuote(
            address=token_address.lower(),
            price=float(data["price"]),
            price_change_24h=_optional_float(data.get("priceChange24h")),
            liquidity_usd=_optional_float(data.get("liquidityUsd")),
            logo=data.get("logo") or None,
            source=self.name,
        )


def _has_price(token: Dict[str, Any]) -> bool:
    try:
        return float(token.get("price") or 0) > 0
    except (TypeError, ValueError):
        return False


def _optional_float(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None
