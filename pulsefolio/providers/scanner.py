import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from ..errors import FetchError
from ..services.tokens import (
    NATIVE_DECIMALS,
    NATIVE_NAME,
    NATIVE_SYMBOL,
    NATIVE_TOKEN_ADDRESS,
    format_units,
    is_lp_token,
)
from ..types.portfolio import Token
from .base import BalanceSource

logger = logging.getLogger(__name__)

# Hard stop for runaway pagination
MAX_PAGES = 50


class ScannerProvider(BalanceSource):
    """PulseChain block explorer (Blockscout v2) balance source"""

    name = "scanner"

    def __init__(self, client: Optional[httpx.AsyncClient] = None, base_url: Optional[str] = None):
        super().__init__(client)
        self.base_url = (base_url or settings.scanner_base_url).rstrip("/")
        self.timeout_s = settings.request_timeout_seconds

    async def health_check(self) -> Dict[str, Any]:
        try:
            await self._request_json("GET", f"{self.base_url}/stats")
            return {"status": "healthy"}
        except FetchError as e:
            return {"status": "error", "reason": str(e)}

    async def get_native_balance(self, address: str) -> Token:
        try:
            data = await self._request_json("GET", f"{self.base_url}/addresses/{address}")
        except FetchError as e:
            # Explorer answers 404 for addresses it has never seen
            if e.status_code == 404:
                data = {}
            else:
                raise
        raw = str(data.get("coin_balance") or "0")
        return native_token(raw)

    async def get_wallet_tokens(self, address: str) -> List[Token]:
        tokens = [await self.get_native_balance(address)]

        params: Dict[str, Any] = {"type": "ERC-20"}
        for _ in range(MAX_PAGES):
            try:
                data = await self._request_json(
                    "GET",
                    f"{self.base_url}/addresses/{address}/tokens",
                    params=params,
                )
            except FetchError as e:
                if e.status_code == 404:
                    break
                raise

            for item in data.get("items") or []:
                token = token_from_scanner_item(item)
                if token is not None:
                    tokens.append(token)

            next_page = data.get("next_page_params")
            if not next_page:
                break
            params = {"type": "ERC-20", **next_page}
        else:
            logger.warning("Stopped paginating tokens for %s after %d pages", address, MAX_PAGES)

        logger.info("Scanner found %d tokens for %s", len(tokens), address)
        return tokens

    async def get_token_balance(self, address: str, token_address: str) -> Optional[Token]:
        data = await self._request_json("GET", f"{self.base_url}/addresses/{address}/token-balances")
        target = token_address.lower()
        for item in data or []:
            token_info = item.get("token") or {}
            if (token_info.get("address") or token_info.get("address_hash") or "").lower() == target:
                return token_from_scanner_item(item)
        return None


def native_token(raw_balance: str) -> Token:
    return Token(
        address=NATIVE_TOKEN_ADDRESS,
        symbol=NATIVE_SYMBOL,
        name=NATIVE_NAME,
        decimals=NATIVE_DECIMALS,
        balance=raw_balance,
        balance_formatted=format_units(raw_balance, NATIVE_DECIMALS),
        is_native=True,
        verified=True,
    )


def token_from_scanner_item(item: Dict[str, Any]) -> Optional[Token]:
    token_info = item.get("token") or {}
    address = token_info.get("address") or token_info.get("address_hash")
    if not address:
        return None

    try:
        decimals = int(token_info.get("decimals") or 18)
    except (TypeError, ValueError):
        decimals = 18

    raw = str(item.get("value") or "0")
    symbol = token_info.get("symbol") or ""
    name = token_info.get("name") or ""
    return Token(
        address=address.lower(),
        symbol=symbol,
        name=name,
        decimals=decimals,
        balance=raw,
        balance_formatted=format_units(raw, decimals),
        logo=token_info.get("icon_url"),
        is_lp=is_lp_token(symbol, name),
        verified=token_info.get("type") == "ERC-20",
    )
