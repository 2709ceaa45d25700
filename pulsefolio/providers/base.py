from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import httpx

from ..errors import FetchError, RateLimitError
from ..types.portfolio import PriceQuote, Token


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: float = 10

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        # An injected client is reused and never closed here
        self._client = client

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            yield client

    async def _request_json(self, method: str, url: str, **kwargs: Any) -> Any:
        """Issue a request and translate transport and status failures into FetchError."""

        try:
            async with self._http() as client:
                response = await client.request(method, url, **kwargs)
                if response.status_code == 429:
                    raise RateLimitError(
                        f"{self.name} rate limited",
                        provider=self.name,
                        retry_after=_parse_retry_after(response.headers.get("Retry-After")),
                    )
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise FetchError(
                f"{self.name} returned {status}",
                status_code=status,
                provider=self.name,
                recoverable=status >= 500,
            ) from e
        except httpx.TransportError as e:
            raise FetchError(
                f"{self.name} unreachable: {e}",
                provider=self.name,
                recoverable=True,
            ) from e
        except ValueError as e:
            raise FetchError(f"{self.name} returned invalid JSON", provider=self.name) from e

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        pass


class BalanceSource(Provider):
    """Provider for wallet balance discovery"""

    @abstractmethod
    async def get_wallet_tokens(self, address: str) -> List[Token]:
        """Native coin plus every ERC-20 balance held by the wallet"""
        pass

    @abstractmethod
    async def get_token_balance(self, address: str, token_address: str) -> Optional[Token]:
        """Balance of a single token contract, or None when unknown"""
        pass


class PriceProvider(Provider):
    """Provider for token price data"""

    @abstractmethod
    async def get_token_price(self, token_address: str) -> Optional[PriceQuote]:
        """Current USD price for a token, or None when no usable market exists"""
        pass


class LogoProvider(Provider):
    """Provider for token logo URLs"""

    @abstractmethod
    async def get_token_logos(self, token_addresses: List[str]) -> Dict[str, str]:
        """Map of lowercase address to logo URL for the addresses it knows"""
        pass


class CompletionSource(ABC):
    """Reports how many of a wallet's tokens currently carry a price"""

    @abstractmethod
    async def get_completion_count(self, address: str, token_addresses: Optional[Sequence[str]] = None) -> int:
        """Priced count among ``token_addresses``, or among every wallet token when None"""
        pass


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None
