from functools import lru_cache
from typing import List

from ..config import settings
from ..providers.base import LogoProvider, PriceProvider
from ..providers.dexscreener import DexScreenerProvider
from ..providers.portfolio_server import PortfolioServerProvider
from ..providers.rpc import RPCProvider
from ..providers.scanner import ScannerProvider
from ..services.aggregator import WalletAggregator
from ..services.background_batch import BackgroundBatchPoller
from ..services.token_cache import TokenDataCache, build_default_cache


# =============================================================================
# Dependencies
# =============================================================================


@lru_cache
def get_token_cache() -> TokenDataCache:
    """Process-wide logo/price cache shared by every wallet session."""
    return build_default_cache()


@lru_cache
def get_scanner() -> ScannerProvider:
    return ScannerProvider()


@lru_cache
def get_dexscreener() -> DexScreenerProvider:
    return DexScreenerProvider()


@lru_cache
def get_rpc() -> RPCProvider:
    return RPCProvider()


@lru_cache
def get_portfolio_server() -> PortfolioServerProvider:
    return PortfolioServerProvider()


@lru_cache
def get_aggregator() -> WalletAggregator:
    """Aggregator with the scanner as balance source and RPC for per-token checks."""
    dexscreener = get_dexscreener()
    price_providers: List[PriceProvider] = [dexscreener]
    logo_providers: List[LogoProvider] = [dexscreener]
    if settings.enable_portfolio_server:
        server = get_portfolio_server()
        price_providers.append(server)
        logo_providers.insert(0, server)

    return WalletAggregator(
        balance_source=get_scanner(),
        token_balance_source=get_rpc(),
        price_providers=price_providers,
        logo_providers=logo_providers,
        token_cache=get_token_cache(),
    )


@lru_cache
def get_background_poller() -> BackgroundBatchPoller:
    return BackgroundBatchPoller(source=get_portfolio_server())
