import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ..config import settings
from ..errors import FetchError, PortfolioError, ValidationError
from ..providers.dexscreener import DexScreenerProvider
from ..providers.rpc import RPCProvider
from ..services.address import normalize_address
from ..services.aggregator import WalletAggregator
from ..services.background_batch import BackgroundBatchPoller
from ..services.staking import estimate_hex_stakes
from ..types.portfolio import HexStakeSummary, WalletSnapshot
from ..types.progress import BackgroundBatchProgress, LoadingProgress
from .deps import get_aggregator, get_background_poller, get_dexscreener, get_rpc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


async def _load_snapshot(
    address: str,
    aggregator: WalletAggregator,
    poller: BackgroundBatchPoller,
) -> WalletSnapshot:
    try:
        result = await aggregator.aggregate(address)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    except FetchError as exc:
        # Serve the last good snapshot instead of blanking the wallet
        previous = aggregator.last_snapshot(normalize_address(address))
        if previous is not None:
            logger.warning("Serving cached snapshot for %s after refresh failure: %s", address, exc)
            return previous.model_copy(update={"error": exc.message})
        raise HTTPException(status_code=502, detail=exc.message)

    if result.missing_prices and settings.enable_portfolio_server:
        pending = [token.address for token in result.snapshot.tokens if not token.has_price]
        poller.start(
            result.snapshot.address,
            result.missing_prices,
            on_progress=lambda progress: None,
            pending_tokens=pending,
        )
    return result.snapshot


@router.get("/wallet/{address}", response_model=WalletSnapshot)
async def get_wallet(
    address: str,
    aggregator: WalletAggregator = Depends(get_aggregator),
    poller: BackgroundBatchPoller = Depends(get_background_poller),
) -> WalletSnapshot:
    """Aggregated wallet snapshot with prices, logos and totals"""
    return await _load_snapshot(address, aggregator, poller)


@router.get("/wallet/{address}/all", response_model=WalletSnapshot)
async def get_wallet_all(
    address: str,
    aggregator: WalletAggregator = Depends(get_aggregator),
    poller: BackgroundBatchPoller = Depends(get_background_poller),
) -> WalletSnapshot:
    """Same snapshot as ``/wallet/{address}``; every token is always included"""
    return await _load_snapshot(address, aggregator, poller)


@router.get("/loading-progress", response_model=LoadingProgress)
async def loading_progress(aggregator: WalletAggregator = Depends(get_aggregator)) -> LoadingProgress:
    return aggregator.latest_progress


@router.get("/wallet/{address}/background-batch", response_model=Optional[BackgroundBatchProgress])
async def background_batch_progress(
    address: str,
    poller: BackgroundBatchPoller = Depends(get_background_poller),
) -> Optional[BackgroundBatchProgress]:
    try:
        wallet = normalize_address(address)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    return poller.latest(wallet)


@router.get("/wallet/{address}/hex-stakes", response_model=HexStakeSummary)
async def hex_stakes(
    address: str,
    rpc: RPCProvider = Depends(get_rpc),
    dexscreener: DexScreenerProvider = Depends(get_dexscreener),
) -> HexStakeSummary:
    """Estimated HEX stake totals (stake sizes and interest are averages)"""
    try:
        return await estimate_hex_stakes(address, rpc, dexscreener)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    except PortfolioError as exc:
        raise HTTPException(status_code=502, detail=exc.message)

