from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..errors import PortfolioError
from ..services.address import is_strict_address
from ..services.aggregator import WalletAggregator
from ..types.portfolio import PriceQuote, Token
from .deps import get_aggregator

router = APIRouter(prefix="/api")

# Addresses beyond this are ignored by the logo batch endpoint
MAX_LOGO_BATCH = 100


class LogoBatchRequest(BaseModel):
    addresses: List[str] = Field(default_factory=list, description="Token contract addresses")


class LogoEntry(BaseModel):
    logoUrl: str


class EnrichRequest(BaseModel):
    tokens: List[Token] = Field(default_factory=list)


class EnrichResponse(BaseModel):
    tokens: List[Token]


@router.post("/token-logos/batch", response_model=Dict[str, LogoEntry])
async def token_logos_batch(
    request: LogoBatchRequest,
    aggregator: WalletAggregator = Depends(get_aggregator),
) -> Dict[str, LogoEntry]:
    addresses = [a.lower() for a in request.addresses[:MAX_LOGO_BATCH] if is_strict_address(a)]
    logos = await aggregator.resolve_logos(addresses)
    return {address: LogoEntry(logoUrl=url) for address, url in logos.items()}


@router.get("/token-price/{address}", response_model=PriceQuote)
async def token_price(
    address: str,
    aggregator: WalletAggregator = Depends(get_aggregator),
) -> PriceQuote:
    if not is_strict_address(address):
        raise HTTPException(status_code=400, detail="Invalid token address format")
    try:
        quote = await aggregator.resolve_price(address)
    except PortfolioError as exc:
        raise HTTPException(status_code=502, detail=exc.message)
    if quote is None:
        raise HTTPException(status_code=404, detail=f"No price found for {address}")
    return quote


@router.post("/token/enrich", response_model=EnrichResponse)
async def enrich_tokens(
    request: EnrichRequest,
    aggregator: WalletAggregator = Depends(get_aggregator),
) -> EnrichResponse:
    """Attach prices, values and logos to caller-supplied tokens"""
    tokens = await aggregator.enrich_tokens(request.tokens)
    return EnrichResponse(tokens=tokens)
