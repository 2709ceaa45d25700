from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..providers.dexscreener import DexScreenerProvider
from ..providers.rpc import RPCProvider
from ..providers.scanner import ScannerProvider
from .deps import get_dexscreener, get_rpc, get_scanner

router = APIRouter()


@router.get("/healthz")
async def health_check(
    scanner: ScannerProvider = Depends(get_scanner),
    dexscreener: DexScreenerProvider = Depends(get_dexscreener),
    rpc: RPCProvider = Depends(get_rpc),
) -> Dict[str, Any]:
    """Health check endpoint that verifies provider status"""

    provider_status = {
        "scanner": await scanner.health_check(),
        "dexscreener": await dexscreener.health_check(),
        "rpc": await rpc.health_check(),
    }

    # The scanner is the only provider balance discovery cannot work without
    discovery_ok = provider_status["scanner"]["status"] == "healthy"
    available_providers = sum(
        1 for status in provider_status.values()
        if status["status"] == "healthy"
    )

    if available_providers == len(provider_status):
        status = "healthy"
    elif discovery_ok:
        status = "degraded"
    else:
        status = "unhealthy"

    return {
        "status": status,
        "providers": provider_status,
        "available_providers": available_providers,
        "total_providers": len(provider_status),
    }
