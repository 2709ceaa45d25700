from .portfolio import Token, WalletSnapshot, HexStakeSummary, PriceQuote
from .progress import BackgroundBatchProgress, BatchState, LoadingProgress, ProgressStatus
from .events import Bookmark, SwapEvent

__all__ = [
    "Token",
    "WalletSnapshot",
    "HexStakeSummary",
    "PriceQuote",
    "LoadingProgress",
    "ProgressStatus",
    "BackgroundBatchProgress",
    "BatchState",
    "SwapEvent",
    "Bookmark",
]
