from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class SwapEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    transaction_hash: str = Field(alias="transactionHash")
    timestamp: int = Field(description="Block timestamp in milliseconds")
    token_in: Optional[str] = Field(default=None, alias="tokenIn", description="Token received by the wallet")
    token_out: Optional[str] = Field(default=None, alias="tokenOut", description="Token sent by the wallet")


class Bookmark(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    wallet_address: str = Field(alias="walletAddress")
    label: Optional[str] = None
    notes: Optional[str] = None
    is_favorite: bool = Field(default=False, alias="isFavorite")
