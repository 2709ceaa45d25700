from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class Token(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    address: str = Field(description="Token contract address (sentinel address for native PLS)")
    symbol: str = Field(description="Token symbol (e.g. PLS, HEX)")
    name: str = Field(description="Full token name")
    decimals: int = Field(default=18, description="Token decimal places")
    balance: str = Field(default="0", description="Raw balance in smallest unit, as an integer string")
    balance_formatted: float = Field(
        default=0.0,
        alias="balanceFormatted",
        description="Human readable balance; display only",
    )
    price: Optional[float] = Field(default=None, description="Price per token in USD")
    value: Optional[float] = Field(default=None, description="Total value in USD")
    price_change_24h: Optional[float] = Field(
        default=None,
        alias="priceChange24h",
        description="24h price change in percent",
    )
    logo: Optional[str] = Field(default=None, description="Logo URL")
    is_native: bool = Field(default=False, alias="isNative", description="Native chain coin")
    is_lp: bool = Field(default=False, alias="isLp", description="Liquidity-pool share token")
    verified: bool = Field(default=False, description="Verified contract")

    @property
    def key(self) -> str:
        return self.address.lower()

    @property
    def has_price(self) -> bool:
        return bool(self.price) and self.price > 0

    def apply_price(self, price: float, price_change_24h: Optional[float] = None) -> None:
        self.price = price
        self.value = self.balance_formatted * price
        if price_change_24h is not None:
            self.price_change_24h = price_change_24h


class WalletSnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    address: str = Field(description="Wallet address (lowercase)")
    tokens: List[Token] = Field(default_factory=list, description="Tokens in discovery order")
    total_value: float = Field(default=0.0, alias="totalValue", description="Sum of token values in USD")
    token_count: int = Field(default=0, alias="tokenCount", description="Number of tokens")
    pls_balance: Optional[float] = Field(default=None, alias="plsBalance", description="Native PLS balance")
    pls_price_change: Optional[float] = Field(
        default=None,
        alias="plsPriceChange",
        description="Native PLS 24h price change",
    )
    network_count: int = Field(default=1, alias="networkCount", description="Networks covered")
    error: Optional[str] = Field(default=None, description="Set when a refresh failed and older data is served")

    def find(self, address: str) -> Optional[Token]:
        target = address.lower()
        for token in self.tokens:
            if token.key == target:
                return token
        return None

    def recompute_totals(self) -> None:
        """Recompute totals from the current tokens; values are never carried over."""
        self.total_value = sum((token.value or 0.0) for token in self.tokens)
        self.token_count = len(self.tokens)
        native = next((token for token in self.tokens if token.is_native), None)
        if native is not None:
            self.pls_balance = native.balance_formatted
            self.pls_price_change = native.price_change_24h

    def sort_by_value(self) -> None:
        self.tokens.sort(key=lambda t: t.value or 0.0, reverse=True)


class HexStakeSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    stake_count: int = Field(default=0, alias="stakeCount")
    total_staked_hex: float = Field(default=0.0, alias="totalStakedHex")
    total_interest_hex: float = Field(default=0.0, alias="totalInterestHex")
    total_combined_hex: float = Field(default=0.0, alias="totalCombinedHex")
    total_stake_value_usd: float = Field(default=0.0, alias="totalStakeValueUsd")
    total_interest_value_usd: float = Field(default=0.0, alias="totalInterestValueUsd")
    total_combined_value_usd: float = Field(default=0.0, alias="totalCombinedValueUsd")
    hex_price: float = Field(default=0.0, alias="hexPrice")
    estimated: bool = Field(
        default=True,
        description="Totals use fixed average stake and interest assumptions, not on-chain stake data",
    )


class PriceQuote(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    address: str
    price: float
    price_change_24h: Optional[float] = Field(default=None, alias="priceChange24h")
    liquidity_usd: Optional[float] = Field(default=None, alias="liquidityUsd")
    logo: Optional[str] = None
    source: str = Field(default="dexscreener", description="Which fetcher produced the price")
