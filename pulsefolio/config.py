import os

from pathlib import Path
from typing import Any, List

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Pick up the legacy RPC environment variable when the primary one is unset."""

        super().model_post_init(__context)

        if not os.getenv("RPC_URL"):
            fallback = os.getenv("PULSECHAIN_RPC_URL")
            if fallback:
                object.__setattr__(self, "rpc_url", fallback)

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="auto", description="Log renderer: auto, json or console")

    # Upstream endpoints
    scanner_base_url: str = Field(
        default="https://api.scan.pulsechain.com/api/v2",
        description="Block explorer REST API base URL",
    )
    dexscreener_base_url: str = Field(
        default="https://api.dexscreener.com/latest/dex",
        description="DexScreener REST API base URL",
    )
    rpc_url: str = Field(
        default="https://rpc.pulsechain.com",
        description="PulseChain JSON-RPC endpoint",
    )
    portfolio_server_url: str = Field(
        default="http://127.0.0.1:5000",
        description="Base URL of the portfolio server used for logos and background price batches",
        validation_alias=AliasChoices("portfolio_server_url", "PORTFOLIO_SERVER_URL", "API_BASE_URL"),
    )
    enable_portfolio_server: bool = Field(
        default=False,
        description="Use the portfolio server for logos, prices and background batch completion",
    )
    request_timeout_seconds: int = Field(default=30, description="Request timeout")

    # Enrichment
    enrichment_batch_size: int = Field(default=10, ge=1, description="Tokens enriched per batch")
    max_concurrent_requests: int = Field(default=10, ge=1, description="Max concurrent upstream requests")
    min_pair_liquidity_usd: float = Field(
        default=1000.0,
        description="Minimum DexScreener pair liquidity for a price to be trusted",
    )
    known_missing_tokens: List[str] = Field(
        default_factory=lambda: ["0xec4252e62c6de3d655ca9ce3afc12e553ebba274"],
        description="Token contracts the balance source is known to under-report",
    )

    # Cache Settings
    logo_cache_ttl_seconds: int = Field(default=24 * 60 * 60, description="Logo cache TTL in seconds")
    price_cache_ttl_seconds: int = Field(default=30 * 60, description="Price cache TTL in seconds")
    request_dedup_ttl_seconds: float = Field(
        default=1.0,
        description="How long a resolved request stays joinable in the request cache",
    )
    cache_file: str = Field(
        default="",
        description="Path of the JSON file used to persist the token data cache (memory only when empty)",
    )

    # Background batch polling
    background_batch_interval_seconds: float = Field(default=5.0, description="Seconds between polls")
    background_batch_max_polls: int = Field(default=24, ge=1, description="Poll ceiling per session")
    background_batch_budget_seconds: float = Field(default=120.0, description="Wall-clock budget per session")

    # Swap detection
    swap_detector_interval_seconds: float = Field(default=5.0, description="Seconds between block scans")
    swap_detector_initial_blocks: int = Field(default=100, ge=1, description="Blocks covered by the first scan")

    # Retry
    retry_max_attempts: int = Field(default=3, ge=1, description="Attempts per upstream call")
    retry_initial_delay_seconds: float = Field(default=1.0, description="First backoff delay")
    retry_max_delay_seconds: float = Field(default=8.0, description="Backoff delay cap")

    @field_validator("known_missing_tokens")
    @classmethod
    def _lowercase_tokens(cls, value: List[str]) -> List[str]:
        return [addr.strip().lower() for addr in value if addr and addr.strip()]

    @property
    def has_cache_file(self) -> bool:
        return bool(self.cache_file)


# Global settings instance
settings = Settings()
