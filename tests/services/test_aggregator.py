"""
Tests for the wallet aggregation pipeline.

Providers are replaced with in-memory fakes; no network access.
"""

import asyncio
from typing import Dict, List, Optional

import pytest

from pulsefolio.cache import RequestCache
from pulsefolio.errors import FetchError, ValidationError
from pulsefolio.providers.base import BalanceSource, LogoProvider, PriceProvider
from pulsefolio.services.aggregator import WalletAggregator
from pulsefolio.services.storage import MemoryStorage
from pulsefolio.services.token_cache import TokenDataCache
from pulsefolio.services.tokens import NATIVE_TOKEN_ADDRESS, WPLS_ADDRESS
from pulsefolio.types.portfolio import PriceQuote, Token
from pulsefolio.types.progress import ProgressStatus

WALLET = "0x1111111111111111111111111111111111111111"
TOKEN_A = "0xabc0000000000000000000000000000000000001"
TOKEN_B = "0xabc0000000000000000000000000000000000002"
MISSING = "0xec4252e62c6de3d655ca9ce3afc12e553ebba274"


# =============================================================================
# Fakes
# =============================================================================


def make_token(address: str, balance: str = "1000000000000000000", decimals: int = 18, **kwargs) -> Token:
    return Token(
        address=address,
        symbol=kwargs.pop("symbol", "TKN"),
        name=kwargs.pop("name", "Token"),
        decimals=decimals,
        balance=balance,
        balance_formatted=int(balance) / 10 ** decimals,
        **kwargs,
    )


class FakeBalanceSource(BalanceSource):
    name = "fake_balances"

    def __init__(self, tokens: List[Token], extra: Optional[Dict[str, Token]] = None):
        super().__init__()
        self.tokens = tokens
        self.extra = extra or {}
        self.wallet_calls = 0
        self.balance_calls: List[str] = []
        self.error: Optional[Exception] = None

    async def health_check(self):
        return {"status": "healthy"}

    async def get_wallet_tokens(self, address: str) -> List[Token]:
        self.wallet_calls += 1
        if self.error is not None:
            raise self.error
        return [token.model_copy(deep=True) for token in self.tokens]

    async def get_token_balance(self, address: str, token_address: str) -> Optional[Token]:
        self.balance_calls.append(token_address)
        value = self.extra.get(token_address)
        if isinstance(value, Exception):
            raise value
        return value


class FakePriceProvider(PriceProvider):
    name = "fake_prices"

    def __init__(self, prices: Dict[str, object]):
        super().__init__()
        self.prices = prices
        self.calls: List[str] = []

    async def health_check(self):
        return {"status": "healthy"}

    async def get_token_price(self, token_address: str) -> Optional[PriceQuote]:
        self.calls.append(token_address.lower())
        lookup = WPLS_ADDRESS if token_address.lower() == NATIVE_TOKEN_ADDRESS else token_address.lower()
        value = self.prices.get(lookup)
        if isinstance(value, Exception):
            raise value
        if value is None:
            return None
        return PriceQuote(address=token_address.lower(), price=value, price_change_24h=1.5)


class FakeLogoProvider(LogoProvider):
    name = "fake_logos"

    def __init__(self, logos: Dict[str, str]):
        super().__init__()
        self.logos = logos
        self.calls: List[List[str]] = []

    async def health_check(self):
        return {"status": "healthy"}

    async def get_token_logos(self, token_addresses: List[str]) -> Dict[str, str]:
        self.calls.append(list(token_addresses))
        return {a: self.logos[a] for a in token_addresses if a in self.logos}


@pytest.fixture
def token_cache():
    return TokenDataCache(storage=MemoryStorage())


def build_aggregator(balances, prices, logos=None, token_cache=None, known_missing=(), batch_size=10):
    return WalletAggregator(
        balance_source=balances,
        price_providers=[prices],
        logo_providers=[logos] if logos else [],
        token_cache=token_cache or TokenDataCache(storage=MemoryStorage()),
        requests=RequestCache(),
        known_missing_tokens=list(known_missing),
        batch_size=batch_size,
    )


# =============================================================================
# Totals
# =============================================================================


@pytest.mark.asyncio
async def test_total_value_is_sum_of_token_values(token_cache):
    native = make_token(NATIVE_TOKEN_ADDRESS, balance="2000000000000000000", symbol="PLS", is_native=True)
    balances = FakeBalanceSource([native, make_token(TOKEN_A, balance="3000000000000000000"), make_token(TOKEN_B)])
    prices = FakePriceProvider({WPLS_ADDRESS: 0.5, TOKEN_A: 2.0, TOKEN_B: 10.0})

    result = await build_aggregator(balances, prices, token_cache=token_cache).aggregate(WALLET)
    snapshot = result.snapshot

    assert snapshot.total_value == pytest.approx(sum(t.value or 0 for t in snapshot.tokens))
    assert snapshot.total_value == pytest.approx(1.0 + 6.0 + 10.0)
    assert snapshot.token_count == 3
    assert snapshot.pls_balance == pytest.approx(2.0)
    assert [t.address for t in snapshot.tokens] == [TOKEN_B, TOKEN_A, NATIVE_TOKEN_ADDRESS]
    assert result.missing_prices == 0


@pytest.mark.asyncio
async def test_mixed_case_address_is_normalized(token_cache):
    balances = FakeBalanceSource([make_token(TOKEN_A)])
    prices = FakePriceProvider({TOKEN_A: 1.0})

    result = await build_aggregator(balances, prices, token_cache=token_cache).aggregate(WALLET.upper()[2:])

    assert result.snapshot.address == WALLET


# =============================================================================
# Known-missing tokens
# =============================================================================


@pytest.mark.asyncio
async def test_known_missing_token_with_zero_balance_is_not_added():
    balances = FakeBalanceSource(
        [make_token(TOKEN_A, balance="1000000000000000000", decimals=18)],
        extra={MISSING: make_token(MISSING, balance="0")},
    )
    prices = FakePriceProvider({TOKEN_A: 4.0})

    result = await build_aggregator(balances, prices, known_missing=[MISSING]).aggregate(WALLET)

    assert balances.balance_calls == [MISSING]
    assert len(result.snapshot.tokens) == 1
    assert result.snapshot.total_value == pytest.approx(4.0)


@pytest.mark.asyncio
async def test_known_missing_token_with_balance_is_appended_and_valued():
    balances = FakeBalanceSource(
        [make_token(TOKEN_A)],
        extra={MISSING: make_token(MISSING, balance="5000000000000000000", symbol="MISS")},
    )
    prices = FakePriceProvider({TOKEN_A: 1.0, MISSING: 2.0})

    result = await build_aggregator(balances, prices, known_missing=[MISSING]).aggregate(WALLET)

    addresses = {t.address for t in result.snapshot.tokens}
    assert addresses == {TOKEN_A, MISSING}
    assert result.snapshot.total_value == pytest.approx(1.0 + 10.0)


@pytest.mark.asyncio
async def test_known_missing_token_already_present_is_not_checked():
    balances = FakeBalanceSource([make_token(MISSING)])
    prices = FakePriceProvider({MISSING: 1.0})

    await build_aggregator(balances, prices, known_missing=[MISSING]).aggregate(WALLET)

    assert balances.balance_calls == []


@pytest.mark.asyncio
async def test_known_missing_check_failure_is_skipped():
    balances = FakeBalanceSource(
        [make_token(TOKEN_A)],
        extra={MISSING: FetchError("rpc down", provider="rpc")},
    )
    prices = FakePriceProvider({TOKEN_A: 1.0})

    result = await build_aggregator(balances, prices, known_missing=[MISSING]).aggregate(WALLET)

    assert [t.address for t in result.snapshot.tokens] == [TOKEN_A]


# =============================================================================
# Failure policy
# =============================================================================


@pytest.mark.asyncio
async def test_single_price_failure_is_local():
    balances = FakeBalanceSource([make_token(TOKEN_A), make_token(TOKEN_B)])
    prices = FakePriceProvider({TOKEN_A: 3.0, TOKEN_B: FetchError("dexscreener 500", status_code=500)})

    result = await build_aggregator(balances, prices).aggregate(WALLET)

    failed = result.snapshot.find(TOKEN_B)
    assert failed is not None
    assert not failed.price
    assert failed.value == 0
    assert result.snapshot.total_value == pytest.approx(3.0)
    assert result.missing_prices == 1


@pytest.mark.asyncio
async def test_invalid_address_fails_before_any_network_call():
    balances = FakeBalanceSource([make_token(TOKEN_A)])
    aggregator = build_aggregator(balances, FakePriceProvider({}))

    with pytest.raises(ValidationError):
        await aggregator.aggregate("0x1234")

    assert balances.wallet_calls == 0


@pytest.mark.asyncio
async def test_discovery_failure_is_fatal_and_keeps_previous_snapshot():
    balances = FakeBalanceSource([make_token(TOKEN_A)])
    aggregator = build_aggregator(balances, FakePriceProvider({TOKEN_A: 1.0}))
    first = await aggregator.aggregate(WALLET)

    balances.error = FetchError("scanner returned 503", status_code=503, provider="scanner")
    statuses = []
    with pytest.raises(FetchError):
        await aggregator.aggregate(WALLET, on_progress=lambda p: statuses.append(p.status))

    assert statuses[-1] == ProgressStatus.ERROR
    assert aggregator.latest_progress.status == ProgressStatus.ERROR
    assert aggregator.last_snapshot(WALLET) is first.snapshot


# =============================================================================
# Progress and incremental snapshots
# =============================================================================


@pytest.mark.asyncio
async def test_progress_is_forward_only_and_snapshots_are_incremental():
    tokens = [make_token(f"0xabc{i:037x}") for i in range(5)]
    balances = FakeBalanceSource(tokens)
    prices = FakePriceProvider({t.address: 1.0 for t in tokens})
    aggregator = build_aggregator(balances, prices, batch_size=2)

    progress = []
    snapshots = []
    await aggregator.aggregate(WALLET, on_progress=progress.append, on_snapshot=snapshots.append)

    ranks = {ProgressStatus.IDLE: 0, ProgressStatus.LOADING: 1, ProgressStatus.COMPLETE: 2}
    assert [ranks[p.status] for p in progress] == sorted(ranks[p.status] for p in progress)
    assert progress[-1].status == ProgressStatus.COMPLETE
    assert progress[-1].current_batch == progress[-1].total_batches == 2 + 3

    # One snapshot after discovery, then one per enrichment batch
    assert len(snapshots) == 4
    assert [s.total_value for s in snapshots] == pytest.approx([0.0, 2.0, 4.0, 5.0])


# =============================================================================
# Caching
# =============================================================================


@pytest.mark.asyncio
async def test_prices_and_logos_come_from_cache_on_second_run(token_cache):
    balances = FakeBalanceSource([make_token(TOKEN_A)])
    prices = FakePriceProvider({TOKEN_A: 2.0})
    logos = FakeLogoProvider({TOKEN_A: "https://logos.example/a.png"})
    aggregator = build_aggregator(balances, prices, logos=logos, token_cache=token_cache)

    first = await aggregator.aggregate(WALLET)
    second = await aggregator.aggregate(WALLET)

    assert prices.calls == [TOKEN_A]
    assert logos.calls == [[TOKEN_A]]
    assert token_cache.get_price(TOKEN_A) == 2.0
    assert second.snapshot.find(TOKEN_A).logo == "https://logos.example/a.png"
    assert second.snapshot.total_value == first.snapshot.total_value


class BrokenLogoProvider(FakeLogoProvider):
    async def get_token_logos(self, token_addresses: List[str]) -> Dict[str, str]:
        self.calls.append(list(token_addresses))
        raise AttributeError("'list' object has no attribute 'items'")


@pytest.mark.asyncio
async def test_unexpected_logo_failure_keeps_prices(token_cache):
    balances = FakeBalanceSource([make_token(TOKEN_A), make_token(TOKEN_B)])
    prices = FakePriceProvider({TOKEN_A: 2.0, TOKEN_B: 1.0})
    logos = BrokenLogoProvider({})

    result = await build_aggregator(balances, prices, logos=logos, token_cache=token_cache).aggregate(WALLET)

    assert len(logos.calls) == 1
    assert result.snapshot.total_value == pytest.approx(3.0)
    assert all(t.logo is None for t in result.snapshot.tokens)
    assert token_cache.get_logo(TOKEN_A) is None


@pytest.mark.asyncio
async def test_native_and_wrapped_share_one_price_fetch(token_cache):
    native = make_token(NATIVE_TOKEN_ADDRESS, symbol="PLS", is_native=True)
    wrapped = make_token(WPLS_ADDRESS, symbol="WPLS")
    prices = FakePriceProvider({WPLS_ADDRESS: 0.5})

    result = await build_aggregator(FakeBalanceSource([native, wrapped]), prices, token_cache=token_cache).aggregate(WALLET)

    assert len(prices.calls) == 1
    assert all(t.price == 0.5 for t in result.snapshot.tokens)


# =============================================================================
# Sessions
# =============================================================================


class BlockingBalanceSource(FakeBalanceSource):
    def __init__(self, tokens):
        super().__init__(tokens)
        self.release = asyncio.Event()
        self.blocked = asyncio.Event()

    async def get_wallet_tokens(self, address):
        if self.wallet_calls == 0:
            self.wallet_calls += 1
            self.blocked.set()
            await self.release.wait()
            return [make_token(TOKEN_B)]
        return await super().get_wallet_tokens(address)


@pytest.mark.asyncio
async def test_superseded_session_results_are_discarded():
    balances = BlockingBalanceSource([make_token(TOKEN_A)])
    aggregator = build_aggregator(balances, FakePriceProvider({TOKEN_A: 1.0, TOKEN_B: 9.0}))

    stale_progress = []
    first = asyncio.create_task(aggregator.aggregate(WALLET, on_progress=stale_progress.append))
    await balances.blocked.wait()

    second = await aggregator.aggregate(WALLET)
    balances.release.set()
    first_result = await first

    assert first_result.stale is True
    assert first_result.snapshot.tokens == []
    assert second.stale is False
    assert aggregator.last_snapshot(WALLET) is second.snapshot
    assert aggregator.latest_progress.status == ProgressStatus.COMPLETE
    assert stale_progress[-1].status == ProgressStatus.LOADING
