"""
Wallet aggregation pipeline.

``WalletAggregator.aggregate`` validates the address, discovers balances,
patches tokens the balance source is known to miss, enriches prices and
logos in bounded concurrent batches and reports progress along the way.

Each call opens a new session for the address. When a newer call for the
same address starts, the older one stops applying updates and returns the
snapshot it had so far, flagged as stale.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from ..cache import RequestCache, request_cache
from ..config import settings
from ..errors import PortfolioError, StaleSessionError
from ..providers.base import BalanceSource, LogoProvider, PriceProvider
from ..types.portfolio import PriceQuote, Token, WalletSnapshot
from ..types.progress import LoadingProgress, ProgressStatus
from .address import normalize_address
from .progress import ProgressListener, ProgressTracker
from .sessions import SessionRegistry
from .token_cache import TokenDataCache
from .tokens import price_lookup_address

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[WalletSnapshot], None]

# Discovery and the known-missing patch are the two fixed phases before enrichment
FIXED_PHASES = 2


@dataclass
class AggregationResult:
    snapshot: WalletSnapshot
    missing_prices: int
    session_id: int
    stale: bool = False


class WalletAggregator:
    def __init__(
        self,
        balance_source: BalanceSource,
        price_providers: Sequence[PriceProvider],
        logo_providers: Sequence[LogoProvider] = (),
        token_cache: Optional[TokenDataCache] = None,
        token_balance_source: Optional[BalanceSource] = None,
        sessions: Optional[SessionRegistry] = None,
        requests: Optional[RequestCache] = None,
        known_missing_tokens: Optional[Iterable[str]] = None,
        batch_size: Optional[int] = None,
        max_concurrency: Optional[int] = None,
    ):
        self.balance_source = balance_source
        self.token_balance_source = token_balance_source or balance_source
        self.price_providers = list(price_providers)
        self.logo_providers = list(logo_providers)
        self.token_cache = token_cache or TokenDataCache()
        self.sessions = sessions or SessionRegistry()
        self.requests = requests or request_cache
        self.known_missing_tokens = [
            address.lower()
            for address in (settings.known_missing_tokens if known_missing_tokens is None else known_missing_tokens)
        ]
        self.batch_size = batch_size or settings.enrichment_batch_size
        self._semaphore = asyncio.Semaphore(max_concurrency or settings.max_concurrent_requests)
        self._last_snapshots: Dict[str, WalletSnapshot] = {}
        self.latest_progress = LoadingProgress()

    def last_snapshot(self, address: str) -> Optional[WalletSnapshot]:
        return self._last_snapshots.get(address.lower())

    async def aggregate(
        self,
        address: str,
        on_progress: Optional[ProgressListener] = None,
        on_snapshot: Optional[SnapshotListener] = None,
    ) -> AggregationResult:
        wallet = normalize_address(address)
        session_id = self.sessions.begin(wallet)

        tracker = ProgressTracker()
        tracker.subscribe(lambda progress: self._record_progress(wallet, session_id, progress))
        if on_progress is not None:
            tracker.subscribe(on_progress)
        tracker.reset(wallet)

        snapshot = WalletSnapshot(address=wallet)
        try:
            snapshot = await self._run(wallet, session_id, tracker, snapshot, on_snapshot)
        except StaleSessionError:
            logger.info("Discarding superseded aggregation for %s (session %s)", wallet, session_id)
            return AggregationResult(
                snapshot=snapshot,
                missing_prices=count_missing_prices(snapshot.tokens),
                session_id=session_id,
                stale=True,
            )

        self._last_snapshots[wallet] = snapshot
        return AggregationResult(
            snapshot=snapshot,
            missing_prices=count_missing_prices(snapshot.tokens),
            session_id=session_id,
        )

    async def _run(
        self,
        wallet: str,
        session_id: int,
        tracker: ProgressTracker,
        snapshot: WalletSnapshot,
        on_snapshot: Optional[SnapshotListener],
    ) -> WalletSnapshot:
        tracker.update(
            ProgressStatus.LOADING,
            "Fetching wallet balances...",
            current_batch=1,
            total_batches=FIXED_PHASES,
        )

        try:
            tokens = await self.balance_source.get_wallet_tokens(wallet)
        except Exception as e:
            self.sessions.ensure_current(wallet, session_id)
            tracker.update(ProgressStatus.ERROR, f"Failed to fetch balances: {e}")
            logger.error("Balance discovery failed for %s: %s", wallet, e)
            raise
        self.sessions.ensure_current(wallet, session_id)

        snapshot.tokens = dedupe_tokens(tokens)
        tracker.update(
            ProgressStatus.LOADING,
            f"Found {len(snapshot.tokens)} tokens, checking for missing tokens...",
            current_batch=2,
        )

        await self._patch_missing_tokens(wallet, snapshot)
        self.sessions.ensure_current(wallet, session_id)
        snapshot.recompute_totals()
        self._emit(snapshot, on_snapshot)

        batches = list(chunked(snapshot.tokens, self.batch_size))
        total_batches = FIXED_PHASES + len(batches)
        for index, batch in enumerate(batches, start=1):
            tracker.update(
                ProgressStatus.LOADING,
                f"Processing token batch {index}/{len(batches)}...",
                current_batch=FIXED_PHASES + index,
                total_batches=total_batches,
            )
            await self._enrich_batch(batch)
            self.sessions.ensure_current(wallet, session_id)
            snapshot.recompute_totals()
            self._emit(snapshot, on_snapshot)

        snapshot.sort_by_value()
        snapshot.recompute_totals()
        tracker.update(
            ProgressStatus.COMPLETE,
            f"Loaded {snapshot.token_count} tokens",
            current_batch=total_batches,
            total_batches=total_batches,
        )
        return snapshot

    async def _patch_missing_tokens(self, wallet: str, snapshot: WalletSnapshot) -> None:
        """Add allow-listed tokens the balance source omitted, when actually held."""

        present = {token.key for token in snapshot.tokens}
        for token_address in self.known_missing_tokens:
            if token_address in present:
                continue
            try:
                token = await self.token_balance_source.get_token_balance(wallet, token_address)
            except (PortfolioError, ValueError) as e:
                logger.warning("Known-missing token check failed for %s: %s", token_address, e)
                continue
            if token is None or int(token.balance or "0") <= 0:
                logger.debug("Known-missing token %s not held by %s", token_address, wallet)
                continue
            snapshot.tokens.append(token)
            present.add(token.key)
            logger.info("Added missing token %s (%s) for %s", token.symbol, token_address, wallet)

    async def _enrich_batch(self, batch: List[Token]) -> None:
        await self._enrich_logos(batch)

        pending = [token for token in batch if not token.has_price]
        results = await asyncio.gather(
            *(self._price_token(token) for token in pending),
            return_exceptions=True,
        )

        fetched: Dict[str, float] = {}
        for token, result in zip(pending, results):
            if isinstance(result, BaseException):
                logger.warning("Price enrichment failed for %s (%s): %s", token.symbol, token.address, result)
                token.price = 0.0
                token.value = 0.0
                continue
            if result is None:
                token.value = 0.0
                continue
            token.apply_price(result.price, result.price_change_24h)
            if result.logo and not token.logo:
                token.logo = result.logo
            if result.source != "cache":
                fetched[price_lookup_address(token.address)] = result.price

        for token in batch:
            if token.has_price and token.value is None:
                token.value = token.balance_formatted * token.price

        if fetched:
            self.token_cache.set_many_prices(fetched)

    async def _price_token(self, token: Token) -> Optional[PriceQuote]:
        lookup = price_lookup_address(token.address)
        cached = self.token_cache.get_price(lookup)
        if cached is not None and cached > 0:
            return PriceQuote(address=token.key, price=cached, source="cache")

        last_error: Optional[Exception] = None
        for provider in self.price_providers:
            try:
                async with self._semaphore:
                    quote = await self.requests.fetch_or_join(
                        f"price:{provider.name}:{lookup}",
                        lambda provider=provider: provider.get_token_price(token.address),
                    )
            except PortfolioError as e:
                last_error = e
                logger.debug("%s could not price %s: %s", provider.name, token.address, e)
                continue
            if quote is not None and quote.price > 0:
                return quote

        if last_error is not None:
            raise last_error
        return None

    async def _enrich_logos(self, batch: List[Token]) -> None:
        missing = [token.key for token in batch if not token.logo]
        if not missing:
            return
        logos = await self.resolve_logos(missing)
        for token in batch:
            if not token.logo and token.key in logos:
                token.logo = logos[token.key]

    async def resolve_logos(self, addresses: Sequence[str]) -> Dict[str, str]:
        """Logo URLs for the addresses: cache first, then each logo provider in order."""

        logos: Dict[str, str] = {}
        missing: List[str] = []
        for address in dict.fromkeys(a.lower() for a in addresses):
            cached = self.token_cache.get_logo(address)
            if cached:
                logos[address] = cached
            else:
                missing.append(address)

        fetched: Dict[str, str] = {}
        for provider in self.logo_providers:
            remaining = [address for address in missing if address not in fetched]
            if not remaining:
                break
            try:
                async with self._semaphore:
                    fetched.update(await provider.get_token_logos(remaining))
            except Exception as e:
                logger.warning("%s logo batch failed: %s", provider.name, e)

        if fetched:
            self.token_cache.set_many_logos(fetched)
            logos.update(fetched)
        return logos

    async def resolve_price(self, address: str) -> Optional[PriceQuote]:
        """Price for a single token through the cache and price providers."""

        token = Token(address=address.lower(), symbol="", name="")
        quote = await self._price_token(token)
        if quote is not None and quote.source != "cache":
            self.token_cache.set_many_prices({price_lookup_address(token.address): quote.price})
        return quote

    async def enrich_tokens(self, tokens: List[Token]) -> List[Token]:
        """Enrich caller-supplied tokens in place, batch by batch."""

        for batch in chunked(tokens, self.batch_size):
            await self._enrich_batch(batch)
        return tokens

    def _record_progress(self, wallet: str, session_id: int, progress: LoadingProgress) -> None:
        if self.sessions.is_current(wallet, session_id):
            self.latest_progress = progress

    @staticmethod
    def _emit(snapshot: WalletSnapshot, listener: Optional[SnapshotListener]) -> None:
        if listener is None:
            return
        try:
            listener(snapshot.model_copy(deep=True))
        except Exception:
            logger.exception("Snapshot listener failed")


def dedupe_tokens(tokens: Iterable[Token]) -> List[Token]:
    seen = set()
    unique: List[Token] = []
    for token in tokens:
        if token.key in seen:
            continue
        seen.add(token.key)
        unique.append(token)
    return unique


def chunked(items: Sequence[Token], size: int) -> Iterable[List[Token]]:
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def count_missing_prices(tokens: Iterable[Token]) -> int:
    return sum(1 for token in tokens if not token.has_price)


__all__ = [
    "WalletAggregator",
    "AggregationResult",
    "dedupe_tokens",
    "count_missing_prices",
]
