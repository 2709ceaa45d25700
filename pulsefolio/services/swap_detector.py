"""
Swap detection over ERC-20 Transfer logs.

The detector scans recent blocks for Transfer logs that touch the wallet,
groups them by transaction and reports every successful transaction with
at least two such transfers as a probable swap. The first scan covers a
bounded window; later scans continue from the last scanned block.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from ..config import settings
from ..providers.rpc import TRANSFER_TOPIC, RPCProvider
from ..types.events import SwapEvent
from .address import normalize_address, topic_for_address

logger = logging.getLogger(__name__)

SwapListener = Callable[[SwapEvent], None]

MIN_TRANSFERS_FOR_SWAP = 2


class SwapDetector:
    def __init__(
        self,
        wallet_address: str,
        on_swap: SwapListener,
        rpc: Optional[RPCProvider] = None,
        interval_seconds: Optional[float] = None,
        initial_blocks: Optional[int] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.wallet = normalize_address(wallet_address)
        self.on_swap = on_swap
        self.rpc = rpc or RPCProvider()
        self.interval_seconds = settings.swap_detector_interval_seconds if interval_seconds is None else interval_seconds
        self.initial_blocks = initial_blocks or settings.swap_detector_initial_blocks
        self.last_scanned_block: Optional[int] = None
        self.scanned_ranges: List[Tuple[int, int]] = []
        self._wallet_topic = topic_for_address(self.wallet)
        self._seen: Set[str] = set()
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def seen_transactions(self) -> frozenset:
        return frozenset(self._seen)

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Swap detector started for %s", self.wallet)

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        logger.info("Swap detector stopped for %s", self.wallet)

    async def _loop(self) -> None:
        while self._running:
            await self.scan_once()
            await self._sleep(self.interval_seconds)

    async def scan_once(self) -> List[SwapEvent]:
        """Run one scan tick. Errors are logged and yield no events."""

        try:
            return await self._scan()
        except Exception as e:
            logger.error("Swap scan for %s failed: %s", self.wallet, e)
            return []

    async def _scan(self) -> List[SwapEvent]:
        current_block = await self.rpc.block_number()
        if self.last_scanned_block is None:
            from_block = max(current_block - self.initial_blocks, 0)
        else:
            from_block = self.last_scanned_block + 1

        if from_block >= current_block:
            return []

        logger.debug("Scanning blocks %d-%d for swaps by %s", from_block, current_block, self.wallet)
        logs = await self.rpc.get_logs(from_block, current_block, [TRANSFER_TOPIC])
        self.scanned_ranges.append((from_block, current_block))

        grouped: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for log in logs:
            if self._touches_wallet(log):
                grouped[log["transactionHash"].lower()].append(log)

        candidates = []
        for tx_hash, tx_logs in grouped.items():
            if tx_hash in self._seen:
                continue
            self._seen.add(tx_hash)
            if len(tx_logs) >= MIN_TRANSFERS_FOR_SWAP:
                candidates.append((tx_hash, tx_logs))

        events: List[SwapEvent] = []
        for tx_hash, tx_logs in candidates:
            try:
                event = await self._build_event(tx_hash, tx_logs)
            except Exception as e:
                logger.error("Error processing transaction %s: %s", tx_hash, e)
                continue
            if event is None:
                continue
            events.append(event)
            try:
                self.on_swap(event)
            except Exception:
                logger.exception("Swap listener failed for %s", tx_hash)

        self.last_scanned_block = current_block
        if events:
            logger.info("Detected %d swaps for %s", len(events), self.wallet)
        return events

    async def _build_event(self, tx_hash: str, tx_logs: List[Dict[str, Any]]) -> Optional[SwapEvent]:
        receipt = await self.rpc.get_transaction_receipt(tx_hash)
        if not receipt or int(str(receipt.get("status", "0x0")), 16) != 1:
            return None

        block = await self.rpc.get_block(int(receipt["blockNumber"], 16))
        timestamp = int((block or {}).get("timestamp", "0x0"), 16) * 1000

        token_in = token_out = None
        for log in tx_logs:
            topics = [topic.lower() for topic in log.get("topics", [])]
            if len(topics) > 2 and topics[2] == self._wallet_topic and token_in is None:
                token_in = log["address"].lower()
            if len(topics) > 1 and topics[1] == self._wallet_topic and token_out is None:
                token_out = log["address"].lower()

        return SwapEvent(
            transaction_hash=tx_hash,
            timestamp=timestamp,
            token_in=token_in,
            token_out=token_out,
        )

    def _touches_wallet(self, log: Dict[str, Any]) -> bool:
        topics = [topic.lower() for topic in log.get("topics", [])]
        return self._wallet_topic in topics[1:3]


__all__ = ["SwapDetector", "SwapListener"]
