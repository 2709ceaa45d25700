"""
Background batch poller.

After an aggregation leaves tokens without prices, the server keeps pricing
them in the background. The poller asks a ``CompletionSource`` how many of
the tokens that were missing a price have one now, and reports progress
until every one is done, the poll ceiling is hit, or the wall-clock budget
runs out.

When the caller does not name the missing tokens, the first count the source
reports is taken as the baseline and only tokens priced after it count
towards completion.

Per address the poller moves Idle -> Active -> Completed | TimedOut.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from ..config import settings
from ..errors import BatchTimeoutError
from ..providers.base import CompletionSource
from ..types.progress import BackgroundBatchProgress, BatchState

logger = logging.getLogger(__name__)

BatchProgressListener = Callable[[BackgroundBatchProgress], None]


@dataclass
class _PollSession:
    session_id: int
    address: str
    total: int
    on_progress: BatchProgressListener
    started_at: float
    pending: Optional[List[str]] = None
    baseline: Optional[int] = None
    completed: int = 0
    polls: int = 0
    task: Optional[asyncio.Task] = field(default=None, repr=False)


class BackgroundBatchPoller:
    def __init__(
        self,
        source: CompletionSource,
        interval_seconds: Optional[float] = None,
        max_polls: Optional[int] = None,
        budget_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.source = source
        self.interval_seconds = settings.background_batch_interval_seconds if interval_seconds is None else interval_seconds
        self.max_polls = settings.background_batch_max_polls if max_polls is None else max_polls
        self.budget_seconds = settings.background_batch_budget_seconds if budget_seconds is None else budget_seconds
        self._clock = clock
        self._sleep = sleep
        self._ids = itertools.count(1)
        self._sessions: Dict[str, _PollSession] = {}
        self._states: Dict[str, BatchState] = {}
        self._latest: Dict[str, BackgroundBatchProgress] = {}

    def start(
        self,
        address: str,
        expected_missing_count: int,
        on_progress: BatchProgressListener,
        pending_tokens: Optional[Sequence[str]] = None,
    ) -> BackgroundBatchProgress:
        """Begin polling for ``address``, replacing any poll already running for it.

        ``pending_tokens`` names the tokens that were missing a price; their
        count then replaces ``expected_missing_count``.
        """

        key = address.lower()
        self.stop(key)

        pending = list(dict.fromkeys(a.lower() for a in pending_tokens)) if pending_tokens is not None else None
        session = _PollSession(
            session_id=next(self._ids),
            address=key,
            total=len(pending) if pending is not None else max(int(expected_missing_count), 0),
            on_progress=on_progress,
            started_at=self._clock(),
            pending=pending,
            baseline=0 if pending is not None else None,
        )
        self._sessions[key] = session
        self._states[key] = BatchState.ACTIVE

        initial = self._progress(session, BatchState.ACTIVE)
        self._notify(session, initial)

        if session.total == 0:
            self._finish(session, BatchState.COMPLETED)
            return initial

        session.task = asyncio.create_task(self._run(session))
        logger.info("Background batch started for %s with %d tokens pending", key, session.total)
        return initial

    def stop(self, address: str) -> None:
        """Cancel the poll for ``address``. A no-op when nothing is running."""

        key = address.lower()
        session = self._sessions.pop(key, None)
        if session is None:
            return
        if session.task is not None and not session.task.done():
            session.task.cancel()
        if self._states.get(key) == BatchState.ACTIVE:
            self._states[key] = BatchState.IDLE
        logger.debug("Background batch stopped for %s", key)

    def stop_all(self) -> None:
        for address in list(self._sessions):
            self.stop(address)

    def is_active(self, address: str) -> bool:
        return self.state(address) == BatchState.ACTIVE

    def state(self, address: str) -> BatchState:
        return self._states.get(address.lower(), BatchState.IDLE)

    def latest(self, address: str) -> Optional[BackgroundBatchProgress]:
        return self._latest.get(address.lower())

    async def wait(self, address: str) -> None:
        """Wait for the running poll of ``address`` to reach a terminal state."""

        session = self._sessions.get(address.lower())
        if session is None or session.task is None:
            return
        try:
            await asyncio.shield(session.task)
        except asyncio.CancelledError:
            if not session.task.cancelled():
                raise

    async def _run(self, session: _PollSession) -> None:
        while self._is_current(session):
            remaining = self.budget_seconds - (self._clock() - session.started_at)
            if remaining <= 0:
                self._finish(session, BatchState.TIMED_OUT)
                return

            await self._sleep(min(self.interval_seconds, remaining))
            if not self._is_current(session):
                return

            session.polls += 1
            try:
                count = await self.source.get_completion_count(session.address, session.pending)
            except Exception as e:
                logger.warning("Background batch poll %d for %s failed: %s", session.polls, session.address, e)
            else:
                if not self._is_current(session):
                    return
                if session.baseline is None:
                    session.baseline = int(count)
                # Clamp into [previous, total] so the count never goes backwards
                done = max(int(count) - session.baseline, 0)
                session.completed = max(session.completed, min(done, session.total))

            if session.completed >= session.total:
                self._finish(session, BatchState.COMPLETED)
                return
            if session.polls >= self.max_polls or self._clock() - session.started_at >= self.budget_seconds:
                self._finish(session, BatchState.TIMED_OUT)
                return

            self._notify(session, self._progress(session, BatchState.ACTIVE))

    def _finish(self, session: _PollSession, state: BatchState) -> None:
        if not self._is_current(session):
            return
        self._states[session.address] = state
        self._sessions.pop(session.address, None)
        if state == BatchState.TIMED_OUT:
            timeout = BatchTimeoutError(session.address, session.completed, session.total)
            logger.warning("%s after %d polls", timeout, session.polls)
        else:
            logger.info("Background batch completed for %s after %d polls", session.address, session.polls)
        self._notify(session, self._progress(session, state))

    def _is_current(self, session: _PollSession) -> bool:
        current = self._sessions.get(session.address)
        return current is not None and current.session_id == session.session_id

    def _progress(self, session: _PollSession, state: BatchState) -> BackgroundBatchProgress:
        return BackgroundBatchProgress(
            is_active=state == BatchState.ACTIVE,
            total_tokens=session.total,
            completed_tokens=session.completed,
            last_update=self._clock(),
            state=state,
        )

    def _notify(self, session: _PollSession, progress: BackgroundBatchProgress) -> None:
        self._latest[session.address] = progress
        try:
            session.on_progress(progress)
        except Exception:
            logger.exception("Background batch listener failed for %s", session.address)


__all__ = ["BackgroundBatchPoller", "BatchProgressListener"]
