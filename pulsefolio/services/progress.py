"""Forward-only loading progress for wallet aggregation."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from ..types.progress import LoadingProgress, ProgressStatus

logger = logging.getLogger(__name__)

ProgressListener = Callable[[LoadingProgress], None]

_RANK = {
    ProgressStatus.IDLE: 0,
    ProgressStatus.LOADING: 1,
    ProgressStatus.COMPLETE: 2,
    ProgressStatus.ERROR: 2,
}


class ProgressTracker:
    """Holds the latest ``LoadingProgress`` and notifies listeners.

    Status moves idle -> loading -> complete|error and never backwards.
    ``reset`` is the only way back to idle and is called when a new
    aggregation starts for an address.
    """

    def __init__(self):
        self._progress = LoadingProgress()
        self._listeners: List[ProgressListener] = []

    @property
    def progress(self) -> LoadingProgress:
        return self._progress

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def reset(self, address: Optional[str] = None) -> LoadingProgress:
        self._progress = LoadingProgress(address=address)
        self._notify()
        return self._progress

    def can_transition(self, status: ProgressStatus) -> bool:
        current = self._progress.status
        if current in (ProgressStatus.COMPLETE, ProgressStatus.ERROR):
            return False
        return _RANK[status] >= _RANK[current]

    def update(
        self,
        status: ProgressStatus,
        message: str = "",
        current_batch: Optional[int] = None,
        total_batches: Optional[int] = None,
    ) -> bool:
        """Apply an update; backwards transitions are ignored and return False."""

        if not self.can_transition(status):
            logger.debug(
                "Ignoring progress transition %s -> %s",
                self._progress.status.value,
                status.value,
            )
            return False

        self._progress = self._progress.model_copy(
            update={
                "status": status,
                "message": message,
                "current_batch": self._progress.current_batch if current_batch is None else current_batch,
                "total_batches": self._progress.total_batches if total_batches is None else total_batches,
                "last_updated": datetime.now(timezone.utc),
            }
        )
        self._notify()
        return True

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._progress)
            except Exception:
                logger.exception("Progress listener failed")


__all__ = ["ProgressTracker", "ProgressListener"]
