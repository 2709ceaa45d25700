"""Per-address session tokens used to discard results of superseded work."""

from __future__ import annotations

import itertools
import logging
from typing import Dict, Optional

from ..errors import StaleSessionError

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Tracks the single current session id for each wallet address.

    Starting a new session for an address supersedes the previous one; any
    async result carrying an older id must be dropped by its caller.
    """

    def __init__(self):
        self._counter = itertools.count(1)
        self._current: Dict[str, int] = {}

    def begin(self, address: str) -> int:
        key = address.lower()
        session_id = next(self._counter)
        previous = self._current.get(key)
        self._current[key] = session_id
        if previous is not None:
            logger.debug("Session %s for %s superseded by %s", previous, key, session_id)
        return session_id

    def current(self, address: str) -> Optional[int]:
        return self._current.get(address.lower())

    def is_current(self, address: str, session_id: int) -> bool:
        return self._current.get(address.lower()) == session_id

    def ensure_current(self, address: str, session_id: int) -> None:
        if not self.is_current(address, session_id):
            raise StaleSessionError(address)


__all__ = ["SessionRegistry"]
