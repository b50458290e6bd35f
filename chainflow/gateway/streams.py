"""Registry of live streams: at most one per slot."""

import logging
from typing import Dict, Optional

from ..cancellation import CancellationToken

logger = logging.getLogger(__name__)


class StreamRegistry:
    """
    Maps a slot id (a node id, or a chat session id) to the token of its live stream.

    Starting a stream for a slot cancels whatever was streaming there before.
    """

    def __init__(self):
        self._active: Dict[str, CancellationToken] = {}

    def start(self, slot: str) -> CancellationToken:
        previous = self._active.get(slot)
        if previous is not None:
            logger.info(f"Superseding live stream for slot {slot}")
            previous.cancel("superseded")
        token = CancellationToken()
        self._active[slot] = token
        return token

    def finish(self, slot: str, token: CancellationToken) -> None:
        """Forget the slot, unless a newer stream has already replaced this token."""
        if self._active.get(slot) is token:
            del self._active[slot]

    def get(self, slot: str) -> Optional[CancellationToken]:
        return self._active.get(slot)

    def cancel(self, slot: str, reason: str = "cancelled") -> bool:
        token = self._active.pop(slot, None)
        if token is None:
            return False
        token.cancel(reason)
        return True

    def cancel_all(self, reason: str = "cancelled") -> int:
        tokens = list(self._active.values())
        self._active.clear()
        for token in tokens:
            token.cancel(reason)
        return len(tokens)

    def __len__(self) -> int:
        return len(self._active)

    def __contains__(self, slot: str) -> bool:
        return slot in self._active
