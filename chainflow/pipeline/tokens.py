"""Token estimation and budget checks.

`TokenCounter` runs the (possibly slow) tokenizer on a worker thread behind a
correlated channel. A count that does not come back in time falls back to
the character heuristic in `estimate_tokens()`.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional

from .. import config
from ..errors import ChannelError
from ..utils.correlation import CorrelatedChannel, Message, Reply

logger = logging.getLogger(__name__)

LEVEL_OK = "ok"
LEVEL_WARNING = "warning"
LEVEL_CRITICAL = "critical"


def estimate_tokens(text: str) -> int:
    """Roughly 2 CJK ideographs or 4 other characters per token, rounded up."""
    count = 0.0
    for char in text:
        count += 0.5 if 0x4E00 <= ord(char) <= 0x9FFF else 0.25
    return math.ceil(count)


@dataclass(frozen=True)
class TokenBudget:
    used: int
    limit: int
    percentage: float
    level: str


def check_token_budget(used: int, max_tokens: int) -> TokenBudget:
    percentage = (used / max_tokens) * 100 if max_tokens > 0 else 0.0
    level = LEVEL_OK
    if percentage >= 80:
        level = LEVEL_CRITICAL
    elif percentage >= 50:
        level = LEVEL_WARNING
    return TokenBudget(used=used, limit=max_tokens, percentage=percentage, level=level)


class TokenCounter:
    """
    Async token counter backed by one worker task.

    Usage:
        async with TokenCounter() as counter:
            n = await counter.count(text)
    """

    def __init__(
        self,
        tokenize: Callable[[str], int] = estimate_tokens,
        timeout: float = config.TOKEN_COUNT_TIMEOUT,
    ):
        self._tokenize = tokenize
        self.timeout = timeout
        self._queue: "asyncio.Queue[Optional[Message]]" = asyncio.Queue()
        self._channel = CorrelatedChannel(self._queue.put_nowait, timeout=timeout)
        self._worker: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._channel = CorrelatedChannel(self._queue.put_nowait, timeout=self.timeout)
        self._worker = asyncio.ensure_future(self._serve())

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._queue.put_nowait(None)
        self._channel.close("Token counter stopped")
        await self._worker
        self._worker = None

    async def count(self, text: str) -> int:
        """Count tokens via the worker, falling back to the estimate on timeout or failure."""
        if not self.running:
            return estimate_tokens(text)
        try:
            return await self._channel.request(text)
        except ChannelError as e:
            logger.debug(f"Token count fell back to estimate: {e}")
            return estimate_tokens(text)

    async def _serve(self) -> None:
        while True:
            message = await self._queue.get()
            if message is None:
                return
            try:
                result = await asyncio.to_thread(self._tokenize, message.payload)
            except Exception as e:
                self._channel.dispatch(Reply(message.id, error=str(e)))
            else:
                self._channel.dispatch(Reply(message.id, result=result))

    async def __aenter__(self) -> "TokenCounter":
        self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()
