"""Correlated request/response over a one-way message channel.

A caller sends a message tagged with a fresh correlation id and awaits the
future stored under that id. Replies arrive through a single dispatcher
(`dispatch()`), which resolves and clears the matching entry. A reply that
does not arrive in time rejects the future and clears the entry, so late
replies are dropped.

Usage:
    channel = CorrelatedChannel(queue.put_nowait, timeout=1.0)
    result = await channel.request({"text": "..."})

    # in the worker
    channel.dispatch(Reply(id=message.id, result=42))
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

from ..errors import ChannelError, ChannelTimeoutError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Message:
    id: int
    payload: Any


@dataclass(frozen=True)
class Reply:
    id: int
    result: Any = None
    error: Optional[str] = None


Sender = Callable[[Message], Union[None, Awaitable[None]]]


class CorrelatedChannel:
    def __init__(self, send: Sender, timeout: float = 1.0):
        self._send = send
        self.timeout = timeout
        self._ids = itertools.count(1)
        self._pending: Dict[int, Tuple[asyncio.Future, asyncio.TimerHandle]] = {}
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def request(self, payload: Any, timeout: Optional[float] = None) -> Any:
        """
        Send `payload` and wait for the reply carrying the same id.

        Raises:
            ChannelTimeoutError: No reply within the timeout
            ChannelError: The reply carried an error or the channel closed
        """
        if self._closed:
            raise ChannelError("Channel is closed")

        loop = asyncio.get_running_loop()
        message_id = next(self._ids)
        future: asyncio.Future = loop.create_future()
        handle = loop.call_later(
            self.timeout if timeout is None else timeout, self._expire, message_id
        )
        self._pending[message_id] = (future, handle)

        try:
            sent = self._send(Message(message_id, payload))
            if asyncio.iscoroutine(sent):
                await sent
        except Exception as e:
            self._clear(message_id)
            raise ChannelError(f"Failed to send message {message_id}: {e}") from e

        try:
            return await future
        finally:
            # Caller cancelled while waiting
            self._clear(message_id)

    def dispatch(self, reply: Reply) -> bool:
        """Resolve the request matching `reply.id`. Returns False for unknown or late ids."""
        entry = self._clear(reply.id)
        if entry is None:
            logger.debug(f"Dropping reply for unknown or expired id {reply.id}")
            return False
        future, _ = entry
        if not future.done():
            if reply.error is not None:
                future.set_exception(ChannelError(reply.error))
            else:
                future.set_result(reply.result)
        return True

    def close(self, reason: str = "Channel closed") -> None:
        """Reject everything still pending."""
        self._closed = True
        for message_id in list(self._pending):
            entry = self._clear(message_id)
            if entry is not None and not entry[0].done():
                entry[0].set_exception(ChannelError(reason))

    def _expire(self, message_id: int) -> None:
        entry = self._pending.pop(message_id, None)
        if entry is not None and not entry[0].done():
            entry[0].set_exception(ChannelTimeoutError(f"No reply for message {message_id}"))

    def _clear(self, message_id: int) -> Optional[Tuple[asyncio.Future, asyncio.TimerHandle]]:
        entry = self._pending.pop(message_id, None)
        if entry is not None:
            entry[1].cancel()
        return entry
