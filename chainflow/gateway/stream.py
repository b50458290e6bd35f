"""Raw backend byte streams → canonical StreamChunk events.

All three dialects frame records as server-sent-event `data: {json}` lines.
"""

import codecs
import json
import logging
from typing import Any, AsyncIterator, List, Optional, Union

from ..providers.base import Provider, StreamChunk
from ..providers.registry import get_adapter

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "data: [DONE]"


def map_stream_chunk(fmt: Union[Provider, str], parsed: Any) -> Optional[StreamChunk]:
    """Map one decoded record in dialect `fmt` to a canonical chunk, or None."""
    if not isinstance(parsed, dict):
        return None
    return get_adapter(fmt).map_stream_event(parsed)


class StreamNormalizer:
    """
    Incremental line splitter and record mapper for one response stream.

    Bytes may arrive split anywhere, including inside a multi-byte UTF-8
    sequence; the incremental decoder holds the partial sequence and the
    line buffer holds the partial line until the next feed().
    """

    def __init__(self, fmt: Union[Provider, str]):
        self.format = Provider(fmt)
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.skipped = 0

    def feed(self, data: bytes) -> List[StreamChunk]:
        self._buffer += self._decoder.decode(data)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return self._map_lines(lines)

    def flush(self) -> List[StreamChunk]:
        """Give whatever is left in the buffer one last parse."""
        self._buffer += self._decoder.decode(b"", final=True)
        rest, self._buffer = self._buffer, ""
        return self._map_lines([rest])

    def _map_lines(self, lines: List[str]) -> List[StreamChunk]:
        chunks = []
        for raw in lines:
            line = raw.strip()
            if not line or line == DONE_SENTINEL or not line.startswith(DATA_PREFIX):
                continue
            try:
                parsed = json.loads(line[len(DATA_PREFIX):])
            except json.JSONDecodeError:
                self.skipped += 1
                logger.debug(f"Skipping malformed {self.format.value} stream record")
                continue
            chunk = map_stream_chunk(self.format, parsed)
            if chunk is not None:
                chunks.append(chunk)
        return chunks


async def normalize_stream(
    byte_iter: AsyncIterator[bytes], fmt: Union[Provider, str]
) -> AsyncIterator[StreamChunk]:
    """
    Yield canonical chunks from a raw byte stream, then exactly one `done`.

    Errors raised by the byte iterator propagate to the caller, who decides
    whether they become an error chunk or a silent cancellation.
    """
    normalizer = StreamNormalizer(fmt)
    async for data in byte_iter:
        for chunk in normalizer.feed(data):
            yield chunk
    for chunk in normalizer.flush():
        yield chunk
    if normalizer.skipped:
        logger.debug(f"Skipped {normalizer.skipped} malformed records")
    yield StreamChunk.done()
