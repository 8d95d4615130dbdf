"""Frame decoding and event extraction for the chat endpoint's event stream.

The stream is a sequence of newline-terminated text frames. Data frames look
like ``data: {"type": "text-delta", "delta": "Hi"}``; blank lines and lines
starting with ``:`` are keepalives or comments and are dropped. Chunk
boundaries from the transport are arbitrary, so :class:`FrameDecoder` buffers
the trailing partial frame until its terminator arrives.
"""

import asyncio
import codecs
import json
import logging
from typing import Any, AsyncIterator, Awaitable, List, Optional, TypeVar

from pydantic import ValidationError

from .errors import StreamCancelled, StreamDecodeError
from .events import Event, event_from_payload

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
COMMENT_PREFIX = ":"

T = TypeVar("T")


class CancelToken:
    """Cooperative cancellation for a single turn's read loop.

    The read loop passes every suspension through :meth:`wait_for`, so a
    pending read is abandoned as soon as :meth:`cancel` is called.
    """

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise StreamCancelled("turn cancelled")

    async def wait_for(self, awaitable: Awaitable[T]) -> T:
        """Awaits ``awaitable`` unless the token fires first.

        Raises
        ------
        StreamCancelled
            If the token is cancelled before or while waiting.
        """
        self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
                await asyncio.wait({task})
        if task.done() and not task.cancelled():
            return task.result()
        raise StreamCancelled("turn cancelled")


class FrameDecoder:
    """Incrementally splits a byte stream into text frames."""

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="strict")
        self._buffer = ""

    def feed(self, chunk: bytes) -> List[str]:
        """Consumes one chunk and returns the frames it completed."""
        self._buffer += self._decode(chunk, final=False)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return [frame for frame in (self._clean(line) for line in lines) if frame]

    def flush(self) -> List[str]:
        """Returns the unterminated trailing frame, if any, once."""
        self._buffer += self._decode(b"", final=True)
        frame = self._clean(self._buffer)
        self._buffer = ""
        return [frame] if frame else []

    def _decode(self, chunk: bytes, final: bool) -> str:
        try:
            return self._decoder.decode(chunk, final)
        except UnicodeDecodeError as e:
            raise StreamDecodeError(f"Malformed byte sequence in stream: {e}") from e

    @staticmethod
    def _clean(line: str) -> Optional[str]:
        line = line.strip()
        if not line or line.startswith(COMMENT_PREFIX):
            return None
        return line


async def _next_chunk(chunks: AsyncIterator[bytes]) -> Optional[bytes]:
    try:
        return await chunks.__anext__()
    except StopAsyncIteration:
        return None


async def aiter_frames(
    chunks: AsyncIterator[bytes], token: Optional[CancelToken] = None
) -> AsyncIterator[str]:
    """Lazily yields text frames from an async iterator of byte chunks."""
    decoder = FrameDecoder()
    while True:
        if token is None:
            chunk = await _next_chunk(chunks)
        else:
            token.raise_if_cancelled()
            chunk = await token.wait_for(_next_chunk(chunks))
        if chunk is None:
            break
        for frame in decoder.feed(chunk):
            yield frame
    for frame in decoder.flush():
        yield frame


def parse_frame(frame: str) -> Optional[Event]:
    """Parses one data frame into an event.

    Returns ``None`` for frames that are not data frames, carry an empty
    payload, or cannot be parsed. A bad frame never raises.
    """
    if not frame.startswith(DATA_PREFIX):
        return None
    raw = frame[len(DATA_PREFIX) :].strip()
    if not raw:
        return None
    try:
        payload: Any = json.loads(raw)
    except (ValueError, RecursionError):
        logger.debug("Dropping unparseable frame: %.80s", raw)
        return None
    if not isinstance(payload, dict):
        logger.debug("Dropping non-object frame payload: %.80s", raw)
        return None
    try:
        event = event_from_payload(payload)
    except ValidationError as e:
        logger.debug(
            "Dropping invalid %r event: %s", payload.get("type"), e.errors()[0]["msg"]
        )
        return None
    logger.debug("Parsed %s event", event.type)
    return event


async def aiter_events(frames: AsyncIterator[str]) -> AsyncIterator[Event]:
    """Lazily yields typed events from text frames, in arrival order."""
    async for frame in frames:
        event = parse_frame(frame)
        if event is not None:
            yield event
