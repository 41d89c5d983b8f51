"""Producer side of the streaming relay.

Each event is written and flushed before the next one is pulled from the
producer, so the consumer sees events in production order and as soon as
they exist. When the consumer goes away the relay stops pulling and closes
the producer; a tool call already in flight is left to finish and its
result is discarded.
"""

from __future__ import annotations

from typing import AsyncIterator, Awaitable, Callable

from ..observability.logging import get_logger
from .events import StreamEvent, encode_event

logger = get_logger(__name__)

Writer = Callable[[bytes], Awaitable[None]]


async def relay_events(events: AsyncIterator[StreamEvent], write: Writer) -> int:
    """Write every event of ``events`` as one NDJSON line.

    Args:
        events: The event producer, typically a chat turn.
        write: Writes and flushes bytes to the response channel.

    Returns:
        Number of events written.

    Raises:
        Exception: Whatever the producer raises; it ends the stream.
    """
    written = 0
    try:
        async for event in events:
            try:
                await write(encode_event(event))
            except ConnectionResetError:
                logger.info("Stream consumer disconnected", events_written=written)
                break
            written += 1
    finally:
        aclose = getattr(events, "aclose", None)
        if aclose is not None:
            await aclose()
    return written
