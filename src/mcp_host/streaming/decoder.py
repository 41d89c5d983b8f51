"""Incremental decoder for the streaming relay.

Chunks may split lines, and UTF-8 sequences, anywhere. The decoder keeps
undecoded bytes and the trailing partial line between ``feed`` calls, so the
decoded event sequence does not depend on chunk boundaries.
"""

from __future__ import annotations

import codecs
from typing import List

from ..errors import StreamDecodeError
from ..observability.logging import get_logger
from .events import StreamEvent, decode_line

logger = get_logger(__name__)


class NDJSONDecoder:
    """Turns a byte stream of newline-delimited events into StreamEvents."""

    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.skipped = 0

    def feed(self, chunk: bytes) -> List[StreamEvent]:
        """Consume a chunk and return every event it completes."""
        self._buffer += self._utf8.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")
        return self._decode_lines(lines)

    def flush(self) -> List[StreamEvent]:
        """Decode whatever is left once the stream has ended."""
        self._buffer += self._utf8.decode(b"", final=True)
        rest, self._buffer = self._buffer, ""
        return self._decode_lines([rest])

    def _decode_lines(self, lines: List[str]) -> List[StreamEvent]:
        events: List[StreamEvent] = []
        for line in lines:
            line = line.strip()
            if not line:
                continue
            try:
                events.append(decode_line(line))
            except StreamDecodeError as e:
                self.skipped += 1
                logger.warning("Skipping undecodable stream line", error=e.message, line=line[:200])
        return events
