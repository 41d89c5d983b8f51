"""Line-delimited streaming relay of chat turns.

This module provides:
- The event types and their one-line wire encoding
- The producer-side relay writing events in order
- The chunk-tolerant consumer-side decoder
- Folding events into a transcript, and an HTTP client for the chat endpoint
"""

from .client import FAILED_RESPONSE_TEXT, ChatStreamClient, ChatTurnResult
from .decoder import NDJSONDecoder
from .events import (
    CallEvent,
    ResultEvent,
    StreamEvent,
    TextEvent,
    decode_line,
    encode_event,
    event_from_dict,
    event_to_dict,
)
from .relay import relay_events
from .transcript import RESULT_PREVIEW_LIMIT, Transcript

__all__ = [
    "CallEvent",
    "ChatStreamClient",
    "ChatTurnResult",
    "FAILED_RESPONSE_TEXT",
    "NDJSONDecoder",
    "RESULT_PREVIEW_LIMIT",
    "ResultEvent",
    "StreamEvent",
    "TextEvent",
    "Transcript",
    "decode_line",
    "encode_event",
    "event_from_dict",
    "event_to_dict",
    "relay_events",
]
