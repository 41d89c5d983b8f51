"""Events of the line-delimited streaming relay.

One event is one JSON object on one line:

    {"type": "text", "content": "..."}
    {"type": "call", "tool": "...", "args": {...}}
    {"type": "result", "tool": "...", "result": ...}
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Union

from ..errors import StreamDecodeError


@dataclass(frozen=True)
class TextEvent:
    """A fragment of model text."""

    content: str


@dataclass(frozen=True)
class CallEvent:
    """The model asked to invoke a tool."""

    tool_name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ResultEvent:
    """The outcome of a tool invocation, passed through as-is."""

    tool_name: str
    result: Any = None


StreamEvent = Union[TextEvent, CallEvent, ResultEvent]


def event_to_dict(event: StreamEvent) -> Dict[str, Any]:
    if isinstance(event, TextEvent):
        return {"type": "text", "content": event.content}
    if isinstance(event, CallEvent):
        return {"type": "call", "tool": event.tool_name, "args": event.arguments}
    if isinstance(event, ResultEvent):
        return {"type": "result", "tool": event.tool_name, "result": event.result}
    raise TypeError(f"Not a stream event: {event!r}")


def event_from_dict(data: Any) -> StreamEvent:
    """Build an event from a decoded line.

    Raises:
        StreamDecodeError: If the object is not a known event.
    """
    if not isinstance(data, dict):
        raise StreamDecodeError("Event must be a JSON object")
    kind = data.get("type")
    try:
        if kind == "text":
            return TextEvent(content=str(data["content"]))
        if kind == "call":
            args = data.get("args")
            return CallEvent(tool_name=str(data["tool"]), arguments=args if isinstance(args, dict) else {})
        if kind == "result":
            return ResultEvent(tool_name=str(data["tool"]), result=data.get("result"))
    except KeyError as e:
        raise StreamDecodeError(f"Event of type {kind!r} is missing {e.args[0]!r}") from e
    raise StreamDecodeError(f"Unknown event type: {kind!r}")


def encode_event(event: StreamEvent) -> bytes:
    """Serialize an event as one newline-terminated UTF-8 line."""
    return (json.dumps(event_to_dict(event), ensure_ascii=False) + "\n").encode("utf-8")


def decode_line(line: str) -> StreamEvent:
    """Parse one line (without its terminator) into an event.

    Raises:
        StreamDecodeError: If the line is not valid JSON or not an event.
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise StreamDecodeError(f"Invalid JSON: {e.msg}", line=line) from e
    try:
        return event_from_dict(data)
    except StreamDecodeError as e:
        raise StreamDecodeError(e.message, line=line) from e
