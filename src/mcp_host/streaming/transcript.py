"""Fold relay events into the running text shown to the user."""

from __future__ import annotations

import json
from typing import Any, Iterable, List

from .events import CallEvent, ResultEvent, StreamEvent, TextEvent

RESULT_PREVIEW_LIMIT = 500


def _to_json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def render_call(event: CallEvent) -> str:
    return (
        f"\n\n> 🛠️ **Tool Call**: `{event.tool_name}`\n"
        f"```json\n{_to_json(event.arguments)}\n```\n\n"
    )


def render_result(event: ResultEvent) -> str:
    """Render a tool result, truncated to RESULT_PREVIEW_LIMIT characters."""
    text = _to_json(event.result)
    if len(text) > RESULT_PREVIEW_LIMIT:
        text = text[:RESULT_PREVIEW_LIMIT] + "..."
    return f"\n> ✅ **Result** ({event.tool_name}):\n```json\n{text}\n```\n\n"


class Transcript:
    """Accumulates a turn's events in order."""

    def __init__(self) -> None:
        self._parts: List[str] = []
        self.events: List[StreamEvent] = []

    def apply(self, event: StreamEvent) -> str:
        """Append an event and return the updated text."""
        self.events.append(event)
        if isinstance(event, TextEvent):
            self._parts.append(event.content)
        elif isinstance(event, CallEvent):
            self._parts.append(render_call(event))
        elif isinstance(event, ResultEvent):
            self._parts.append(render_result(event))
        return self.text

    def extend(self, events: Iterable[StreamEvent]) -> str:
        for event in events:
            self.apply(event)
        return self.text

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def has_content(self) -> bool:
        return any(self._parts)
