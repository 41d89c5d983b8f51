"""HTTP client for the chat endpoint, consuming the streaming relay."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Sequence

import httpx

from ..errors import MCPError, TransportError
from ..observability.logging import get_logger
from .decoder import NDJSONDecoder
from .events import StreamEvent
from .transcript import Transcript

logger = get_logger(__name__)

FAILED_RESPONSE_TEXT = "Error: Failed to get response."


@dataclass
class ChatTurnResult:
    """Outcome of one chat turn as seen by the user.

    Attributes:
        text: The folded transcript, or the failure text when nothing arrived.
        events: Every event received, in order.
        error: Failure message if the stream ended abnormally.
    """

    text: str
    events: List[StreamEvent] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ChatStreamClient:
    """Posts chat turns and decodes the NDJSON event stream."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 300.0,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=http_transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ChatStreamClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def stream_turn(
        self,
        message: str,
        history: Sequence[Dict[str, str]] = (),
        active_server_ids: Iterable[str] = (),
    ) -> AsyncIterator[StreamEvent]:
        """Send one user message and yield events as they arrive.

        Raises:
            TransportError: If the request fails or the stream breaks.
        """
        payload = {
            "message": message,
            "history": list(history),
            "activeServerIds": list(active_server_ids),
        }
        decoder = NDJSONDecoder()
        try:
            async with self._client.stream("POST", "/api/chat", json=payload) as response:
                if response.status_code != 200:
                    await response.aread()
                    raise TransportError(
                        self._error_message(response), code=response.status_code
                    )
                async for chunk in response.aiter_bytes():
                    for event in decoder.feed(chunk):
                        yield event
            for event in decoder.flush():
                yield event
        except httpx.HTTPError as e:
            raise TransportError(f"Chat stream failed: {e}") from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            body = None
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
        return f"HTTP {response.status_code}"

    async def collect_turn(
        self,
        message: str,
        history: Sequence[Dict[str, str]] = (),
        active_server_ids: Iterable[str] = (),
    ) -> ChatTurnResult:
        """Run a turn to completion and fold it into a transcript.

        A failure before any content yields FAILED_RESPONSE_TEXT; a failure
        after content keeps the partial text as it was.
        """
        transcript = Transcript()
        try:
            async for event in self.stream_turn(message, history, active_server_ids):
                transcript.apply(event)
        except MCPError as e:
            logger.warning("Chat turn failed", error=str(e), had_content=transcript.has_content)
            text = transcript.text if transcript.has_content else FAILED_RESPONSE_TEXT
            return ChatTurnResult(text=text, events=transcript.events, error=str(e))
        return ChatTurnResult(text=transcript.text, events=transcript.events)
