"""Unit tests for the chat stream client."""

from __future__ import annotations

import json

import httpx
import pytest

from mcp_host.errors import TransportError
from mcp_host.streaming.client import FAILED_RESPONSE_TEXT, ChatStreamClient
from mcp_host.streaming.events import CallEvent, ResultEvent, TextEvent, encode_event


class ChunkedStream(httpx.AsyncByteStream):
    """Response body delivered in fixed-size chunks, optionally breaking."""

    def __init__(self, data: bytes, size: int = 5, fail_at: int = -1):
        self.data = data
        self.size = size
        self.fail_at = fail_at

    async def __aiter__(self):
        for n, i in enumerate(range(0, len(self.data), self.size)):
            if n == self.fail_at:
                raise httpx.ReadError("connection lost")
            yield self.data[i : i + self.size]


def client_for(handler) -> ChatStreamClient:
    return ChatStreamClient("http://host.test", http_transport=httpx.MockTransport(handler))


BODY = b"".join(
    encode_event(e)
    for e in [
        TextEvent("Checking. "),
        CallEvent("echo", {"text": "hi"}),
        ResultEvent("echo", [{"type": "text", "text": "hi"}]),
        TextEvent("It said hi."),
    ]
)


class TestChatStreamClient:
    """Tests for ChatStreamClient."""

    async def test_stream_turn(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(json.loads(request.content))
            return httpx.Response(
                200,
                headers={"content-type": "application/x-ndjson"},
                stream=ChunkedStream(BODY, size=3),
            )

        async with client_for(handler) as client:
            events = [
                e
                async for e in client.stream_turn(
                    "hello", [{"role": "user", "text": "before"}], ["files"]
                )
            ]

        assert seen == {
            "message": "hello",
            "history": [{"role": "user", "text": "before"}],
            "activeServerIds": ["files"],
        }
        assert [type(e).__name__ for e in events] == [
            "TextEvent",
            "CallEvent",
            "ResultEvent",
            "TextEvent",
        ]

    async def test_collect_turn(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, stream=ChunkedStream(BODY))

        async with client_for(handler) as client:
            result = await client.collect_turn("hello")

        assert result.ok
        assert result.text.startswith("Checking. ")
        assert result.text.endswith("It said hi.")
        assert "**Tool Call**: `echo`" in result.text

    async def test_error_status_before_content(self):
        """Test a JSON error answer becomes the failure text."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, json={"error": "API rate limit exceeded (429)."})

        async with client_for(handler) as client:
            result = await client.collect_turn("hello")
            with pytest.raises(TransportError) as exc_info:
                async for _ in client.stream_turn("hello"):
                    pass

        assert result.text == FAILED_RESPONSE_TEXT
        assert result.error == "API rate limit exceeded (429)."
        assert exc_info.value.code == 429

    async def test_broken_stream_keeps_partial_text(self):
        """Test a mid-stream failure keeps the text received so far."""
        first = encode_event(TextEvent("partial answer"))

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, stream=ChunkedStream(first + BODY, size=len(first), fail_at=1))

        async with client_for(handler) as client:
            result = await client.collect_turn("hello")

        assert not result.ok
        assert result.text == "partial answer"
        assert len(result.events) == 1

    async def test_unreachable_host(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with client_for(handler) as client:
            result = await client.collect_turn("hello")

        assert result.text == FAILED_RESPONSE_TEXT
        assert "refused" in result.error
