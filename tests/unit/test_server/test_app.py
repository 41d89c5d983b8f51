"""Tests for the HTTP façade, served in-process with aiohttp's test server."""

from __future__ import annotations

import json
from typing import AsyncIterator, List
from unittest.mock import AsyncMock

import aiohttp
import pytest
from aiohttp import test_utils

from mcp_host.errors import TransportError
from mcp_host.llm.base import LLMProviderError, RateLimitError, ToolCall
from mcp_host.llm.engine import ToolLoopEngine
from mcp_host.mcp.registry import ConnectionRegistry
from mcp_host.server import REGISTRY_KEY, build_app
from mcp_host.server.app import finish_stream
from mcp_host.streaming.events import StreamEvent, TextEvent

from tests.fakes import FakeProvider, stdio_config, text_response, tool_response


class ScriptedEngine:
    """Engine yielding fixed events, optionally failing after them."""

    def __init__(self, events: List[StreamEvent], error: Exception = None):
        self.events = events
        self.error = error
        self.turns: List[dict] = []

    async def run_turn(self, message, history, server_ids) -> AsyncIterator[StreamEvent]:
        self.turns.append({"message": message, "history": history, "server_ids": server_ids})
        for event in self.events:
            yield event
        if self.error is not None:
            raise self.error


@pytest.fixture
async def make_client(client_config, transport_factory):
    clients: List[test_utils.TestClient] = []

    async def factory(engine=None, registry=None) -> test_utils.TestClient:
        if registry is None:
            registry = ConnectionRegistry(
                client_config=client_config, transport_factory=transport_factory
            )
        client = test_utils.TestClient(test_utils.TestServer(build_app(registry, engine)))
        await client.start_server()
        clients.append(client)
        return client

    yield factory
    for client in clients:
        await client.close()


@pytest.fixture
async def api(make_client):
    return await make_client()


async def connect(
    client: test_utils.TestClient, server_id: str = "files", **extra
) -> aiohttp.ClientResponse:
    return await client.post("/api/mcp/connect", json={"config": stdio_config(server_id, **extra)})


class TestConnectionRoutes:
    """Tests for connect, disconnect and status."""

    async def test_connect_and_status(self, api):
        resp = await connect(api)
        assert resp.status == 200
        assert await resp.json() == {"success": True, "serverId": "files"}

        resp = await api.get("/api/mcp/status")
        assert await resp.json() == {"connectedServers": ["files"]}

    async def test_connect_invalid_config(self, api):
        resp = await api.post("/api/mcp/connect", json={"config": {"id": "x", "name": "X", "type": "stdio"}})
        assert resp.status == 400
        body = await resp.json()
        assert body["success"] is False
        assert body["serverId"] == ""
        assert "command" in body["error"]

    async def test_connect_malformed_body(self, api):
        resp = await api.post("/api/mcp/connect", data=b"{not json")
        assert resp.status == 400

    async def test_connect_failure(self, api, transport_factory):
        transport_factory.script("files", connect_error=TransportError("spawn failed"))

        resp = await connect(api)

        assert resp.status == 500
        body = await resp.json()
        assert body["success"] is False
        assert "spawn failed" in body["error"]
        resp = await api.get("/api/mcp/status")
        assert await resp.json() == {"connectedServers": []}

    async def test_disconnect(self, api, transport_factory):
        await connect(api)

        resp = await api.post("/api/mcp/disconnect", json={"serverId": "files"})
        assert resp.status == 200
        assert await resp.json() == {"success": True}
        assert transport_factory.for_target("files")[0].closed

        resp = await api.post("/api/mcp/disconnect", json={"serverId": "files"})
        assert resp.status == 400
        assert "not connected" in (await resp.json())["error"]

    async def test_disconnect_requires_id(self, api):
        resp = await api.post("/api/mcp/disconnect", json={})
        assert resp.status == 400
        assert await resp.json() == {"success": False, "error": "Server ID is required"}

    async def test_cleanup_closes_connections(self, make_client, transport_factory):
        client = await make_client()
        await connect(client)
        registry = client.app[REGISTRY_KEY]

        await client.close()

        assert not registry.is_running
        assert transport_factory.for_target("files")[0].closed


class TestCapabilityRoutes:
    """Tests for tool, prompt and resource routes."""

    async def test_list_and_call_tool(self, api):
        await connect(api)

        resp = await api.get("/api/mcp/tools", params={"serverId": "files"})
        assert (await resp.json())["tools"] == [
            {"name": "echo", "description": "Echo", "inputSchema": {}}
        ]

        resp = await api.post(
            "/api/mcp/tools",
            json={"serverId": "files", "toolName": "echo", "arguments": {"text": "hi"}},
        )
        assert resp.status == 200
        assert await resp.json() == {
            "success": True,
            "content": [{"type": "text", "text": json.dumps({"text": "hi"})}],
        }

    async def test_call_tool_bad_arguments(self, api):
        await connect(api)
        resp = await api.post(
            "/api/mcp/tools", json={"serverId": "files", "toolName": "echo", "arguments": [1]}
        )
        assert resp.status == 400

    async def test_unknown_server(self, api):
        resp = await api.get("/api/mcp/tools", params={"serverId": "ghost"})
        assert resp.status == 400
        resp = await api.get("/api/mcp/tools")
        assert await resp.json() == {"success": False, "error": "Server ID is required"}

    async def test_prompts_and_resources(self, api, transport_factory):
        transport_factory.script(
            "files",
            prompts=[{"name": "greet", "description": "Say hi"}],
            resources=[{"uri": "file:///a.txt", "name": "a.txt"}],
            handlers={
                "prompts/get": lambda p: {
                    "messages": [{"role": "user", "content": {"type": "text", "text": "hi"}}]
                },
                "resources/read": lambda p: {"contents": [{"uri": p["uri"], "text": "A"}]},
            },
        )
        await connect(api)

        resp = await api.get("/api/mcp/prompts", params={"serverId": "files"})
        assert [p["name"] for p in (await resp.json())["prompts"]] == ["greet"]

        resp = await api.post("/api/mcp/prompts", json={"serverId": "files", "promptName": "greet"})
        assert (await resp.json())["messages"][0]["role"] == "user"

        resp = await api.get("/api/mcp/resources", params={"serverId": "files"})
        assert [r["uri"] for r in (await resp.json())["resources"]] == ["file:///a.txt"]

        resp = await api.post("/api/mcp/resources", json={"serverId": "files", "uri": "file:///a.txt"})
        assert await resp.json() == {
            "success": True,
            "contents": [{"uri": "file:///a.txt", "text": "A"}],
        }

    async def test_unsupported_capability(self, api, transport_factory):
        transport_factory.script("files", capabilities=("tools",))
        await connect(api)

        resp = await api.get("/api/mcp/prompts", params={"serverId": "files"})

        assert resp.status == 500
        assert (await resp.json())["success"] is False

    async def test_capabilities(self, api, transport_factory):
        transport_factory.script("files", capabilities=("tools",))
        await connect(api)

        resp = await api.get("/api/mcp/capabilities", params={"serverId": "files"})

        body = await resp.json()
        assert body["success"] is True
        assert [t["name"] for t in body["tools"]] == ["echo"]
        assert body["prompts"] == []
        assert body["resources"] == []

        resp = await api.get("/api/mcp/capabilities", params={"serverId": "ghost"})
        assert resp.status == 400


class TestChatRoute:
    """Tests for the streaming chat route."""

    async def test_streams_ndjson_events(self, make_client):
        engine = ScriptedEngine([TextEvent("Hello "), TextEvent("world")])
        client = await make_client(engine)

        resp = await client.post(
            "/api/chat",
            json={"message": "hi", "history": [{"role": "user", "text": "x"}], "activeServerIds": ["files"]},
        )

        assert resp.status == 200
        assert resp.headers["Content-Type"].startswith("application/x-ndjson")
        lines = (await resp.text()).splitlines()
        assert [json.loads(line) for line in lines] == [
            {"type": "text", "content": "Hello "},
            {"type": "text", "content": "world"},
        ]
        assert engine.turns[0]["server_ids"] == ["files"]

    async def test_tool_turn_through_registry(self, make_client, client_config, transport_factory):
        provider = FakeProvider(
            [
                tool_response(ToolCall(id="c1", name="echo", arguments={"n": 1})),
                text_response("done"),
            ]
        )
        registry = ConnectionRegistry(client_config=client_config, transport_factory=transport_factory)
        client = await make_client(ToolLoopEngine(provider, registry), registry)
        await connect(client)

        resp = await client.post("/api/chat", json={"message": "go", "activeServerIds": ["files"]})

        types = [json.loads(line)["type"] for line in (await resp.text()).splitlines()]
        assert types == ["call", "result", "text"]

    async def test_empty_turn(self, make_client):
        client = await make_client(ScriptedEngine([]))
        resp = await client.post("/api/chat", json={"message": "hi"})
        assert resp.status == 200
        assert await resp.text() == ""

    async def test_rate_limit_before_first_event(self, make_client):
        client = await make_client(ScriptedEngine([], RateLimitError("slow down", status_code=429)))

        resp = await client.post("/api/chat", json={"message": "hi"})

        assert resp.status == 429
        assert await resp.json() == {"error": "API rate limit exceeded (429)."}

    async def test_provider_status_before_first_event(self, make_client):
        client = await make_client(ScriptedEngine([], LLMProviderError("overloaded", status_code=503)))

        resp = await client.post("/api/chat", json={"message": "hi"})

        assert resp.status == 503
        assert await resp.json() == {"error": "API Error: overloaded"}

    async def test_unexpected_failure_before_first_event(self, make_client):
        client = await make_client(ScriptedEngine([], RuntimeError("kaput")))

        resp = await client.post("/api/chat", json={"message": "hi"})

        assert resp.status == 500
        assert await resp.json() == {"error": "API Error: kaput"}

    async def test_failure_mid_stream_aborts(self, make_client):
        client = await make_client(ScriptedEngine([TextEvent("partial")], RuntimeError("kaput")))

        resp = await client.post("/api/chat", json={"message": "hi"})

        assert resp.status == 200
        with pytest.raises(aiohttp.ClientError):
            await resp.read()

    async def test_missing_message(self, make_client):
        client = await make_client(ScriptedEngine([]))
        resp = await client.post("/api/chat", json={"history": []})
        assert resp.status == 400
        assert await resp.json() == {"error": "message is required"}

    async def test_history_must_be_a_list(self, make_client):
        client = await make_client(ScriptedEngine([]))
        resp = await client.post("/api/chat", json={"message": "hi", "history": "nope"})
        assert resp.status == 400

    async def test_no_engine(self, api):
        resp = await api.post("/api/chat", json={"message": "hi"})
        assert resp.status == 500
        assert await resp.json() == {"error": "Chat engine is not configured"}


class TestFinishStream:
    """Tests for closing a chat stream."""

    async def test_consumer_gone_at_end_of_stream(self, quiet_logging):
        """Test a reset while writing the stream end is logged, not raised."""
        response = AsyncMock()
        response.write_eof.side_effect = ConnectionResetError("gone")

        await finish_stream(response)

        response.write_eof.assert_awaited_once()
        assert "Chat consumer disconnected before end of stream" in quiet_logging.getvalue()

    async def test_clean_end(self):
        response = AsyncMock()
        await finish_stream(response)
        response.write_eof.assert_awaited_once()
