"""Unit tests for the tool-loop chat engine."""

from __future__ import annotations

import json

import pytest

from mcp_host.llm.base import LLMProviderError, MessageRole, ToolCall
from mcp_host.llm.engine import CompletionEngine, ToolLoopEngine, history_to_messages
from mcp_host.mcp.config import parse_server_config
from mcp_host.streaming.events import CallEvent, ResultEvent, TextEvent

from tests.fakes import FakeProvider, stdio_config, text_response, tool_response


async def collect(engine, message="hi", history=(), server_ids=("files",)):
    return [e async for e in engine.run_turn(message, history, server_ids)]


@pytest.fixture
async def files_registry(registry):
    await registry.connect(parse_server_config(stdio_config("files")))
    return registry


class TestHistoryToMessages:
    """Tests for history conversion."""

    def test_roles(self):
        messages = history_to_messages(
            [{"role": "user", "text": "q"}, {"role": "model", "text": "a"}, {"role": "user"}]
        )
        assert [m.role for m in messages] == [
            MessageRole.USER,
            MessageRole.ASSISTANT,
            MessageRole.USER,
        ]
        assert [m.content for m in messages] == ["q", "a", ""]


class TestToolLoopEngine:
    """Tests for ToolLoopEngine.run_turn."""

    async def test_is_a_completion_engine(self, registry):
        assert isinstance(ToolLoopEngine(FakeProvider([]), registry), CompletionEngine)

    async def test_text_only_turn(self, files_registry):
        provider = FakeProvider([text_response("Hello there")])
        engine = ToolLoopEngine(provider, files_registry, system_prompt="Be brief.")

        events = await collect(engine, history=[{"role": "user", "text": "earlier"}])

        assert events == [TextEvent("Hello there")]
        sent = provider.calls[0]["messages"]
        assert [m.role for m in sent] == [MessageRole.SYSTEM, MessageRole.USER, MessageRole.USER]
        assert sent[-1].content == "hi"
        assert [t.name for t in provider.calls[0]["tools"]] == ["echo"]

    async def test_tool_call_round(self, files_registry):
        """Test a requested tool runs and its result is fed back to the model."""
        provider = FakeProvider(
            [
                tool_response(ToolCall(id="c1", name="echo", arguments={"text": "ping"}), content="Let me check."),
                text_response("It echoed ping."),
            ]
        )
        engine = ToolLoopEngine(provider, files_registry)

        events = await collect(engine)

        expected_content = [{"type": "text", "text": json.dumps({"text": "ping"})}]
        assert events == [
            TextEvent("Let me check."),
            CallEvent("echo", {"text": "ping"}),
            ResultEvent("echo", expected_content),
            TextEvent("It echoed ping."),
        ]
        second_round = provider.calls[1]["messages"]
        assert second_round[-2].role == MessageRole.ASSISTANT
        assert second_round[-2].tool_calls[0].id == "c1"
        assert second_round[-1].role == MessageRole.TOOL
        assert second_round[-1].tool_call_id == "c1"
        assert second_round[-1].content == json.dumps({"text": "ping"})

    async def test_tool_failure_becomes_error_result(self, registry, transport_factory):
        transport_factory.script(
            "files", errors={"tools/call": {"code": -32000, "message": "disk on fire"}}
        )
        await registry.connect(parse_server_config(stdio_config("files")))
        provider = FakeProvider(
            [tool_response(ToolCall(id="c1", name="echo", arguments={})), text_response("Sorry.")]
        )

        events = await collect(ToolLoopEngine(provider, registry))

        result = events[1]
        assert isinstance(result, ResultEvent)
        assert "disk on fire" in result.result["error"]
        assert provider.calls[1]["messages"][-1].content.startswith("Error: ")
        assert events[-1] == TextEvent("Sorry.")

    async def test_unknown_tool_is_reported(self, files_registry):
        provider = FakeProvider(
            [tool_response(ToolCall(id="c1", name="missing", arguments={})), text_response("ok")]
        )

        events = await collect(ToolLoopEngine(provider, files_registry))

        assert events[1] == ResultEvent("missing", {"error": "Tool 'missing' not found"})

    async def test_round_limit(self, files_registry, quiet_logging):
        looping = [tool_response(ToolCall(id=f"c{i}", name="echo", arguments={})) for i in range(5)]
        provider = FakeProvider(looping)

        events = await collect(ToolLoopEngine(provider, files_registry, max_tool_rounds=2))

        assert len(provider.calls) == 2
        assert [type(e) for e in events] == [CallEvent, ResultEvent, CallEvent, ResultEvent]
        assert "Tool round limit reached" in quiet_logging.getvalue()

    async def test_inactive_servers_offer_no_tools(self, files_registry):
        provider = FakeProvider([text_response("plain")])

        await collect(ToolLoopEngine(provider, files_registry), server_ids=())

        assert provider.calls[0]["tools"] is None

    async def test_provider_failure_propagates(self, files_registry):
        provider = FakeProvider([LLMProviderError("upstream", status_code=503)])

        with pytest.raises(LLMProviderError):
            await collect(ToolLoopEngine(provider, files_registry))
