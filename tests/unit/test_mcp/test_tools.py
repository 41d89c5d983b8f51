"""Unit tests for exposing registry tools to the chat model."""

from __future__ import annotations

import pytest

from mcp_host.errors import MCPError
from mcp_host.mcp.client import MCPTool
from mcp_host.mcp.config import parse_server_config
from mcp_host.mcp.tools import MCPToolBinding, RegistryToolset

from tests.fakes import stdio_config


async def connect(registry, server_id: str) -> None:
    await registry.connect(parse_server_config(stdio_config(server_id)))


class TestMCPToolBinding:
    """Tests for MCPToolBinding."""

    def test_definition_uses_input_schema(self, sample_tools):
        binding = MCPToolBinding("read_file", "files", MCPTool.from_dict(sample_tools[0]))
        definition = binding.to_definition()
        assert definition.name == "read_file"
        assert definition.parameters["required"] == ["path"]

    def test_definition_defaults_schema(self):
        binding = MCPToolBinding("ping", "net", MCPTool(name="ping"))
        assert binding.to_definition().parameters == {"type": "object", "properties": {}}


class TestRegistryToolset:
    """Tests for RegistryToolset.build and call."""

    async def test_unique_names_are_kept(self, registry, transport_factory, sample_tools):
        transport_factory.script("files", tools=sample_tools[:1])
        transport_factory.script("web", tools=[{"name": "fetch"}])
        await connect(registry, "files")
        await connect(registry, "web")

        toolset = await RegistryToolset.build(registry, ["files", "web"])

        assert sorted(d.name for d in toolset.definitions()) == ["fetch", "read_file"]

    async def test_colliding_names_are_qualified(self, registry, transport_factory):
        """Test the same tool name on two servers is prefixed by server id."""
        await connect(registry, "alpha")
        await connect(registry, "beta.local")

        toolset = await RegistryToolset.build(registry, ["alpha", "beta.local"])

        names = sorted(d.name for d in toolset.definitions())
        assert names == ["alpha__echo", "beta_local__echo"]
        binding = toolset.get("beta_local__echo")
        assert binding.server_id == "beta.local"
        assert binding.tool.name == "echo"

    async def test_names_colliding_after_sanitizing_are_qualified(self, registry, transport_factory):
        """Test names that differ only in unsafe characters both stay callable."""
        transport_factory.script("alpha", tools=[{"name": "read.file"}])
        transport_factory.script("beta", tools=[{"name": "read_file"}])
        await connect(registry, "alpha")
        await connect(registry, "beta")

        toolset = await RegistryToolset.build(registry, ["alpha", "beta"])

        assert sorted(d.name for d in toolset.definitions()) == [
            "alpha__read_file",
            "beta__read_file",
        ]
        assert toolset.get("alpha__read_file").tool.name == "read.file"
        assert toolset.get("beta__read_file").tool.name == "read_file"

        await toolset.call("alpha__read_file", {})
        alpha = transport_factory.for_target("alpha")[0]
        assert alpha.requests_sent[-1].params["name"] == "read.file"

    async def test_same_server_sanitized_collision_gets_suffix(self, registry, transport_factory):
        transport_factory.script("files", tools=[{"name": "read.file"}, {"name": "read_file"}])
        await connect(registry, "files")

        toolset = await RegistryToolset.build(registry, ["files"])

        assert len(toolset) == 2
        assert toolset.get("files__read_file").tool.name == "read.file"
        assert toolset.get("files__read_file_2").tool.name == "read_file"

    async def test_inactive_and_dead_servers_are_skipped(self, registry, transport_factory):
        await connect(registry, "files")
        toolset = await RegistryToolset.build(registry, ["files", "missing", "files"])
        assert len(toolset) == 1

    async def test_listing_failure_is_skipped(self, registry, transport_factory):
        transport_factory.script(
            "broken", errors={"tools/list": {"code": -32000, "message": "nope"}}
        )
        await connect(registry, "broken")
        await connect(registry, "files")

        toolset = await RegistryToolset.build(registry, ["broken", "files"])

        assert [d.name for d in toolset.definitions()] == ["echo"]

    async def test_call_routes_to_server(self, registry, transport_factory):
        await connect(registry, "alpha")
        await connect(registry, "beta")
        toolset = await RegistryToolset.build(registry, ["alpha", "beta"])

        content = await toolset.call("beta__echo", {"q": "x"})

        assert content[0]["text"] == '{"q": "x"}'
        beta = transport_factory.for_target("beta")[0]
        assert beta.requests_sent[-1].params == {"name": "echo", "arguments": {"q": "x"}}

    async def test_unknown_tool(self, registry):
        toolset = await RegistryToolset.build(registry, [])
        with pytest.raises(MCPError, match="not found"):
            await toolset.call("nope", {})
