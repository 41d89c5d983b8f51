#!/usr/bin/env python3
"""Example 1: Connect to a pipe server and call its tools.

Spawns the filesystem MCP server over stdio, lists what it offers and
calls one tool through the connection registry.
"""

import asyncio
import json

from mcp_host import ConnectionRegistry, parse_server_config
from mcp_host.observability import LogConfig, LogLevel, configure_logging

# ============================================================================
# Configuration
# ============================================================================

SERVER = {
    "id": "filesystem",
    "name": "Filesystem",
    "type": "stdio",
    "command": "npx",
    "args": ["-y", "@modelcontextprotocol/server-filesystem", "/tmp"],
}


async def main() -> None:
    configure_logging(LogConfig(level=LogLevel.INFO))

    async with ConnectionRegistry() as registry:
        entry = await registry.connect(parse_server_config(SERVER))
        print(f"Connected to {entry.client.server_info.name}")

        caps = await registry.get_capabilities("filesystem")
        print(f"Tools: {[t.name for t in caps.tools]}")
        print(f"Prompts: {len(caps.prompts)}  Resources: {len(caps.resources)}")

        content = await registry.call_tool("filesystem", "list_directory", {"path": "/tmp"})
        print(json.dumps(content, indent=2))


if __name__ == "__main__":
    asyncio.run(main())
