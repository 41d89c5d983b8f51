#!/usr/bin/env python3
"""Example 3: Keep catalog servers connected.

Runs the reconnection supervisor against a host started with
``mcp-host serve``. Servers the user connected before are reconnected
after the host restarts, up to three attempts each.
"""

import asyncio
from pathlib import Path

from mcp_host import ConnectionSupervisor, ServerCatalog
from mcp_host.reconnect import FileKeyValueStore, HttpRegistryGateway

HOST_URL = "http://127.0.0.1:3000"
STATE_FILE = Path.home() / ".mcp-host" / "state.json"
INTERVAL = 10.0


async def main() -> None:
    store = FileKeyValueStore(STATE_FILE)
    async with HttpRegistryGateway(HOST_URL) as gateway:
        supervisor = ConnectionSupervisor(ServerCatalog(store), gateway, store)
        await supervisor.load()
        await supervisor.add_server(
            {
                "id": "memory",
                "name": "Memory",
                "type": "stdio",
                "command": "npx",
                "args": ["-y", "@modelcontextprotocol/server-memory"],
                "autoConnect": True,
            }
        )

        while True:
            report = await supervisor.reconcile()
            for obs in supervisor.observations():
                print(obs.to_dict())
            if report.exhausted:
                print(f"Gave up on: {report.exhausted}")
            await asyncio.sleep(INTERVAL)


if __name__ == "__main__":
    asyncio.run(main())
