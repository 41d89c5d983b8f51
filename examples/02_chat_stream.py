#!/usr/bin/env python3
"""Example 2: Stream a chat turn from a running host.

Start the host first:

    OPENAI_API_KEY=... mcp-host serve

then connect a server through the API and run this script. Events are
printed as they arrive; the folded transcript is printed at the end.
"""

import asyncio

from mcp_host import TextEvent, Transcript
from mcp_host.streaming.client import ChatStreamClient

HOST_URL = "http://127.0.0.1:3000"
ACTIVE_SERVERS = ["filesystem"]


async def main() -> None:
    transcript = Transcript()
    async with ChatStreamClient(HOST_URL) as client:
        async for event in client.stream_turn(
            "Which files are in /tmp?",
            history=[],
            active_server_ids=ACTIVE_SERVERS,
        ):
            if isinstance(event, TextEvent):
                print(event.content, end="", flush=True)
            else:
                print(f"\n[{type(event).__name__}] {event.tool_name}")
            transcript.apply(event)

    print("\n\n--- transcript ---")
    print(transcript.text)


if __name__ == "__main__":
    asyncio.run(main())
