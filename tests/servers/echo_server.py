"""Minimal MCP server speaking newline-delimited JSON-RPC on stdin/stdout.

Tools:
    echo: returns its ``text`` argument.
    add: returns the sum of ``a`` and ``b``.
    exit: terminates the process without answering.
"""

import json
import sys

TOOLS = [
    {
        "name": "echo",
        "description": "Echo the given text",
        "inputSchema": {"type": "object", "properties": {"text": {"type": "string"}}},
    },
    {
        "name": "add",
        "description": "Add two numbers",
        "inputSchema": {
            "type": "object",
            "properties": {"a": {"type": "number"}, "b": {"type": "number"}},
        },
    },
    {"name": "exit", "description": "Stop the server"},
]


def send(message):
    sys.stdout.write(json.dumps(message) + "\n")
    sys.stdout.flush()


def call_tool(params):
    name = params.get("name")
    args = params.get("arguments") or {}
    if name == "echo":
        return {"content": [{"type": "text", "text": str(args.get("text", ""))}]}
    if name == "add":
        return {"content": [{"type": "text", "text": str(args.get("a", 0) + args.get("b", 0))}]}
    if name == "exit":
        sys.exit(0)
    return {"content": [{"type": "text", "text": f"Unknown tool: {name}"}], "isError": True}


def handle(request):
    method = request.get("method")
    params = request.get("params") or {}
    if method == "initialize":
        return {
            "protocolVersion": params.get("protocolVersion"),
            "serverInfo": {"name": "echo-server", "version": "1.0.0"},
            "capabilities": {"tools": {}},
        }
    if method == "tools/list":
        return {"tools": TOOLS}
    if method == "tools/call":
        return call_tool(params)
    if method == "ping":
        return {}
    return None


def main():
    print("echo server ready", file=sys.stderr, flush=True)
    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue
        request = json.loads(line)
        if "id" not in request:
            continue
        result = handle(request)
        if result is None:
            send({
                "jsonrpc": "2.0",
                "id": request["id"],
                "error": {"code": -32601, "message": f"Method not found: {request.get('method')}"},
            })
        else:
            send({"jsonrpc": "2.0", "id": request["id"], "result": result})


if __name__ == "__main__":
    main()
