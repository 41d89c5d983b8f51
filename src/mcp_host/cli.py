"""Command line entry point for the MCP host.

    mcp-host serve                      run the HTTP API
    mcp-host status                     list servers connected to a running host
    mcp-host reconcile [--interval N]   run reconciliation against a running host
    mcp-host export [-o FILE]           write the server catalog as JSON
    mcp-host import FILE                merge an exported catalog
    mcp-host add CONFIG                 add one server config (JSON object)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from aiohttp import web

from .errors import MCPError
from .llm.base import LLMConfig
from .llm.engine import ToolLoopEngine
from .llm.providers.openai import OpenAIProvider
from .mcp.client import MCPClientConfig
from .mcp.registry import ConnectionRegistry
from .observability.logging import configure_logging, get_logger
from .reconnect.catalog import ServerCatalog
from .reconnect.gateway import HttpRegistryGateway
from .reconnect.store import FileKeyValueStore
from .reconnect.supervisor import ConnectionSupervisor
from .server.app import build_app
from .settings import HostSettings

logger = get_logger(__name__)


def _settings(args: argparse.Namespace) -> HostSettings:
    return HostSettings.from_env(
        host=args.host,
        port=args.port,
        state_dir=args.state_dir,
        log_level=args.log_level,
    )


def _api_url(args: argparse.Namespace, settings: HostSettings) -> str:
    return args.url or f"http://{settings.host}:{settings.port}"


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def build_registry(settings: HostSettings) -> ConnectionRegistry:
    client_config = MCPClientConfig(
        handshake_timeout=settings.handshake_timeout,
        request_timeout=settings.request_timeout,
    )
    return ConnectionRegistry(client_config=client_config, close_timeout=settings.close_timeout)


def build_engine(settings: HostSettings, registry: ConnectionRegistry) -> Optional[ToolLoopEngine]:
    """Tool loop engine for the chat endpoint, or None without an API key."""
    if not settings.api_key:
        logger.warning("No API key configured, chat endpoint disabled")
        return None
    provider = OpenAIProvider(
        LLMConfig(model=settings.model, api_key=settings.api_key, base_url=settings.base_url)
    )
    return ToolLoopEngine(provider, registry, max_tool_rounds=settings.max_tool_rounds)


async def run_serve(settings: HostSettings) -> None:
    registry = build_registry(settings)
    app = build_app(registry, build_engine(settings, registry))
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, settings.host, settings.port)
    await site.start()
    logger.info("MCP host listening", host=settings.host, port=settings.port)
    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()


async def run_status(url: str) -> List[str]:
    async with HttpRegistryGateway(url) as gateway:
        return await gateway.list_connected_ids()


def _supervisor(settings: HostSettings, gateway: HttpRegistryGateway) -> ConnectionSupervisor:
    store = FileKeyValueStore(settings.catalog_path)
    return ConnectionSupervisor(ServerCatalog(store), gateway, store)


async def run_reconcile(settings: HostSettings, url: str, interval: Optional[float]) -> Dict[str, Any]:
    async with HttpRegistryGateway(url) as gateway:
        supervisor = _supervisor(settings, gateway)
        await supervisor.load()
        if interval:
            await supervisor.run_periodic(interval)
            return {"servers": [o.to_dict() for o in supervisor.observations()]}
        report = await supervisor.reconcile()
        return {
            "report": report.to_dict(),
            "servers": [o.to_dict() for o in supervisor.observations()],
        }


async def run_export(settings: HostSettings) -> str:
    catalog = ServerCatalog(FileKeyValueStore(settings.catalog_path))
    await catalog.load()
    return catalog.export_json()


async def run_import(settings: HostSettings, text: str) -> List[str]:
    catalog = ServerCatalog(FileKeyValueStore(settings.catalog_path))
    await catalog.load()
    return await catalog.import_json(text)


async def run_add(settings: HostSettings, config: Dict[str, Any]) -> bool:
    catalog = ServerCatalog(FileKeyValueStore(settings.catalog_path))
    await catalog.load()
    return await catalog.add(config)


def _parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="mcp-host", description="MCP connection host")
    p.add_argument("--host", default=None, help="interface of the HTTP API")
    p.add_argument("--port", type=int, default=None, help="port of the HTTP API")
    p.add_argument("--state-dir", type=Path, default=None, help="catalog directory")
    p.add_argument(
        "--log-level",
        default=None,
        choices=["debug", "info", "warning", "error", "critical"],
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("serve", help="run the HTTP API")

    status = sub.add_parser("status", help="list connected servers")
    status.add_argument("--url", default=None, help="base URL of a running host")

    reconcile = sub.add_parser("reconcile", help="reconnect catalog servers")
    reconcile.add_argument("--url", default=None, help="base URL of a running host")
    reconcile.add_argument(
        "--interval", type=float, default=None, help="keep reconciling every N seconds"
    )

    export = sub.add_parser("export", help="export the server catalog")
    export.add_argument("-o", "--output", type=Path, default=None)

    imp = sub.add_parser("import", help="merge an exported server catalog")
    imp.add_argument("file", type=Path)

    add = sub.add_parser("add", help="add a server config")
    add.add_argument("config", help="server config as a JSON object")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = _parser().parse_args(argv)
    try:
        settings = _settings(args)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    configure_logging(settings.log_config())

    try:
        if args.cmd == "serve":
            asyncio.run(run_serve(settings))
        elif args.cmd == "status":
            _print_json({"connectedServers": asyncio.run(run_status(_api_url(args, settings)))})
        elif args.cmd == "reconcile":
            _print_json(asyncio.run(run_reconcile(settings, _api_url(args, settings), args.interval)))
        elif args.cmd == "export":
            text = asyncio.run(run_export(settings))
            if args.output:
                args.output.write_text(text + "\n", encoding="utf-8")
            else:
                print(text)
        elif args.cmd == "import":
            ids = asyncio.run(run_import(settings, args.file.read_text(encoding="utf-8")))
            _print_json({"imported": ids})
        elif args.cmd == "add":
            try:
                config = json.loads(args.config)
            except json.JSONDecodeError as e:
                print(f"error: invalid JSON: {e}", file=sys.stderr)
                return 2
            if not asyncio.run(run_add(settings, config)):
                print(f"error: server {config.get('id')!r} already exists", file=sys.stderr)
                return 1
    except MCPError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
