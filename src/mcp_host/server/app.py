"""aiohttp façade over the connection registry and the chat engine.

Routes:
    POST /api/mcp/connect          {config}                    -> {success, serverId}
    POST /api/mcp/disconnect       {serverId}                  -> {success}
    GET  /api/mcp/status                                       -> {connectedServers}
    GET  /api/mcp/tools?serverId=                              -> {success, tools}
    POST /api/mcp/tools            {serverId, toolName, arguments}
    GET  /api/mcp/prompts?serverId=                            -> {success, prompts}
    POST /api/mcp/prompts          {serverId, promptName, arguments}
    GET  /api/mcp/resources?serverId=                          -> {success, resources}
    POST /api/mcp/resources        {serverId, uri}
    GET  /api/mcp/capabilities?serverId=                       -> {success, tools, prompts, resources}
    POST /api/chat                 {message, history, activeServerIds} -> NDJSON stream

Errors are ``{success: false, error}`` with status 400 for malformed
requests and unknown connections, 500 otherwise.
"""

from __future__ import annotations

import functools
import json
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from aiohttp import web

from ..errors import MCPError, NotConnectedError, ValidationError
from ..llm.base import LLMProviderError, RateLimitError
from ..llm.engine import CompletionEngine
from ..mcp.config import parse_server_config
from ..mcp.registry import ConnectionRegistry
from ..observability.logging import get_logger, log_context
from ..streaming.events import StreamEvent
from ..streaming.relay import relay_events

logger = get_logger(__name__)

REGISTRY_KEY = web.AppKey("registry", ConnectionRegistry)
ENGINE_KEY = web.AppKey("engine", object)

NDJSON_CONTENT_TYPE = "application/x-ndjson"

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def _fail(error: str, status: int, **extra: Any) -> web.Response:
    return web.json_response({"success": False, **extra, "error": error}, status=status)


async def _read_json(request: web.Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Request body must be valid JSON") from None
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _require(data: Any, key: str, message: Optional[str] = None) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise ValidationError(message or f"{key} is required", field=key)
    return value


def _api(handler: Handler) -> Handler:
    """Map host errors onto JSON error responses."""

    @functools.wraps(handler)
    async def wrapper(request: web.Request) -> web.StreamResponse:
        try:
            return await handler(request)
        except (ValidationError, NotConnectedError) as e:
            return _fail(e.message, 400)
        except MCPError as e:
            logger.warning("Request failed", path=request.path, error=e.message)
            return _fail(e.message, 500)
        except Exception as e:
            logger.exception("Unexpected error handling request", path=request.path)
            return _fail(str(e) or type(e).__name__, 500)

    return wrapper


def _registry(request: web.Request) -> ConnectionRegistry:
    return request.app[REGISTRY_KEY]


async def connect(request: web.Request) -> web.Response:
    try:
        body = await _read_json(request)
        config = parse_server_config(body.get("config"))
    except ValidationError as e:
        return _fail(e.message, 400, serverId="")

    try:
        with log_context(server_id=config.id):
            await _registry(request).connect(config)
    except Exception as e:
        if not isinstance(e, MCPError):
            logger.exception("Unexpected error connecting server", server_id=config.id)
        return _fail(str(e) or type(e).__name__, 500, serverId="")
    return web.json_response({"success": True, "serverId": config.id})


@_api
async def disconnect(request: web.Request) -> web.Response:
    body = await _read_json(request)
    server_id = _require(body, "serverId", "Server ID is required")
    if not await _registry(request).disconnect(server_id):
        raise NotConnectedError(server_id)
    return web.json_response({"success": True})


async def status(request: web.Request) -> web.Response:
    return web.json_response({"connectedServers": _registry(request).list_connected_ids()})


@_api
async def list_tools(request: web.Request) -> web.Response:
    server_id = _require(request.query, "serverId", "Server ID is required")
    tools = await _registry(request).list_tools(server_id)
    return web.json_response({"success": True, "tools": [t.to_dict() for t in tools]})


@_api
async def call_tool(request: web.Request) -> web.Response:
    body = await _read_json(request)
    server_id = _require(body, "serverId", "Server ID is required")
    tool_name = _require(body, "toolName", "Tool name is required")
    arguments = body.get("arguments") or {}
    if not isinstance(arguments, dict):
        raise ValidationError("arguments must be an object", field="arguments")
    content = await _registry(request).call_tool(server_id, tool_name, arguments)
    return web.json_response({"success": True, "content": content})


@_api
async def list_prompts(request: web.Request) -> web.Response:
    server_id = _require(request.query, "serverId", "Server ID is required")
    prompts = await _registry(request).list_prompts(server_id)
    return web.json_response({"success": True, "prompts": [p.to_dict() for p in prompts]})


@_api
async def get_prompt(request: web.Request) -> web.Response:
    body = await _read_json(request)
    server_id = _require(body, "serverId", "Server ID is required")
    prompt_name = _require(body, "promptName", "Prompt name is required")
    arguments = body.get("arguments") or None
    messages = await _registry(request).get_prompt(server_id, prompt_name, arguments)
    return web.json_response({"success": True, "messages": messages})


@_api
async def list_resources(request: web.Request) -> web.Response:
    server_id = _require(request.query, "serverId", "Server ID is required")
    resources = await _registry(request).list_resources(server_id)
    return web.json_response({"success": True, "resources": [r.to_dict() for r in resources]})


@_api
async def read_resource(request: web.Request) -> web.Response:
    body = await _read_json(request)
    server_id = _require(body, "serverId", "Server ID is required")
    uri = _require(body, "uri", "Resource URI is required")
    contents = await _registry(request).read_resource(server_id, uri)
    return web.json_response({"success": True, "contents": contents})


@_api
async def capabilities(request: web.Request) -> web.Response:
    server_id = _require(request.query, "serverId", "Server ID is required")
    caps = await _registry(request).get_capabilities(server_id)
    return web.json_response({"success": True, **caps.to_dict()})


def _chat_error(error: Exception) -> web.Response:
    status_code = getattr(error, "status_code", None)
    if isinstance(error, RateLimitError) or status_code == 429:
        return web.json_response({"error": "API rate limit exceeded (429)."}, status=429)
    status = 500
    if isinstance(error, LLMProviderError) and isinstance(status_code, int) and status_code >= 400:
        status = status_code
    return web.json_response({"error": f"API Error: {error}"}, status=status)


async def chat(request: web.Request) -> web.StreamResponse:
    """Relay one chat turn as newline-delimited JSON events.

    Failures before the first event are answered with a JSON error. Once the
    stream has started, a failure aborts the response.
    """
    engine: Optional[CompletionEngine] = request.app.get(ENGINE_KEY)  # type: ignore[assignment]
    if engine is None:
        return web.json_response({"error": "Chat engine is not configured"}, status=500)

    try:
        body = await _read_json(request)
        message = _require(body, "message", "message is required")
    except ValidationError as e:
        return web.json_response({"error": e.message}, status=400)
    history = body.get("history") or []
    server_ids = body.get("activeServerIds") or []
    if not isinstance(history, list) or not isinstance(server_ids, list):
        return web.json_response({"error": "history and activeServerIds must be arrays"}, status=400)

    events = engine.run_turn(message, history, server_ids)
    first: Optional[StreamEvent] = None
    try:
        first = await events.__anext__()
    except StopAsyncIteration:
        pass
    except Exception as e:
        logger.warning("Chat turn failed before streaming", error=str(e))
        return _chat_error(e)

    async def ordered() -> AsyncIterator[StreamEvent]:
        try:
            if first is not None:
                yield first
            async for event in events:
                yield event
        finally:
            await events.aclose()

    response = web.StreamResponse(
        status=200,
        headers={"Content-Type": f"{NDJSON_CONTENT_TYPE}; charset=utf-8", "Cache-Control": "no-cache"},
    )
    await response.prepare(request)
    try:
        await relay_events(ordered(), response.write)
    except Exception:
        logger.exception("Chat stream failed mid-turn")
        raise
    await finish_stream(response)
    return response


async def finish_stream(response: web.StreamResponse) -> None:
    """End a chat stream whose consumer may already be gone."""
    try:
        await response.write_eof()
    except ConnectionResetError:
        logger.info("Chat consumer disconnected before end of stream")


async def _start_registry(app: web.Application) -> None:
    await app[REGISTRY_KEY].start()


async def _shutdown_registry(app: web.Application) -> None:
    await app[REGISTRY_KEY].shutdown()


def build_app(
    registry: ConnectionRegistry,
    engine: Optional[CompletionEngine] = None,
) -> web.Application:
    """Create the HTTP application.

    The registry is started with the application and shut down with it,
    which closes every connection.
    """
    app = web.Application()
    app[REGISTRY_KEY] = registry
    if engine is not None:
        app[ENGINE_KEY] = engine

    app.router.add_post("/api/mcp/connect", connect)
    app.router.add_post("/api/mcp/disconnect", disconnect)
    app.router.add_get("/api/mcp/status", status)
    app.router.add_get("/api/mcp/tools", list_tools)
    app.router.add_post("/api/mcp/tools", call_tool)
    app.router.add_get("/api/mcp/prompts", list_prompts)
    app.router.add_post("/api/mcp/prompts", get_prompt)
    app.router.add_get("/api/mcp/resources", list_resources)
    app.router.add_post("/api/mcp/resources", read_resource)
    app.router.add_get("/api/mcp/capabilities", capabilities)
    app.router.add_post("/api/chat", chat)

    app.on_startup.append(_start_registry)
    app.on_cleanup.append(_shutdown_registry)
    return app
