"""MCP (Model Context Protocol) transport layer.

This module provides transport implementations for MCP communication:
- Stdio transport for subprocess-based MCP servers (``"stdio"``)
- Streamable HTTP transport for HTTP-based MCP servers (``"streamable-http"``)

Both speak JSON-RPC 2.0. A transport owns the request/response correlation
for its channel: ``send_request`` suspends until the response carrying the
same id arrives, and every pending request fails with TransportError once
the channel closes.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    AsyncIterator,
    Dict,
    List,
    Optional,
    Union,
)

import httpx

from ..errors import TransportError
from ..observability.logging import get_logger

logger = get_logger(__name__)

# Pipe servers may emit large single-line results (e.g. base64 resources).
STDIO_LINE_LIMIT = 16 * 1024 * 1024

METHOD_NOT_FOUND = -32601

SESSION_HEADER = "Mcp-Session-Id"


class TransportType(str, Enum):
    """Types of MCP transports."""

    STDIO = "stdio"
    STREAMABLE_HTTP = "streamable-http"


RequestId = Union[str, int]


@dataclass
class JSONRPCRequest:
    """JSON-RPC 2.0 request message.

    Attributes:
        method: The method to call.
        params: Optional parameters for the method.
        id: Request ID for matching responses.
    """

    method: str
    params: Optional[Dict[str, Any]] = None
    id: Optional[RequestId] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-RPC 2.0 format."""
        result: Dict[str, Any] = {
            "jsonrpc": "2.0",
            "method": self.method,
        }
        if self.params is not None:
            result["params"] = self.params
        if self.id is not None:
            result["id"] = self.id
        return result

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict())


@dataclass
class JSONRPCResponse:
    """JSON-RPC 2.0 response message.

    Attributes:
        result: The result of the method call (if successful).
        error: Error information (if failed).
        id: Request ID matching the original request.
    """

    id: Optional[RequestId] = None
    result: Optional[Any] = None
    error: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JSONRPCResponse":
        """Create from dictionary."""
        return cls(
            id=data.get("id"),
            result=data.get("result"),
            error=data.get("error"),
        )

    @classmethod
    def from_json(cls, json_str: str) -> "JSONRPCResponse":
        """Create from JSON string."""
        return cls.from_dict(json.loads(json_str))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-RPC 2.0 format."""
        data: Dict[str, Any] = {"jsonrpc": "2.0", "id": self.id}
        if self.error is not None:
            data["error"] = self.error
        else:
            data["result"] = self.result if self.result is not None else {}
        return data

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict())

    @property
    def is_error(self) -> bool:
        """Check if response is an error."""
        return self.error is not None

    def get_error_message(self) -> Optional[str]:
        """Get error message if this is an error response."""
        if self.error:
            return self.error.get("message", "Unknown error")
        return None

    def get_error_code(self) -> Optional[int]:
        """Get error code if this is an error response."""
        if self.error:
            return self.error.get("code")
        return None


@dataclass
class JSONRPCNotification:
    """JSON-RPC 2.0 notification message (no response expected).

    Attributes:
        method: The method to call.
        params: Optional parameters for the method.
    """

    method: str
    params: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-RPC 2.0 format."""
        result: Dict[str, Any] = {
            "jsonrpc": "2.0",
            "method": self.method,
        }
        if self.params is not None:
            result["params"] = self.params
        return result

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict())


class Transport(ABC):
    """Abstract base class for MCP transports.

    Transports handle the low-level communication with MCP servers,
    providing methods for sending requests and receiving responses.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open the channel to the MCP server.

        Raises:
            TransportError: If the channel cannot be opened.
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the channel, failing every pending request."""
        pass

    @abstractmethod
    async def send_request(
        self,
        request: JSONRPCRequest,
        timeout: Optional[float] = None,
    ) -> JSONRPCResponse:
        """Send a request and wait for the response with the same id.

        Args:
            request: The JSON-RPC request to send. Its id must be set.
            timeout: Seconds to wait; the transport default when omitted.

        Returns:
            The JSON-RPC response.

        Raises:
            TransportError: On timeout or when the channel fails.
        """
        pass

    @abstractmethod
    async def send_notification(
        self,
        notification: JSONRPCNotification,
    ) -> None:
        """Send a notification (no response expected).

        Args:
            notification: The JSON-RPC notification to send.
        """
        pass

    @abstractmethod
    def receive_notifications(self) -> AsyncIterator[JSONRPCNotification]:
        """Iterate over notifications sent by the server until the channel closes."""
        pass

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if transport is connected."""
        pass


class _NotificationQueue:
    """Notification queue that ends iteration once the channel is closed."""

    _CLOSED = object()

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()

    def put(self, notification: JSONRPCNotification) -> None:
        self._queue.put_nowait(notification)

    def close(self) -> None:
        self._queue.put_nowait(self._CLOSED)

    async def __aiter__(self) -> AsyncIterator[JSONRPCNotification]:
        while True:
            item = await self._queue.get()
            if item is self._CLOSED:
                return
            yield item


@dataclass
class StdioTransportConfig:
    """Configuration for stdio transport.

    Attributes:
        command: Command to execute to start the MCP server.
        args: Command line arguments.
        env: Environment overrides merged over the parent environment.
        cwd: Working directory for the process.
        timeout: Default request timeout in seconds.
        close_timeout: Seconds to wait for exit before killing the process.
    """

    command: str
    args: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    cwd: Optional[str] = None
    timeout: float = 30.0
    close_timeout: float = 5.0


class StdioTransport(Transport):
    """Stdio-based transport for MCP servers.

    Communicates with MCP servers via stdin/stdout of a subprocess.
    Uses newline-delimited JSON for message framing.
    """

    def __init__(self, config: StdioTransportConfig):
        """Initialize the stdio transport.

        Args:
            config: Configuration for the transport.
        """
        self.config = config
        self._process: Optional[asyncio.subprocess.Process] = None
        self._pending_requests: Dict[RequestId, asyncio.Future[JSONRPCResponse]] = {}
        self._notifications = _NotificationQueue()
        self._read_task: Optional[asyncio.Task[None]] = None
        self._stderr_task: Optional[asyncio.Task[None]] = None
        self._write_lock = asyncio.Lock()
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Check if transport is connected."""
        return self._connected and self._process is not None

    @property
    def pid(self) -> Optional[int]:
        """Process id of the server, if running."""
        return self._process.pid if self._process else None

    async def connect(self) -> None:
        """Start the MCP server process."""
        if self._connected:
            return

        cmd = [self.config.command] + list(self.config.args)
        env = {**os.environ, **self.config.env}
        try:
            self._process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                cwd=self.config.cwd,
                limit=STDIO_LINE_LIMIT,
            )
        except (OSError, ValueError) as e:
            raise TransportError(f"Failed to start MCP server: {e}") from e

        self._connected = True
        self._read_task = asyncio.create_task(self._read_loop())
        if self._process.stderr is not None:
            self._stderr_task = asyncio.create_task(self._drain_stderr())
        logger.debug("Started MCP server process", command=self.config.command, pid=self.pid)

    async def disconnect(self) -> None:
        """Stop the MCP server process.

        The process gets ``close_timeout`` seconds to exit after SIGTERM and
        is killed afterwards. Handles are released even if the process is
        unresponsive or already gone.
        """
        self._connected = False
        process, self._process = self._process, None

        if process is not None:
            if process.stdin is not None:
                with contextlib.suppress(OSError, RuntimeError):
                    process.stdin.close()
            try:
                process.terminate()
                await asyncio.wait_for(process.wait(), timeout=self.config.close_timeout)
            except ProcessLookupError:
                pass
            except asyncio.TimeoutError:
                logger.warning(
                    "MCP server did not exit in time, killing it",
                    command=self.config.command,
                )
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()

        for task in (self._read_task, self._stderr_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._read_task = None
        self._stderr_task = None

        self._fail_pending(TransportError("Transport closed"))
        self._notifications.close()

    async def send_request(
        self,
        request: JSONRPCRequest,
        timeout: Optional[float] = None,
    ) -> JSONRPCResponse:
        """Send a request and wait for its response."""
        if not self.is_connected:
            raise TransportError("Transport not connected")
        if request.id is None:
            raise ValueError("Request id must be set")

        future: asyncio.Future[JSONRPCResponse] = asyncio.get_running_loop().create_future()
        self._pending_requests[request.id] = future
        wait = timeout if timeout is not None else self.config.timeout

        try:
            await self._write(request.to_dict())
            return await asyncio.wait_for(future, timeout=wait)
        except asyncio.TimeoutError:
            raise TransportError(f"Request timed out after {wait}s") from None
        finally:
            self._pending_requests.pop(request.id, None)

    async def send_notification(
        self,
        notification: JSONRPCNotification,
    ) -> None:
        """Send a notification (no response expected)."""
        if not self.is_connected:
            raise TransportError("Transport not connected")
        await self._write(notification.to_dict())

    async def receive_notifications(self) -> AsyncIterator[JSONRPCNotification]:
        """Receive incoming notifications from the server."""
        async for notification in self._notifications:
            yield notification

    async def _write(self, message: Dict[str, Any]) -> None:
        """Write one framed message; writes never interleave."""
        process = self._process
        if process is None or process.stdin is None:
            raise TransportError("Transport not connected")
        data = (json.dumps(message) + "\n").encode("utf-8")
        async with self._write_lock:
            try:
                process.stdin.write(data)
                await process.stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as e:
                self._connected = False
                raise TransportError(f"MCP server closed its input: {e}") from e

    async def _read_loop(self) -> None:
        """Background task dispatching messages read from the process."""
        process = self._process
        if process is None or process.stdout is None:
            return

        try:
            while True:
                try:
                    line = await process.stdout.readline()
                except ValueError as e:
                    logger.error("MCP server sent an oversized line", error=str(e))
                    break
                if not line:
                    break

                text = line.decode("utf-8", errors="replace").strip()
                if not text:
                    continue
                try:
                    data = json.loads(text)
                except json.JSONDecodeError:
                    logger.warning("Skipping malformed line from MCP server", line=text[:200])
                    continue

                for message in data if isinstance(data, list) else [data]:
                    if isinstance(message, dict):
                        await self._dispatch(message)
        finally:
            self._connected = False
            self._fail_pending(TransportError("MCP server closed the connection"))
            self._notifications.close()

    async def _dispatch(self, data: Dict[str, Any]) -> None:
        """Route one inbound message to a pending request or the queue."""
        if "method" in data:
            if "id" in data:
                await self._answer_server_request(data)
            else:
                self._notifications.put(
                    JSONRPCNotification(method=data["method"], params=data.get("params"))
                )
            return

        response = JSONRPCResponse.from_dict(data)
        future = self._pending_requests.get(response.id) if response.id is not None else None
        if future is None:
            logger.debug("Discarding response for unknown request", request_id=response.id)
            return
        if not future.done():
            future.set_result(response)

    async def _answer_server_request(self, data: Dict[str, Any]) -> None:
        """Answer a request initiated by the server."""
        if data["method"] == "ping":
            reply = JSONRPCResponse(id=data["id"], result={})
        else:
            reply = JSONRPCResponse(
                id=data["id"],
                error={"code": METHOD_NOT_FOUND, "message": f"Method not found: {data['method']}"},
            )
        try:
            await self._write(reply.to_dict())
        except TransportError as e:
            logger.debug("Could not answer server request", method=data["method"], error=str(e))

    async def _drain_stderr(self) -> None:
        """Forward the server's stderr to debug logs."""
        process = self._process
        if process is None or process.stderr is None:
            return
        stderr = process.stderr
        while True:
            try:
                line = await stderr.readline()
            except ValueError:
                continue
            if not line:
                return
            logger.debug(
                "MCP server stderr",
                command=self.config.command,
                line=line.decode("utf-8", errors="replace").rstrip(),
            )

    def _fail_pending(self, error: TransportError) -> None:
        for future in self._pending_requests.values():
            if not future.done():
                future.set_exception(error)
        self._pending_requests.clear()


@dataclass
class HTTPTransportConfig:
    """Configuration for streamable HTTP transport.

    Attributes:
        url: Endpoint URL of the MCP server.
        headers: Additional HTTP headers sent with every request.
        timeout: Default request timeout in seconds.
    """

    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: float = 30.0


class StreamableHTTPTransport(Transport):
    """Streamable HTTP transport for MCP servers.

    Every message is POSTed to the endpoint. The server answers with either
    a JSON body or a ``text/event-stream`` body carrying the response (and
    possibly notifications) as SSE ``data:`` fields.
    """

    def __init__(
        self,
        config: HTTPTransportConfig,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the HTTP transport.

        Args:
            config: Configuration for the transport.
            http_transport: Optional httpx transport, e.g. for tests.
        """
        self.config = config
        self._http_transport = http_transport
        self._client: Optional[httpx.AsyncClient] = None
        self._session_id: Optional[str] = None
        self._notifications = _NotificationQueue()
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Check if transport is connected."""
        return self._connected and self._client is not None

    @property
    def session_id(self) -> Optional[str]:
        """Session id assigned by the server, if any."""
        return self._session_id

    async def connect(self) -> None:
        """Open the HTTP client. No request is made until the handshake."""
        if self._connected:
            return
        self._client = httpx.AsyncClient(
            headers=self.config.headers,
            timeout=self.config.timeout,
            transport=self._http_transport,
        )
        self._connected = True

    async def disconnect(self) -> None:
        """Terminate the session and close the HTTP client."""
        self._connected = False
        client, self._client = self._client, None
        if client is not None:
            if self._session_id:
                try:
                    await client.delete(self.config.url, headers=self._session_headers())
                except httpx.HTTPError as e:
                    logger.debug("Session termination failed", url=self.config.url, error=str(e))
            await client.aclose()
        self._session_id = None
        self._notifications.close()

    async def send_request(
        self,
        request: JSONRPCRequest,
        timeout: Optional[float] = None,
    ) -> JSONRPCResponse:
        """Send a request via HTTP POST and read its response."""
        client = self._require_client()
        if request.id is None:
            raise ValueError("Request id must be set")
        wait = timeout if timeout is not None else self.config.timeout

        try:
            async with client.stream(
                "POST",
                self.config.url,
                json=request.to_dict(),
                headers=self._post_headers(),
                timeout=wait,
            ) as response:
                await self._check_status(response)
                content_type = response.headers.get("content-type", "")
                if content_type.startswith("text/event-stream"):
                    async for message in self._iter_sse(response):
                        found = self._dispatch(message, request.id)
                        if found is not None:
                            return found
                    raise TransportError("Event stream ended without a response")

                body = await response.aread()
                for message in self._parse_body(body):
                    found = self._dispatch(message, request.id)
                    if found is not None:
                        return found
                raise TransportError("Server returned no response for the request")

        except httpx.TimeoutException:
            raise TransportError(f"Request timed out after {wait}s") from None
        except httpx.HTTPError as e:
            raise TransportError(f"Request failed: {e}") from e

    async def send_notification(
        self,
        notification: JSONRPCNotification,
    ) -> None:
        """Send a notification via HTTP POST."""
        client = self._require_client()
        try:
            response = await client.post(
                self.config.url,
                json=notification.to_dict(),
                headers=self._post_headers(),
            )
        except httpx.HTTPError as e:
            raise TransportError(f"Notification failed: {e}") from e
        self._track_session(response)
        if response.status_code >= 400:
            raise TransportError(
                f"HTTP error: {response.status_code}", code=response.status_code
            )

    async def receive_notifications(self) -> AsyncIterator[JSONRPCNotification]:
        """Receive notifications carried in response bodies."""
        async for notification in self._notifications:
            yield notification

    def _require_client(self) -> httpx.AsyncClient:
        if not self._connected or self._client is None:
            raise TransportError("Transport not connected")
        return self._client

    def _session_headers(self) -> Dict[str, str]:
        return {SESSION_HEADER: self._session_id} if self._session_id else {}

    def _post_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
            **self._session_headers(),
        }

    def _track_session(self, response: httpx.Response) -> None:
        session_id = response.headers.get(SESSION_HEADER)
        if session_id:
            self._session_id = session_id

    async def _check_status(self, response: httpx.Response) -> None:
        self._track_session(response)
        if response.status_code >= 400:
            await response.aread()
            raise TransportError(
                f"HTTP error: {response.status_code}",
                code=response.status_code,
                data=response.text[:500],
            )

    @staticmethod
    def _parse_body(body: bytes) -> List[Dict[str, Any]]:
        if not body.strip():
            return []
        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise TransportError(f"Invalid JSON response: {e}") from e
        items = data if isinstance(data, list) else [data]
        return [item for item in items if isinstance(item, dict)]

    @staticmethod
    async def _iter_sse(response: httpx.Response) -> AsyncIterator[Dict[str, Any]]:
        """Yield JSON-RPC messages from the ``data:`` fields of an SSE body."""
        data_lines: List[str] = []
        async for line in response.aiter_lines():
            if line.startswith("data:"):
                data_lines.append(line[5:].lstrip())
                continue
            if line or not data_lines:
                continue
            payload = "\n".join(data_lines)
            data_lines = []
            try:
                data = json.loads(payload)
            except json.JSONDecodeError:
                logger.warning("Skipping malformed event from MCP server", data=payload[:200])
                continue
            for item in data if isinstance(data, list) else [data]:
                if isinstance(item, dict):
                    yield item

    def _dispatch(
        self,
        message: Dict[str, Any],
        expected_id: RequestId,
    ) -> Optional[JSONRPCResponse]:
        if "method" in message:
            if "id" in message:
                logger.debug("Ignoring server request over HTTP", method=message["method"])
            else:
                self._notifications.put(
                    JSONRPCNotification(method=message["method"], params=message.get("params"))
                )
            return None
        if message.get("id") == expected_id:
            return JSONRPCResponse.from_dict(message)
        logger.debug("Discarding response for unknown request", request_id=message.get("id"))
        return None


TransportConfig = Union[StdioTransportConfig, HTTPTransportConfig]


def create_transport(config: TransportConfig) -> Transport:
    """Factory function to create a transport.

    Args:
        config: Configuration for the transport; its type selects the variant.

    Returns:
        A Transport instance.
    """
    if isinstance(config, StdioTransportConfig):
        return StdioTransport(config)
    if isinstance(config, HTTPTransportConfig):
        return StreamableHTTPTransport(config)
    raise ValueError(f"Unknown transport config: {type(config).__name__}")
