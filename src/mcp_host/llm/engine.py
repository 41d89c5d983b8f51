"""Chat-completion engine producing relay events for one turn.

The engine is the black box behind the chat endpoint: given the user's
message, the prior history and the active servers, it yields text fragments
and tool invocation events in the order they happen. Tool calls of a turn
run one at a time, in the order the model requested them.
"""

from __future__ import annotations

import uuid
from abc import abstractmethod
from typing import (
    AsyncIterator,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

from ..errors import MCPError
from ..mcp.registry import ConnectionRegistry
from ..mcp.tools import RegistryToolset
from ..observability.logging import get_logger
from ..streaming.events import CallEvent, ResultEvent, StreamEvent, TextEvent
from .base import LLMProvider, Message, MessageRole

logger = get_logger(__name__)

DEFAULT_MAX_TOOL_ROUNDS = 8


@runtime_checkable
class CompletionEngine(Protocol):
    """Produces the event stream of one chat turn."""

    @abstractmethod
    def run_turn(
        self,
        message: str,
        history: Sequence[Dict[str, str]],
        server_ids: Iterable[str],
    ) -> AsyncIterator[StreamEvent]:
        """Yield the events of one turn.

        Args:
            message: The user's new message.
            history: Prior turns as ``{"role": "user"|"model", "text": ...}``.
            server_ids: Servers whose tools the model may use.
        """
        ...


def history_to_messages(history: Sequence[Dict[str, str]]) -> List[Message]:
    """Convert UI history entries into provider messages."""
    messages = []
    for entry in history:
        text = entry.get("text") or ""
        role = MessageRole.USER if entry.get("role") == "user" else MessageRole.ASSISTANT
        messages.append(Message(role=role, content=text))
    return messages


class ToolLoopEngine:
    """Runs the model, executing requested tools through the registry.

    Each round asks the provider for a response; any text becomes a text
    event, and each tool call becomes a call event, a registry invocation
    and a result event. The loop ends when the model stops asking for tools
    or ``max_tool_rounds`` is reached.
    """

    def __init__(
        self,
        provider: LLMProvider,
        registry: ConnectionRegistry,
        max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS,
        system_prompt: Optional[str] = None,
        tool_timeout: Optional[float] = None,
    ):
        """Initialize the engine.

        Args:
            provider: The chat-completion provider.
            registry: Registry used to list and invoke tools.
            max_tool_rounds: Upper bound on model/tool round trips per turn.
            system_prompt: Optional system message prepended to every turn.
            tool_timeout: Optional deadline in seconds for each tool call.
        """
        self.provider = provider
        self.registry = registry
        self.max_tool_rounds = max_tool_rounds
        self.system_prompt = system_prompt
        self.tool_timeout = tool_timeout

    async def run_turn(
        self,
        message: str,
        history: Sequence[Dict[str, str]],
        server_ids: Iterable[str],
    ) -> AsyncIterator[StreamEvent]:
        """Yield the events of one turn."""
        log = logger.bind(turn_id=uuid.uuid4().hex[:12])
        toolset = await RegistryToolset.build(self.registry, server_ids)
        definitions = toolset.definitions() or None

        messages: List[Message] = []
        if self.system_prompt:
            messages.append(Message(role=MessageRole.SYSTEM, content=self.system_prompt))
        messages.extend(history_to_messages(history))
        messages.append(Message(role=MessageRole.USER, content=message))

        log.debug("Starting chat turn", tools=len(toolset))
        for _ in range(self.max_tool_rounds):
            response = await self.provider.generate(messages, tools=definitions)

            if response.content:
                yield TextEvent(content=response.content)

            if not response.has_tool_calls:
                return

            messages.append(
                Message(
                    role=MessageRole.ASSISTANT,
                    content=response.content,
                    tool_calls=response.tool_calls,
                )
            )

            for call in response.tool_calls or []:
                yield CallEvent(tool_name=call.name, arguments=call.arguments)
                try:
                    result = await toolset.call(
                        call.name, call.arguments, timeout=self.tool_timeout
                    )
                except MCPError as e:
                    log.warning("Tool call failed", tool=call.name, error=str(e))
                    result = {"error": str(e)}
                yield ResultEvent(tool_name=call.name, result=result)
                messages.append(
                    Message(
                        role=MessageRole.TOOL,
                        content=_result_text(result),
                        tool_call_id=call.id,
                    )
                )

        log.warning("Tool round limit reached", rounds=self.max_tool_rounds)


def _result_text(result: object) -> str:
    """Flatten a tool result into the text handed back to the model."""
    if isinstance(result, list):
        parts = []
        for item in result:
            if isinstance(item, dict) and item.get("type") == "text":
                parts.append(str(item.get("text", "")))
            else:
                parts.append(repr(item))
        return "\n".join(parts)
    if isinstance(result, dict) and "error" in result:
        return f"Error: {result['error']}"
    return str(result)
