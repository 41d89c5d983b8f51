"""Base types and protocols for the chat-completion providers."""

from __future__ import annotations

import asyncio
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    TypeVar,
    runtime_checkable,
)

T = TypeVar("T")


class MessageRole(str, Enum):
    """Role of a message in a conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass
class ToolCall:
    """Represents a tool/function call from the LLM."""

    id: str
    name: str
    arguments: Dict[str, Any]


@dataclass
class ToolDefinition:
    """Definition of a tool that can be used by the LLM."""

    name: str
    description: str
    parameters: Dict[str, Any]  # JSON Schema for parameters


@dataclass
class Message:
    """A message in a conversation."""

    role: MessageRole
    content: str
    name: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    tool_call_id: Optional[str] = None  # For tool response messages

    def to_dict(self) -> Dict[str, Any]:
        """Convert message to dictionary format."""
        result: Dict[str, Any] = {
            "role": self.role.value,
            "content": self.content,
        }
        if self.name:
            result["name"] = self.name
        if self.tool_calls:
            result["tool_calls"] = [
                {"id": tc.id, "name": tc.name, "arguments": tc.arguments}
                for tc in self.tool_calls
            ]
        if self.tool_call_id:
            result["tool_call_id"] = self.tool_call_id
        return result


@dataclass
class LLMResponse:
    """Response from an LLM provider."""

    content: str
    model: str
    finish_reason: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    usage: Optional[Dict[str, int]] = None  # tokens used
    raw_response: Optional[Any] = None

    @property
    def has_tool_calls(self) -> bool:
        """Check if response contains tool calls."""
        return bool(self.tool_calls)


@dataclass
class RetryConfig:
    """Configuration for retry logic with exponential backoff."""

    max_retries: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 60.0  # seconds
    exponential_base: float = 2.0
    jitter: bool = True
    retryable_status_codes: tuple = field(default_factory=lambda: (429, 500, 502, 503, 504))

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for a given attempt number."""
        delay = min(
            self.base_delay * (self.exponential_base ** attempt),
            self.max_delay,
        )
        if self.jitter:
            delay = delay * (0.5 + random.random())
        return delay


@dataclass
class LLMConfig:
    """Configuration for an LLM provider."""

    model: str
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    timeout: float = 60.0
    retry_config: Optional[RetryConfig] = None
    extra_params: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.retry_config is None:
            self.retry_config = RetryConfig()


@runtime_checkable
class LLMProvider(Protocol):
    """Protocol for chat-completion providers used by the tool loop."""

    config: LLMConfig

    async def generate(
        self,
        messages: List[Message],
        tools: Optional[List[ToolDefinition]] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """Generate a response from the LLM.

        Args:
            messages: List of messages in the conversation.
            tools: Optional list of tool definitions for function calling.
            **kwargs: Additional provider-specific parameters.

        Returns:
            LLMResponse with the generated content.
        """
        ...


class BaseLLMProvider(ABC):
    """Abstract base class for LLM providers with common functionality."""

    def __init__(self, config: LLMConfig):
        self.config = config
        self._client: Any = None

    @abstractmethod
    async def generate(
        self,
        messages: List[Message],
        tools: Optional[List[ToolDefinition]] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """Generate a response from the LLM."""
        pass

    async def _retry_with_backoff(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Execute a function with retry logic and exponential backoff.

        Only provider errors carrying a retryable status code are retried.

        Raises:
            The last exception if all retries are exhausted.
        """
        retry_config = self.config.retry_config or RetryConfig()

        for attempt in range(retry_config.max_retries + 1):
            try:
                return await func(*args, **kwargs)
            except LLMProviderError as e:
                retryable = e.status_code in retry_config.retryable_status_codes
                if not retryable or attempt >= retry_config.max_retries:
                    raise
                await asyncio.sleep(retry_config.get_delay(attempt))

        raise RuntimeError("Unexpected state in retry logic")


class LLMProviderError(Exception):
    """Base exception for LLM provider errors."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        response: Optional[Any] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.response = response


class RateLimitError(LLMProviderError):
    """Exception raised when rate limited by the provider."""
    pass


class AuthenticationError(LLMProviderError):
    """Exception raised for authentication failures."""
    pass


class InvalidRequestError(LLMProviderError):
    """Exception raised for invalid requests."""
    pass
