"""Chat-completion providers and the tool loop engine.

The engine lives in :mod:`mcp_host.llm.engine`; it is not imported here
because it depends on the MCP package, which itself uses these base types.
"""

from .base import (
    AuthenticationError,
    BaseLLMProvider,
    InvalidRequestError,
    LLMConfig,
    LLMProvider,
    LLMProviderError,
    LLMResponse,
    Message,
    MessageRole,
    RateLimitError,
    RetryConfig,
    ToolCall,
    ToolDefinition,
)

__all__ = [
    "AuthenticationError",
    "BaseLLMProvider",
    "InvalidRequestError",
    "LLMConfig",
    "LLMProvider",
    "LLMProviderError",
    "LLMResponse",
    "Message",
    "MessageRole",
    "RateLimitError",
    "RetryConfig",
    "ToolCall",
    "ToolDefinition",
]
