"""OpenAI chat-completion provider used by the tool loop."""

from __future__ import annotations

import json
from typing import Any, Dict, List, NoReturn, Optional

import openai
from openai import AsyncOpenAI

from ..base import (
    AuthenticationError,
    BaseLLMProvider,
    InvalidRequestError,
    LLMConfig,
    LLMProviderError,
    LLMResponse,
    Message,
    MessageRole,
    RateLimitError,
    ToolCall,
    ToolDefinition,
)


class OpenAIProvider(BaseLLMProvider):
    """OpenAI API provider.

    Works with any OpenAI-compatible endpoint via ``LLMConfig.base_url``.
    """

    def __init__(self, config: LLMConfig, client: Optional[AsyncOpenAI] = None):
        """Initialize OpenAI provider.

        Args:
            config: LLM configuration with model, api_key, etc.
            client: Optional preconfigured client.
        """
        super().__init__(config)
        self._client = client or AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
        )

    def _format_messages(self, messages: List[Message]) -> List[Dict[str, Any]]:
        """Format messages for OpenAI API."""
        formatted = []
        for msg in messages:
            message_dict: Dict[str, Any] = {
                "role": msg.role.value,
                "content": msg.content,
            }

            if msg.tool_call_id and msg.role == MessageRole.TOOL:
                message_dict["tool_call_id"] = msg.tool_call_id

            if msg.tool_calls and msg.role == MessageRole.ASSISTANT:
                message_dict["tool_calls"] = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {
                            "name": tc.name,
                            "arguments": json.dumps(tc.arguments),
                        },
                    }
                    for tc in msg.tool_calls
                ]

            formatted.append(message_dict)
        return formatted

    def _format_tools(
        self, tools: Optional[List[ToolDefinition]]
    ) -> Optional[List[Dict[str, Any]]]:
        """Format tools for OpenAI API."""
        if not tools:
            return None
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters or {"type": "object", "properties": {}},
                },
            }
            for tool in tools
        ]

    def _handle_error(self, error: Exception) -> NoReturn:
        """Convert OpenAI errors to our error types."""
        if isinstance(error, openai.RateLimitError):
            raise RateLimitError(str(error), provider="openai", status_code=429) from error
        if isinstance(error, openai.AuthenticationError):
            raise AuthenticationError(str(error), provider="openai", status_code=401) from error
        if isinstance(error, openai.BadRequestError):
            raise InvalidRequestError(str(error), provider="openai", status_code=400) from error
        if isinstance(error, openai.APIStatusError):
            raise LLMProviderError(
                str(error), provider="openai", status_code=error.status_code
            ) from error
        raise LLMProviderError(str(error), provider="openai") from error

    @staticmethod
    def _parse_arguments(raw: Any) -> Dict[str, Any]:
        if isinstance(raw, dict):
            return raw
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return {"_raw": raw}
        return parsed if isinstance(parsed, dict) else {"value": parsed}

    async def generate(
        self,
        messages: List[Message],
        tools: Optional[List[ToolDefinition]] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """Generate a response using OpenAI API.

        Args:
            messages: List of messages in the conversation.
            tools: Optional list of tool definitions.
            **kwargs: Additional parameters passed to the API.

        Returns:
            LLMResponse with the generated content.
        """
        async def _make_request() -> LLMResponse:
            request_params: Dict[str, Any] = {
                "model": self.config.model,
                "messages": self._format_messages(messages),
                "temperature": self.config.temperature,
            }
            if self.config.max_tokens:
                request_params["max_tokens"] = self.config.max_tokens

            formatted_tools = self._format_tools(tools)
            if formatted_tools:
                request_params["tools"] = formatted_tools

            request_params.update(self.config.extra_params)
            request_params.update(kwargs)

            try:
                response = await self._client.chat.completions.create(**request_params)
            except openai.OpenAIError as e:
                self._handle_error(e)

            choice = response.choices[0]
            message = choice.message

            tool_calls = None
            if message.tool_calls:
                tool_calls = [
                    ToolCall(
                        id=tc.id,
                        name=tc.function.name,
                        arguments=self._parse_arguments(tc.function.arguments),
                    )
                    for tc in message.tool_calls
                ]

            return LLMResponse(
                content=message.content or "",
                model=response.model,
                finish_reason=choice.finish_reason,
                tool_calls=tool_calls,
                usage={
                    "prompt_tokens": response.usage.prompt_tokens,
                    "completion_tokens": response.usage.completion_tokens,
                    "total_tokens": response.usage.total_tokens,
                }
                if response.usage
                else None,
                raw_response=response,
            )

        return await self._retry_with_backoff(_make_request)
