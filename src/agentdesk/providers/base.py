"""
Base Model Provider Implementation.

Provides functionality shared by the chat-completions providers:
request payloads, bearer tokens and response parsing.
"""

from __future__ import annotations

import logging
from abc import ABC
from dataclasses import dataclass, field
from typing import Any, Optional

from ..domain.entities import ModelResponse, TokenUsage, ToolCall, ToolDefinition
from ..domain.errors import AuthError, ParseError
from ..domain.ports import ICredentialProvider, IModelProvider

logger = logging.getLogger(__name__)


@dataclass
class LLMProviderConfig:
    """Configuration for model providers.

    Attributes:
        base_url: Endpoint base URL (``.../v1``)
        model: Default model name
        timeout: Request timeout in seconds
        headers: Extra headers sent with every request
    """

    base_url: str
    model: str = "kimi-k2.5"
    timeout: float = 120.0
    headers: dict[str, str] = field(default_factory=dict)


class BaseModelProvider(IModelProvider, ABC):
    """Base class for provider implementations.

    Subclasses perform the HTTP call; parsing of the chat-completions
    response body lives here so every provider reports the same
    ModelResponse and the same ParseError messages.
    """

    def __init__(self, config: LLMProviderConfig, credentials: ICredentialProvider):
        """Initialize the provider.

        Args:
            config: Provider configuration
            credentials: Source of the bearer token
        """
        self.config = config
        self.credentials = credentials

    @property
    def model_name(self) -> str:
        return self.config.model

    @property
    def base_url(self) -> str:
        return self.config.base_url.rstrip("/")

    async def _bearer_token(self) -> str:
        """Get a usable token.

        Raises:
            AuthError: The credential provider has no valid token
        """
        token = await self.credentials.get_valid_token()
        if not token:
            raise AuthError()
        return token

    def _build_payload(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: Optional[list[ToolDefinition]],
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model or self.config.model,
            "messages": messages,
            "stream": False,
        }
        if tools:
            payload["tools"] = [tool.to_openai_format() for tool in tools]
            payload["tool_choice"] = "auto"
        return payload

    def _parse_completion(self, data: Any) -> ModelResponse:
        """Parse a chat-completions body into a ModelResponse.

        Raises:
            ParseError: ``choices[0].message`` is missing or malformed
        """
        if not isinstance(data, dict):
            raise ParseError("Failed to parse response: body is not an object")

        choices = data.get("choices")
        message = None
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            message = choices[0].get("message")
        if not isinstance(message, dict):
            raise ParseError("No message in response")

        content = message.get("content")
        reasoning = message.get("reasoning_content")
        raw_calls = message.get("tool_calls")
        if raw_calls is not None and not isinstance(raw_calls, list):
            raise ParseError("Malformed tool_calls in response")

        tool_calls = [
            ToolCall.from_api(item) for item in raw_calls or [] if isinstance(item, dict)
        ]
        usage = TokenUsage.from_api(data.get("usage"))

        logger.debug(
            f"Model response: {len(tool_calls)} tool call(s), "
            f"{usage.total_tokens} tokens"
        )
        return ModelResponse(
            content=content if isinstance(content, str) else "",
            reasoning=reasoning if isinstance(reasoning, str) else "",
            tool_calls=tool_calls,
            usage=usage,
        )

    def _parse_models(self, data: Any) -> list[dict[str, Any]]:
        """Extract the ``data`` array of a models listing."""
        if not isinstance(data, dict):
            raise ParseError("Failed to parse response: body is not an object")
        models = data.get("data")
        if not isinstance(models, list):
            return []
        return [m for m in models if isinstance(m, dict)]
