"""
OpenAI SDK Provider.

Implements IModelProvider with the official ``openai`` client for any
OpenAI-compatible endpoint. SDK retries are disabled; a failed round
fails the turn.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import openai
from openai import AsyncOpenAI

from ..domain.entities import ModelResponse, ToolDefinition
from ..domain.errors import TransportError
from ..domain.ports import ICredentialProvider
from .base import BaseModelProvider, LLMProviderConfig

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseModelProvider):
    """OpenAI-compatible provider implementation.

    Extra message fields such as ``reasoning_content`` survive because
    the SDK keeps unknown response fields and the body is parsed from
    its dumped form.

    Usage:
        config = LLMProviderConfig(base_url="https://api.moonshot.cn/v1")
        provider = OpenAIProvider(config, StaticCredentialProvider("sk-..."))

        response = await provider.complete("kimi-k2.5", messages, tools)
    """

    def __init__(self, config: LLMProviderConfig, credentials: ICredentialProvider):
        """Initialize the OpenAI provider.

        Args:
            config: Provider configuration
            credentials: Source of the API key / bearer token
        """
        super().__init__(config, credentials)
        self._client: Optional[AsyncOpenAI] = None
        self._client_token: Optional[str] = None

    def _client_for(self, token: str) -> AsyncOpenAI:
        """Client bound to the current token; rebuilt when the token changes."""
        if self._client is None or self._client_token != token:
            self._client = AsyncOpenAI(
                api_key=token,
                base_url=self.base_url,
                timeout=self.config.timeout,
                max_retries=0,
                default_headers=self.config.headers or None,
            )
            self._client_token = token
        return self._client

    async def complete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: Optional[list[ToolDefinition]] = None,
    ) -> ModelResponse:
        client = self._client_for(await self._bearer_token())
        payload = self._build_payload(model, messages, tools)
        payload.pop("stream", None)

        try:
            completion = await client.chat.completions.create(**payload)
        except openai.APIStatusError as e:
            raise TransportError(
                f"API error {e.status_code}: {e.message}",
                status_code=e.status_code,
                cause=e,
            ) from e
        except openai.APITimeoutError as e:
            raise TransportError(f"Request timed out: {e}", cause=e) from e
        except openai.APIError as e:
            raise TransportError(f"Request failed: {e}", cause=e) from e

        return self._parse_completion(completion.model_dump())

    async def list_models(self) -> list[dict[str, Any]]:
        client = self._client_for(await self._bearer_token())
        try:
            page = await client.models.list()
        except openai.APIStatusError as e:
            raise TransportError(
                f"API error {e.status_code}: {e.message}",
                status_code=e.status_code,
                cause=e,
            ) from e
        except openai.APIError as e:
            raise TransportError(f"Request failed: {e}", cause=e) from e

        return [model.model_dump() for model in page.data]

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
