"""
Kimi Chat-Completions Provider.

Implements IModelProvider over plain HTTP with httpx. One call posts the
whole conversation to ``{base}/chat/completions`` with streaming off and
returns the parsed first choice. Failed calls are never retried.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx

from ..domain.entities import ModelResponse, ToolDefinition
from ..domain.errors import ParseError, TransportError
from ..domain.ports import ICredentialProvider
from .base import BaseModelProvider, LLMProviderConfig

logger = logging.getLogger(__name__)


class KimiProvider(BaseModelProvider):
    """Chat-completions provider for Kimi/Moonshot endpoints.

    Usage:
        config = LLMProviderConfig(base_url="https://api.moonshot.cn/v1")
        provider = KimiProvider(config, StaticCredentialProvider("sk-..."))

        response = await provider.complete("kimi-k2.5", messages, tools)
    """

    def __init__(
        self,
        config: LLMProviderConfig,
        credentials: ICredentialProvider,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the provider.

        Args:
            config: Provider configuration
            credentials: Source of the bearer token
            client: HTTP client to use (created from config if omitted)
        """
        super().__init__(config, credentials)
        self.client = client or httpx.AsyncClient(timeout=config.timeout)

    async def complete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: Optional[list[ToolDefinition]] = None,
    ) -> ModelResponse:
        token = await self._bearer_token()
        payload = self._build_payload(model, messages, tools)
        data = await self._request("POST", "/chat/completions", token, json=payload)
        return self._parse_completion(data)

    async def list_models(self) -> list[dict[str, Any]]:
        token = await self._bearer_token()
        data = await self._request("GET", "/models", token)
        return self._parse_models(data)

    async def _request(self, method: str, path: str, token: str, **kwargs) -> Any:
        """Send one request and decode its JSON body.

        Raises:
            TransportError: Network failure or non-success status
            ParseError: Body is not valid JSON
        """
        headers = {**self.config.headers, "Authorization": f"Bearer {token}"}
        url = f"{self.base_url}{path}"

        try:
            response = await self.client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timed out: {e}", cause=e) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Request failed: {e}", cause=e) from e

        if not response.is_success:
            logger.error(f"{method} {path} returned {response.status_code}")
            raise TransportError(
                f"API error {response.status_code}: {response.text}",
                status_code=response.status_code,
                response_body=response.text,
            )

        try:
            return response.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise ParseError(f"Failed to parse response: {e}", cause=e) from e

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit - cleanup client."""
        await self.client.aclose()
