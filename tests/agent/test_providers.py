"""
Unit tests for model providers and credentials.

The Kimi provider is driven through httpx.MockTransport so request
payloads and error mapping are checked without a network.
"""

import json
import time
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from agentdesk.domain.entities import ToolDefinition
from agentdesk.domain.errors import AuthError, ParseError, TransportError
from agentdesk.providers.base import LLMProviderConfig
from agentdesk.providers.credentials import (
    StaticCredentialProvider,
    TokenFileCredentialProvider,
)
from agentdesk.providers.kimi import KimiProvider
from agentdesk.providers.openai import OpenAIProvider

BASE_URL = "https://api.example.test/v1"


def _completion(message, usage=None):
    return {
        "id": "chatcmpl-1",
        "choices": [{"index": 0, "message": message, "finish_reason": "stop"}],
        "usage": usage or {"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15},
    }


def _provider(handler, api_key="sk-test"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return KimiProvider(
        LLMProviderConfig(base_url=BASE_URL + "/"),
        StaticCredentialProvider(api_key),
        client=client,
    )


class TestKimiProvider:
    """Tests for the chat-completions call."""

    @pytest.mark.asyncio
    async def test_request_payload(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_completion({"role": "assistant", "content": "hi"}))

        tool = ToolDefinition(
            name="ReadFile",
            description="Read a file",
            parameters={"type": "object", "properties": {}},
        )
        provider = _provider(handler)

        response = await provider.complete(
            "kimi-k2.5", [{"role": "user", "content": "hello"}], [tool]
        )

        assert seen["url"] == f"{BASE_URL}/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["stream"] is False
        assert seen["body"]["tool_choice"] == "auto"
        assert seen["body"]["tools"][0]["function"]["name"] == "ReadFile"
        assert response.content == "hi"
        assert response.usage.total_tokens == 15
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_parses_tool_calls_and_reasoning(self):
        message = {
            "role": "assistant",
            "content": None,
            "reasoning_content": "I should read it.",
            "tool_calls": [
                {
                    "id": "call_1",
                    "type": "function",
                    "function": {"name": "ReadFile", "arguments": '{"path": "a.txt"}'},
                },
                {"type": "function", "function": {"name": "Shell", "arguments": ""}},
            ],
        }
        provider = _provider(lambda request: httpx.Response(200, json=_completion(message)))

        response = await provider.complete("kimi-k2.5", [], None)

        assert response.content == ""
        assert response.reasoning == "I should read it."
        assert [c.name for c in response.tool_calls] == ["ReadFile", "Shell"]
        assert response.tool_calls[0].arguments == {"path": "a.txt"}
        assert response.tool_calls[1].arguments == {}
        assert response.tool_calls[1].id

    @pytest.mark.asyncio
    async def test_usage_total_defaults_to_sum(self):
        body = _completion(
            {"role": "assistant", "content": "x"},
            usage={"prompt_tokens": 7, "completion_tokens": 2},
        )
        provider = _provider(lambda request: httpx.Response(200, json=body))

        response = await provider.complete("kimi-k2.5", [], None)

        assert response.usage.total_tokens == 9

    @pytest.mark.asyncio
    async def test_error_status(self):
        provider = _provider(lambda request: httpx.Response(429, text="rate limited"))

        with pytest.raises(TransportError) as exc:
            await provider.complete("kimi-k2.5", [], None)

        assert exc.value.status_code == 429
        assert exc.value.message == "API error 429: rate limited"

    @pytest.mark.asyncio
    async def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = _provider(handler)

        with pytest.raises(TransportError):
            await provider.complete("kimi-k2.5", [], None)

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        provider = _provider(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(ParseError):
            await provider.complete("kimi-k2.5", [], None)

    @pytest.mark.asyncio
    async def test_missing_message(self):
        provider = _provider(lambda request: httpx.Response(200, json={"choices": []}))

        with pytest.raises(ParseError) as exc:
            await provider.complete("kimi-k2.5", [], None)
        assert exc.value.message == "No message in response"

    @pytest.mark.asyncio
    async def test_no_token_raises_auth_error(self):
        called = False

        def handler(request):
            nonlocal called
            called = True
            return httpx.Response(200, json={})

        provider = _provider(handler, api_key="")

        with pytest.raises(AuthError):
            await provider.complete("kimi-k2.5", [], None)
        assert called is False

    @pytest.mark.asyncio
    async def test_list_models(self):
        body = {"data": [{"id": "kimi-k2.5"}, {"id": "kimi-k2"}, "junk"]}
        provider = _provider(lambda request: httpx.Response(200, json=body))

        models = await provider.list_models()

        assert [m["id"] for m in models] == ["kimi-k2.5", "kimi-k2"]


class TestTokenFileCredentials:
    """Tests for the OAuth token file."""

    @pytest.mark.asyncio
    async def test_valid_token(self, tmp_path):
        path = tmp_path / "kimi-code.json"
        path.write_text(json.dumps({"access_token": "tok", "expires_at": time.time() + 3600}))

        assert await TokenFileCredentialProvider(path).get_valid_token() == "tok"

    @pytest.mark.asyncio
    async def test_expired_token(self, tmp_path):
        path = tmp_path / "kimi-code.json"
        path.write_text(json.dumps({"access_token": "tok", "expires_at": time.time() + 10}))

        assert await TokenFileCredentialProvider(path).get_valid_token() is None

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        provider = TokenFileCredentialProvider(tmp_path / "absent.json")
        assert await provider.get_valid_token() is None

    @pytest.mark.asyncio
    async def test_corrupt_file(self, tmp_path):
        path = tmp_path / "kimi-code.json"
        path.write_text("{oops")

        assert await TokenFileCredentialProvider(path).get_valid_token() is None


class TestOpenAIProvider:
    """Tests for the OpenAI SDK provider."""

    @pytest.fixture
    def sdk_client(self):
        client = MagicMock()
        completion = MagicMock()
        completion.model_dump.return_value = _completion(
            {"role": "assistant", "content": "hello", "reasoning_content": "thinking..."}
        )
        client.chat.completions.create = AsyncMock(return_value=completion)
        client.close = AsyncMock()
        return client

    @pytest.mark.asyncio
    async def test_complete(self, sdk_client):
        with patch("agentdesk.providers.openai.AsyncOpenAI", return_value=sdk_client) as factory:
            provider = OpenAIProvider(
                LLMProviderConfig(base_url=BASE_URL), StaticCredentialProvider("sk-test")
            )
            response = await provider.complete("kimi-k2.5", [{"role": "user", "content": "hi"}])

        assert response.content == "hello"
        assert response.reasoning == "thinking..."
        assert factory.call_args.kwargs["api_key"] == "sk-test"
        assert factory.call_args.kwargs["max_retries"] == 0
        kwargs = sdk_client.chat.completions.create.await_args.kwargs
        assert "stream" not in kwargs
        assert "tools" not in kwargs

    @pytest.mark.asyncio
    async def test_client_rebuilt_when_token_changes(self, sdk_client):
        credentials = AsyncMock()
        credentials.get_valid_token.side_effect = ["tok-1", "tok-1", "tok-2"]

        with patch("agentdesk.providers.openai.AsyncOpenAI", return_value=sdk_client) as factory:
            provider = OpenAIProvider(LLMProviderConfig(base_url=BASE_URL), credentials)
            for _ in range(3):
                await provider.complete("kimi-k2.5", [])

        assert factory.call_count == 2

    @pytest.mark.asyncio
    async def test_status_error_maps_to_transport_error(self, sdk_client):
        request = httpx.Request("POST", f"{BASE_URL}/chat/completions")
        sdk_client.chat.completions.create.side_effect = openai.APIStatusError(
            "server exploded",
            response=httpx.Response(500, request=request),
            body=None,
        )

        with patch("agentdesk.providers.openai.AsyncOpenAI", return_value=sdk_client):
            provider = OpenAIProvider(
                LLMProviderConfig(base_url=BASE_URL), StaticCredentialProvider("sk-test")
            )
            with pytest.raises(TransportError) as exc:
                await provider.complete("kimi-k2.5", [])

        assert exc.value.status_code == 500

    @pytest.mark.asyncio
    async def test_aclose(self, sdk_client):
        with patch("agentdesk.providers.openai.AsyncOpenAI", return_value=sdk_client):
            provider = OpenAIProvider(
                LLMProviderConfig(base_url=BASE_URL), StaticCredentialProvider("sk-test")
            )
            await provider.complete("kimi-k2.5", [])
            await provider.aclose()

        sdk_client.close.assert_awaited_once()
