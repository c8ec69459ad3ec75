"""
Unit tests for the OpenAI completion client
"""
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import httpx
import openai
import pytest

from coursebot.core.exceptions import ConfigurationError, LLMServiceError
from coursebot.services.llm_client import LLMClient


def make_response(content, total_tokens=120):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=100, completion_tokens=total_tokens - 100, total_tokens=total_tokens),
        model="gpt-4o-mini",
    )


@pytest.fixture
def openai_client():
    client = Mock()
    client.chat.completions.create = AsyncMock(return_value=make_response('{"intent": "record_course"}'))
    return client


class TestLLMClient:
    """Tests for request building and error mapping"""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_complete_success(self, openai_client):
        client = LLMClient(api_key="sk-test", model="gpt-4o-mini", client=openai_client)

        completion = await client.complete("分析這句話", {"system": "You are a classifier", "temperature": 0})

        assert completion.content == '{"intent": "record_course"}'
        assert completion.usage["total_tokens"] == 120
        assert client.api_usage_stats["successful_requests"] == 1

        request = openai_client.chat.completions.create.call_args.kwargs
        assert request["model"] == "gpt-4o-mini"
        assert request["temperature"] == 0
        assert request["response_format"] == {"type": "json_object"}
        assert request["messages"][0] == {"role": "system", "content": "You are a classifier"}
        assert request["messages"][-1] == {"role": "user", "content": "分析這句話"}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_json_mode_off(self, openai_client):
        client = LLMClient(api_key="sk-test", client=openai_client)

        await client.complete("hello", {"json_mode": False})

        assert "response_format" not in openai_client.chat.completions.create.call_args.kwargs

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("prompt", ["", "   ", None])
    async def test_empty_prompt_rejected_before_call(self, openai_client, prompt):
        client = LLMClient(api_key="sk-test", client=openai_client)

        with pytest.raises(ConfigurationError):
            await client.complete(prompt)
        openai_client.chat.completions.create.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_api_key(self, openai_client):
        client = LLMClient(api_key="", client=openai_client)

        with pytest.raises(ConfigurationError):
            await client.complete("hello")
        openai_client.chat.completions.create.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_content_is_service_error(self, openai_client):
        openai_client.chat.completions.create.return_value = make_response("")
        client = LLMClient(api_key="sk-test", client=openai_client)

        with pytest.raises(LLMServiceError):
            await client.complete("hello")
        assert client.api_usage_stats["failed_requests"] == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_api_errors_mapped(self, openai_client):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        client = LLMClient(api_key="sk-test", client=openai_client)

        openai_client.chat.completions.create.side_effect = openai.APIConnectionError(request=request)
        with pytest.raises(LLMServiceError):
            await client.complete("hello")

        openai_client.chat.completions.create.side_effect = openai.AuthenticationError(
            "invalid key", response=httpx.Response(401, request=request), body=None
        )
        with pytest.raises(ConfigurationError):
            await client.complete("hello")

        openai_client.chat.completions.create.side_effect = openai.RateLimitError(
            "slow down", response=httpx.Response(429, request=request), body=None
        )
        with pytest.raises(LLMServiceError):
            await client.complete("hello")
