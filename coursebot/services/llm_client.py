"""
OpenAI completion client used by the AI analyzer
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import openai

from coursebot.core.config import settings
from coursebot.core.exceptions import ConfigurationError, LLMServiceError

logger = logging.getLogger(__name__)


@dataclass
class LLMCompletion:
    """Content returned by the completion service"""

    content: str
    usage: Dict[str, int] = field(default_factory=dict)
    model: str = ""


class LLMClient:
    """Thin wrapper over openai.AsyncOpenAI chat completions"""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, client: Any = None):
        self.api_key = api_key if api_key is not None else settings.openai_api_key
        self.model = model or settings.openai_model
        self._client = client
        self.api_usage_stats = {
            "total_requests": 0,
            "successful_requests": 0,
            "failed_requests": 0,
            "total_tokens": 0,
        }

    @property
    def client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            self._validate_api_key()
            self._client = openai.AsyncOpenAI(
                api_key=self.api_key,
                timeout=settings.openai_timeout,
                max_retries=settings.openai_max_retries,
            )
        return self._client

    def _validate_api_key(self):
        """Validate OpenAI API key"""
        if not self.api_key:
            raise ConfigurationError("OpenAI API key not configured (OPENAI_API_KEY)")

    async def complete(self, prompt: str, params: Optional[Dict[str, Any]] = None) -> LLMCompletion:
        """
        Run one chat completion.

        Args:
            prompt: Full user prompt
            params: Optional overrides: system, model, max_tokens, temperature, json_mode

        Raises:
            ConfigurationError: Empty prompt or missing credentials, before any network call
            LLMServiceError: The service failed or returned no content
        """
        if not prompt or not prompt.strip():
            raise ConfigurationError("LLM completion requires a non-empty prompt")
        self._validate_api_key()

        params = params or {}
        model = params.get("model", self.model)
        messages = []
        if params.get("system"):
            messages.append({"role": "system", "content": params["system"]})
        messages.append({"role": "user", "content": prompt})

        request: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": params.get("max_tokens", settings.openai_max_tokens),
            "temperature": params.get("temperature", settings.openai_temperature),
        }
        if params.get("json_mode", True):
            request["response_format"] = {"type": "json_object"}

        self.api_usage_stats["total_requests"] += 1
        start_time = time.time()
        try:
            response = await self.client.chat.completions.create(**request)
        except openai.AuthenticationError as e:
            self.api_usage_stats["failed_requests"] += 1
            logger.error(f"OpenAI authentication failed: {e}")
            raise ConfigurationError(f"OpenAI authentication failed: {e}") from e
        except openai.RateLimitError as e:
            self.api_usage_stats["failed_requests"] += 1
            logger.warning(f"OpenAI rate limit exceeded: {e}")
            raise LLMServiceError(f"Rate limit exceeded: {e}") from e
        except openai.APIError as e:
            self.api_usage_stats["failed_requests"] += 1
            logger.error(f"OpenAI API error: {e}")
            raise LLMServiceError(f"OpenAI API error: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            self.api_usage_stats["failed_requests"] += 1
            logger.warning("OpenAI API returned empty response")
            raise LLMServiceError("OpenAI API returned empty response")

        usage = {}
        if getattr(response, "usage", None):
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
            self.api_usage_stats["total_tokens"] += response.usage.total_tokens
        self.api_usage_stats["successful_requests"] += 1

        logger.info(
            f"OpenAI completion successful - Model: {model}, Response time: {time.time() - start_time:.2f}s, "
            f"Tokens: {usage.get('total_tokens', 'N/A')}"
        )
        return LLMCompletion(content=content, usage=usage, model=getattr(response, "model", model) or model)


_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get or create the shared LLM client"""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client
