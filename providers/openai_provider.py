"""
OpenAI backend (Responses API).

JSON output is requested with ``text.format = json_object``. Reasoning models
(o1, o3, gpt-5 families) reject ``temperature``, so it is omitted for them.
"""

from typing import Any, Dict, Optional

import openai
from openai import OpenAI, AsyncOpenAI

from core.errors import LLMError, LLMRateLimitError, LLMConnectionError
from .base import LLMProvider, LLMConfig, LLMResponse, Messages
from .tracker import usage_tracker

_TRANSIENT_STATUS = (503, 504)

REASONING_MODEL_PREFIXES = ("o1", "o3", "o4", "gpt-5")


def map_openai_error(e: Exception, model: str) -> LLMError:
    """Translate an OpenAI SDK exception into the LLMError hierarchy."""
    if isinstance(e, openai.RateLimitError):
        return LLMRateLimitError(f"OpenAI rate limit for model '{model}': {e}", model=model, cause=e)
    if isinstance(e, (openai.APITimeoutError, openai.APIConnectionError)):
        return LLMConnectionError(f"OpenAI connection failed for model '{model}': {e}", model=model, cause=e)
    if isinstance(e, openai.APIStatusError) and e.status_code in _TRANSIENT_STATUS:
        return LLMConnectionError(f"OpenAI unavailable ({e.status_code}) for model '{model}'", model=model, cause=e)
    return LLMError(f"OpenAI request failed for model '{model}': {e}", model=model, cause=e)


def _output_text(response: Any) -> str:
    text = getattr(response, "output_text", None)
    if text:
        return text
    for item in getattr(response, "output", None) or []:
        for part in getattr(item, "content", None) or []:
            if getattr(part, "text", None):
                return part.text
    return ""


class OpenAIProvider(LLMProvider):
    """OpenAI provider with a sync client and a lazily built async one."""

    API_KEY_ENV_VARS = ("OPENAI_API_KEY",)

    def __init__(self, model: str, api_key: Optional[str] = None, timeout_ms: int = 30_000):
        super().__init__(model, api_key, timeout_ms)
        # max_retries=0: LLMClient owns the retry policy
        self.client = OpenAI(api_key=self.api_key, timeout=self.timeout_seconds, max_retries=0)
        self._async_client: Optional[AsyncOpenAI] = None

    @property
    def async_client(self) -> AsyncOpenAI:
        if self._async_client is None:
            self._async_client = AsyncOpenAI(api_key=self.api_key, timeout=self.timeout_seconds, max_retries=0)
        return self._async_client

    @property
    def is_reasoning_model(self) -> bool:
        return self.model.lower().startswith(REASONING_MODEL_PREFIXES)

    def supports_json_mode(self) -> bool:
        return True

    def _build_params(self, messages: Messages, config: LLMConfig) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "model": self.model,
            "input": [{"role": m.get("role", "user"), "content": m.get("content", "")} for m in messages],
        }
        if not self.is_reasoning_model:
            params["temperature"] = config.temperature
        if config.json_mode:
            params["text"] = {"format": {"type": "json_object"}}
        if config.max_tokens:
            params["max_output_tokens"] = config.max_tokens
        return params

    def _to_response(self, response: Any) -> LLMResponse:
        usage: Optional[Dict[str, int]] = None
        counts = getattr(response, "usage", None)
        if counts:
            prompt = getattr(counts, "input_tokens", 0) or 0
            completion = getattr(counts, "output_tokens", 0) or 0
            usage = {
                "prompt_tokens": prompt,
                "completion_tokens": completion,
                "total_tokens": getattr(counts, "total_tokens", 0) or prompt + completion,
            }
            usage_tracker.add_usage(prompt, completion)

        return LLMResponse(
            content=_output_text(response),
            model=getattr(response, "model", self.model),
            usage=usage,
            finish_reason=getattr(response, "status", None),
        )

    def generate(self, messages: Messages, config: Optional[LLMConfig] = None) -> LLMResponse:
        params = self._build_params(messages, config or LLMConfig())
        try:
            response = self.client.responses.create(**params)
        except Exception as e:
            raise map_openai_error(e, self.model)
        return self._to_response(response)

    async def agenerate(self, messages: Messages, config: Optional[LLMConfig] = None) -> LLMResponse:
        params = self._build_params(messages, config or LLMConfig())
        try:
            response = await self.async_client.responses.create(**params)
        except Exception as e:
            raise map_openai_error(e, self.model)
        return self._to_response(response)
